"""Client for the kernel's HTTP side-channel.

The kernel listens on the port negotiated by the transport
(``--http-port``). This client only knows how to reach it; what the kernel
serves there is up to the kernel.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import aiohttp

from .errors import KernelHttpError
from .ports import DEFAULT_PORT_HOST

if TYPE_CHECKING:
    from .transport import StdioKernelTransport

__all__ = ["KernelHttpClient"]

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0


class KernelHttpClient:
    """HTTP client bound to one kernel's side-channel port.

    Example:
        async with KernelHttpClient.for_transport(transport) as client:
            if await client.is_reachable():
                status, body = await client.get("/")
    """

    def __init__(
        self,
        port: int,
        host: str = DEFAULT_PORT_HOST,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        if not 0 < port < 65536:
            raise ValueError(f"Invalid kernel HTTP port: {port}")
        self._base_url = f"http://{host}:{port}"
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    @classmethod
    def for_transport(
        cls,
        transport: "StdioKernelTransport",
        host: str = DEFAULT_PORT_HOST,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> "KernelHttpClient":
        """Client for a transport whose HTTP port has been negotiated.

        Raises:
            ValueError: If the transport has no HTTP port yet
        """
        return cls(transport.http_port, host=host, timeout=timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    def url_for(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def get(self, path: str = "/") -> tuple[int, str]:
        """GET ``path`` from the kernel.

        Returns:
            Tuple of (status code, response body)

        Raises:
            KernelHttpError: On network errors
        """
        url = self.url_for(path)
        session = await self._get_session()
        try:
            async with session.get(url) as resp:
                body = await resp.text()
                return resp.status, body
        except aiohttp.ClientError as e:
            raise KernelHttpError(0, f"Network error: {e}", url) from e
        except asyncio.TimeoutError as e:
            raise KernelHttpError(0, "Request timed out", url) from e

    async def get_json(self, path: str) -> Any:
        """GET ``path`` and decode the JSON body.

        Raises:
            KernelHttpError: On network errors, 4xx/5xx status or invalid JSON
        """
        url = self.url_for(path)
        session = await self._get_session()
        try:
            async with session.get(url) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise KernelHttpError(resp.status, text[:500], url)
                return await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise KernelHttpError(0, f"Network error: {e}", url) from e
        except asyncio.TimeoutError as e:
            raise KernelHttpError(0, "Request timed out", url) from e
        except ValueError as e:
            raise KernelHttpError(0, f"Invalid JSON: {e}", url) from e

    async def is_reachable(self, path: str = "/") -> bool:
        """Whether the kernel answers HTTP requests at all (any status)."""
        try:
            await self.get(path)
        except KernelHttpError as e:
            logger.debug(f"Kernel HTTP side-channel not reachable at {e.url}: {e.message}")
            return False
        return True

    async def __aenter__(self) -> "KernelHttpClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
