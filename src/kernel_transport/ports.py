"""Ephemeral port allocation for the kernel's HTTP side-channel.

The port is probed by binding a listener on port 0, reading back the number the
OS assigned, and closing the listener again. The kernel process binds the port
afterwards, so there is a small window in which another process could take it.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

import anyio
from anyio.abc import SocketAttribute

from .errors import PortAllocationError

__all__ = ["DEFAULT_PORT_HOST", "PortAllocator", "find_free_port"]

logger = logging.getLogger(__name__)

DEFAULT_PORT_HOST = "127.0.0.1"

# Async callable returning a free port number
PortAllocator = Callable[[], Awaitable[int]]


async def find_free_port(host: str = DEFAULT_PORT_HOST) -> int:
    """Return a currently unused TCP port on ``host``.

    Args:
        host: Interface to probe (loopback by default)

    Returns:
        The OS-assigned port number

    Raises:
        PortAllocationError: If the listener cannot be opened or reports no port
    """
    try:
        listener = await anyio.create_tcp_listener(local_host=host, local_port=0)
    except OSError as e:
        raise PortAllocationError(f"Unable to allocate port on {host}: {e}") from e

    try:
        port = listener.extra(SocketAttribute.local_port, None)
    finally:
        await listener.aclose()

    if not port:
        raise PortAllocationError(f"Unable to allocate port on {host}: no port assigned")

    logger.debug(f"Allocated ephemeral port {port} on {host}")
    return port
