"""Exception types raised by the kernel transport."""

from __future__ import annotations

__all__ = [
    "TransportError",
    "PortAllocationError",
    "HttpPortArgumentError",
    "KernelNotRunningError",
    "KernelExitedError",
    "MalformedEnvelopeError",
    "KernelHttpError",
]


class TransportError(Exception):
    """Base exception for the kernel transport."""
    pass


class PortAllocationError(TransportError):
    """No ephemeral port could be obtained from the OS."""
    pass


class HttpPortArgumentError(TransportError, ValueError):
    """The value following ``--http-port`` is missing, not an integer or outside 1-65535."""
    pass


class KernelNotRunningError(TransportError):
    """A command was submitted while the kernel process was not running."""
    pass


class KernelExitedError(TransportError):
    """The kernel process exited before it reported ready.

    Attributes:
        pid: Process id of the kernel
        returncode: Exit code (negative when killed by a signal)
    """

    def __init__(self, pid: int | None, returncode: int | None) -> None:
        self.pid = pid
        self.returncode = returncode
        super().__init__(
            f"Kernel pid {pid} exited with returncode {returncode} before it was ready"
        )


class MalformedEnvelopeError(TransportError, ValueError):
    """An inbound line could not be decoded into an event envelope."""
    pass


class KernelHttpError(TransportError):
    """A request to the kernel's HTTP side-channel failed.

    Attributes:
        status_code: HTTP status code (0 for network errors)
        message: Error message
        url: Requested URL
    """

    def __init__(self, status_code: int, message: str, url: str = "") -> None:
        self.status_code = status_code
        self.message = message
        self.url = url
        super().__init__(f"[{status_code}] {message}")
