"""Kernel argument negotiation for the HTTP side-channel port."""

from __future__ import annotations

import logging

from .contracts import HTTP_PORT_FLAG, HTTP_PORT_RANGE_FLAG, ReportChannel
from .errors import HttpPortArgumentError
from .ports import PortAllocator, find_free_port

__all__ = ["configure_http_args", "parse_http_port"]

logger = logging.getLogger(__name__)

HTTP_PORT_RANGE_DEPRECATION = (
    f"The {HTTP_PORT_RANGE_FLAG} option is not supported, remove it from the kernel "
    f"arguments. The kernel will start with the {HTTP_PORT_FLAG} option instead."
)


def parse_http_port(args: list[str], index: int) -> int:
    """Parse the port value that follows ``--http-port`` at ``args[index]``.

    Raises:
        HttpPortArgumentError: If the value is missing, not an integer or out of range
    """
    if index + 1 >= len(args):
        raise HttpPortArgumentError(f"{HTTP_PORT_FLAG} requires a port number")
    value = args[index + 1]
    try:
        port = int(value)
    except ValueError as e:
        raise HttpPortArgumentError(
            f"{HTTP_PORT_FLAG} value is not a port number: {value!r}"
        ) from e
    if not 0 < port < 65536:
        raise HttpPortArgumentError(f"{HTTP_PORT_FLAG} value is out of range: {port}")
    return port


async def configure_http_args(
    args: list[str],
    channel: ReportChannel,
    allocate_port: PortAllocator = find_free_port,
) -> tuple[list[str], int]:
    """Make sure the kernel arguments name exactly one HTTP port.

    Rules, in priority order:
    1. ``--http-port N`` already present: keep the arguments, use ``N``.
    2. ``--http-port-range ...`` present: replace the flag and its value in
       place with ``--http-port <fresh port>`` and report the deprecation.
    3. Otherwise append ``--http-port <fresh port>``.

    Args:
        args: Kernel arguments (not mutated)
        channel: Diagnostic sink for the deprecation notice
        allocate_port: Async callable returning a free port

    Returns:
        Tuple of (new argument list, assigned port)

    Raises:
        HttpPortArgumentError: If an explicit port value is invalid
        PortAllocationError: If a fresh port is needed and none can be allocated
    """
    new_args = list(args)

    if HTTP_PORT_FLAG in new_args:
        port = parse_http_port(new_args, new_args.index(HTTP_PORT_FLAG))
        logger.debug(f"Using explicit HTTP port {port}")
        return new_args, port

    port = await allocate_port()

    if HTTP_PORT_RANGE_FLAG in new_args:
        index = new_args.index(HTTP_PORT_RANGE_FLAG)
        channel.append_line(HTTP_PORT_RANGE_DEPRECATION)
        new_args[index] = HTTP_PORT_FLAG
        if index + 1 < len(new_args):
            new_args[index + 1] = str(port)
        else:
            new_args.append(str(port))
    else:
        new_args.extend([HTTP_PORT_FLAG, str(port)])

    logger.debug(f"Assigned HTTP port {port}")
    return new_args, port
