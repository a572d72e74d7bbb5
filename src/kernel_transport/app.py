"""Command line host for a stdio kernel.

Starts the kernel through ``StdioKernelTransport``, prints every event
envelope to stdout as one JSON line, and submits command envelopes read from
stdin (one JSON object per line with ``token``, ``commandType`` and
``command``).

Usage:
    kernel-transport [--ready-timeout SECONDS] [--cwd DIR] -- COMMAND [ARGS...]
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
import uuid
from pathlib import Path

from .channels import LoggingReportChannel
from .config import Config, get_config
from .contracts import KernelEventEnvelope, ProcessStart
from .errors import KernelNotRunningError, TransportError
from .transport import StdioKernelTransport
from .utilities import parse, stringify

__all__ = ["run_host", "main"]

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kernel-transport",
        description="Run a stdio kernel and bridge its line protocol to this terminal.",
    )
    parser.add_argument(
        "--ready-timeout",
        type=float,
        default=None,
        help="Seconds to wait for KernelReady (default: KT_READY_TIMEOUT, or forever)",
    )
    parser.add_argument(
        "--cwd",
        type=Path,
        default=Path.cwd(),
        help="Working directory for the kernel (default: current directory)",
    )
    parser.add_argument(
        "command",
        nargs=argparse.REMAINDER,
        help="Kernel executable and its arguments (after --)",
    )
    return parser


async def _open_stdin_reader() -> asyncio.StreamReader:
    """Async reader over this process's stdin."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    try:
        protocol = asyncio.StreamReaderProtocol(reader)
        await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    except ValueError:
        # Regular files cannot be watched by the event loop; they never block
        reader.feed_data(sys.stdin.buffer.read())
        reader.feed_eof()
    return reader


async def _forward_commands(transport: StdioKernelTransport, reader: asyncio.StreamReader) -> None:
    """Submit each stdin line as a command envelope until EOF."""
    while True:
        raw = await reader.readline()
        if not raw:
            logger.debug("stdin closed")
            return
        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            continue

        try:
            data = parse(line)
        except ValueError as e:
            logger.warning(f"Ignoring invalid command line: {e}")
            continue
        if not isinstance(data, dict) or not isinstance(data.get("commandType"), str):
            logger.warning("Ignoring command line without commandType")
            continue

        token = data.get("token") or str(uuid.uuid4())
        await transport.submit_command(data.get("command", {}), data["commandType"], str(token))


async def run_host(
    command: list[str],
    cwd: Path,
    ready_timeout: float | None = None,
    config: Config | None = None,
) -> int:
    """Run the kernel until stdin closes or the kernel exits.

    Returns:
        Process exit code for the host
    """
    config = config or get_config()
    process_start = ProcessStart(command=command[0], args=command[1:], working_directory=cwd)

    def print_event(envelope: KernelEventEnvelope) -> None:
        sys.stdout.write(stringify(envelope.to_dict()) + "\n")
        sys.stdout.flush()

    async with StdioKernelTransport(process_start, LoggingReportChannel(), config=config) as transport:
        subscription = transport.subscribe_to_kernel_events(print_event)

        try:
            await transport.wait_for_ready(ready_timeout)
        except TimeoutError:
            logger.error(f"Kernel did not become ready within {ready_timeout}s")
            return 1
        except (TransportError, OSError) as e:
            logger.error(f"Kernel failed before it was ready: {e}")
            return 1

        logger.info(f"Kernel ready (pid={transport.pid}, http_port={transport.http_port})")

        reader = await _open_stdin_reader()
        forward_task = asyncio.create_task(_forward_commands(transport, reader))
        exit_task = asyncio.create_task(transport.wait_for_exit())

        try:
            done, _ = await asyncio.wait(
                {forward_task, exit_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (forward_task, exit_task):
                if not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task
            subscription.dispose()

        if forward_task in done and forward_task.exception() is not None:
            error = forward_task.exception()
            if isinstance(error, KernelNotRunningError):
                logger.warning(f"Kernel stopped accepting commands: {error}")
                return 1
            raise error

        if exit_task in done:
            returncode = exit_task.result()
            return 0 if returncode == 0 else 1

    return 0


def configure_logging(config: Config) -> None:
    """Configure log handlers: stderr by default, a temp file in debug mode."""
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # Third-party loggers stay at WARNING
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("kernel_transport").setLevel(log_level)


def main(argv: list[str] | None = None) -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        parser.error("missing kernel command (use: kernel-transport -- COMMAND [ARGS...])")

    config = get_config()
    configure_logging(config)
    logger.debug(f"Starting kernel host: {config}")

    ready_timeout = args.ready_timeout if args.ready_timeout is not None else config.ready_timeout

    try:
        exit_code = asyncio.run(run_host(command, args.cwd, ready_timeout, config))
    except KeyboardInterrupt:
        exit_code = 130  # 128 + SIGINT
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
