"""Stdio kernel transport.

Launches the kernel subprocess and speaks the line-delimited JSON protocol
over its standard streams:

- stdout: one event envelope per line, fanned out to observers
- stdin: one command envelope per line
- stderr: passed through to the diagnostic channel

Startup runs in the background: construction schedules argument negotiation
(HTTP port), the spawn and the stream wiring, and returns immediately.
Callers observe readiness with ``wait_for_ready()``.
"""

from __future__ import annotations

import asyncio
import codecs
import functools
import logging
from typing import Any

import anyio

from .arguments import configure_http_args
from .config import Config, get_config
from .contracts import (
    DiagnosticLogEntryProducedType,
    KernelCommandEnvelope,
    KernelEventEnvelope,
    KernelEventEnvelopeObserver,
    KernelReadyType,
    ProcessStart,
    ReportChannel,
)
from .errors import KernelExitedError, KernelNotRunningError, MalformedEnvelopeError
from .line_reader import LineReader
from .observers import DisposableSubscription, ObserverSet
from .ports import PortAllocator, find_free_port
from .runtime.process_host import ProcessHost, ProcessStatus, describe_exit
from .utilities import parse, stringify

__all__ = ["StdioKernelTransport"]

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096
MALFORMED_LINE_PREVIEW = 200


def _retrieve_exception(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()


class StdioKernelTransport:
    """Owns the kernel subprocess and its protocol channel.

    Must be constructed inside a running asyncio event loop.

    Example:
        transport = StdioKernelTransport(
            ProcessStart(command="dotnet", args=["interactive", "stdio"], working_directory="."),
            LoggingReportChannel(),
        )
        subscription = transport.subscribe_to_kernel_events(print)
        await transport.wait_for_ready()
        await transport.submit_command({"code": "1+1"}, "SubmitCode", "tok-1")
        ...
        subscription.dispose()
        await transport.aclose()

    Lifecycle: NOT_STARTED -> RUNNING -> TERMINATED. Readiness is an
    independent flag reached at most once while running; commands may be
    submitted before it.
    """

    def __init__(
        self,
        process_start: ProcessStart,
        diagnostic_channel: ReportChannel,
        *,
        config: Config | None = None,
        allocate_port: PortAllocator | None = None,
    ) -> None:
        """Schedule the kernel startup.

        Args:
            process_start: Executable, arguments and working directory
            diagnostic_channel: Sink for process notices and kernel diagnostics
            config: Transport configuration (default: from environment)
            allocate_port: Async callable returning a free port (default: probe
                ``config.port_host``)

        Raises:
            RuntimeError: If there is no running event loop
        """
        loop = asyncio.get_running_loop()

        self._config = config or get_config()
        self._process_start = process_start
        self._diagnostic_channel = diagnostic_channel
        self._allocate_port = allocate_port or functools.partial(
            find_free_port, self._config.port_host
        )

        self._host = ProcessHost(
            term_timeout=self._config.term_timeout,
            kill_timeout=self._config.kill_timeout,
        )
        self._line_reader = LineReader()
        self._line_reader.subscribe(self._handle_line)
        self._subscribers: ObserverSet[KernelEventEnvelope] = ObserverSet("kernel events")

        self._args: list[str] = list(process_start.args)
        self._http_port = 0
        self._disposed = False
        self._pump_tasks: list[asyncio.Task[None]] = []
        self._exit_task: asyncio.Task[None] | None = None

        # The ready listener exists before the spawn is even scheduled, so the
        # sentinel cannot be missed
        self._ready: asyncio.Future[None] = loop.create_future()
        # Failures also reach the diagnostic channel; nobody has to await them
        self._ready.add_done_callback(_retrieve_exception)
        self._ready_subscription = self.subscribe_to_kernel_events(self._on_ready_candidate)

        self._startup_task = loop.create_task(self._start())

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def http_port(self) -> int:
        """Port of the kernel's HTTP side-channel (0 until negotiated)."""
        return self._http_port

    @property
    def args(self) -> list[str]:
        """Arguments the kernel was (or will be) started with."""
        return list(self._args)

    @property
    def pid(self) -> int | None:
        return self._host.pid

    @property
    def status(self) -> ProcessStatus:
        return self._host.status

    @property
    def is_ready(self) -> bool:
        return self._ready.done() and not self._ready.cancelled() and self._ready.exception() is None

    # =========================================================================
    # Startup
    # =========================================================================

    async def _start(self) -> None:
        """Negotiate arguments, spawn the kernel and wire its streams."""
        try:
            self._args, self._http_port = await configure_http_args(
                self._process_start.args,
                self._diagnostic_channel,
                self._allocate_port,
            )
            process = await self._host.spawn(
                self._process_start.command,
                self._args,
                cwd=self._process_start.working_directory,
                env=self._process_start.env,
            )
        except Exception as e:
            self._host.mark_terminated()
            logger.warning(f"Kernel failed to start: {e}")
            self._diagnostic_channel.append_line(f"Kernel failed to start: {e}")
            self._reject_ready(e)
            return

        pid = process.pid
        self._diagnostic_channel.append_line(f"Kernel started with pid {pid}.")

        self._pump_tasks = [
            asyncio.create_task(self._pump_stdout(process)),
            asyncio.create_task(self._pump_stderr(process, pid)),
        ]
        self._exit_task = asyncio.create_task(self._watch_exit(pid))

        if self._disposed:
            logger.debug(f"Transport disposed during startup, terminating pid={pid}")
            self._host.terminate_nowait()

    async def _pump_stdout(self, process: asyncio.subprocess.Process) -> None:
        if process.stdout is None:
            return
        while True:
            chunk = await process.stdout.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            self._line_reader.on_data(chunk)
        self._line_reader.flush()

    async def _pump_stderr(self, process: asyncio.subprocess.Process, pid: int) -> None:
        if process.stderr is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await process.stderr.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            text = decoder.decode(chunk).rstrip("\r\n")
            if text:
                self._diagnostic_channel.append_line(f"kernel ({pid}) stderr: {text}")
        tail = decoder.decode(b"", final=True)
        if tail:
            self._diagnostic_channel.append_line(f"kernel ({pid}) stderr: {tail}")

    async def _watch_exit(self, pid: int) -> None:
        returncode = await self._host.wait()

        # Let the pumps deliver whatever the kernel wrote before exiting
        pending = [task for task in self._pump_tasks if not task.done()]
        if pending:
            await asyncio.wait(pending, timeout=self._config.drain_timeout)

        message = describe_exit(pid, returncode)
        logger.debug(message)
        self._diagnostic_channel.append_line(message)
        self._reject_ready(KernelExitedError(pid, returncode))

    # =========================================================================
    # Readiness
    # =========================================================================

    def _on_ready_candidate(self, envelope: KernelEventEnvelope) -> None:
        if envelope.event_type == KernelReadyType:
            self._ready_subscription.dispose()
            if not self._ready.done():
                self._ready.set_result(None)
                logger.debug(f"Kernel pid={self.pid} is ready")

    def _reject_ready(self, error: BaseException) -> None:
        if not self._ready.done():
            self._ready_subscription.dispose()
            self._ready.set_exception(error)

    async def wait_for_exit(self) -> int | None:
        """Wait until the kernel process has exited and its output is drained.

        Returns:
            The return code, or None if the kernel never started
        """
        await asyncio.shield(self._startup_task)
        if self._exit_task is not None:
            await asyncio.shield(self._exit_task)
        return self._host.returncode

    async def wait_for_ready(self, timeout: float | None = None) -> None:
        """Wait until the kernel reports ``KernelReady``.

        Any number of callers may wait, before or after readiness. A timeout
        only affects the caller that set it.

        Args:
            timeout: Seconds to wait (None = no limit)

        Raises:
            TimeoutError: If ``timeout`` elapsed first
            KernelExitedError: If the kernel exited before it was ready
            TransportError: If startup failed (e.g. port allocation)
            OSError: If the kernel executable could not be started
        """
        with anyio.fail_after(timeout):
            await asyncio.shield(self._ready)

    # =========================================================================
    # Inbound
    # =========================================================================

    def _handle_line(self, line: str) -> None:
        """Decode one stdout line and fan it out."""
        if not line.strip():
            return

        try:
            envelope = KernelEventEnvelope.from_dict(parse(line))
        except ValueError as e:
            # JSONDecodeError and MalformedEnvelopeError are both ValueErrors
            preview = line[:MALFORMED_LINE_PREVIEW]
            reason = "invalid JSON" if not isinstance(e, MalformedEnvelopeError) else str(e)
            logger.warning(f"Dropping malformed line from kernel pid={self.pid}: {reason}")
            self._diagnostic_channel.append_line(
                f"kernel ({self.pid}) sent malformed line ({reason}): {preview}"
            )
            return

        if envelope.event_type == DiagnosticLogEntryProducedType and isinstance(envelope.event, dict):
            message = envelope.event.get("message")
            if message is not None:
                self._diagnostic_channel.append_line(
                    message if isinstance(message, str) else str(message)
                )

        self._subscribers.notify(envelope)

    def subscribe_to_kernel_events(
        self,
        observer: KernelEventEnvelopeObserver,
    ) -> DisposableSubscription:
        """Register an observer for every inbound envelope.

        Diagnostic entries are delivered too; observers filter by
        ``event_type`` themselves.

        Returns:
            Handle whose ``dispose()`` removes exactly this registration
        """
        return self._subscribers.subscribe(observer)

    # =========================================================================
    # Outbound
    # =========================================================================

    async def submit_command(self, command: Any, command_type: str, token: str) -> None:
        """Write one command envelope line to the kernel's stdin.

        Args:
            command: Command payload (JSON serialisable)
            command_type: Command discriminant
            token: Correlation token

        Raises:
            KernelNotRunningError: If the kernel is not running or its stdin is closed
        """
        process = self._host.process
        if self._host.status is not ProcessStatus.RUNNING or process is None or process.stdin is None:
            raise KernelNotRunningError(
                f"Cannot submit {command_type}: kernel is {self._host.status.value}"
            )

        envelope = KernelCommandEnvelope(token=token, command_type=command_type, command=command)
        data = (stringify(envelope.to_dict()) + "\n").encode("utf-8")

        try:
            process.stdin.write(data)
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise KernelNotRunningError(
                f"Cannot submit {command_type}: kernel pid {process.pid} closed its input"
            ) from e

        logger.debug(f"Submitted {command_type} token={token} to pid={process.pid}")

    # =========================================================================
    # Disposal
    # =========================================================================

    def dispose(self) -> None:
        """Signal the kernel to terminate; no effect if it is not running.

        Observers stay registered. Pending ``wait_for_ready()`` calls fail with
        ``KernelExitedError`` once the exit is observed.
        """
        self._disposed = True
        if self._host.terminate_nowait():
            logger.debug(f"Sent termination signal to kernel pid={self.pid}")

    async def aclose(self) -> None:
        """Terminate the kernel gracefully and wait for the background tasks."""
        self._disposed = True

        if not self._startup_task.done():
            await asyncio.wait([self._startup_task])

        await self._host.terminate()

        if self._exit_task is not None and not self._exit_task.done():
            await asyncio.wait([self._exit_task], timeout=self._config.drain_timeout + 1.0)

        leftovers = [task for task in (*self._pump_tasks, self._exit_task) if task and not task.done()]
        for task in leftovers:
            task.cancel()
        if leftovers:
            await asyncio.gather(*leftovers, return_exceptions=True)

    async def __aenter__(self) -> "StdioKernelTransport":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
