"""Process host for the long-running kernel subprocess.

This module provides:
- Cross-platform subprocess isolation (new session/process group)
- Piped stdin/stdout/stderr for the line protocol
- An explicit lifecycle status (not started / running / terminated)
- Reliable termination with graceful shutdown (SIGTERM -> timeout -> SIGKILL)

Key design points:
- POSIX: start_new_session=True to create a new process group
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- Termination signals the process group, not just the main process
"""

from __future__ import annotations

import asyncio
import enum
import logging
import os
import signal
import subprocess
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

__all__ = [
    "IS_WINDOWS",
    "ProcessHost",
    "ProcessStatus",
    "describe_exit",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL


class ProcessStatus(enum.Enum):
    """Lifecycle of the hosted process."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    TERMINATED = "terminated"


def describe_exit(pid: int | None, returncode: int | None) -> str:
    """Human readable termination message.

    The exit code is only mentioned when non-zero; a negative return code
    (POSIX: killed by a signal) is reported as the signal name.
    """
    message = f"Kernel pid {pid} ended"
    if returncode is None:
        return message
    if returncode > 0:
        message += f" with code {returncode}"
    elif returncode < 0:
        try:
            signal_name = signal.Signals(-returncode).name
        except ValueError:
            signal_name = str(-returncode)
        message += f" with signal {signal_name}"
    return message


class ProcessHost:
    """Owns one kernel subprocess for its entire lifetime.

    Example:
        host = ProcessHost()
        process = await host.spawn("dotnet", ["interactive", "stdio"], cwd=Path("."))
        process.stdin.write(b"...\\n")
        ...
        await host.terminate()
    """

    def __init__(
        self,
        term_timeout: float = DEFAULT_TERM_TIMEOUT,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
    ) -> None:
        self.term_timeout = term_timeout
        self.kill_timeout = kill_timeout
        self._process: asyncio.subprocess.Process | None = None
        self._status = ProcessStatus.NOT_STARTED

    @property
    def process(self) -> asyncio.subprocess.Process | None:
        return self._process

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def status(self) -> ProcessStatus:
        return self._status

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process else None

    def mark_terminated(self) -> None:
        """Record that the process has exited (or will never start)."""
        self._status = ProcessStatus.TERMINATED

    async def spawn(
        self,
        command: str,
        args: list[str],
        *,
        cwd: Path | str,
        env: Mapping[str, str] | None = None,
    ) -> asyncio.subprocess.Process:
        """Start the subprocess with all three standard streams piped.

        Raises:
            RuntimeError: If a process was already spawned by this host
            OSError: If the executable cannot be started
        """
        if self._status is not ProcessStatus.NOT_STARTED:
            raise RuntimeError(f"Process already {self._status.value}")

        kwargs = self._build_subprocess_kwargs(env)

        try:
            self._process = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                **kwargs,
            )
        except OSError:
            self._status = ProcessStatus.TERMINATED
            raise

        self._status = ProcessStatus.RUNNING
        logger.debug(
            f"Started subprocess pid={self._process.pid} "
            f"argv0={command} cwd={cwd}"
        )
        return self._process

    def _build_subprocess_kwargs(self, env: Mapping[str, str] | None) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs."""
        kwargs: dict[str, Any] = {}

        if env is not None:
            kwargs["env"] = dict(env)

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True

        return kwargs

    async def wait(self) -> int | None:
        """Wait for the process to exit and return its return code."""
        if self._process is None:
            return None
        returncode = await self._process.wait()
        self._status = ProcessStatus.TERMINATED
        return returncode

    def terminate_nowait(self) -> bool:
        """Send the termination signal without waiting.

        Returns:
            True if a signal was sent, False if there was no live process
        """
        process = self._process
        if process is None or process.returncode is not None:
            return False

        try:
            if IS_WINDOWS:
                self._windows_terminate(process)
            else:
                self._posix_signal(process, signal.SIGTERM)
        except ProcessLookupError:
            return False
        return True

    async def terminate(self) -> None:
        """Terminate the process gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM (or CTRL_BREAK_EVENT on Windows)
        2. Wait up to term_timeout for graceful exit
        3. If still running, send SIGKILL (or kill() on Windows)
        4. Wait up to kill_timeout for forced exit
        """
        process = self._process
        if process is None or process.returncode is not None:
            return

        pid = process.pid
        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            self.terminate_nowait()

            try:
                await asyncio.wait_for(process.wait(), timeout=self.term_timeout)
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return
            except asyncio.TimeoutError:
                pass

            logger.debug(f"Force killing subprocess pid={pid}")
            if IS_WINDOWS:
                process.kill()
            else:
                self._posix_signal(process, signal.SIGKILL)

            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
                logger.debug(
                    f"Subprocess killed pid={pid} "
                    f"returncode={process.returncode}"
                )
            except asyncio.TimeoutError:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")

        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")
        except OSError as e:
            logger.warning(f"Error terminating subprocess pid={pid}: {e}")
        finally:
            if process.returncode is not None:
                self._status = ProcessStatus.TERMINATED

    def _posix_signal(
        self,
        process: asyncio.subprocess.Process,
        sig: signal.Signals,
    ) -> None:
        """Send ``sig`` to the process group on POSIX systems."""
        try:
            # Same as pid because of start_new_session
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, sig)
            logger.debug(f"Sent {sig.name} to process group pgid={pgid}")
        except ProcessLookupError:
            raise
        except OSError as e:
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            process.send_signal(sig)

    def _windows_terminate(self, process: asyncio.subprocess.Process) -> None:
        """Send CTRL_BREAK_EVENT on Windows."""
        try:
            # Works because of CREATE_NEW_PROCESS_GROUP
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={process.pid}")
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            process.terminate()
