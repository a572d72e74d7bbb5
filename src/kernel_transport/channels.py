"""Diagnostic sinks (``ReportChannel`` implementations)."""

from __future__ import annotations

import logging

__all__ = ["LoggingReportChannel"]


class LoggingReportChannel:
    """Routes diagnostic lines into the logging system.

    Process notices, kernel stderr and ``DiagnosticLogEntryProduced`` messages
    all end up on the ``kernel_transport.kernel`` logger by default.
    """

    def __init__(self, name: str = "kernel_transport.kernel", level: int = logging.INFO) -> None:
        self._logger = logging.getLogger(name)
        self._level = level

    def append_line(self, text: str) -> None:
        self._logger.log(self._level, text.rstrip("\n"))
