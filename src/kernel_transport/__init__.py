"""Kernel transport - lifecycle and line protocol for a stdio kernel subprocess.

Environment variables:
    KT_TERM_TIMEOUT / KT_KILL_TIMEOUT: termination timeouts (seconds)
    KT_DRAIN_TIMEOUT: output drain timeout after exit (seconds)
    KT_READY_TIMEOUT: readiness timeout for the command line host
    KT_PORT_HOST: interface probed for the HTTP side-channel port
    KT_LOG_DEBUG: debug logging to a temp file

Usage:
    kernel-transport -- dotnet interactive stdio
"""

__version__ = "0.1.0"

from .channels import LoggingReportChannel
from .contracts import (
    DiagnosticLogEntryProducedType,
    KernelCommandEnvelope,
    KernelEventEnvelope,
    KernelReadyType,
    ProcessStart,
    ReportChannel,
)
from .errors import (
    HttpPortArgumentError,
    KernelExitedError,
    KernelHttpError,
    KernelNotRunningError,
    MalformedEnvelopeError,
    PortAllocationError,
    TransportError,
)
from .http_client import KernelHttpClient
from .observers import DisposableSubscription
from .runtime import ProcessStatus
from .transport import StdioKernelTransport

__all__ = [
    "__version__",
    "DiagnosticLogEntryProducedType",
    "DisposableSubscription",
    "HttpPortArgumentError",
    "KernelCommandEnvelope",
    "KernelEventEnvelope",
    "KernelExitedError",
    "KernelHttpClient",
    "KernelNotRunningError",
    "KernelReadyType",
    "LoggingReportChannel",
    "MalformedEnvelopeError",
    "PortAllocationError",
    "ProcessStart",
    "ProcessStatus",
    "ReportChannel",
    "StdioKernelTransport",
    "TransportError",
]
