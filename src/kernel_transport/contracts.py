"""Protocol contracts shared by the transport and its collaborators.

Envelopes are tagged by a string discriminant. The transport itself only
interprets two of them:

- ``KernelReady``: the kernel finished initializing
- ``DiagnosticLogEntryProduced``: carries a ``message`` for the diagnostic sink

Every other discriminant is passed through opaquely to observers.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from .errors import MalformedEnvelopeError

__all__ = [
    "KernelReadyType",
    "DiagnosticLogEntryProducedType",
    "HTTP_PORT_FLAG",
    "HTTP_PORT_RANGE_FLAG",
    "ProcessStart",
    "KernelEventEnvelope",
    "KernelCommandEnvelope",
    "KernelEventEnvelopeObserver",
    "ReportChannel",
]

# Reserved event discriminants
KernelReadyType = "KernelReady"
DiagnosticLogEntryProducedType = "DiagnosticLogEntryProduced"

# Kernel command line flags
HTTP_PORT_FLAG = "--http-port"
HTTP_PORT_RANGE_FLAG = "--http-port-range"


@dataclass(frozen=True)
class ProcessStart:
    """How to launch the kernel.

    Attributes:
        command: Executable path or name
        args: Arguments passed to the executable
        working_directory: Working directory for the process
        env: Environment variables (None = inherit parent)
    """

    command: str
    args: list[str] = field(default_factory=list)
    working_directory: Path | str = "."
    env: Mapping[str, str] | None = None


@dataclass(frozen=True)
class KernelEventEnvelope:
    """One decoded inbound protocol line.

    Attributes:
        event_type: Discriminant (``eventType`` on the wire)
        event: Event payload, kept as decoded (usually an object)
        command: The command envelope that caused the event, if any
    """

    event_type: str
    event: Any = field(default_factory=dict)
    command: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "KernelEventEnvelope":
        """Build an envelope from a decoded JSON value.

        Raises:
            MalformedEnvelopeError: If ``data`` is not an event envelope
        """
        if not isinstance(data, dict):
            raise MalformedEnvelopeError(
                f"Expected a JSON object, got {type(data).__name__}"
            )
        event_type = data.get("eventType")
        if not isinstance(event_type, str) or not event_type:
            raise MalformedEnvelopeError("Envelope has no eventType")

        event = data.get("event")
        if event is None:
            event = {}

        command = data.get("command")
        if command is not None and not isinstance(command, dict):
            command = None

        return cls(event_type=event_type, event=event, command=command)

    def to_dict(self) -> dict[str, Any]:
        """Wire representation."""
        data: dict[str, Any] = {"eventType": self.event_type, "event": self.event}
        if self.command is not None:
            data["command"] = self.command
        return data


@dataclass(frozen=True)
class KernelCommandEnvelope:
    """One outbound command.

    Attributes:
        token: Correlation token
        command_type: Discriminant (``commandType`` on the wire)
        command: Command payload
    """

    token: str
    command_type: str
    command: Any = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Wire representation, in ``token``, ``commandType``, ``command`` order."""
        return {
            "token": self.token,
            "commandType": self.command_type,
            "command": self.command,
        }


# Observer callback for inbound envelopes
KernelEventEnvelopeObserver = Callable[[KernelEventEnvelope], None]


@runtime_checkable
class ReportChannel(Protocol):
    """Append-only, line-oriented diagnostic output."""

    def append_line(self, text: str) -> None:
        ...
