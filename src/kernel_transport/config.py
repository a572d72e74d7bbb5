"""Environment configuration for the kernel transport.

Environment variables:
    KT_TERM_TIMEOUT: Seconds to wait for the kernel after SIGTERM
        - default 2.0

    KT_KILL_TIMEOUT: Seconds to wait for the kernel after SIGKILL
        - default 1.0

    KT_DRAIN_TIMEOUT: Seconds to wait for stdout/stderr to drain after exit
        - default 1.0

    KT_READY_TIMEOUT: Seconds the command line host waits for KernelReady
        - unset = wait forever (default)

    KT_PORT_HOST: Interface probed for ephemeral HTTP ports
        - default 127.0.0.1

    KT_LOG_DEBUG: Debug logging
        - true/1/yes = on (log to a temp file at DEBUG level)
        - false/0/no = off (default, log to stderr)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .ports import DEFAULT_PORT_HOST

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_TERM_TIMEOUT = 2.0
DEFAULT_KILL_TIMEOUT = 1.0
DEFAULT_DRAIN_TIMEOUT = 1.0

MIN_TIMEOUT = 0.1
MAX_TIMEOUT = 60.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_timeout(value: str | None, default: float) -> float:
    """Parse a timeout in seconds, clamped to 0.1-60."""
    if not value:
        return default
    try:
        timeout = float(value)
    except ValueError:
        return default
    return max(MIN_TIMEOUT, min(timeout, MAX_TIMEOUT))


def _parse_optional_timeout(value: str | None) -> float | None:
    """Parse an optional timeout; unset or invalid means no timeout."""
    if not value or not value.strip():
        return None
    try:
        timeout = float(value)
    except ValueError:
        return None
    if timeout <= 0:
        return None
    return max(MIN_TIMEOUT, timeout)


@dataclass
class Config:
    """Transport configuration.

    Attributes:
        term_timeout: Seconds to wait after SIGTERM
        kill_timeout: Seconds to wait after SIGKILL
        drain_timeout: Seconds to wait for stream pumps after exit
        ready_timeout: Default readiness timeout for the CLI host (None = forever)
        port_host: Interface used for ephemeral port allocation
        log_debug: Debug logging to a temp file
        log_file: Log file path (set when log_debug is on)
    """

    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT
    ready_timeout: float | None = None
    port_host: str = DEFAULT_PORT_HOST
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(term_timeout={self.term_timeout}, "
            f"kill_timeout={self.kill_timeout}, "
            f"drain_timeout={self.drain_timeout}, "
            f"ready_timeout={self.ready_timeout}, "
            f"port_host={self.port_host}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """Build a timestamped log file path under the system temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "kernel-transport"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"kt_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """Load configuration from the environment."""
    log_debug = _parse_bool(os.environ.get("KT_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        term_timeout=_parse_timeout(os.environ.get("KT_TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT),
        kill_timeout=_parse_timeout(os.environ.get("KT_KILL_TIMEOUT"), DEFAULT_KILL_TIMEOUT),
        drain_timeout=_parse_timeout(os.environ.get("KT_DRAIN_TIMEOUT"), DEFAULT_DRAIN_TIMEOUT),
        ready_timeout=_parse_optional_timeout(os.environ.get("KT_READY_TIMEOUT")),
        port_host=os.environ.get("KT_PORT_HOST", "").strip() or DEFAULT_PORT_HOST,
        log_debug=log_debug,
        log_file=log_file,
    )


# Global instance, loaded lazily
_config: Config | None = None


def get_config() -> Config:
    """Return the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Re-read the environment (for tests)."""
    global _config
    _config = load_config()
    return _config
