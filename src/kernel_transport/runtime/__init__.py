"""Runtime module for kernel subprocess management.

This module provides isolated process execution with an explicit lifecycle
status and reliable termination for the kernel subprocess.
"""

from __future__ import annotations

from .process_host import ProcessHost, ProcessStatus, describe_exit

__all__ = [
    "ProcessHost",
    "ProcessStatus",
    "describe_exit",
]
