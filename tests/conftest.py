"""Pytest configuration and fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
FAKE_KERNEL_PATH = FIXTURES_DIR / "fake_kernel.py"


class RecordingChannel:
    """ReportChannel that keeps every appended line."""

    def __init__(self) -> None:
        self.lines: list[str] = []

    def append_line(self, text: str) -> None:
        self.lines.append(text)

    def matching(self, fragment: str) -> list[str]:
        return [line for line in self.lines if fragment in line]


@pytest.fixture
def channel() -> RecordingChannel:
    """Diagnostic channel that records lines."""
    return RecordingChannel()


@pytest.fixture
def fake_kernel_path() -> Path:
    """Path to the fake kernel script."""
    return FAKE_KERNEL_PATH
