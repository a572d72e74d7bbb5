"""JSON helpers for the line-delimited kernel protocol."""

from __future__ import annotations

import json
from typing import Any

__all__ = ["parse", "stringify"]


def parse(line: str) -> Any:
    """Decode one protocol line.

    Raises:
        json.JSONDecodeError: If the line is not valid JSON
    """
    return json.loads(line)


def stringify(obj: Any) -> str:
    """Encode an object as a single compact protocol line (no trailing newline)."""
    # json.dumps escapes embedded newlines, so the result is always one line
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
