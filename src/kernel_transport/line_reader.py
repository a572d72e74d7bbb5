"""Turns a raw byte stream into discrete text lines."""

from __future__ import annotations

import codecs
from collections.abc import Callable

from .observers import DisposableSubscription, ObserverSet

__all__ = ["LineReader"]


class LineReader:
    """Buffers stream chunks and pushes each complete line to subscribers.

    Lines are split on ``\\n``; a trailing ``\\r`` is removed. Bytes are decoded
    as UTF-8 incrementally, so a multi-byte character split across chunks is
    joined correctly. Invalid bytes are replaced rather than raising.

    Example:
        reader = LineReader()
        reader.subscribe(lambda line: print(line))
        reader.on_data(b'{"eventType": "KernelReady"')
        reader.on_data(b', "event": {}}\\n')
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self._subscribers: ObserverSet[str] = ObserverSet("line reader")

    def subscribe(self, callback: Callable[[str], None]) -> DisposableSubscription:
        return self._subscribers.subscribe(callback)

    def on_data(self, data: bytes | str) -> None:
        """Feed a chunk of stream data."""
        if isinstance(data, bytes):
            data = self._decoder.decode(data)
        self._buffer += data

        while True:
            index = self._buffer.find("\n")
            if index < 0:
                break
            line = self._buffer[:index]
            self._buffer = self._buffer[index + 1:]
            self._emit(line)

    def flush(self) -> None:
        """Deliver any unterminated trailing line (call at end of stream)."""
        self._buffer += self._decoder.decode(b"", final=True)
        if self._buffer:
            line, self._buffer = self._buffer, ""
            self._emit(line)

    def _emit(self, line: str) -> None:
        if line.endswith("\r"):
            line = line[:-1]
        self._subscribers.notify(line)
