"""LineReader tests."""

from __future__ import annotations

from kernel_transport.line_reader import LineReader


def _collect(reader: LineReader) -> list[str]:
    lines: list[str] = []
    reader.subscribe(lines.append)
    return lines


class TestLineSplitting:
    """Chunks are turned into complete lines."""

    def test_single_line(self):
        reader = LineReader()
        lines = _collect(reader)

        reader.on_data(b'{"eventType":"KernelReady"}\n')

        assert lines == ['{"eventType":"KernelReady"}']

    def test_line_split_across_chunks(self):
        reader = LineReader()
        lines = _collect(reader)

        reader.on_data(b'{"eventType":')
        assert lines == []
        reader.on_data(b'"KernelReady"}\n')

        assert lines == ['{"eventType":"KernelReady"}']

    def test_multiple_lines_in_one_chunk(self):
        reader = LineReader()
        lines = _collect(reader)

        reader.on_data(b"one\ntwo\nthree\n")

        assert lines == ["one", "two", "three"]

    def test_crlf_is_stripped(self):
        reader = LineReader()
        lines = _collect(reader)

        reader.on_data(b"windows line\r\n")

        assert lines == ["windows line"]

    def test_str_data_accepted(self):
        reader = LineReader()
        lines = _collect(reader)

        reader.on_data("text line\n")

        assert lines == ["text line"]

    def test_empty_lines_are_delivered(self):
        reader = LineReader()
        lines = _collect(reader)

        reader.on_data(b"a\n\nb\n")

        assert lines == ["a", "", "b"]


class TestDecoding:
    """UTF-8 handling."""

    def test_multibyte_character_split_across_chunks(self):
        reader = LineReader()
        lines = _collect(reader)
        encoded = "héllo ✓\n".encode("utf-8")
        split = encoded.index("✓".encode("utf-8")) + 1

        reader.on_data(encoded[:split])
        reader.on_data(encoded[split:])

        assert lines == ["héllo ✓"]

    def test_invalid_bytes_are_replaced(self):
        reader = LineReader()
        lines = _collect(reader)

        reader.on_data(b"bad \xff byte\n")

        assert lines == ["bad � byte"]


class TestFlush:
    """End of stream."""

    def test_flush_delivers_partial_line(self):
        reader = LineReader()
        lines = _collect(reader)

        reader.on_data(b"no newline")
        assert lines == []
        reader.flush()

        assert lines == ["no newline"]

    def test_flush_without_pending_data_is_noop(self):
        reader = LineReader()
        lines = _collect(reader)

        reader.on_data(b"done\n")
        reader.flush()

        assert lines == ["done"]


class TestSubscription:
    """Subscribers and disposal."""

    def test_disposed_subscriber_receives_nothing(self):
        reader = LineReader()
        lines: list[str] = []
        subscription = reader.subscribe(lines.append)

        reader.on_data(b"first\n")
        subscription.dispose()
        reader.on_data(b"second\n")

        assert lines == ["first"]
