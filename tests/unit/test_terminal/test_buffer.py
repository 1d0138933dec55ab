"""Tests for termrelay.terminal.buffer.OutputBuffer."""

from __future__ import annotations

from termrelay.terminal.buffer import DEFAULT_MAX_CHARS, OutputBuffer


class TestOutputBufferBasics:
    def test_empty(self) -> None:
        buf = OutputBuffer()
        assert buf.size == 0
        assert buf.chunk_count == 0
        assert buf.replay() == ""

    def test_default_cap(self) -> None:
        assert OutputBuffer().max_chars == DEFAULT_MAX_CHARS == 200_000

    def test_append_and_replay_in_order(self) -> None:
        buf = OutputBuffer()
        buf.append("$ ls\r\n")
        buf.append("a.txt  b.txt\r\n")
        buf.append("$ ")
        assert buf.replay() == "$ ls\r\na.txt  b.txt\r\n$ "
        assert buf.chunk_count == 3

    def test_empty_chunk_ignored(self) -> None:
        buf = OutputBuffer()
        buf.append("")
        assert buf.chunk_count == 0

    def test_escape_sequences_untouched(self) -> None:
        buf = OutputBuffer()
        buf.append("\x1b[31mred\x1b[0m")
        assert buf.replay() == "\x1b[31mred\x1b[0m"


class TestOutputBufferEviction:
    def test_evicts_oldest_whole_chunks(self) -> None:
        buf = OutputBuffer(max_chars=10)
        buf.append("aaaa")
        buf.append("bbbb")
        buf.append("cccc")
        # 12 > 10: the first chunk goes as a whole
        assert buf.replay() == "bbbbcccc"
        assert buf.size == 8

    def test_keeps_single_oversized_chunk(self) -> None:
        buf = OutputBuffer(max_chars=5)
        buf.append("abc")
        buf.append("0123456789")
        assert buf.replay() == "0123456789"
        assert buf.chunk_count == 1

    def test_size_never_exceeds_cap_with_small_chunks(self) -> None:
        buf = OutputBuffer(max_chars=100)
        full = ""
        for i in range(500):
            chunk = f"line {i}\n"
            full += chunk
            buf.append(chunk)
            assert buf.size <= 100
            assert full.endswith(buf.replay())

    def test_exactly_at_cap_is_kept(self) -> None:
        buf = OutputBuffer(max_chars=8)
        buf.append("abcd")
        buf.append("efgh")
        assert buf.replay() == "abcdefgh"

    def test_clear(self) -> None:
        buf = OutputBuffer()
        buf.append("hello")
        buf.clear()
        assert buf.size == 0
        assert buf.replay() == ""
