"""Rolling output buffer for reconnection replay."""

from __future__ import annotations

from collections import deque

DEFAULT_MAX_CHARS = 200_000


class OutputBuffer:
    """Keeps the most recent terminal output as a queue of raw chunks.

    Eviction is chunk-granular: whole chunks are dropped from the front
    while the retained total exceeds ``max_chars``. The newest chunk is
    always kept, even when it alone exceeds the cap. An escape sequence
    straddling two chunks can therefore lose its head on eviction.
    """

    def __init__(self, max_chars: int = DEFAULT_MAX_CHARS) -> None:
        self._max_chars = max_chars
        self._chunks: deque[str] = deque()
        self._size = 0

    def append(self, text: str) -> None:
        if not text:
            return
        self._chunks.append(text)
        self._size += len(text)
        while self._size > self._max_chars and len(self._chunks) > 1:
            self._size -= len(self._chunks.popleft())

    def replay(self) -> str:
        """All retained output, oldest first."""
        return "".join(self._chunks)

    @property
    def size(self) -> int:
        """Retained characters."""
        return self._size

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    @property
    def max_chars(self) -> int:
        return self._max_chars

    def clear(self) -> None:
        self._chunks.clear()
        self._size = 0
