"""Scrollback ring buffer for terminal output."""

from collections import deque

from ..constants import SCROLLBACK_LINES


class ScrollbackBuffer:
    """
    Keeps the last ``max_lines`` lines of a terminal session.

    Text is split on "\\n"; a chunk that does not end in a newline leaves a
    partial last line that the next append continues.
    """

    def __init__(self, max_lines: int = SCROLLBACK_LINES) -> None:
        self._lines: deque[str] = deque()
        self._max_lines = max_lines
        self._total_chars = 0

    def append(self, data: str) -> None:
        if not data:
            return

        parts = data.split("\n")
        if self._lines:
            # Continue the partial last line
            self._lines[-1] += parts[0]
        else:
            self._lines.append(parts[0])
        self._lines.extend(parts[1:])
        self._total_chars += len(data)

        while len(self._lines) > self._max_lines:
            removed = self._lines.popleft()
            self._total_chars -= len(removed) + 1

    def get_all(self) -> list[str]:
        return list(self._lines)

    def get_last(self, n: int) -> list[str]:
        if n <= 0:
            return []
        return list(self._lines)[-n:]

    def snapshot(self) -> str:
        return "\n".join(self._lines)

    def size(self) -> int:
        """Number of characters currently held (newlines included)."""
        return self._total_chars

    def clear(self) -> None:
        self._lines.clear()
        self._total_chars = 0

    def __len__(self) -> int:
        return len(self._lines)
