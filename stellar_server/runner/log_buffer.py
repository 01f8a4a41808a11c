"""Append-only in-memory log buffer shared by pumps and readers."""

from __future__ import annotations

from collections.abc import Iterator
from threading import Lock

__all__ = ["LogBuffer"]


class LogBuffer:
    """Ordered sequence of log lines addressed by a monotonic cursor.

    Writers only ever append; readers hand back the cursor they were given by
    the previous read. A line never moves or changes once it has been
    appended, so a cursor stays valid for the lifetime of the buffer.
    """

    def __init__(self) -> None:
        self._lines: list[str] = []
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)

    def __iter__(self) -> Iterator[str]:
        lines, _ = self.read_from(0)
        return iter(lines)

    def append(self, line: str) -> int:
        """Append ``line`` and return its index."""

        with self._lock:
            self._lines.append(line)
            return len(self._lines) - 1

    def read_from(self, cursor: int) -> tuple[list[str], int]:
        """Return the lines at ``cursor`` and beyond plus the next cursor."""

        if cursor < 0:
            raise ValueError(f"cursor must be non-negative (received {cursor})")
        with self._lock:
            return self._lines[cursor:], len(self._lines)
