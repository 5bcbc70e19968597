"""Generation history tracking."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterator, Optional, Tuple


@dataclass(slots=True, frozen=True)
class HistoryEntry:
    """Metadata describing a successful generation."""

    id: str
    image_reference: str  # data: URL
    file_name: str
    created_at: str


class HistoryLedger:
    """In-memory, newest-first record of the session's generations."""

    def __init__(self) -> None:
        self._entries: Deque[HistoryEntry] = deque()

    def append(self, entry: HistoryEntry) -> None:
        """Insert an entry ahead of all existing ones."""
        self._entries.appendleft(entry)

    def clear(self) -> None:
        """Drop every entry. Callers must confirm with the user first."""
        self._entries.clear()

    def entries(self) -> Tuple[HistoryEntry, ...]:
        """Return the most recent entries first."""
        return tuple(self._entries)

    def latest(self) -> Optional[HistoryEntry]:
        return self._entries[0] if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(tuple(self._entries))
