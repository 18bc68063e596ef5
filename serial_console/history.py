from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, List, Optional

from .codec import EncodingMode

DEFAULT_CAPACITY: int = 100


@dataclass(frozen=True)
class HistoryEntry:
    text: str
    mode: EncodingMode


class RecallDirection(Enum):
    OLDER = "older"
    NEWER = "newer"


class HistoryBuffer:
    """
    Bounded ring of sent commands with shell-like arrow-key recall.

    The cursor ranges over 0..len(entries). len(entries) is the empty input
    position past the newest entry, where every push leaves it.
    Args:
        capacity (int): Maximum number of entries kept (oldest evicted first)
        dedupe (bool): Skip a push equal to the newest entry. Off by default,
            so every push is stored
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, *, dedupe: bool = False) -> None:
        if int(capacity) < 1:
            raise ValueError("history capacity must be at least 1")
        self._capacity = int(capacity)
        self._dedupe = bool(dedupe)
        self._entries: Deque[HistoryEntry] = deque(maxlen=self._capacity)
        self._cursor = 0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> List[HistoryEntry]:
        """Snapshot, oldest first."""
        with self._lock:
            return list(self._entries)

    def push(self, entry: HistoryEntry) -> None:
        with self._lock:
            if not (self._dedupe and self._entries and self._entries[-1] == entry):
                self._entries.append(entry)
            self._cursor = len(self._entries)

    def recall(self, direction: RecallDirection) -> Optional[HistoryEntry]:
        """
        Move the cursor one step and return the entry under it.
        Returns None when OLDER is already at the oldest entry, or when NEWER
        reaches (or is already at) the empty position after the newest.
        """
        with self._lock:
            if direction is RecallDirection.OLDER:
                if self._cursor == 0:
                    return None
                self._cursor -= 1
                return self._entries[self._cursor]

            if self._cursor >= len(self._entries):
                return None
            self._cursor += 1
            if self._cursor == len(self._entries):
                return None
            return self._entries[self._cursor]

    def reset_cursor(self) -> None:
        with self._lock:
            self._cursor = len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._cursor = 0
