"""
Snapshot-based linear undo/redo.
"""

from __future__ import annotations

from typing import Optional

from mindmap_mcp.models import Snapshot


class History:
    """Append-only snapshot list with a cursor.

    Entry 0 is the state the editor was opened with. Pushing after an undo
    discards the redo tail. With a *capacity*, once more entries accumulate
    the oldest are dropped; the default keeps every entry.
    """

    def __init__(self, initial: Snapshot, capacity: Optional[int] = None) -> None:
        if capacity is not None and capacity < 1:
            raise ValueError("History capacity must be at least 1.")
        self._entries: list[Snapshot] = [initial]
        self._cursor = 0
        self._capacity = capacity

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def current(self) -> Snapshot:
        return self._entries[self._cursor]

    def __len__(self) -> int:
        return len(self._entries)

    def can_undo(self) -> bool:
        return self._cursor > 0

    def can_redo(self) -> bool:
        return self._cursor < len(self._entries) - 1

    def push(self, snapshot: Snapshot) -> None:
        del self._entries[self._cursor + 1:]
        self._entries.append(snapshot)
        if self._capacity is not None and len(self._entries) > self._capacity:
            del self._entries[:len(self._entries) - self._capacity]
        self._cursor = len(self._entries) - 1

    def undo(self) -> Optional[Snapshot]:
        """Step back; returns the snapshot to restore, or None at the start."""
        if not self.can_undo():
            return None
        self._cursor -= 1
        return self._entries[self._cursor]

    def redo(self) -> Optional[Snapshot]:
        if not self.can_redo():
            return None
        self._cursor += 1
        return self._entries[self._cursor]

    def reset(self, initial: Snapshot) -> None:
        self._entries = [initial]
        self._cursor = 0
