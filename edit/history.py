# edit/history.py
from typing import List, Optional

from notes.model import Song

DEFAULT_LIMIT = 50


class HistoryManager:
    """Snapshot undo/redo.

    ``entries`` is an ordered list of frozen Songs. ``cursor`` points at the entry the
    editor is showing, or equals ``len(entries)`` while the live song has not been
    recorded yet (right after an edit). Snapshots are never modified, only referenced.
    """
    def __init__(self, limit: int = DEFAULT_LIMIT):
        self.limit = max(1, int(limit))
        self.entries: List[Song] = []
        self.cursor = 0

    def checkpoint(self, song: Song):
        """Record the pre-mutation song; anything redoable is dropped."""
        if self.cursor < len(self.entries):
            del self.entries[self.cursor + 1:]
            if self.entries[self.cursor] is not song:
                self.entries.append(song)
        else:
            self.entries.append(song)
        while len(self.entries) > self.limit:
            self.entries.pop(0)
        self.cursor = len(self.entries)

    def undo(self, current: Song) -> Optional[Song]:
        if self.cursor >= len(self.entries):
            # 第一次 undo：先把目前的歌存起來，redo 才回得去
            if not self.entries or self.entries[-1] is not current:
                self.entries.append(current)
                while len(self.entries) > self.limit + 1:
                    self.entries.pop(0)
            self.cursor = len(self.entries) - 1
        if self.cursor <= 0:
            return None
        self.cursor -= 1
        return self.entries[self.cursor]

    def redo(self) -> Optional[Song]:
        if self.cursor >= len(self.entries) - 1:
            return None
        self.cursor += 1
        return self.entries[self.cursor]

    @property
    def can_undo(self) -> bool:
        return self.cursor > 0

    @property
    def can_redo(self) -> bool:
        return self.cursor < len(self.entries) - 1

    def clear(self):
        self.entries.clear()
        self.cursor = 0
