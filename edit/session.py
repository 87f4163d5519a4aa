# edit/session.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Set, Tuple

from notes.model import Song


class Tool(Enum):
    SELECT = "select"
    PENCIL = "pencil"
    ERASER = "eraser"


@dataclass(frozen=True)
class GridEvent:
    """Pointer event already converted to grid coordinates by the view."""
    kind: str            # "down" | "move" | "up"
    beat: float
    key: int
    ctrl: bool = False   # ctrl 或 cmd
    shift: bool = False

    @property
    def modifier(self) -> bool:
        return self.ctrl or self.shift


@dataclass
class DragState:
    kind: str                       # "move" | "resize" | "box"
    origin_beat: float
    origin_key: int
    base: Song                      # 拖曳開始前的歌曲
    note_id: Optional[str] = None   # 被抓住的音符
    offsets: Dict[str, Tuple[float, int]] = field(default_factory=dict)
    original_width: float = 0.0
    additive: bool = False
    moved: bool = False
    beat: float = 0.0
    key: int = 0


@dataclass
class EditSession:
    song: Song
    tool: Tool = Tool.SELECT
    pencil_duration: float = 1.0
    selected: Set[str] = field(default_factory=set)
    anchor_id: Optional[str] = None
    drag: Optional[DragState] = None
    last_error: Optional[Exception] = None

    def prune_selection(self) -> bool:
        """Drop ids no longer in the song; True if anything was removed."""
        ids = self.song.note_ids
        stale = self.selected - ids
        if stale:
            self.selected -= stale
        if self.anchor_id is not None and self.anchor_id not in ids:
            self.anchor_id = None
        return bool(stale)
