# notes/model.py
import math
import time
import uuid
from dataclasses import dataclass, field
from typing import Tuple

KEY_MIN, KEY_MAX = 1, 15
VELOCITY_MIN, VELOCITY_MAX = 1, 127
DEFAULT_VELOCITY = 100
DEFAULT_BPM = 120
DEFAULT_SONG_BEATS = 16

SNAP = 0.25                # 格線：十六分音符
DUPLICATE_TOLERANCE = 0.1  # 同 key 在此距離內視為重複放置
MIN_NOTE_DURATION = 0.1
PENCIL_DURATIONS = (4, 2, 1, 0.5, 0.25)


def now_ms() -> int:
    return int(time.time() * 1000)


def new_note_id() -> str:
    return f"note-{uuid.uuid4().hex[:12]}"


def new_song_id() -> str:
    return f"song-{uuid.uuid4().hex[:12]}"


def snap(beat: float, step: float = SNAP) -> float:
    """Round to the nearest grid line."""
    return round(beat / step) * step


def round_up_to_bar(beats: float) -> float:
    return math.ceil(beats / 4) * 4


@dataclass(frozen=True)
class Note:
    id: str
    key: int          # 1..15
    start: float      # beats
    duration: float   # beats
    velocity: int

    @property
    def end(self) -> float:
        return self.start + self.duration


@dataclass(frozen=True)
class Song:
    id: str
    name: str
    bpm: int = DEFAULT_BPM
    duration: float = DEFAULT_SONG_BEATS   # beats
    notes: Tuple[Note, ...] = ()
    last_modified: int = field(default_factory=now_ms)

    @property
    def beat_seconds(self) -> float:
        return 60.0 / self.bpm

    @property
    def note_ids(self) -> set:
        return {n.id for n in self.notes}

    def get(self, note_id: str):
        for n in self.notes:
            if n.id == note_id:
                return n
        return None

    def end_beat(self) -> float:
        return max((n.end for n in self.notes), default=0.0)


def sort_key(n: Note):
    return (n.start, n.key)


def sorted_notes(song: Song) -> list[Note]:
    """Canonical order for playback and tile spawning: start, then key."""
    return sorted(song.notes, key=sort_key)
