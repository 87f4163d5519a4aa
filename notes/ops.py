# notes/ops.py
"""Pure mutations over Song snapshots.

Every function either returns a new, consistent Song or raises without touching
its input: Songs and Notes are frozen, so a failed call leaves nothing behind.
"""
import logging
import math
from dataclasses import replace
from typing import Iterable, NamedTuple, Optional

from notes.errors import NotFoundError, ValidationError
from notes.model import (
    DEFAULT_BPM, DEFAULT_SONG_BEATS, DEFAULT_VELOCITY, DUPLICATE_TOLERANCE,
    KEY_MAX, KEY_MIN, MIN_NOTE_DURATION, VELOCITY_MAX, VELOCITY_MIN,
    Note, Song, new_note_id, new_song_id, now_ms, round_up_to_bar, snap, sorted_notes,
)


class NoteAdded(NamedTuple):
    song: Song
    note: Note


class DuplicateNote(NamedTuple):
    """add_note was a no-op: ``existing`` already sits at (nearly) the same spot."""
    song: Song
    existing: Note


# ---------- validation ----------
def _number(name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a finite number, got {value!r}")
    try:
        v = float(value)
    except OverflowError:
        raise ValidationError(f"{name} {value!r} is out of range") from None
    if not math.isfinite(v):
        raise ValidationError(f"{name} must be a finite number, got {value!r}")
    return v


def _integer(name: str, value, lo: int, hi: int) -> int:
    if not _number(name, value).is_integer():
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    v = int(value)
    if not (lo <= v <= hi):
        raise ValidationError(f"{name} {v} outside [{lo}, {hi}]")
    return v


def validate_key(key) -> int:
    return _integer("key", key, KEY_MIN, KEY_MAX)


def validate_velocity(velocity) -> int:
    return _integer("velocity", velocity, VELOCITY_MIN, VELOCITY_MAX)


def validate_duration(duration) -> float:
    d = _number("duration", duration)
    if d <= 0:
        raise ValidationError(f"duration must be > 0, got {d}")
    return d


def validate_bpm(bpm) -> int:
    if not _number("bpm", bpm).is_integer() or bpm <= 0:
        raise ValidationError(f"bpm must be a positive integer, got {bpm!r}")
    return int(bpm)


def validate_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name must be a non-empty string")
    return name.strip()


# ---------- helpers ----------
def _fit(song: Song, notes: tuple, **changes) -> Song:
    """Build the next snapshot, extending duration to the next bar when notes overflow."""
    duration = changes.pop("duration", song.duration)
    end = max((n.end for n in notes), default=0.0)
    if end > duration:
        duration = round_up_to_bar(end)
    return replace(song, notes=notes, duration=duration, last_modified=now_ms(), **changes)


def _require(song: Song, note_id: str) -> Note:
    n = song.get(note_id)
    if n is None:
        raise NotFoundError(f"note {note_id!r} not in song {song.id!r}")
    return n


def new_song(name: str = "Untitled", bpm: int = DEFAULT_BPM) -> Song:
    return Song(id=new_song_id(), name=validate_name(name), bpm=validate_bpm(bpm),
                duration=DEFAULT_SONG_BEATS, notes=())


def demo_song() -> Song:
    """C major scale on the white keys with a little black-key harmony."""
    melody = [(1, 0, 1), (2, 1, 1), (3, 2, 1), (4, 3, 1), (5, 4, 1), (6, 5, 1), (7, 6, 1), (8, 7, 2)]
    harmony = [(9, 1.5), (10, 2.5), (11, 4.5), (12, 5.5), (13, 6.5)]
    notes = [Note(new_note_id(), k, float(s), float(d), 100) for k, s, d in melody]
    notes += [Note(new_note_id(), k, s, 0.5, 80) for k, s in harmony]
    return Song(id=new_song_id(), name="Demo Song", bpm=120, duration=12, notes=tuple(notes))


# ---------- queries ----------
def note_at(song: Song, beat: float, key: int) -> Optional[Note]:
    """Note on ``key`` whose [start, end) covers ``beat``; the latest-starting wins."""
    hits = [n for n in song.notes if n.key == key and n.start <= beat < n.end]
    return max(hits, key=lambda n: n.start) if hits else None


def notes_in_box(song: Song, beat_a: float, beat_b: float, key_a: int, key_b: int) -> list[Note]:
    """Notes whose (start..end, key) box overlaps the rectangle."""
    b0, b1 = min(beat_a, beat_b), max(beat_a, beat_b)
    k0, k1 = min(key_a, key_b), max(key_a, key_b)
    return [n for n in sorted_notes(song)
            if k0 <= n.key <= k1 and n.start < b1 and n.end > b0]


# ---------- mutations ----------
def add_note(song: Song, key, start, duration, velocity=DEFAULT_VELOCITY):
    """Returns NoteAdded, or DuplicateNote when the same key already has a note within 0.1 beat."""
    key = validate_key(key)
    duration = validate_duration(duration)
    velocity = validate_velocity(velocity)
    start = _number("start", start)
    if start < 0:
        raise ValidationError(f"start must be >= 0, got {start}")
    start = snap(start)

    for n in song.notes:
        if n.key == key and abs(n.start - start) < DUPLICATE_TOLERANCE:
            logging.debug("add_note: duplicate of %s at key=%d beat=%.2f", n.id, key, start)
            return DuplicateNote(song, n)

    note = Note(id=new_note_id(), key=key, start=start, duration=duration, velocity=velocity)
    return NoteAdded(_fit(song, song.notes + (note,)), note)


def remove_note(song: Song, note_id: str) -> Song:
    _require(song, note_id)
    # 不縮短 duration
    return replace(song, notes=tuple(n for n in song.notes if n.id != note_id),
                   last_modified=now_ms())


def remove_notes(song: Song, note_ids: Iterable[str]) -> Song:
    ids = set(note_ids)
    missing = ids - song.note_ids
    if missing:
        raise NotFoundError(f"notes not in song: {sorted(missing)}")
    if not ids:
        return song
    return replace(song, notes=tuple(n for n in song.notes if n.id not in ids),
                   last_modified=now_ms())


def clamp_group_delta(notes: Iterable[Note], delta_beats: float, delta_key: int) -> tuple[float, int]:
    """Shrink a delta so the whole group stays inside [0, inf) x [1, 15] without changing shape."""
    notes = list(notes)
    if not notes:
        return 0.0, 0
    min_start = min(n.start for n in notes)
    lo_key = min(n.key for n in notes)
    hi_key = max(n.key for n in notes)
    delta_beats = max(delta_beats, -min_start)
    delta_key = max(KEY_MIN - lo_key, min(KEY_MAX - hi_key, delta_key))
    return delta_beats, delta_key


def move_notes(song: Song, note_ids: Iterable[str], delta_beats, delta_key=0) -> Song:
    """Shift the selection as one rigid block; the block stops at the grid edges."""
    ids = set(note_ids)
    missing = ids - song.note_ids
    if missing:
        raise NotFoundError(f"notes not in song: {sorted(missing)}")
    delta_beats = _number("delta_beats", delta_beats)
    delta_key = int(round(_number("delta_key", delta_key)))
    if not ids:
        return song

    moving = [n for n in song.notes if n.id in ids]
    db, dk = clamp_group_delta(moving, delta_beats, delta_key)
    notes = tuple(
        replace(n, start=max(0.0, n.start + db), key=n.key + dk) if n.id in ids else n
        for n in song.notes
    )
    return _fit(song, notes)


def resize_note(song: Song, note_id: str, new_duration) -> Song:
    _require(song, note_id)
    d = max(MIN_NOTE_DURATION, _number("duration", new_duration))
    notes = tuple(replace(n, duration=d) if n.id == note_id else n for n in song.notes)
    return _fit(song, notes)


def update_song(song: Song, name: Optional[str] = None, bpm=None) -> Song:
    changes = {}
    if name is not None:
        changes["name"] = validate_name(name)
    if bpm is not None:
        changes["bpm"] = validate_bpm(bpm)
    if not changes:
        return song
    return _fit(song, song.notes, **changes)
