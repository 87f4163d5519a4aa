# notes/record.py
# 匯出/匯入用的 JSON 結構：{ id, name, bpm, duration, notes: [{ key, startTime, duration, velocity }] }
import json
import logging
from typing import Any, Dict

from notes.errors import ValidationError
from notes.model import DEFAULT_BPM, Note, Song, new_note_id, new_song_id, now_ms, round_up_to_bar
from notes.ops import _number, validate_bpm, validate_duration, validate_key, validate_name, validate_velocity


def song_to_record(song: Song, with_ids: bool = False) -> Dict[str, Any]:
    notes = []
    for n in song.notes:
        item = {"key": n.key, "startTime": n.start, "duration": n.duration, "velocity": n.velocity}
        if with_ids:
            item = {"id": n.id, **item}
        notes.append(item)
    rec = {"id": song.id, "name": song.name, "bpm": song.bpm, "duration": song.duration, "notes": notes}
    if with_ids:
        rec["lastModified"] = song.last_modified
    return rec


def _note_from_record(i: int, obj, keep_ids: bool) -> Note:
    if not isinstance(obj, dict):
        raise ValidationError(f"notes[{i}] must be an object")
    for field in ("key", "startTime", "duration", "velocity"):
        if field not in obj:
            raise ValidationError(f"notes[{i}] is missing '{field}'")
    try:
        key = validate_key(obj["key"])
        start = _number("startTime", obj["startTime"])
        duration = validate_duration(obj["duration"])
        velocity = validate_velocity(obj["velocity"])
    except ValidationError as e:
        raise ValidationError(f"notes[{i}]: {e}") from e
    if start < 0:
        raise ValidationError(f"notes[{i}]: startTime must be >= 0")
    nid = obj.get("id") if keep_ids and isinstance(obj.get("id"), str) else new_note_id()
    return Note(id=nid, key=key, start=start, duration=duration, velocity=velocity)


def song_from_record(obj, keep_ids: bool = False) -> Song:
    """Validate an export record and build a Song.

    Imports (``keep_ids=False``) get a fresh song id and fresh note ids so they never
    collide with a library entry; the library itself reloads with ``keep_ids=True``.
    """
    if not isinstance(obj, dict):
        raise ValidationError("song record must be an object")
    if not obj.get("name"):
        raise ValidationError("song record needs a non-empty 'name'")
    name = validate_name(obj["name"])
    if not isinstance(obj.get("notes"), list):
        raise ValidationError("song record 'notes' must be a list")

    bpm = validate_bpm(obj.get("bpm", DEFAULT_BPM))
    notes = tuple(_note_from_record(i, n, keep_ids) for i, n in enumerate(obj["notes"]))
    if keep_ids and len({n.id for n in notes}) != len(notes):
        raise ValidationError("song record has duplicate note ids")

    duration = obj.get("duration", 0)
    duration = _number("duration", duration) if duration is not None else 0.0
    end = max((n.end for n in notes), default=0.0)
    if duration < end:
        duration = round_up_to_bar(end)

    sid = obj.get("id") if keep_ids and isinstance(obj.get("id"), str) and obj.get("id") else new_song_id()
    last = None
    if keep_ids and "lastModified" in obj:
        try:
            last = int(_number("lastModified", obj["lastModified"]))
        except ValidationError:
            logging.debug("ignoring bad lastModified %r", obj["lastModified"])
    return Song(id=sid, name=name, bpm=bpm, duration=max(0.0, duration), notes=notes,
                last_modified=last if last is not None else now_ms())


def dumps_record(song: Song, with_ids: bool = False) -> str:
    return json.dumps(song_to_record(song, with_ids=with_ids), ensure_ascii=False, indent=2)


def loads_record(text: str, keep_ids: bool = False) -> Song:
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(f"not a JSON song record: {e}") from e
    return song_from_record(obj, keep_ids=keep_ids)


def export_song(song: Song, path: str):
    with open(path, "w", encoding="utf-8") as f:
        f.write(dumps_record(song))
    logging.info("Exported '%s' to %s", song.name, path)


def import_song(path: str) -> Song:
    with open(path, "r", encoding="utf-8") as f:
        song = loads_record(f.read())
    logging.info("Imported '%s' (%d notes) from %s", song.name, len(song.notes), path)
    return song
