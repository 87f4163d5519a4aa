import json

import pytest

from conftest import make_song
from notes.errors import ValidationError
from notes.record import (
    dumps_record, export_song, import_song, loads_record, song_from_record, song_to_record,
)


def test_record_shape(abcd_song):
    rec = song_to_record(abcd_song)
    assert set(rec) == {"id", "name", "bpm", "duration", "notes"}
    assert rec["notes"][0] == {"key": 1, "startTime": 0.0, "duration": 1.0, "velocity": 100}


def test_import_assigns_fresh_ids(abcd_song):
    song = loads_record(dumps_record(abcd_song))
    assert song.id != abcd_song.id
    assert song.note_ids.isdisjoint(abcd_song.note_ids)
    assert sorted((n.key, n.start) for n in song.notes) == sorted((n.key, n.start) for n in abcd_song.notes)


def test_keep_ids_restores_library_entry(abcd_song):
    song = song_from_record(song_to_record(abcd_song, with_ids=True), keep_ids=True)
    assert song == abcd_song


@pytest.mark.parametrize("obj,needle", [
    ({"notes": []}, "name"),
    ({"name": "", "notes": []}, "name"),
    ({"name": "x"}, "notes"),
    ({"name": "x", "notes": {}}, "notes"),
    ({"name": "x", "notes": [{"key": 1, "startTime": 0, "duration": 1}]}, "velocity"),
    ({"name": "x", "notes": [{"key": 16, "startTime": 0, "duration": 1, "velocity": 9}]}, "notes[0]"),
    ({"name": "x", "bpm": 0, "notes": []}, "bpm"),
    ([], "object"),
])
def test_bad_records_are_rejected(obj, needle):
    with pytest.raises(ValidationError) as exc:
        song_from_record(obj)
    assert needle in str(exc.value)


def test_not_json():
    with pytest.raises(ValidationError):
        loads_record("{nope")


def test_duration_is_extended_to_cover_notes():
    rec = {"name": "x", "duration": 2,
           "notes": [{"key": 1, "startTime": 5, "duration": 1, "velocity": 90}]}
    assert song_from_record(rec).duration == 8


def test_file_round_trip(tmp_path):
    song = make_song(("a", 4, 1.5, 0.5, 77), name="Över")
    path = tmp_path / "song.json"
    export_song(song, str(path))
    assert json.loads(path.read_text(encoding="utf-8"))["name"] == "Över"
    back = import_song(str(path))
    assert back.name == "Över"
    (n,) = back.notes
    assert (n.key, n.start, n.duration, n.velocity) == (4, 1.5, 0.5, 77)


@pytest.mark.parametrize("text", [
    '{"name": "x", "notes": [{"key": NaN, "startTime": 0, "duration": 1, "velocity": 100}]}',
    '{"name": "x", "notes": [{"key": 1, "startTime": 0, "duration": 1, "velocity": Infinity}]}',
    '{"name": "x", "notes": [{"key": 1, "startTime": NaN, "duration": 1, "velocity": 100}]}',
    '{"name": "x", "bpm": Infinity, "notes": []}',
    '{"name": "x", "bpm": NaN, "notes": []}',
    '{"name": "x", "notes": [{"key": 1e400, "startTime": 0, "duration": 1, "velocity": 100}]}',
])
def test_non_finite_numbers_are_rejected(text):
    with pytest.raises(ValidationError):
        loads_record(text)


@pytest.mark.parametrize("stamp", [float("nan"), float("inf"), "yesterday"])
def test_bad_last_modified_is_replaced(abcd_song, stamp):
    rec = song_to_record(abcd_song, with_ids=True)
    rec["lastModified"] = stamp
    song = song_from_record(rec, keep_ids=True)
    assert isinstance(song.last_modified, int)
    assert song.last_modified > 1
