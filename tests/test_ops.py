import pytest

from conftest import make_song
from notes.errors import NotFoundError, ValidationError
from notes.model import sorted_notes
from notes.ops import (
    DuplicateNote, NoteAdded, add_note, demo_song, move_notes, new_song, note_at,
    notes_in_box, remove_note, remove_notes, resize_note, update_song,
)


def test_add_note_snaps_and_keeps_duration():
    song = new_song("Empty")
    res = add_note(song, 3, 2.1, 1, 100)
    assert isinstance(res, NoteAdded)
    assert res.note.start == 2.0
    assert res.song.notes == (res.note,)
    assert res.song.duration == 16
    assert song.notes == ()


def test_add_note_extends_to_next_bar():
    res = add_note(new_song(), 1, 16.5, 1, 100)
    assert res.song.duration == 20


def test_add_then_remove_round_trip(abcd_song):
    res = add_note(abcd_song, 5, 3, 2, 90)
    back = remove_note(res.song, res.note.id)
    assert back.note_ids == abcd_song.note_ids


def test_duplicate_is_a_no_op():
    first = add_note(new_song(), 3, 2.0, 1, 100)
    second = add_note(first.song, 3, 2.05, 1, 100)
    assert isinstance(second, DuplicateNote)
    assert second.existing == first.note
    assert second.song is first.song
    assert len(second.song.notes) == 1


def test_same_start_on_other_key_is_not_duplicate():
    first = add_note(new_song(), 3, 2.0, 1, 100)
    assert isinstance(add_note(first.song, 4, 2.0, 1, 100), NoteAdded)


@pytest.mark.parametrize("key,start,duration,velocity", [
    (16, 0, 1, 100),
    (0, 0, 1, 100),
    (1, 0, 0, 100),
    (1, 0, -1, 100),
    (1, 0, 1, 0),
    (1, 0, 1, 128),
    (1, -1, 1, 100),
    (1.5, 0, 1, 100),
    (float("nan"), 0, 1, 100),
    (10 ** 400, 0, 1, 100),
    (1, float("inf"), 1, 100),
    (1, 0, float("nan"), 100),
    (1, 0, 1, float("inf")),
])
def test_add_note_rejects_out_of_range(key, start, duration, velocity):
    song = new_song()
    with pytest.raises(ValidationError):
        add_note(song, key, start, duration, velocity)
    assert song.notes == ()


def test_remove_missing_note():
    with pytest.raises(NotFoundError):
        remove_note(new_song(), "nope")


def test_remove_does_not_shrink_duration():
    song = make_song(("A", 1, 18, 1), duration=20)
    assert remove_note(song, "A").duration == 20


def test_remove_notes_is_atomic(abcd_song):
    with pytest.raises(NotFoundError):
        remove_notes(abcd_song, {"A", "missing"})
    assert remove_notes(abcd_song, {"A", "B"}).note_ids == {"C", "D"}


def test_move_shifts_only_the_selection(abcd_song):
    moved = move_notes(abcd_song, {"A", "B", "C"}, 1, 0)
    starts = {n.id: n.start for n in moved.notes}
    assert starts == {"A": 1.0, "B": 2.0, "C": 3.0, "D": 8.0}


def test_move_clamps_whole_group():
    song = make_song(("A", 1, 0.5, 1), ("B", 3, 2, 1))
    moved = move_notes(song, {"A", "B"}, -1, -1)
    a, b = moved.get("A"), moved.get("B")
    assert (a.start, a.key) == (0.0, 1)
    assert (b.start, b.key) == (1.5, 3)


@pytest.mark.parametrize("db,dk", [(-100, 0), (0, -20), (0, 20), (3.3, 7), (-0.7, -3)])
def test_move_stays_in_bounds(abcd_song, db, dk):
    moved = move_notes(abcd_song, {"A", "C", "D"}, db, dk)
    for n in moved.notes:
        assert 1 <= n.key <= 15
        assert n.start >= 0


def test_move_extends_duration():
    song = make_song(("A", 1, 14, 1))
    assert move_notes(song, {"A"}, 4).duration == 20


def test_move_unknown_id(abcd_song):
    with pytest.raises(NotFoundError):
        move_notes(abcd_song, {"A", "Z"}, 1)


def test_resize_minimum_and_extend():
    song = make_song(("A", 1, 15, 1))
    assert resize_note(song, "A", 0.05).get("A").duration == 0.1
    longer = resize_note(song, "A", 3)
    assert longer.get("A").duration == 3
    assert longer.duration == 20


def test_resize_missing():
    with pytest.raises(NotFoundError):
        resize_note(new_song(), "A", 1)


def test_update_song():
    song = new_song("x")
    assert update_song(song, bpm=90).bpm == 90
    assert update_song(song) is song
    with pytest.raises(ValidationError):
        update_song(song, bpm=0)
    with pytest.raises(ValidationError):
        update_song(song, name="  ")


def test_queries(abcd_song):
    assert note_at(abcd_song, 1.5, 2).id == "B"
    assert note_at(abcd_song, 2.0, 2) is None    # 結尾不算
    ids = [n.id for n in notes_in_box(abcd_song, 0.1, 2.9, 4, 1)]
    assert ids == ["A", "B", "C"]


def test_demo_song_is_consistent():
    song = demo_song()
    assert len(song.notes) == 13
    assert song.end_beat() <= song.duration
    order = sorted_notes(song)
    assert [(n.start, n.key) for n in order] == sorted((n.start, n.key) for n in song.notes)


@pytest.mark.parametrize("bpm", [float("nan"), float("inf"), True, 10 ** 400])
def test_update_song_rejects_bad_bpm(abcd_song, bpm):
    with pytest.raises(ValidationError):
        update_song(abcd_song, bpm=bpm)
