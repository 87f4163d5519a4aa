import mido
import pytest

from midi.parser import parse_midi_to_song
from midi.writer import song_to_midi, write_song_midi
from notes.errors import ValidationError
from notes.keys import key_to_pitch, pitch_to_key
from notes.ops import demo_song


def test_write_then_parse(tmp_path):
    song = demo_song()
    path = tmp_path / "demo.mid"
    write_song_midi(song, str(path))
    back = parse_midi_to_song(str(path))
    assert back.bpm == 120
    assert back.name == "demo"
    assert sorted((n.key, n.start, n.duration, n.velocity) for n in back.notes) == \
        sorted((n.key, n.start, n.duration, n.velocity) for n in song.notes)


def test_writer_emits_tempo_and_name():
    mid = song_to_midi(demo_song())
    track = mid.tracks[0]
    assert track[0].type == "track_name" and track[0].name == "Demo Song"
    assert track[1].type == "set_tempo" and track[1].tempo == mido.bpm2tempo(120)
    assert track[-1].type == "end_of_track"


def test_file_without_notes(tmp_path):
    mid = mido.MidiFile()
    mid.tracks.append(mido.MidiTrack([mido.MetaMessage("end_of_track", time=0)]))
    path = tmp_path / "empty.mid"
    mid.save(str(path))
    with pytest.raises(ValidationError):
        parse_midi_to_song(str(path))


def test_parser_folds_and_dedupes(tmp_path):
    mid = mido.MidiFile(ticks_per_beat=480)
    track = mido.MidiTrack()
    track.append(mido.Message("note_on", note=48, velocity=90, time=0))    # C3 -> key 1
    track.append(mido.Message("note_on", note=60, velocity=90, time=0))    # 同一 key 同一拍：丟掉
    track.append(mido.Message("note_off", note=48, velocity=0, time=480))
    track.append(mido.Message("note_off", note=60, velocity=0, time=0))
    mid.tracks.append(track)
    path = tmp_path / "fold.mid"
    mid.save(str(path))
    song = parse_midi_to_song(str(path), name="Folded")
    assert song.name == "Folded"
    assert [(n.key, n.start, n.duration) for n in song.notes] == [(1, 0.0, 1.0)]
    assert song.duration == 4


def test_key_layout():
    assert [key_to_pitch(k) for k in range(1, 9)] == [60, 62, 64, 65, 67, 69, 71, 72]
    assert pitch_to_key(72) == 8
    assert pitch_to_key(84) == 8
    assert pitch_to_key(61) == 9
    with pytest.raises(ValueError):
        key_to_pitch(16)
