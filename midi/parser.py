# midi/parser.py
import os
from typing import List

import mido

from notes.errors import ValidationError
from notes.keys import pitch_to_key
from notes.model import (
    DEFAULT_BPM, DUPLICATE_TOLERANCE, Note, Song, new_note_id, new_song_id, round_up_to_bar, snap,
)


def parse_midi_to_song(path: str, name: str = None) -> Song:
    """Read a MIDI file into a Song: beats from ticks_per_beat, pitches folded onto the 15 keys.

    Onsets are snapped to the 0.25-beat grid; notes that would land on an occupied key
    (within the duplicate tolerance) are dropped.
    """
    mid = mido.MidiFile(path)
    tpb = mid.ticks_per_beat
    tempo = None
    tick = 0
    active = {}
    raw: List[tuple] = []  # (start_beat, end_beat, pitch, velocity)

    for msg in mido.merge_tracks(mid.tracks):
        tick += msg.time
        if msg.is_meta:
            if msg.type == 'set_tempo' and tempo is None:
                tempo = msg.tempo
        else:
            if msg.type == 'note_on' and msg.velocity > 0:
                active[(msg.channel, msg.note)] = (tick, msg.velocity)
            elif msg.type == 'note_off' or (msg.type == 'note_on' and msg.velocity == 0):
                key = (msg.channel, msg.note)
                if key in active:
                    st, vel = active.pop(key)
                    raw.append((st / tpb, tick / tpb, msg.note, vel))
    # close dangling
    for (ch, p), (st, vel) in active.items():
        raw.append((st / tpb, tick / tpb, p, vel))

    bpm = int(round(mido.tempo2bpm(tempo))) if tempo else DEFAULT_BPM
    raw.sort(key=lambda r: (r[0], r[2]))

    notes: List[Note] = []
    for start, end, pitch, vel in raw:
        key = pitch_to_key(pitch)
        start = snap(start)
        if any(n.key == key and abs(n.start - start) < DUPLICATE_TOLERANCE for n in notes):
            continue
        notes.append(Note(new_note_id(), key, start, max(0.1, end - start), max(1, min(127, vel))))

    if not notes:
        raise ValidationError(f"{os.path.basename(path)} contains no notes")
    title = name or os.path.splitext(os.path.basename(path))[0] or "Imported"
    duration = round_up_to_bar(max(n.end for n in notes))
    return Song(id=new_song_id(), name=title, bpm=max(1, bpm), duration=duration, notes=tuple(notes))
