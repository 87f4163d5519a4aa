# midi/writer.py
import logging

import mido

from notes.keys import key_to_pitch
from notes.model import Song, sorted_notes

TICKS_PER_BEAT = 480


def song_to_midi(song: Song, ticks_per_beat: int = TICKS_PER_BEAT) -> mido.MidiFile:
    mid = mido.MidiFile(ticks_per_beat=ticks_per_beat)
    track = mido.MidiTrack()
    track.append(mido.MetaMessage("track_name", name=song.name, time=0))
    track.append(mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(song.bpm), time=0))

    evs = []
    for n in sorted_notes(song):
        on = int(round(n.start * ticks_per_beat))
        off = max(on + 1, int(round(n.end * ticks_per_beat)))
        evs.append((on, 1, "note_on", key_to_pitch(n.key), n.velocity))
        evs.append((off, 0, "note_off", key_to_pitch(n.key), 0))  # 同 tick 先 off
    evs.sort(key=lambda e: (e[0], e[1]))

    last = 0
    for tick, _, kind, pitch, vel in evs:
        track.append(mido.Message(kind, note=pitch, velocity=vel, time=tick - last))
        last = tick
    end = int(round(song.duration * ticks_per_beat))
    track.append(mido.MetaMessage("end_of_track", time=max(0, end - last)))
    mid.tracks.append(track)
    return mid


def write_song_midi(song: Song, path: str):
    song_to_midi(song).save(path)
    logging.info("Wrote MIDI for '%s' to %s", song.name, path)
