import pytest

from notes.model import Note, Song


class FakeTone:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def play_tone(self, key, seconds, velocity):
        if self.fail:
            raise RuntimeError("device unplugged")
        self.calls.append((key, seconds, velocity))


def make_song(*notes, bpm=120, duration=16, name="Test"):
    """notes: (id, key, start, duration[, velocity])"""
    built = []
    for row in notes:
        nid, key, start, dur = row[:4]
        vel = row[4] if len(row) > 4 else 100
        built.append(Note(nid, key, float(start), float(dur), vel))
    return Song(id="song-test", name=name, bpm=bpm, duration=duration, notes=tuple(built),
                last_modified=1)


@pytest.fixture
def tone():
    return FakeTone()


@pytest.fixture
def abcd_song():
    # A, B, C 在左下角的一塊；D 遠在右邊的黑鍵
    return make_song(("A", 1, 0, 1), ("B", 2, 1, 1), ("C", 3, 2, 1), ("D", 10, 8, 1))
