import pygame.midi
import pytest

from audio.synth import Synth
from config import AudioConfig
from input.keymap import DEFAULT_KEYMAP, deserialize_keymap
from notes.keys import COLUMN_ORDER, column_of


class FakeOut:
    def __init__(self):
        self.sent = []

    def set_instrument(self, program, ch):
        pass

    def note_on(self, pitch, vel, ch):
        self.sent.append(("on", pitch, vel))

    def note_off(self, pitch, vel, ch):
        self.sent.append(("off", pitch, vel))

    def close(self):
        pass


@pytest.fixture
def no_device(monkeypatch):
    monkeypatch.setattr(pygame.midi, "init", lambda: None)
    monkeypatch.setattr(pygame.midi, "quit", lambda: None)
    monkeypatch.setattr(pygame.midi, "get_default_output_id", lambda: -1)


def test_silent_without_device(no_device):
    synth = Synth(AudioConfig())
    assert not synth.use_midi_out
    synth.play_tone(1, 0.5, 100)
    synth.service()
    with pytest.raises(ValueError):
        synth.play_tone(16, 0.5, 100)
    synth.close()


def test_note_off_is_scheduled(no_device):
    now = [10.0]
    synth = Synth(AudioConfig(), clock=lambda: now[0])
    synth.midi_out = out = FakeOut()
    synth.use_midi_out = True

    synth.play_tone(3, 0.5, 200)
    assert out.sent == [("on", 64, 127)]
    synth.service(10.4)
    assert len(out.sent) == 1
    synth.service(10.5)
    assert out.sent[-1] == ("off", 64, 0)


def test_default_keymap_covers_every_column():
    assert sorted(DEFAULT_KEYMAP.values()) == sorted(COLUMN_ORDER)


def test_keymap_rejects_unknown_column():
    with pytest.raises(ValueError):
        deserialize_keymap({"97": 16})


def test_column_of_follows_visual_order():
    assert [column_of(k) for k in COLUMN_ORDER] == list(range(15))
    assert column_of(9) == 1 and column_of(15) == 14
