# audio/synth.py
import heapq
import logging
import time

import pygame.midi

from notes.keys import key_to_pitch

DRUM_CH = 9  # GM: ch10(索引9)為打擊，避免使用


class Synth:
    """
    Tone output over the system MIDI device:
    - play_tone(key, seconds, velocity): note_on now, note_off scheduled on a heap
    - service(): called once per frame, releases notes whose time is up
    Runs silent (every call a no-op) when no MIDI output device exists.
    """
    def __init__(self, cfg, clock=time.monotonic):
        self.cfg = cfg
        self.clock = clock
        self.midi_out = None
        self.use_midi_out = False

        self.channels = [ch for ch in range(16) if ch != DRUM_CH]
        self._rr_index = 0
        self._pending_off: list[tuple[float, int, int, int]] = []  # (off_time, seq, ch, pitch)
        self._seq = 0

        try:
            pygame.midi.init()
            dev = cfg.device_id if cfg.device_id is not None else pygame.midi.get_default_output_id()
            if dev != -1:
                self.midi_out = pygame.midi.Output(dev)
                for ch in self.channels:
                    self.midi_out.set_instrument(cfg.program, ch)
                self.use_midi_out = True
                logging.info("[Synth] Using system MIDI out (device %s)", dev)
            else:
                logging.warning("[Synth] No MIDI output device found; running silent")
        except Exception:
            logging.warning("[Synth] MIDI init failed; running silent", exc_info=True)

    def close(self):
        try:
            if self.midi_out:
                self.all_notes_off()
                self.midi_out.close()
        except Exception:
            logging.debug("[Synth] close failed", exc_info=True)
        pygame.midi.quit()
        self.midi_out = None
        self.use_midi_out = False

    def _alloc_channel(self) -> int:
        ch = self.channels[self._rr_index % len(self.channels)]
        self._rr_index += 1
        return ch

    def play_tone(self, key: int, seconds: float, velocity: int):
        pitch = key_to_pitch(key)
        if not (self.use_midi_out and self.midi_out):
            return
        ch = self._alloc_channel()
        v = max(1, min(int(velocity), 127))
        self.midi_out.note_on(pitch, v, ch)
        self._seq += 1
        heapq.heappush(self._pending_off, (self.clock() + max(0.0, seconds), self._seq, ch, pitch))

    def service(self, now=None):
        now = self.clock() if now is None else now
        while self._pending_off and self._pending_off[0][0] <= now:
            _, _, ch, pitch = heapq.heappop(self._pending_off)
            try:
                self.midi_out.note_off(pitch, 0, ch)
            except Exception:
                logging.debug("[Synth] note_off %d failed", pitch, exc_info=True)

    def all_notes_off(self):
        self._pending_off.clear()
        if not (self.use_midi_out and self.midi_out):
            return
        try:
            for ch in self.channels:
                for p in range(48, 90):
                    self.midi_out.note_off(p, 0, ch)
        except Exception:
            logging.debug("[Synth] all_notes_off failed", exc_info=True)
