# timeline/scheduler.py
import logging
from typing import Callable, List, Optional

from config import PlaybackConfig
from notes.errors import ScheduleToleranceMiss
from notes.model import Note, Song, sorted_notes

STOPPED, PLAYING, PAUSED = "stopped", "playing", "paused"


class PlaybackScheduler:
    """Plays a Song snapshot against the wall clock.

    The position is always recomputed from ``now_ms`` on each tick, never from the
    tick count, so an uneven tick rate cannot drift. Each note id is sent to the
    tone output at most once per play session.
    """
    def __init__(self, song: Song, tone, cfg: Optional[PlaybackConfig] = None):
        self.song = song
        self.tone = tone
        self.cfg = cfg or PlaybackConfig()
        self.notes: List[Note] = sorted_notes(song)

        self.reference_ms = 0.0
        self.elapsed_beats = 0.0
        self.played: set[str] = set()
        self.running = False
        self.state = STOPPED
        self._scan_from = 0.0   # 上一個 tick 掃描視窗的上界
        self._finished_cbs: List[Callable[[], None]] = []

    @property
    def beat_ms(self) -> float:
        return 60000.0 / self.song.bpm

    @property
    def current_beat(self) -> float:
        return self.elapsed_beats

    def on_finished(self, cb: Callable[[], None]):
        self._finished_cbs.append(cb)

    # ---------- transport ----------
    def start(self, now_ms: float):
        self.reference_ms = now_ms - self.elapsed_beats * self.beat_ms
        self.played.clear()
        self._scan_from = self.elapsed_beats
        self.running = True
        self.state = PLAYING
        logging.debug("playback start at beat %.3f (%s)", self.elapsed_beats, self.song.name)

    def pause(self, now_ms: Optional[float] = None):
        if not self.running:
            return
        if now_ms is not None:
            self.elapsed_beats = (now_ms - self.reference_ms) / self.beat_ms
        self.running = False
        self.state = PAUSED

    def resume(self, now_ms: float):
        if self.state != PAUSED:
            return
        # 從凍結的位置重新對齊時鐘，不清 played
        self.reference_ms = now_ms - self.elapsed_beats * self.beat_ms
        self.running = True
        self.state = PLAYING

    def toggle(self, now_ms: float):
        if self.state == PLAYING:
            self.pause(now_ms)
        elif self.state == PAUSED:
            self.resume(now_ms)
        else:
            self.start(now_ms)

    def stop(self):
        self._reset()

    def _reset(self):
        self.running = False
        self.state = STOPPED
        self.elapsed_beats = 0.0
        self._scan_from = 0.0
        self.played.clear()

    # ---------- tick ----------
    def on_tick(self, now_ms: float):
        if not self.running:
            return
        self.elapsed_beats = (now_ms - self.reference_ms) / self.beat_ms
        tol = self.cfg.tolerance_beats
        hi = self.elapsed_beats + tol
        try:
            lo = self._window_start()
        except ScheduleToleranceMiss as e:
            # tick 間隔太長：把上次視窗之後漏掉的音補上
            logging.debug("%s; catching up from beat %.3f", e, self._scan_from)
            lo = self._scan_from
        self._scan_from = max(self._scan_from, hi)

        for n in self.notes:
            if n.start >= hi:
                break
            if n.start >= lo and n.id not in self.played:
                self._fire(n)

        if self.elapsed_beats >= self.song.duration + self.cfg.tail_beats:
            self._reset()
            logging.info("playback finished: %s", self.song.name)
            for cb in list(self._finished_cbs):
                try:
                    cb()
                except Exception:
                    logging.exception("finished listener failed")

    def _window_start(self) -> float:
        if self._scan_from < self.elapsed_beats:
            raise ScheduleToleranceMiss(self.elapsed_beats - self._scan_from)
        return self.elapsed_beats

    def _fire(self, n: Note):
        self.played.add(n.id)
        secs = n.duration * self.beat_ms / 1000.0
        secs = max(self.cfg.tone_min_s, min(secs, self.cfg.tone_max_s))
        try:
            self.tone.play_tone(n.key, secs, n.velocity)
        except Exception:
            logging.warning("tone output failed for key %d; continuing", n.key, exc_info=True)
