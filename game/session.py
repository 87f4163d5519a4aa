# game/session.py
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from config import GameConfig
from notes.errors import ValidationError
from notes.model import Note, Song, sorted_notes

PERFECT, GREAT, GOOD, WHIFF, MISS = "perfect", "great", "good", "whiff", "miss"
TIER_POINTS = {PERFECT: 100, GREAT: 75, GOOD: 50}


@dataclass
class Tile:
    note_id: str
    key: int
    spawn_ms: float
    hit_ms: float          # 應該被擊中的時間（距 session 開始）
    y: float               # 前緣位置，board %（0 上、100 下）
    length: float          # board %
    duration: float        # beats
    velocity: int
    consumed: bool = False
    missed: bool = False
    remove_at: Optional[float] = None

    @property
    def live(self) -> bool:
        return not (self.consumed or self.missed)


@dataclass(frozen=True)
class Judgement:
    key: int
    tier: str
    points: int
    distance: float
    note_id: Optional[str] = None


@dataclass(frozen=True)
class GameResult:
    score: int
    accuracy: float
    max_combo: int
    perfect: int
    great: int
    good: int
    miss: int
    whiff: int


class GameSession:
    """Spawns falling tiles from a Song and judges column hits.

    Board positions are percentages of the play-field height; a tile is spawned
    ``lookahead_beats`` before its note and placed so that, falling at
    ``fall_speed`` %/s, its leading edge reaches the hit line on the note's time.
    """
    def __init__(self, song: Song, cfg: Optional[GameConfig] = None, tone=None):
        self.song = song
        self.cfg = cfg or GameConfig()
        self.tone = tone

        self.sorted_notes: List[Note] = sorted_notes(song)
        self.spawn_cursor = 0
        self.tiles: List[Tile] = []
        self.score = 0
        self.combo = 0
        self.max_combo = 0
        self.counts = {PERFECT: 0, GREAT: 0, GOOD: 0, MISS: 0, WHIFF: 0}

        self.start_ms: Optional[float] = None
        self.last_ms: Optional[float] = None
        self.paused_at: Optional[float] = None
        self.over_at: Optional[float] = None
        self.over = False
        self._over_cbs: List[Callable[[GameResult], None]] = []
        self._judge_cbs: List[Callable[[Judgement], None]] = []

    @property
    def beat_ms(self) -> float:
        return 60000.0 / self.song.bpm

    @property
    def running(self) -> bool:
        return self.start_ms is not None and self.paused_at is None and not self.over

    def on_session_over(self, cb: Callable[[GameResult], None]):
        self._over_cbs.append(cb)

    def on_judgement(self, cb: Callable[[Judgement], None]):
        self._judge_cbs.append(cb)

    # ---------- lifecycle ----------
    def start(self, now_ms: float):
        if not self.sorted_notes:
            raise ValidationError(f"song '{self.song.name}' has no notes to play")
        self.start_ms = now_ms
        self.last_ms = now_ms
        logging.info("game start: %s (%d notes)", self.song.name, len(self.sorted_notes))

    def pause(self, now_ms: float):
        if self.running:
            self.paused_at = now_ms

    def resume(self, now_ms: float):
        if self.paused_at is None:
            return
        gap = now_ms - self.paused_at
        # 整個時間軸往後推，畫面不跳
        self.start_ms += gap
        self.last_ms = now_ms
        for t in self.tiles:
            if t.remove_at is not None:
                t.remove_at += gap
        if self.over_at is not None:
            self.over_at += gap
        self.paused_at = None

    def elapsed_ms(self, now_ms: float) -> float:
        return now_ms - self.start_ms

    # ---------- tick ----------
    def on_tick(self, now_ms: float):
        if not self.running:
            return
        dt_s = max(0.0, now_ms - self.last_ms) / 1000.0
        self.last_ms = now_ms
        elapsed = self.elapsed_ms(now_ms)

        self._advance(dt_s, now_ms)
        self._spawn(elapsed)
        self.tiles = [t for t in self.tiles if t.remove_at is None or t.remove_at > now_ms]
        self._check_over(now_ms)

    def _spawn(self, elapsed: float):
        lookahead = self.cfg.lookahead_beats * self.beat_ms
        speed = self.cfg.fall_speed
        while self.spawn_cursor < len(self.sorted_notes):
            n = self.sorted_notes[self.spawn_cursor]
            hit_ms = n.start * self.beat_ms
            if hit_ms > elapsed + lookahead:
                break
            y = self.cfg.hit_line - (hit_ms - elapsed) / 1000.0 * speed
            length = n.duration * self.beat_ms / 1000.0 * speed
            self.tiles.append(Tile(n.id, n.key, elapsed, hit_ms, y, length,
                                   n.duration, n.velocity))
            self.spawn_cursor += 1

    def _advance(self, dt_s: float, now_ms: float):
        far = self.cfg.hit_line + self.cfg.hit_window
        step = self.cfg.fall_speed * dt_s
        for t in self.tiles:
            if not t.live:
                continue
            t.y += step
            if t.y > far:
                t.missed = True
                t.remove_at = now_ms + self.cfg.miss_linger_ms
                self.combo = 0
                self.counts[MISS] += 1
                self._emit_judgement(Judgement(t.key, MISS, 0, (t.y - self.cfg.hit_line) / self.cfg.hit_window, t.note_id))

    def _check_over(self, now_ms: float):
        if self.spawn_cursor < len(self.sorted_notes) or self.active_tiles:
            return
        if self.over_at is None:
            self.over_at = now_ms + self.cfg.over_grace_ms
            return
        if now_ms >= self.over_at:
            self.over = True
            result = self.result()
            logging.info("game over: score=%d accuracy=%.1f%%", result.score, result.accuracy)
            for cb in list(self._over_cbs):
                try:
                    cb(result)
                except Exception:
                    logging.exception("session_over listener failed")

    # ---------- input ----------
    def hit(self, key: int, now_ms: Optional[float] = None) -> Optional[Judgement]:
        """Player pressed column ``key``. Returns the judgement, or None when nothing was in the zone."""
        if not self.running:
            return None
        cfg = self.cfg
        band = [t for t in self.tiles
                if t.live and t.key == key and abs(t.y - cfg.hit_line) <= cfg.hit_window]
        if not band:
            return None
        tile = min(band, key=lambda t: abs(t.y - cfg.hit_line))
        distance = abs(tile.y - cfg.hit_line) / cfg.hit_window

        if distance < cfg.perfect:
            tier = PERFECT
        elif distance < cfg.great:
            tier = GREAT
        elif distance < cfg.good:
            tier = GOOD
        else:
            self.counts[WHIFF] += 1
            j = Judgement(key, WHIFF, 0, distance)
            self._emit_judgement(j)
            return j

        points = TIER_POINTS[tier]
        self.score += points
        self.combo += 1
        self.max_combo = max(self.max_combo, self.combo)
        self.counts[tier] += 1
        tile.consumed = True
        tile.remove_at = (now_ms if now_ms is not None else self.last_ms) + cfg.hit_linger_ms
        if cfg.hit_sound:
            self._sound(tile)
        j = Judgement(key, tier, points, distance, tile.note_id)
        self._emit_judgement(j)
        return j

    def _sound(self, tile: Tile):
        if self.tone is None:
            return
        secs = tile.duration * self.beat_ms / 1000.0
        secs = max(self.cfg.tone_min_s, min(secs, self.cfg.tone_max_s))
        try:
            self.tone.play_tone(tile.key, secs, tile.velocity)
        except Exception:
            logging.warning("hit sound failed for key %d", tile.key, exc_info=True)

    def _emit_judgement(self, j: Judgement):
        for cb in list(self._judge_cbs):
            try:
                cb(j)
            except Exception:
                logging.exception("judgement listener failed")

    # ---------- stats ----------
    @property
    def accuracy(self) -> float:
        hits = self.counts[PERFECT] + self.counts[GREAT] + self.counts[GOOD]
        total = hits + self.counts[MISS]
        return hits / total * 100.0 if total else 0.0

    def result(self) -> GameResult:
        c = self.counts
        return GameResult(self.score, self.accuracy, self.max_combo,
                          c[PERFECT], c[GREAT], c[GOOD], c[MISS], c[WHIFF])

    @property
    def active_tiles(self) -> List[Tile]:
        return [t for t in self.tiles if t.live]
