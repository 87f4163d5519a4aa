# render/renderer.py
from typing import Iterable, Optional

import pygame

from config import RenderConfig
from game.session import GameSession, PERFECT, GREAT, GOOD, MISS, WHIFF
from notes.keys import COLUMN_ORDER, KEY_MAX, column_of, is_black, key_label
from notes.model import Song

STATUS_H = 36
BTN_PAD_X = 10
BTN_GAP = 8

TIER_COLORS = {
    PERFECT: (255, 215, 0), GREAT: (120, 220, 255), GOOD: (90, 220, 120),
    MISS: (230, 80, 80), WHIFF: (160, 160, 170),
}


class Renderer:
    """Draws Song / Tile records; holds no model state of its own."""
    def __init__(self, cfg: RenderConfig):
        pygame.init()
        self.cfg = cfg
        self.screen = pygame.display.set_mode((cfg.window_w, cfg.window_h))
        pygame.display.set_caption("PI-Tiles")
        self.font = pygame.font.SysFont("consolas", 18)
        self.font_small = pygame.font.SysFont("consolas", 14)
        self.font_big = pygame.font.SysFont("consolas", 40, bold=True)
        self.clock = pygame.time.Clock()
        self.button_rects: dict[str, pygame.Rect] = {}
        self.scroll_beats = 0.0

    def tick(self, fps=None) -> float:
        return self.clock.tick(fps or self.cfg.fps) / 1000.0

    def begin_frame(self):
        self.screen.fill((12, 12, 14))

    def end_frame(self):
        pygame.display.flip()

    # ------- status bar -------
    def draw_status_bar(self, buttons: Iterable[str], active: Iterable[str] = (), right_info_text: str = ""):
        active = set(active)
        pygame.draw.rect(self.screen, (24, 24, 28), (0, 0, self.cfg.window_w, STATUS_H))
        pygame.draw.line(self.screen, (60, 60, 66), (0, STATUS_H), (self.cfg.window_w, STATUS_H), 1)

        x = 8; self.button_rects.clear()
        for label in buttons:
            surf = self.font_small.render(label, True, (220, 220, 230))
            rect = surf.get_rect(); rect.topleft = (x + BTN_PAD_X, (STATUS_H - rect.height)//2)
            box = pygame.Rect(x, 4, rect.width + BTN_PAD_X*2, STATUS_H - 8)
            fill = (70, 60, 110) if label in active else (40, 40, 46)
            pygame.draw.rect(self.screen, fill, box, border_radius=6)
            pygame.draw.rect(self.screen, (75, 75, 85), box, 1, border_radius=6)
            self.screen.blit(surf, rect)
            self.button_rects[label] = box
            x += box.width + BTN_GAP

        if right_info_text:
            right = self.font_small.render(right_info_text, True, (180, 180, 190))
            self.screen.blit(right, (self.cfg.window_w - right.get_width() - 10,
                                     (STATUS_H - right.get_height())//2))

    def button_at(self, pos) -> Optional[str]:
        for label, rect in self.button_rects.items():
            if rect.collidepoint(pos):
                return label
        return None

    # ------- editor grid -------
    @property
    def grid_top(self) -> int:
        return STATUS_H + 4

    def beat_to_x(self, beat: float) -> float:
        return self.cfg.key_w + (beat - self.scroll_beats) * self.cfg.beat_w

    def key_to_y(self, key: int) -> float:
        return self.grid_top + (key - 1) * self.cfg.row_h

    def pixel_to_grid(self, x: float, y: float):
        """(beat, key) under a pixel, or None outside the note grid."""
        if x < self.cfg.key_w or y < self.grid_top:
            return None
        row = int((y - self.grid_top) // self.cfg.row_h)
        if row >= KEY_MAX:
            return None
        beat = (x - self.cfg.key_w) / self.cfg.beat_w + self.scroll_beats
        return max(0.0, beat), row + 1

    def scroll(self, beats: float):
        self.scroll_beats = max(0.0, self.scroll_beats + beats)

    def draw_grid(self, song: Song, selected: set, playhead: Optional[float] = None, box=None):
        cfg = self.cfg
        w = cfg.window_w
        bottom = self.key_to_y(KEY_MAX + 1)

        for key in range(1, KEY_MAX + 1):
            y = self.key_to_y(key)
            row_fill = (22, 22, 26) if is_black(key) else (30, 30, 36)
            pygame.draw.rect(self.screen, row_fill, (cfg.key_w, y, w - cfg.key_w, cfg.row_h))
            key_fill = (18, 18, 20) if is_black(key) else (230, 230, 230)
            pygame.draw.rect(self.screen, key_fill, (0, y, cfg.key_w - 2, cfg.row_h - 1))
            label = self.font_small.render(key_label(key), True,
                                           (220, 220, 230) if is_black(key) else (30, 30, 36))
            self.screen.blit(label, (6, y + (cfg.row_h - label.get_height()) // 2))

        # 格線：每 0.25 拍細線、每拍中線、每小節粗線
        first = int(self.scroll_beats * 4)
        last = int((self.scroll_beats + (w - cfg.key_w) / cfg.beat_w) * 4) + 1
        for q in range(first, last + 1):
            x = self.beat_to_x(q / 4)
            if x < cfg.key_w:
                continue
            color = (90, 90, 100) if q % 16 == 0 else (55, 55, 62) if q % 4 == 0 else (38, 38, 44)
            pygame.draw.line(self.screen, color, (x, self.grid_top), (x, bottom), 1)

        end_x = self.beat_to_x(song.duration)
        if cfg.key_w <= end_x <= w:
            pygame.draw.line(self.screen, (200, 90, 90), (end_x, self.grid_top), (end_x, bottom), 2)

        for n in song.notes:
            x0, x1 = self.beat_to_x(n.start), self.beat_to_x(n.end)
            if x1 < cfg.key_w or x0 > w:
                continue
            y = self.key_to_y(n.key)
            rect = pygame.Rect(int(max(x0, cfg.key_w)), int(y + 2), max(3, int(x1 - max(x0, cfg.key_w))), cfg.row_h - 4)
            shade = 0.45 + 0.55 * (n.velocity / 127)
            base = (255, 170, 60) if n.id in selected else (90, 160, 255) if is_black(n.key) else (80, 200, 120)
            pygame.draw.rect(self.screen, tuple(int(c * shade) for c in base), rect, border_radius=4)
            pygame.draw.rect(self.screen, (240, 240, 240) if n.id in selected else (20, 20, 24), rect, 1, border_radius=4)
            pygame.draw.line(self.screen, (230, 230, 230), (rect.right - 3, rect.top + 4), (rect.right - 3, rect.bottom - 4), 2)

        if box is not None:
            b0, k0, b1, k1 = box
            x0, x1 = sorted((self.beat_to_x(b0), self.beat_to_x(b1)))
            ya = self.key_to_y(min(k0, k1)); yb = self.key_to_y(max(k0, k1) + 1)
            sel = pygame.Surface((max(1, int(x1 - x0)), max(1, int(yb - ya))), pygame.SRCALPHA)
            sel.fill((120, 160, 255, 60))
            self.screen.blit(sel, (x0, ya))
            pygame.draw.rect(self.screen, (140, 180, 255), (x0, ya, x1 - x0, yb - ya), 1)

        if playhead is not None:
            x = self.beat_to_x(playhead)
            if cfg.key_w <= x <= w:
                pygame.draw.line(self.screen, (255, 80, 120), (x, self.grid_top), (x, bottom), 2)

    def draw_message(self, text: str, color=(255, 200, 120)):
        surf = self.font.render(text, True, color)
        self.screen.blit(surf, (self.cfg.key_w + 10, self.cfg.window_h - surf.get_height() - 10))

    # ------- game board -------
    def column_rect(self, key: int) -> pygame.Rect:
        col_w = self.cfg.window_w / len(COLUMN_ORDER)
        idx = column_of(key)
        return pygame.Rect(int(idx * col_w), STATUS_H, int(col_w) - 1, self.cfg.window_h - STATUS_H)

    def board_to_y(self, pct: float) -> float:
        return STATUS_H + (self.cfg.window_h - STATUS_H) * pct / 100.0

    def column_at(self, x: float) -> Optional[int]:
        col_w = self.cfg.window_w / len(COLUMN_ORDER)
        idx = int(x // col_w)
        return COLUMN_ORDER[idx] if 0 <= idx < len(COLUMN_ORDER) else None

    def draw_game(self, game: GameSession, pressed: set, flash: Optional[tuple] = None):
        gcfg = game.cfg
        for key in COLUMN_ORDER:
            r = self.column_rect(key)
            fill = (44, 36, 60) if key in pressed else (20, 20, 26) if is_black(key) else (28, 28, 34)
            pygame.draw.rect(self.screen, fill, r)
            label = self.font_small.render(key_label(key), True, (150, 150, 160))
            self.screen.blit(label, (r.x + 4, r.bottom - label.get_height() - 4))

        top = self.board_to_y(gcfg.hit_line - gcfg.hit_window)
        bottom = self.board_to_y(gcfg.hit_line + gcfg.hit_window)
        zone = pygame.Surface((self.cfg.window_w, max(1, int(bottom - top))), pygame.SRCALPHA)
        zone.fill((60, 200, 120, 40))
        self.screen.blit(zone, (0, top))
        line_y = self.board_to_y(gcfg.hit_line)
        pygame.draw.line(self.screen, (120, 240, 160), (0, line_y), (self.cfg.window_w, line_y), 2)

        for t in game.tiles:
            r = self.column_rect(t.key)
            y1 = self.board_to_y(t.y)
            y0 = self.board_to_y(t.y - max(2.0, t.length))
            if t.consumed:
                color = (255, 230, 140)
            elif t.missed:
                color = (110, 50, 60)
            else:
                color = (90, 160, 255) if is_black(t.key) else (236, 72, 153)
            pygame.draw.rect(self.screen, color, (r.x + 3, y0, r.width - 6, y1 - y0), border_radius=6)

        hud = self.font.render(
            f"SCORE {game.score}   COMBO x{game.combo}   ACC {game.accuracy:5.1f}%", True, (230, 230, 240))
        self.screen.blit(hud, (10, STATUS_H + 8))
        if flash:
            tier, _ = flash
            surf = self.font_big.render(tier.upper(), True, TIER_COLORS.get(tier, (255, 255, 255)))
            self.screen.blit(surf, ((self.cfg.window_w - surf.get_width()) // 2, int(line_y) - 120))
        if game.over:
            res = game.result()
            lines = [
                "GAME OVER",
                f"score {res.score}   accuracy {res.accuracy:.1f}%   max combo {res.max_combo}",
                f"perfect {res.perfect}  great {res.great}  good {res.good}  miss {res.miss}",
            ]
            y = self.cfg.window_h // 3
            for i, text in enumerate(lines):
                surf = (self.font_big if i == 0 else self.font).render(text, True, (240, 240, 250))
                self.screen.blit(surf, ((self.cfg.window_w - surf.get_width()) // 2, y))
                y += surf.get_height() + 12
