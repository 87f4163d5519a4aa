# app.py
import json
import logging
import os
from typing import Dict, Optional

import pygame

from audio.synth import Synth
from config import AppConfig
from edit.engine import EditEngine
from edit.history import HistoryManager
from edit.session import GridEvent, Tool
from game.session import GameResult, GameSession, Judgement
from input.keymap import DEFAULT_KEYMAP, deserialize_keymap
from midi.parser import parse_midi_to_song
from midi.writer import write_song_midi
from notes.errors import NotFoundError, StorageError, TimelineError
from notes.model import PENCIL_DURATIONS, Song
from notes.ops import demo_song, new_song
from notes.record import export_song, import_song
from render.renderer import STATUS_H, Renderer
from storage.library import SongLibrary
from timeline.scheduler import PLAYING, STOPPED, PlaybackScheduler
from timeline.tick import TickSource
from utils.crashlog import log_exception

EDIT, GAME = "edit", "game"
EDITOR_BUTTONS = ["NEW", "DEMO", "OPEN", "SAVE", "RENAME", "REMOVE", "IMPORT", "EXPORT", "MIDI IN", "MIDI OUT",
                  "SELECT", "PENCIL", "ERASER", "DUR", "PLAY/PAUSE", "STOP", "GAME", "QUIT"]
GAME_BUTTONS = ["BACK", "PAUSE", "RESTART", "QUIT"]
TOOL_BUTTONS = {"SELECT": Tool.SELECT, "PENCIL": Tool.PENCIL, "ERASER": Tool.ERASER}


def pick_file_dialog(title: str, patterns: list[tuple[str, str]]) -> Optional[str]:
    try:
        import tkinter as tk
        from tkinter import filedialog
        root = tk.Tk(); root.withdraw()
        file = filedialog.askopenfilename(title=title, filetypes=patterns)
        root.update(); root.destroy()
        return file or None
    except Exception:
        logging.warning("file dialog unavailable", exc_info=True)
        return None


def save_file_dialog(title: str, default_ext: str, patterns: list[tuple[str, str]]) -> Optional[str]:
    try:
        import tkinter as tk
        from tkinter import filedialog
        root = tk.Tk(); root.withdraw()
        file = filedialog.asksaveasfilename(title=title, defaultextension=default_ext, filetypes=patterns)
        root.update(); root.destroy()
        return file or None
    except Exception:
        logging.warning("file dialog unavailable", exc_info=True)
        return None


def ask_text_dialog(title: str, prompt: str, initial: str = "") -> Optional[str]:
    try:
        import tkinter as tk
        from tkinter import simpledialog
        root = tk.Tk(); root.withdraw()
        text = simpledialog.askstring(title, prompt, initialvalue=initial, parent=root)
        root.update(); root.destroy()
        return text
    except Exception:
        logging.warning("text dialog unavailable", exc_info=True)
        return None


class App:
    def __init__(self, cfg: AppConfig, song: Optional[Song] = None):
        self.cfg = cfg
        self.renderer = Renderer(cfg.render)
        self.synth = Synth(cfg.audio)
        self.library = SongLibrary(cfg.storage.library_dir)
        self.ticks = TickSource()
        self.ticks.register_tick(lambda now_ms: self.synth.service())

        self.engine = EditEngine(song or self._initial_song(), tone=self.synth, cfg=cfg.editor,
                                 history=HistoryManager(cfg.history.limit))
        self.engine.events.on("error", lambda e: self._toast(str(e), 3.0))

        self.mode = EDIT
        self.player: Optional[PlaybackScheduler] = None
        self._player_tick: Optional[int] = None
        self.game: Optional[GameSession] = None
        self._game_tick: Optional[int] = None
        self.keymap: Dict[int, int] = self._load_keymap(cfg.storage.keymap_path)
        self.pressed: set[int] = set()
        self._flash: Optional[tuple] = None
        self._mouse_down = False
        self._last_cell = None
        self._library_idx = 0

        # UI 訊息（toast）
        self._msg = ""
        self._msg_time = 0.0

    @staticmethod
    def _load_keymap(path: str) -> Dict[int, int]:
        if not os.path.exists(path):
            return dict(DEFAULT_KEYMAP)
        try:
            with open(path, "r", encoding="utf-8") as f:
                kmap = deserialize_keymap(json.load(f))
            logging.info("Loaded keymap from %s", path)
            return kmap
        except (OSError, ValueError) as e:
            logging.warning("Keymap %s ignored: %s", path, e)
            return dict(DEFAULT_KEYMAP)

    def _initial_song(self) -> Song:
        try:
            songs = self.library.list()
        except StorageError:
            logging.warning("library unavailable", exc_info=True)
            songs = []
        return songs[0] if songs else demo_song()

    # ---------- UI 訊息 ----------
    def _toast(self, msg: str, secs: float = 4.0):
        self._msg = msg
        self._msg_time = max(self._msg_time, secs)

    @staticmethod
    def _now() -> int:
        return pygame.time.get_ticks()

    # ---------- Library / files ----------
    def save_current(self):
        try:
            self.library.save(self.engine.song)
            self._toast("Saved ✓", 2.0)
        except StorageError as e:
            # 記憶體中的歌曲保持不變，可以再存一次
            log_exception("save_current", e)
            self._toast("Save failed (see logs)", 6.0)

    def rename_current(self):
        name = ask_text_dialog("Rename song", "Song name:", self.engine.song.name)
        if name is None:
            return
        if self.engine.update_settings(name=name):
            self._toast(f"Renamed to '{self.engine.song.name}'", 2.0)

    def open_next(self):
        try:
            songs = self.library.list()
        except StorageError as e:
            log_exception("open_next", e)
            self._toast("Library unavailable (see logs)", 6.0)
            return
        if not songs:
            self._toast("Library is empty", 2.0)
            return
        self._library_idx = (self._library_idx + 1) % len(songs)
        self._load(songs[self._library_idx])

    def _load(self, song: Song):
        self.stop_playback()
        self.engine.load_song(song)
        self.renderer.scroll_beats = 0.0
        self._toast(f"Loaded '{song.name}'", 2.0)

    def import_json(self):
        path = pick_file_dialog("Import song", [("Song JSON", "*.json"), ("All files", "*.*")])
        if not path:
            return
        try:
            self._load(import_song(path))
        except (OSError, ValueError) as e:  # ValidationError 也是 ValueError
            log_exception("import_json", e)
            self._toast(f"Import failed: {e}", 6.0)

    def export_json(self):
        song = self.engine.song
        path = save_file_dialog("Export song", ".json", [("Song JSON", "*.json")])
        if not path:
            return
        try:
            export_song(song, path)
            self._toast("Exported ✓", 2.0)
        except OSError as e:
            log_exception("export_json", e)
            self._toast("Export failed (see logs)", 6.0)

    def import_midi(self):
        path = pick_file_dialog("Select a MIDI file", [("MIDI files", "*.mid *.midi"), ("All files", "*.*")])
        if not path:
            return
        try:
            self._load(parse_midi_to_song(path))
        except Exception as e:
            log_exception("import_midi", e)
            self._toast("Failed to load MIDI (see logs)", 6.0)

    def export_midi(self):
        path = save_file_dialog("Export MIDI", ".mid", [("MIDI files", "*.mid")])
        if not path:
            return
        try:
            write_song_midi(self.engine.song, path)
            self._toast("MIDI written ✓", 2.0)
        except OSError as e:
            log_exception("export_midi", e)
            self._toast("MIDI export failed (see logs)", 6.0)

    def delete_current(self):
        song = self.engine.song
        try:
            self.library.delete(song.id)
            self._toast(f"Deleted '{song.name}'", 2.0)
        except NotFoundError:
            self._toast("Not in library", 2.0)
        except StorageError as e:
            log_exception("delete_current", e)
            self._toast("Delete failed (see logs)", 6.0)

    # ---------- Playback ----------
    def toggle_playback(self):
        now = self._now()
        p = self.player
        if p is None or (p.song is not self.engine.song and p.state != PLAYING):
            self.stop_playback()
            p = self.player = PlaybackScheduler(self.engine.song, self.synth, self.cfg.playback)
            p.on_finished(self._on_playback_finished)
        p.toggle(now)
        if p.running and self._player_tick is None:
            self._player_tick = self.ticks.register_tick(p.on_tick)

    def _on_playback_finished(self):
        if self._player_tick is not None:
            self.ticks.cancel_tick(self._player_tick)
            self._player_tick = None

    def stop_playback(self):
        if self.player is not None:
            self.player.stop()
        self._on_playback_finished()
        self.player = None

    # ---------- Game ----------
    def enter_game(self):
        self.stop_playback()
        game = GameSession(self.engine.song, self.cfg.game, tone=self.synth)
        try:
            game.start(self._now())
        except TimelineError as e:
            self._toast(str(e), 3.0)
            return
        game.on_judgement(self._on_judgement)
        game.on_session_over(self._on_game_over)
        self.game = game
        self._game_tick = self.ticks.register_tick(game.on_tick)
        self.mode = GAME

    def leave_game(self):
        if self._game_tick is not None:
            self.ticks.cancel_tick(self._game_tick)
            self._game_tick = None
        self.game = None
        self.pressed.clear()
        self.mode = EDIT

    def _on_judgement(self, j: Judgement):
        self._flash = (j.tier, self._now() + 400)

    def _on_game_over(self, result: GameResult):
        self._toast(f"Game over: {result.score} pts, {result.accuracy:.1f}%", 8.0)
        if self._game_tick is not None:
            self.ticks.cancel_tick(self._game_tick)
            self._game_tick = None

    # ---------- Input ----------
    @staticmethod
    def _mods():
        mods = pygame.key.get_mods()
        return bool(mods & (pygame.KMOD_CTRL | pygame.KMOD_META)), bool(mods & pygame.KMOD_SHIFT)

    def _grid_event(self, kind: str, pos):
        hit = self.renderer.pixel_to_grid(*pos)
        if hit is None:
            # 拖出格子外放開：用最後一個有效格位收尾
            if kind != "up" or self._last_cell is None:
                return
            hit = self._last_cell
        self._last_cell = hit if kind != "up" else None
        ctrl, shift = self._mods()
        self.engine.handle_grid_event(GridEvent(kind, hit[0], hit[1], ctrl=ctrl, shift=shift))

    def _on_button(self, label: str) -> bool:
        if label == "QUIT":
            return False
        if label == "NEW":
            self._load(new_song())
        elif label == "DEMO":
            self._load(demo_song())
        elif label == "OPEN":
            self.open_next()
        elif label == "SAVE":
            self.save_current()
        elif label == "RENAME":
            self.rename_current()
        elif label == "REMOVE":
            self.delete_current()
        elif label == "IMPORT":
            self.import_json()
        elif label == "EXPORT":
            self.export_json()
        elif label == "MIDI IN":
            self.import_midi()
        elif label == "MIDI OUT":
            self.export_midi()
        elif label in TOOL_BUTTONS:
            self.engine.set_tool(TOOL_BUTTONS[label])
        elif label == "DUR":
            cur = self.engine.session.pencil_duration
            i = PENCIL_DURATIONS.index(cur) if cur in PENCIL_DURATIONS else 0
            self.engine.set_pencil_duration(PENCIL_DURATIONS[(i + 1) % len(PENCIL_DURATIONS)])
        elif label == "PLAY/PAUSE":
            self.toggle_playback()
        elif label == "STOP":
            self.stop_playback()
        elif label == "GAME":
            self.enter_game()
        elif label == "BACK":
            self.leave_game()
        elif label == "PAUSE" and self.game:
            if self.game.paused_at is None:
                self.game.pause(self._now())
            else:
                self.game.resume(self._now())
        elif label == "RESTART":
            self.leave_game()
            self.enter_game()
        return True

    def _handle_edit_event(self, e) -> None:
        if e.type == pygame.KEYDOWN:
            ctrl, shift = self._mods()
            if e.key == pygame.K_SPACE:
                self.toggle_playback(); return
            if ctrl and e.key == pygame.K_s:
                self.save_current(); return
            if e.key in (pygame.K_KP_PLUS, pygame.K_EQUALS):
                self.engine.update_settings(bpm=self.engine.song.bpm + 5); return
            if e.key in (pygame.K_MINUS, pygame.K_KP_MINUS):
                self.engine.update_settings(bpm=max(1, self.engine.song.bpm - 5)); return
            self.engine.handle_key(pygame.key.name(e.key), ctrl=ctrl, shift=shift)
        elif e.type == pygame.MOUSEBUTTONDOWN and e.button == 1:
            self._mouse_down = True
            self._grid_event("down", e.pos)
        elif e.type == pygame.MOUSEMOTION and self._mouse_down:
            self._grid_event("move", e.pos)
        elif e.type == pygame.MOUSEBUTTONUP and e.button == 1 and self._mouse_down:
            self._mouse_down = False
            self._grid_event("up", e.pos)
        elif e.type == pygame.MOUSEWHEEL:
            self.renderer.scroll(-e.y * 0.5)

    def _handle_game_event(self, e) -> None:
        if not self.game:
            return
        if e.type == pygame.KEYDOWN:
            if e.key == pygame.K_ESCAPE:
                self.leave_game(); return
            if e.key == pygame.K_p:
                self._on_button("PAUSE"); return
            if e.key in self.keymap:
                key = self.keymap[e.key]
                self.pressed.add(key)
                self.game.hit(key, self._now())
        elif e.type == pygame.KEYUP and e.key in self.keymap:
            self.pressed.discard(self.keymap[e.key])
        elif e.type == pygame.MOUSEBUTTONDOWN and e.button == 1:
            key = self.renderer.column_at(e.pos[0])
            if key is not None:
                self.game.hit(key, self._now())

    # ---------- Main loop ----------
    def run(self):
        running = True
        while running:
            dt = self.renderer.tick()
            for e in pygame.event.get():
                if e.type == pygame.QUIT:
                    running = False; break
                if e.type == pygame.MOUSEBUTTONDOWN and e.button == 1 and e.pos[1] <= STATUS_H:
                    label = self.renderer.button_at(e.pos)
                    if label is not None:
                        running = self._on_button(label)
                    continue
                if self.mode == EDIT:
                    self._handle_edit_event(e)
                else:
                    self._handle_game_event(e)

            if not running: break

            # ===== 訊息倒數（toast） =====
            if self._msg_time > 0:
                self._msg_time -= dt
                if self._msg_time <= 0:
                    self._msg_time = 0
                    self._msg = ""

            now = self._now()
            self.ticks.fire(now)
            if self._flash and now > self._flash[1]:
                self._flash = None

            # ----- Render -----
            self.renderer.begin_frame()
            if self.mode == EDIT:
                self._draw_editor()
            else:
                self._draw_game()
            self.renderer.end_frame()

        self.stop_playback()
        self.synth.close()
        pygame.quit()

    def _draw_editor(self):
        s = self.engine.session
        song = s.song
        playing = self.player is not None and self.player.state != STOPPED
        fields = [
            song.name,
            f"BPM: {song.bpm}",
            f"DUR: {s.pencil_duration:g}",
            f"SEL: {len(s.selected)}",
            f"{'PLAYING' if playing else 'STOPPED'}",
        ]
        if self._msg: fields.append(self._msg)
        self.renderer.draw_status_bar(EDITOR_BUTTONS, active=[s.tool.name], right_info_text="  |  ".join(fields))
        box = None
        if s.drag is not None and s.drag.kind == "box":
            box = (s.drag.origin_beat, s.drag.origin_key, s.drag.beat, s.drag.key)
        self.renderer.draw_grid(song, s.selected,
                                playhead=self.player.current_beat if playing else None, box=box)
        if s.last_error is not None:
            self.renderer.draw_message(str(s.last_error))

    def _draw_game(self):
        g = self.game
        fields = [g.song.name, f"BPM: {g.song.bpm}"]
        if g.paused_at is not None: fields.append("PAUSED")
        if self._msg: fields.append(self._msg)
        self.renderer.draw_status_bar(GAME_BUTTONS, right_info_text="  |  ".join(fields))
        self.renderer.draw_game(g, self.pressed, flash=self._flash)
