# edit/engine.py
import logging
from typing import Optional

from config import EditorConfig
from edit.history import HistoryManager
from edit.session import EditSession, GridEvent, Tool
from edit.tools import TOOLS
from notes.errors import NotFoundError, TimelineError, ValidationError
from notes.model import PENCIL_DURATIONS, Note, Song
from notes.ops import NoteAdded, add_note, remove_notes, update_song
from utils.events import EventHub


class EditEngine:
    """Tool state machine over one open Song.

    Pointer events arrive as GridEvents (beat, key); every committed mutation records
    the pre-mutation Song in the HistoryManager before the new snapshot becomes current.
    Views subscribe to ``events`` and never hold model state of their own.
    """
    def __init__(self, song: Song, tone=None, cfg: Optional[EditorConfig] = None,
                 history: Optional[HistoryManager] = None, events: Optional[EventHub] = None):
        self.cfg = cfg or EditorConfig()
        self.session = EditSession(song=song, pencil_duration=self.cfg.pencil_duration)
        self.history = history or HistoryManager()
        self.tone = tone
        self.events = events or EventHub()
        self.tools = {cls.TOOL: cls(self) for cls in TOOLS}

    @property
    def song(self) -> Song:
        return self.session.song

    # ---------- song lifecycle ----------
    def load_song(self, song: Song):
        s = self.session
        s.song = song
        s.selected.clear()
        s.anchor_id = None
        s.drag = None
        s.last_error = None
        self.history.clear()
        self.events.emit("song_changed", song)
        self.events.emit("selection_changed", set())

    def commit(self, before: Song, after: Song, changed_if_differs: bool = False):
        """Make ``after`` current, checkpointing ``before`` first."""
        s = self.session
        if changed_if_differs and after.notes == before.notes and after.duration == before.duration:
            s.song = before
            return
        self.history.checkpoint(before)
        s.song = after
        s.last_error = None
        if s.prune_selection():
            self.events.emit("selection_changed", set(s.selected))
        self.events.emit("song_changed", after)

    def fail(self, exc: Exception):
        """Record a transient, non-blocking error; the active tool stays put."""
        self.session.last_error = exc
        logging.info("edit rejected: %s", exc)
        self.events.emit("error", exc)

    # ---------- tools ----------
    def set_tool(self, tool: Tool):
        s = self.session
        if s.drag is not None:
            s.song = s.drag.base
            s.drag = None
        if s.tool is Tool.SELECT and tool is not Tool.SELECT and s.selected:
            self.set_selection(set())
        s.tool = tool
        self.events.emit("tool_changed", tool)

    def set_pencil_duration(self, beats: float):
        if beats not in PENCIL_DURATIONS:
            raise ValidationError(f"pencil duration must be one of {PENCIL_DURATIONS}")
        self.session.pencil_duration = beats

    def handle_grid_event(self, ev: GridEvent):
        tool = self.tools[self.session.tool]
        try:
            if ev.kind == "down":
                tool.on_down(ev)
            elif ev.kind == "move":
                tool.on_move(ev)
            elif ev.kind == "up":
                tool.on_up(ev)
            else:
                raise ValueError(f"unknown grid event kind {ev.kind!r}")
        except TimelineError as e:
            self.fail(e)

    def handle_at(self, beat: float, key: int) -> Optional[Note]:
        """Note on ``key`` whose trailing-edge handle is under ``beat``.

        The handle is at most a third of the note, so short notes stay clickable.
        """
        w = self.cfg.resize_handle_beats
        cands = [n for n in self.song.notes
                 if n.key == key and n.end - min(w, n.duration / 3) <= beat <= n.end]
        return min(cands, key=lambda n: abs(n.end - beat)) if cands else None

    # ---------- timeline calls ----------
    def add_note(self, key: int, beat: float, duration: float, velocity: int):
        before = self.song
        try:
            result = add_note(before, key, beat, duration, velocity)
        except ValidationError as e:
            self.fail(e)
            return None
        if isinstance(result, NoteAdded):
            self.commit(before, result.song)
            self.events.emit("note_added", result.note)
        return result

    def delete_selected(self) -> bool:
        s = self.session
        if not s.selected:
            return False
        before = s.song
        try:
            after = remove_notes(before, s.selected)
        except NotFoundError as e:
            self.fail(e)
            return False
        removed = [n for n in before.notes if n.id in s.selected]
        self.commit(before, after)
        for n in removed:
            self.events.emit("note_removed", n)
        return True

    def update_settings(self, name: Optional[str] = None, bpm=None) -> bool:
        before = self.song
        try:
            after = update_song(before, name=name, bpm=bpm)
        except ValidationError as e:
            self.fail(e)
            return False
        if after is not before:
            self.commit(before, after)
        return True

    # ---------- selection ----------
    def set_selection(self, ids):
        s = self.session
        s.selected = set(ids) & s.song.note_ids
        self.events.emit("selection_changed", set(s.selected))

    def select_all(self):
        self.set_selection(self.song.note_ids)

    def clear_selection(self):
        self.set_selection(set())

    # ---------- history ----------
    def undo(self) -> bool:
        self._drop_drag()
        prev = self.history.undo(self.song)
        if prev is None:
            return False
        self._restore(prev)
        return True

    def redo(self) -> bool:
        self._drop_drag()
        nxt = self.history.redo()
        if nxt is None:
            return False
        self._restore(nxt)
        return True

    def _drop_drag(self):
        s = self.session
        if s.drag is not None:
            s.song = s.drag.base
            s.drag = None

    def _restore(self, song: Song):
        s = self.session
        s.song = song
        if s.prune_selection():
            self.events.emit("selection_changed", set(s.selected))
        self.events.emit("song_changed", song)

    # ---------- keyboard ----------
    def handle_key(self, key: str, ctrl: bool = False, shift: bool = False) -> bool:
        k = key.lower()
        if ctrl and k == "z":
            return self.redo() if shift else self.undo()
        if ctrl and k == "y":
            return self.redo()
        if ctrl and k == "a":
            self.select_all()
            return True
        if k in ("delete", "backspace"):
            return self.delete_selected()
        if k == "escape":
            self.clear_selection()
            return True
        return False

    # ---------- audio ----------
    def preview(self, note: Note):
        if self.tone is None:
            return
        secs = note.duration * self.song.beat_seconds
        secs = max(self.cfg.preview_min_s, min(secs, self.cfg.preview_max_s))
        try:
            self.tone.play_tone(note.key, secs, note.velocity)
        except Exception:
            logging.warning("preview tone failed for key %d", note.key, exc_info=True)
