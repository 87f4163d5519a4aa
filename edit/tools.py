# edit/tools.py
"""One strategy per editor tool; EditEngine.handle_grid_event dispatches to them."""
import logging

from edit.session import DragState, GridEvent, Tool
from notes.errors import NotFoundError, TimelineError
from notes.model import MIN_NOTE_DURATION, SNAP, snap, sort_key
from notes.ops import DuplicateNote, move_notes, note_at, notes_in_box, remove_note, resize_note


class BaseTool:
    TOOL: Tool = None

    def __init__(self, engine):
        self.engine = engine

    @property
    def session(self):
        return self.engine.session

    def on_down(self, ev: GridEvent):
        pass

    def on_move(self, ev: GridEvent):
        pass

    def on_up(self, ev: GridEvent):
        pass


class PencilTool(BaseTool):
    TOOL = Tool.PENCIL

    def on_down(self, ev: GridEvent):
        eng = self.engine
        existing = note_at(self.session.song, ev.beat, ev.key)
        if existing is not None:
            eng.preview(existing)
            return
        result = eng.add_note(ev.key, ev.beat, self.session.pencil_duration,
                              eng.cfg.default_velocity)
        if isinstance(result, DuplicateNote):
            eng.preview(result.existing)
        elif result is not None:
            eng.preview(result.note)


class EraserTool(BaseTool):
    TOOL = Tool.ERASER

    def on_down(self, ev: GridEvent):
        eng = self.engine
        note = note_at(self.session.song, ev.beat, ev.key)
        if note is None:
            return
        before = self.session.song
        try:
            after = remove_note(before, note.id)
        except NotFoundError:
            # 已經不在了，對使用者來說不算錯誤
            logging.debug("eraser: note %s already gone", note.id)
            return
        eng.commit(before, after)
        eng.events.emit("note_removed", note)


class SelectTool(BaseTool):
    TOOL = Tool.SELECT

    # ---- pointer down ----
    def on_down(self, ev: GridEvent):
        eng, s = self.engine, self.session
        handle = eng.handle_at(ev.beat, ev.key)
        if handle is not None and not ev.modifier:
            s.drag = DragState("resize", ev.beat, ev.key, base=s.song, note_id=handle.id,
                               original_width=handle.duration)
            return

        note = note_at(s.song, ev.beat, ev.key)
        if note is None:
            if not ev.modifier:
                eng.set_selection(set())
            s.drag = DragState("box", ev.beat, ev.key, base=s.song, additive=ev.modifier,
                               beat=ev.beat, key=ev.key)
            return

        if ev.ctrl:
            sel = set(s.selected)
            if note.id in sel:
                sel.discard(note.id)
            else:
                sel.add(note.id)
                s.anchor_id = note.id
            eng.set_selection(sel)
            return

        if ev.shift:
            eng.set_selection(set(s.selected) | self._range_ids(s.anchor_id, note.id))
            s.anchor_id = note.id
            return

        if note.id not in s.selected:
            eng.set_selection({note.id})
        s.anchor_id = note.id
        offsets = {n.id: (n.start, n.key) for n in s.song.notes if n.id in s.selected}
        s.drag = DragState("move", ev.beat, ev.key, base=s.song, note_id=note.id, offsets=offsets)

    def _range_ids(self, from_id, to_id) -> set:
        ordered = sorted(self.session.song.notes, key=sort_key)
        ids = [n.id for n in ordered]
        if from_id not in ids:
            return {to_id}
        a, b = ids.index(from_id), ids.index(to_id)
        if a > b:
            a, b = b, a
        return set(ids[a:b + 1])

    # ---- pointer move ----
    def on_move(self, ev: GridEvent):
        s = self.session
        d = s.drag
        if d is None:
            return
        if d.kind == "box":
            d.beat, d.key = ev.beat, ev.key
            self.engine.events.emit("box_changed", d.origin_beat, d.origin_key, d.beat, d.key)
            return

        delta_b = ev.beat - d.origin_beat
        if d.kind == "move":
            delta_k = ev.key - d.origin_key
            if abs(delta_b) > 1e-9 or delta_k:
                d.moved = True
            # 每次都從拖曳起點的原始位置算，不做累加
            s.song = move_notes(d.base, d.offsets.keys(), delta_b, delta_k)
            self.engine.events.emit("notes_moved", s.song, set(d.offsets))
        elif d.kind == "resize":
            d.moved = d.moved or abs(delta_b) > 1e-9
            width = max(MIN_NOTE_DURATION, d.original_width + delta_b)
            s.song = resize_note(d.base, d.note_id, width)
            self.engine.events.emit("note_resized", s.song.get(d.note_id))

    # ---- pointer up ----
    def on_up(self, ev: GridEvent):
        eng, s = self.engine, self.session
        d = s.drag
        if d is None:
            return
        s.drag = None
        try:
            if d.kind == "box":
                hits = {n.id for n in notes_in_box(s.song, d.origin_beat, ev.beat, d.origin_key, ev.key)}
                eng.set_selection((set(s.selected) | hits) if d.additive else hits)
                eng.events.emit("box_changed", None, None, None, None)
            elif d.kind == "move":
                self._finish_move(d, ev)
            elif d.kind == "resize":
                self._finish_resize(d, ev)
        except TimelineError as e:
            s.song = d.base
            eng.fail(e)

    def _finish_move(self, d: DragState, ev: GridEvent):
        eng, s = self.engine, self.session
        if not d.moved:
            s.song = d.base
            if not ev.modifier:
                eng.set_selection({d.note_id})
            return
        raw = ev.beat - d.origin_beat
        anchor_start = d.offsets[d.note_id][0]
        delta_b = snap(anchor_start + raw) - anchor_start
        final = move_notes(d.base, d.offsets.keys(), delta_b, ev.key - d.origin_key)
        eng.commit(d.base, final, changed_if_differs=True)
        eng.events.emit("notes_moved", s.song, set(d.offsets))

    def _finish_resize(self, d: DragState, ev: GridEvent):
        eng, s = self.engine, self.session
        if not d.moved:
            s.song = d.base
            return
        width = d.original_width + (ev.beat - d.origin_beat)
        width = max(SNAP, snap(width))
        final = resize_note(d.base, d.note_id, width)
        eng.commit(d.base, final, changed_if_differs=True)
        eng.events.emit("note_resized", s.song.get(d.note_id))


TOOLS = (SelectTool, PencilTool, EraserTool)
