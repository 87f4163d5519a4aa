from conftest import make_song
from edit.history import HistoryManager


def _songs(n):
    return [make_song(("n%d" % i, 1, i, 1)) for i in range(n)]


def test_empty_history_cannot_undo():
    h = HistoryManager()
    s0, = _songs(1)
    assert h.undo(s0) is None
    assert not h.can_undo and not h.can_redo


def test_undo_then_redo():
    h = HistoryManager()
    s0, s1 = _songs(2)
    h.checkpoint(s0)
    assert h.undo(s1) is s0
    assert h.can_redo
    assert h.redo() is s1
    assert h.redo() is None


def test_checkpoint_after_undo_drops_redo():
    h = HistoryManager()
    s0, s1, s2 = _songs(3)
    h.checkpoint(s0)
    assert h.undo(s1) is s0
    h.checkpoint(s0)            # 在 s0 上做了新的編輯 -> s2
    assert not h.can_redo
    assert h.undo(s2) is s0
    assert h.redo() is s2
    assert h.redo() is None


def test_multiple_undo_steps():
    h = HistoryManager()
    s = _songs(4)
    for prev in s[:3]:
        h.checkpoint(prev)
    assert h.undo(s[3]) is s[2]
    assert h.undo(s[3]) is s[1]
    assert h.undo(s[3]) is s[0]
    assert h.undo(s[3]) is None
    assert h.redo() is s[1]


def test_cap_evicts_oldest():
    h = HistoryManager(limit=3)
    s = _songs(6)
    for prev in s[:5]:
        h.checkpoint(prev)
    assert len(h.entries) == 3
    got = []
    while True:
        prev = h.undo(s[5])
        if prev is None:
            break
        got.append(prev)
    assert got == [s[4], s[3], s[2]]


def test_clear():
    h = HistoryManager()
    s0, s1 = _songs(2)
    h.checkpoint(s0)
    h.clear()
    assert h.undo(s1) is None
