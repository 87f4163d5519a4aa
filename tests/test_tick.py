from timeline.tick import TickSource
from utils.events import EventHub


def test_register_fire_cancel():
    ticks = TickSource()
    seen = []
    h = ticks.register_tick(seen.append)
    ticks.fire(16)
    ticks.cancel_tick(h)
    ticks.fire(32)
    assert seen == [16]
    assert len(ticks) == 0
    ticks.cancel_tick(h)        # 重複取消沒事


def test_cancel_during_fire():
    ticks = TickSource()
    seen = []
    handles = {}
    handles["a"] = ticks.register_tick(lambda now: ticks.cancel_tick(handles["b"]))
    handles["b"] = ticks.register_tick(lambda now: seen.append(now))
    ticks.fire(1)
    assert seen == []
    assert len(ticks) == 1


def test_failing_callback_does_not_stop_others():
    ticks = TickSource()
    seen = []

    def boom(now):
        raise RuntimeError("boom")
    ticks.register_tick(boom)
    ticks.register_tick(seen.append)
    ticks.fire(5)
    assert seen == [5]


def test_event_hub_isolates_listeners():
    hub = EventHub()
    got = []

    def bad(*args):
        raise ValueError("listener bug")
    hub.on("song_changed", bad)
    hub.on("song_changed", got.append)
    hub.emit("song_changed", "s1")
    hub.off("song_changed", got.append)
    hub.emit("song_changed", "s2")
    assert got == ["s1"]
