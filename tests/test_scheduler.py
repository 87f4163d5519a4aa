from collections import Counter

import pytest

from conftest import FakeTone, make_song
from timeline.scheduler import PAUSED, PLAYING, STOPPED, PlaybackScheduler


def test_single_note_fires_once(tone):
    song = make_song(("n1", 1, 0, 1))
    p = PlaybackScheduler(song, tone)
    p.start(0)
    p.on_tick(0)
    assert tone.calls == [(1, 0.5, 100)]
    p.on_tick(400)
    p.on_tick(900)
    assert tone.calls == [(1, 0.5, 100)]


def test_each_note_fires_exactly_once_over_a_session(tone):
    song = make_song(("a", 1, 0, 1), ("b", 2, 0.5, 1), ("c", 9, 2.25, 0.5),
                     ("d", 15, 2.3, 1), ("e", 4, 7.75, 2), duration=8)
    p = PlaybackScheduler(song, tone)
    p.start(0)
    t = 0.0
    while p.running:
        p.on_tick(t)
        t += 16.7
    assert Counter(k for k, _, _ in tone.calls) == {1: 1, 2: 1, 9: 1, 15: 1, 4: 1}
    assert p.played == set()


def test_tone_length_is_clamped(tone):
    song = make_song(("long", 1, 0, 10), ("short", 2, 0, 0.1))
    p = PlaybackScheduler(song, tone)
    p.start(0)
    p.on_tick(0)
    assert sorted(tone.calls) == [(1, 4.0, 100), (2, 0.1, 100)]


def test_long_tick_gap_catches_up(tone):
    song = make_song(("late", 3, 0.5, 1))
    p = PlaybackScheduler(song, tone)
    p.start(0)
    p.on_tick(0)
    assert tone.calls == []
    p.on_tick(600)          # 1.2 拍，跳過了 0.5 拍的音
    assert tone.calls == [(3, 0.5, 100)]


def test_pause_and_resume_are_continuous(tone):
    song = make_song(("a", 1, 0, 1), ("b", 2, 2.2, 1))
    p = PlaybackScheduler(song, tone)
    p.start(0)
    p.on_tick(0)
    p.on_tick(1000)
    assert p.current_beat == pytest.approx(2.0)
    p.pause(1000)
    assert p.state == PAUSED
    p.on_tick(3000)
    assert p.current_beat == pytest.approx(2.0)

    p.resume(5000)
    assert p.state == PLAYING
    assert p.current_beat == pytest.approx(2.0)
    p.on_tick(5100)
    assert p.current_beat == pytest.approx(2.2)
    assert [k for k, _, _ in tone.calls] == [1, 2]


def test_toggle_cycles_states(tone):
    p = PlaybackScheduler(make_song(("a", 1, 0, 1)), tone)
    p.toggle(0)
    assert p.state == PLAYING
    p.toggle(500)
    assert p.state == PAUSED
    assert p.current_beat == pytest.approx(1.0)
    p.toggle(800)
    assert p.state == PLAYING


def test_finishes_after_tail(tone):
    song = make_song(("a", 1, 0, 1), duration=4)
    p = PlaybackScheduler(song, tone)
    done = []
    p.on_finished(lambda: done.append(True))
    p.start(0)
    p.on_tick(0)
    p.on_tick(2000)         # 4 拍：還在尾巴裡
    assert p.running and not done
    p.on_tick(2250)         # 4.5 拍
    assert done == [True]
    assert p.state == STOPPED
    assert p.current_beat == 0
    assert p.played == set()


def test_stop_resets(tone):
    p = PlaybackScheduler(make_song(("a", 1, 0, 1)), tone)
    p.start(0)
    p.on_tick(700)
    p.stop()
    assert p.state == STOPPED and not p.running
    assert p.current_beat == 0
    assert len(tone.calls) == 1
    # 新的一輪重新開始計算
    p.start(10000)
    p.on_tick(10000)
    assert len(tone.calls) == 2


def test_tone_failure_does_not_stop_playback():
    tone = FakeTone(fail=True)
    song = make_song(("a", 1, 0, 1), ("b", 2, 1, 1), duration=4)
    p = PlaybackScheduler(song, tone)
    p.start(0)
    for t in range(0, 2300, 20):
        p.on_tick(t)
    assert p.state == STOPPED


def test_empty_song_plays_to_the_end(tone):
    p = PlaybackScheduler(make_song(duration=4), tone)
    p.start(0)
    p.on_tick(2250)
    assert p.state == STOPPED
    assert tone.calls == []
