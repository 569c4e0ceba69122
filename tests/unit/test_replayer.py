# tests/unit/test_replayer.py
import pytest

from playback.replayer import ReplayState, Replayer
from factories import make_timeline


def _collect(scheduler, tick_ms=100):
    frames, cursors, completions = [], [], []
    replayer = Replayer(tick_ms=tick_ms, ticker_factory=scheduler.factory)
    return replayer, frames, cursors, completions


@pytest.mark.parametrize("tick_ms", [1, 7, 100, 333, 1000, 5000])
def test_completes_exactly_once_at_duration(scheduler, tick_ms):
    timeline = make_timeline(pointers=[(1, 1, 0), (2, 2, 999)], duration_ms=1000)
    replayer, frames, _, completions = _collect(scheduler, tick_ms)

    handle = replayer.play(timeline, on_due=frames.append, on_complete=lambda: completions.append(1))
    scheduler.advance(10_000)

    assert completions == [1]
    assert handle.state is ReplayState.IDLE
    assert handle.virtual_time_ms == 1000
    assert scheduler.live == 0
    delivered = [e.x for f in frames for e in f.pointer_events]
    assert delivered == [1, 2]


def test_events_on_tick_boundaries_fire_once(scheduler):
    timeline = make_timeline(
        pointers=[(0, 0, 0), (1, 1, 100), (2, 2, 200)],
        keys=[("a", 100), ("b", 300)],
        duration_ms=300,
    )
    replayer, frames, _, _ = _collect(scheduler)
    replayer.play(timeline, on_due=frames.append)
    scheduler.advance(300)

    assert [(f.prev_ms, f.virtual_time_ms) for f in frames] == [(-1, 100), (100, 200), (200, 300)]
    assert [e.x for e in frames[0].pointer_events] == [0, 1]
    assert [k.key for k in frames[0].key_events] == ["a"]
    assert [k.key for k in frames[2].key_events] == ["b"]


def test_empty_ticks_are_not_reported(scheduler):
    timeline = make_timeline(pointers=[(5, 5, 450)], duration_ms=1000)
    replayer, frames, _, _ = _collect(scheduler)
    replayer.play(timeline, on_due=frames.append)
    scheduler.advance(1000)
    assert len(frames) == 1
    assert frames[0].virtual_time_ms == 500


def test_cursor_follows_nearest_prior_pointer(scheduler):
    timeline = make_timeline(pointers=[(1, 1, 50), (2, 2, 100), (3, 3, 100)], duration_ms=400)
    replayer, _, cursors, _ = _collect(scheduler)
    handle = replayer.play(timeline, on_cursor=cursors.append)

    scheduler.advance(100)
    # equal timestamps: the later event wins
    assert handle.position == (3, 3)
    scheduler.advance(300)
    assert cursors == [(3, 3)]


def test_pause_and_resume_keep_virtual_time(scheduler):
    timeline = make_timeline(duration_ms=1000)
    replayer, _, _, completions = _collect(scheduler)
    handle = replayer.play(timeline, on_complete=lambda: completions.append(1))

    scheduler.advance(300)
    replayer.pause(handle)
    assert handle.state is ReplayState.PAUSED
    scheduler.advance(2000)
    assert handle.virtual_time_ms == 300

    replayer.resume(handle)
    scheduler.advance(700)
    assert handle.virtual_time_ms == 1000
    assert completions == [1]


def test_reset_rewinds_and_clears_cursor(scheduler):
    timeline = make_timeline(pointers=[(4, 4, 0)], duration_ms=1000)
    replayer, _, cursors, _ = _collect(scheduler)
    handle = replayer.play(timeline, on_cursor=cursors.append)
    scheduler.advance(200)

    replayer.reset(handle)
    assert handle.state is ReplayState.IDLE
    assert handle.virtual_time_ms == 0
    assert handle.position is None
    assert cursors == [(4, 4), None]
    assert scheduler.live == 0


def test_resume_after_completion_restarts_from_zero(scheduler):
    timeline = make_timeline(keys=[("a", 0)], duration_ms=200)
    replayer, frames, _, completions = _collect(scheduler)
    handle = replayer.play(timeline, on_due=frames.append, on_complete=lambda: completions.append(1))
    scheduler.advance(200)

    replayer.resume(handle)
    scheduler.advance(200)
    assert completions == [1, 1]
    assert handle.completions == 2
    assert len(frames) == 2


def test_tick_is_ignored_when_not_playing(scheduler):
    timeline = make_timeline(duration_ms=500)
    replayer, _, _, _ = _collect(scheduler)
    handle = replayer.play(timeline)
    replayer.pause(handle)
    assert replayer.tick(handle) is None
    assert handle.virtual_time_ms == 0


def test_rejects_non_positive_tick():
    with pytest.raises(ValueError):
        Replayer(tick_ms=0)
