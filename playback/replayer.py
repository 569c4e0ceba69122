"""Deterministic replay of a recorded timeline against a virtual clock."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Protocol, Sequence, Tuple

from core.events import KeyEvent, PointerEvent, ReplayCursor, Timeline
from core.timeline import TimelineIndex
from core.timing.ticker import TickCallback, TickGroup
from sdk.ids import new_handle_id

logger = logging.getLogger(__name__)

Position = Tuple[float, float]


class Ticker(Protocol):
    def every(self, interval_ms: int, callback: TickCallback, *, label: Optional[str] = None) -> None: ...

    def cancel(self) -> None: ...


TickerFactory = Callable[[str], Ticker]


class ReplayState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass(frozen=True)
class ReplayFrame:
    """What one tick surfaced: the due events in ``(prev_ms, virtual_time_ms]``."""

    prev_ms: int
    virtual_time_ms: int
    pointer_events: Sequence[PointerEvent]
    key_events: Sequence[KeyEvent]
    cursor: Optional[Position]

    @property
    def empty(self) -> bool:
        return not self.pointer_events and not self.key_events


@dataclass(eq=False)
class ReplayHandle:
    timeline: Timeline
    on_due: Optional[Callable[[ReplayFrame], None]] = None
    on_cursor: Optional[Callable[[Optional[Position]], None]] = None
    on_complete: Optional[Callable[[], None]] = None
    id: str = field(default_factory=lambda: new_handle_id("replay"))
    state: ReplayState = ReplayState.IDLE
    cursor: ReplayCursor = field(default_factory=ReplayCursor)
    position: Optional[Position] = None
    completions: int = 0
    _index: Optional[TimelineIndex] = field(default=None, repr=False)
    _ticks: Optional[Ticker] = field(default=None, repr=False)

    @property
    def index(self) -> TimelineIndex:
        if self._index is None:
            self._index = TimelineIndex(self.timeline)
        return self._index

    @property
    def virtual_time_ms(self) -> int:
        return self.cursor.virtual_time_ms

    @property
    def progress(self) -> float:
        return self.cursor.virtual_time_ms / self.timeline.duration_ms


class Replayer:
    """Drive replay handles through ``idle -> playing <-> paused -> idle``.

    Each tick advances virtual time by ``tick_ms`` (clamped to the duration)
    regardless of how late the tick fired. Due events are those in the
    half-open window ``(previous tick, this tick]`` so no event fires twice or
    is skipped at a tick boundary. The cursor shown for continuous position
    is the nearest prior pointer event.

    ``ticker_factory`` builds the periodic scheduler for a handle; the default
    is the asyncio :class:`~core.timing.ticker.TickGroup`, which requires
    ``play``/``resume`` to be called inside a running event loop.
    """

    def __init__(self, tick_ms: int = 100, ticker_factory: TickerFactory = TickGroup) -> None:
        if tick_ms <= 0:
            raise ValueError("tick_ms must be positive")
        self.tick_ms = tick_ms
        self._ticker_factory = ticker_factory

    def play(
        self,
        timeline: Timeline,
        *,
        on_due: Optional[Callable[[ReplayFrame], None]] = None,
        on_cursor: Optional[Callable[[Optional[Position]], None]] = None,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> ReplayHandle:
        handle = ReplayHandle(timeline, on_due=on_due, on_cursor=on_cursor, on_complete=on_complete)
        self.resume(handle)
        return handle

    def resume(self, handle: ReplayHandle) -> None:
        """Enter ``playing`` from ``paused`` or ``idle``; a finished replay restarts at 0."""

        if handle.state is ReplayState.PLAYING:
            return
        if handle.cursor.virtual_time_ms >= handle.timeline.duration_ms:
            handle.cursor.rewind()
            self._set_position(handle, None)
        handle.state = ReplayState.PLAYING
        ticks = self._ticker_factory(handle.id)
        handle._ticks = ticks
        ticks.every(self.tick_ms, lambda: self.tick(handle), label="replay")
        logger.debug("replay %s playing from %dms", handle.id, handle.cursor.virtual_time_ms)

    def pause(self, handle: ReplayHandle) -> None:
        if handle.state is not ReplayState.PLAYING:
            return
        self._stop_ticks(handle)
        handle.state = ReplayState.PAUSED
        logger.debug("replay %s paused at %dms", handle.id, handle.cursor.virtual_time_ms)

    def reset(self, handle: ReplayHandle) -> None:
        self._stop_ticks(handle)
        handle.state = ReplayState.IDLE
        handle.cursor.rewind()
        self._set_position(handle, None)

    def tick(self, handle: ReplayHandle) -> Optional[ReplayFrame]:
        """Advance one step. Ignored unless the handle is playing."""

        if handle.state is not ReplayState.PLAYING:
            return None

        timeline = handle.timeline
        prev, now = handle.cursor.advance(self.tick_ms, timeline.duration_ms)
        index = handle.index

        prior = index.nearest_prior_pointer(now)
        if prior is not None:
            self._set_position(handle, (prior.x, prior.y))

        frame = ReplayFrame(
            prev_ms=prev,
            virtual_time_ms=now,
            pointer_events=index.pointer_due(prev, now),
            key_events=index.keys_due(prev, now),
            cursor=handle.position,
        )
        if handle.on_due is not None and not frame.empty:
            handle.on_due(frame)

        if now >= timeline.duration_ms:
            self._stop_ticks(handle)
            handle.state = ReplayState.IDLE
            handle.completions += 1
            logger.debug("replay %s complete at %dms", handle.id, now)
            if handle.on_complete is not None:
                handle.on_complete()
        return frame

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _stop_ticks(handle: ReplayHandle) -> None:
        ticks, handle._ticks = handle._ticks, None
        if ticks is not None:
            ticks.cancel()

    @staticmethod
    def _set_position(handle: ReplayHandle, position: Optional[Position]) -> None:
        if position == handle.position:
            return
        handle.position = position
        if handle.on_cursor is not None:
            handle.on_cursor(position)


__all__ = ["ReplayFrame", "ReplayHandle", "ReplayState", "Replayer", "Ticker", "TickerFactory"]
