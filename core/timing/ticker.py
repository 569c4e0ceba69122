"""Periodic tick scheduling with group cancellation.

A :class:`TickGroup` owns every periodic schedule belonging to one session
(for a test session: the 100 ms progression tick and the 3 s grading check).
All schedules share one :class:`CancelToken`; ``cancel()`` is synchronous and
total, so once it returns no callback of the group runs again, even one whose
sleep already elapsed and is waiting to be resumed by the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

TickCallback = Callable[[], None]


@dataclass
class CancelToken:
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class TickGroup:
    """Asyncio-backed set of periodic callbacks cancelled as a unit.

    Must be used from inside a running event loop. Intervals are fixed: a late
    wake-up is not compensated, callers advance their virtual clocks by the
    nominal step instead of measuring wall time.
    """

    def __init__(self, name: str = "ticks") -> None:
        self.name = name
        self.token = CancelToken()
        self._tasks: List[asyncio.Task] = []

    @property
    def active(self) -> bool:
        return not self.token.cancelled

    def every(self, interval_ms: int, callback: TickCallback, *, label: Optional[str] = None) -> None:
        if self.token.cancelled:
            raise RuntimeError(f"tick group {self.name!r} already cancelled")
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        loop = asyncio.get_running_loop()
        task = loop.create_task(
            self._run(interval_ms / 1000.0, callback),
            name=f"{self.name}:{label or getattr(callback, '__name__', 'tick')}",
        )
        self._tasks.append(task)

    def cancel(self) -> None:
        if self.token.cancelled:
            return
        self.token.cancel()
        current = _current_task()
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()
        self._tasks.clear()
        logger.debug("tick group %s cancelled", self.name)

    async def _run(self, interval_s: float, callback: TickCallback) -> None:
        token = self.token
        while not token.cancelled:
            await asyncio.sleep(interval_s)
            if token.cancelled:
                return
            try:
                callback()
            except Exception:
                # nothing awaits these tasks, so the failure ends here
                logger.exception("tick callback failed in group %s; cancelling", self.name)
                self.cancel()
                return


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


__all__ = ["CancelToken", "TickCallback", "TickGroup"]
