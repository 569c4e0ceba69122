"""Time-indexed lookups over a frozen :class:`~core.events.Timeline`.

Both the replayer (cursor display) and the grader (pointer accuracy) need
"which recorded event is closest to *t*". They share the binary searches
below instead of scanning the streams on every tick, which also pins down the
tie-breaking rules in one place:

* nearest prior: the most recent event with ``timestamp_ms <= t``; among
  events with the same timestamp the one inserted last wins.
* nearest within a window: the smallest ``|timestamp_ms - t|`` strictly under
  the window; on equal distance the prior event beats the future one, and
  among equal timestamps the last inserted wins.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from typing import Any, Dict, List, Optional, Sequence

from core.events import KeyEvent, PointerEvent, Timeline


class TimelineIndex:
    """Read-only view over a timeline with pre-extracted timestamp arrays."""

    def __init__(self, timeline: Timeline) -> None:
        self.timeline = timeline
        self._pointer_ts: List[int] = [e.timestamp_ms for e in timeline.pointer_events]
        self._key_ts: List[int] = [e.timestamp_ms for e in timeline.key_events]
        # prefix of printable characters, one entry per key event
        self._typed: List[str] = []
        text = ""
        for event in timeline.key_events:
            if event.is_printable_char:
                text += event.key
            self._typed.append(text)

    @property
    def duration_ms(self) -> int:
        return self.timeline.duration_ms

    # ------------------------------------------------------------------
    # Window queries
    # ------------------------------------------------------------------
    def pointer_due(self, after_ms: int, upto_ms: int) -> Sequence[PointerEvent]:
        """Pointer events with ``after_ms < timestamp_ms <= upto_ms``."""

        lo = bisect_right(self._pointer_ts, after_ms)
        hi = bisect_right(self._pointer_ts, upto_ms)
        return self.timeline.pointer_events[lo:hi]

    def keys_due(self, after_ms: int, upto_ms: int) -> Sequence[KeyEvent]:
        lo = bisect_right(self._key_ts, after_ms)
        hi = bisect_right(self._key_ts, upto_ms)
        return self.timeline.key_events[lo:hi]

    def expected_text(self, at_ms: int) -> str:
        """Printable single-character keys up to ``at_ms``, in timeline order."""

        n = bisect_right(self._key_ts, at_ms)
        return self._typed[n - 1] if n else ""

    # ------------------------------------------------------------------
    # Nearest-neighbour lookups
    # ------------------------------------------------------------------
    def nearest_prior_pointer(self, at_ms: int) -> Optional[PointerEvent]:
        i = nearest_prior_index(self._pointer_ts, at_ms)
        return None if i is None else self.timeline.pointer_events[i]

    def nearest_pointer(self, at_ms: int, window_ms: int) -> Optional[PointerEvent]:
        i = nearest_index_within(self._pointer_ts, at_ms, window_ms)
        return None if i is None else self.timeline.pointer_events[i]


def nearest_prior_index(stamps: Sequence[int], at_ms: int) -> Optional[int]:
    i = bisect_right(stamps, at_ms)
    return i - 1 if i else None


def nearest_index_within(stamps: Sequence[int], at_ms: int, window_ms: int) -> Optional[int]:
    """Index of the event closest to ``at_ms`` with ``|ts - at_ms| < window_ms``."""

    prior = nearest_prior_index(stamps, at_ms)
    nxt = bisect_left(stamps, at_ms + 1)
    after: Optional[int] = None
    if nxt < len(stamps):
        # last of the siblings sharing the first future timestamp
        after = bisect_right(stamps, stamps[nxt]) - 1

    best: Optional[int] = None
    best_dist = window_ms
    if prior is not None and at_ms - stamps[prior] < best_dist:
        best, best_dist = prior, at_ms - stamps[prior]
    if after is not None and stamps[after] - at_ms < best_dist:
        best = after
    return best


# ---------------------------------------------------------------------------
# Repair of untrusted input
# ---------------------------------------------------------------------------


def _clamp_sorted(events: Sequence[Dict[str, Any]], duration_ms: int) -> List[Dict[str, Any]]:
    fixed = []
    for raw in events:
        item = dict(raw)
        ts = int(item.get("timestamp_ms", 0))
        item["timestamp_ms"] = min(max(ts, 0), duration_ms)
        fixed.append(item)
    # sorted() is stable, so equal timestamps keep insertion order
    return sorted(fixed, key=lambda e: e["timestamp_ms"])


def normalize_timeline(data: Dict[str, Any]) -> Timeline:
    """Build a :class:`Timeline` from loosely valid data by clamping and sorting.

    Out-of-range timestamps are clamped into ``[0, duration_ms]`` and each
    stream is stably sorted. Everything else is validated as usual.
    """

    payload = dict(data)
    duration_ms = int(payload.get("duration_ms", 0))
    for stream in ("pointer_events", "key_events"):
        events = payload.get(stream) or ()
        payload[stream] = _clamp_sorted(
            [e.model_dump() if hasattr(e, "model_dump") else e for e in events],
            max(duration_ms, 0),
        )
    return Timeline.model_validate(payload)


__all__ = [
    "TimelineIndex",
    "nearest_index_within",
    "nearest_prior_index",
    "normalize_timeline",
]
