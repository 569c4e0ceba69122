"""Score live input against a recorded timeline."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from core.events import FeedbackEntry, GradeReport, ReplayCursor, TickEvaluation, Timeline
from core.timeline import TimelineIndex
from sdk.config import GradingPolicy
from sdk.ids import new_handle_id

logger = logging.getLogger(__name__)

MAX_ACCURACY = 100


@dataclass(eq=False)
class GradingSession:
    """Mutable state of one student attempt. Owned by a single caller."""

    timeline: Timeline
    index: TimelineIndex
    id: str = field(default_factory=lambda: new_handle_id("grade"))
    cursor: ReplayCursor = field(default_factory=ReplayCursor)
    accuracy: int = MAX_ACCURACY
    feedback: List[FeedbackEntry] = field(default_factory=list)
    pointer: Tuple[float, float] = (0.0, 0.0)
    text: str = ""
    report: Optional[GradeReport] = None

    @property
    def current_time_ms(self) -> int:
        return self.cursor.virtual_time_ms

    @property
    def finished(self) -> bool:
        return self.cursor.virtual_time_ms >= self.timeline.duration_ms

    @property
    def errors(self) -> List[str]:
        return [entry.message for entry in self.feedback if entry.is_error]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class Grader:
    """Compare live pointer/text input with the timeline at check instants.

    A check runs two independent tests against the virtual time of the
    session:

    * text: the printable single-character keys recorded up to now, joined in
      order, must equal the live text. Nothing recorded yet means no check.
    * pointer: the recorded pointer event nearest to now (strictly inside
      ``pointer_window_ms``) must lie within ``pointer_tolerance_px`` of the
      live pointer. No event in the window means no check.

    Accuracy starts at 100, only ever goes down and never below 0.
    """

    def __init__(self, policy: Optional[GradingPolicy] = None) -> None:
        self.policy = policy or GradingPolicy()

    def begin_grading(self, timeline: Timeline) -> GradingSession:
        session = GradingSession(timeline=timeline, index=TimelineIndex(timeline))
        logger.info("grading session %s started for lesson %s", session.id, timeline.id)
        return session

    def record_live_input(
        self,
        session: GradingSession,
        pointer_pos: Optional[Tuple[float, float]] = None,
        text_value: Optional[str] = None,
    ) -> None:
        """Remember the latest live pointer and/or full text value; nothing is queued."""

        if pointer_pos is not None:
            session.pointer = (float(pointer_pos[0]), float(pointer_pos[1]))
        if text_value is not None:
            session.text = text_value

    def advance(self, session: GradingSession, step_ms: Optional[int] = None) -> bool:
        """Move the session's virtual clock one tick; ``True`` once the end is reached."""

        session.cursor.advance(step_ms or self.policy.tick_ms, session.timeline.duration_ms)
        return session.finished

    def evaluate_tick(self, session: GradingSession) -> TickEvaluation:
        if session.report is not None:
            return TickEvaluation()

        now = session.current_time_ms
        entries: List[FeedbackEntry] = []
        penalty = 0

        expected = session.index.expected_text(now)
        if expected and session.text != expected:
            entries.append(
                FeedbackEntry(
                    timestamp_ms=now,
                    message=f'Error: Expected "{expected}", got "{session.text}"',
                )
            )
            penalty += self._deduct(session, self.policy.text_penalty)

        target = session.index.nearest_pointer(now, self.policy.pointer_window_ms)
        if target is not None:
            live_x, live_y = session.pointer
            distance = math.hypot(live_x - target.x, live_y - target.y)
            if distance > self.policy.pointer_tolerance_px:
                entries.append(
                    FeedbackEntry(
                        timestamp_ms=now,
                        message=f"Error: Mouse position off by {round_half_up(distance)}px",
                    )
                )
                penalty += self._deduct(session, self.policy.pointer_penalty)

        session.feedback.extend(entries)
        if entries:
            logger.debug(
                "grading %s at %dms: -%d (accuracy %d)", session.id, now, penalty, session.accuracy
            )
        return TickEvaluation(delta_penalty=penalty, feedback_entries=entries)

    def finalize(self, session: GradingSession) -> GradeReport:
        """Produce the report once; later calls return the same report."""

        if session.report is None:
            session.report = GradeReport(
                lesson_id=session.timeline.id,
                current_timestamp_ms=session.current_time_ms,
                accuracy=session.accuracy,
                errors=tuple(session.errors),
            )
            logger.info(
                "grading session %s finalized: accuracy %d, %d error(s)",
                session.id,
                session.accuracy,
                len(session.report.errors),
            )
        return session.report

    @staticmethod
    def _deduct(session: GradingSession, amount: int) -> int:
        applied = min(amount, session.accuracy)
        session.accuracy -= applied
        return applied


__all__ = ["Grader", "GradingSession", "round_half_up"]
