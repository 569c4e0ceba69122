"""Core event models shared across the project."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core.errors import MalformedTimeline


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PointerKind(str, Enum):
    MOVE = "move"
    CLICK = "click"


class RecordingMode(str, Enum):
    SCREEN = "screen"
    CAMERA = "camera"


class PointerEvent(BaseModel):
    """Pointer sample relative to the recording origin."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    timestamp_ms: int = Field(ge=0)
    kind: PointerKind = PointerKind.MOVE


class KeyEvent(BaseModel):
    """Key press relative to the recording origin.

    ``value`` holds the *full* value of the focused control at event time,
    not the delta introduced by this key.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    timestamp_ms: int = Field(ge=0)
    target_id: str = ""
    value: str = ""

    @property
    def is_printable_char(self) -> bool:
        return len(self.key) == 1 and self.key.isprintable()


class MediaAttachment(BaseModel):
    """Pointer to a media blob kept by the store collaborator."""

    model_config = ConfigDict(frozen=True)

    url: Optional[str] = None
    content_type: str = "video/webm"
    size_bytes: int = Field(default=0, ge=0)


class LessonSummary(BaseModel):
    id: uuid.UUID
    title: str
    mode: RecordingMode
    duration_ms: int
    pointer_event_count: int
    key_event_count: int


def _check_stream(name: str, stamps: Iterable[int], duration_ms: int) -> None:
    prev = -1
    for idx, ts in enumerate(stamps):
        if ts > duration_ms:
            raise MalformedTimeline(
                f"{name}[{idx}] timestamp {ts}ms is past duration {duration_ms}ms"
            )
        if ts < prev:
            raise MalformedTimeline(
                f"{name}[{idx}] timestamp {ts}ms precedes previous {prev}ms"
            )
        prev = ts


class Timeline(BaseModel):
    """A recorded lesson: metadata plus ordered pointer and key streams.

    Timelines are frozen. Construction enforces that every timestamp lies in
    ``[0, duration_ms]`` and that each stream is non-decreasing; violations
    raise :class:`~core.errors.MalformedTimeline`. Use
    :func:`core.timeline.normalize_timeline` to clamp-and-sort untrusted data
    instead of rejecting it.
    """

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    title: str
    description: str = ""
    duration_ms: int = Field(gt=0)
    mode: RecordingMode = RecordingMode.SCREEN
    pointer_events: Tuple[PointerEvent, ...] = ()
    key_events: Tuple[KeyEvent, ...] = ()
    media: Optional[MediaAttachment] = None
    created_at_utc: datetime = Field(default_factory=utc_now)
    created_by: str = "teacher"

    @model_validator(mode="after")
    def _check_ordering(self) -> "Timeline":
        _check_stream(
            "pointer_events", (e.timestamp_ms for e in self.pointer_events), self.duration_ms
        )
        _check_stream("key_events", (e.timestamp_ms for e in self.key_events), self.duration_ms)
        return self

    def summary(self) -> LessonSummary:
        return LessonSummary(
            id=self.id,
            title=self.title,
            mode=self.mode,
            duration_ms=self.duration_ms,
            pointer_event_count=len(self.pointer_events),
            key_event_count=len(self.key_events),
        )


class ReplayCursor(BaseModel):
    """Virtual clock owned by one replay handle or grading session.

    ``last_tick_time_ms`` is the upper bound of the last delivered window;
    ``-1`` before the first tick so events stamped at 0 are due on tick one.
    """

    virtual_time_ms: int = 0
    last_tick_time_ms: int = -1

    def advance(self, step_ms: int, duration_ms: int) -> Tuple[int, int]:
        """Move forward one tick, clamped to ``duration_ms``.

        Returns the half-open window ``(prev, new]`` covered by this tick.
        """

        prev = self.last_tick_time_ms
        new = min(self.virtual_time_ms + step_ms, duration_ms)
        self.virtual_time_ms = new
        self.last_tick_time_ms = new
        return prev, new

    def rewind(self) -> None:
        self.virtual_time_ms = 0
        self.last_tick_time_ms = -1


class FeedbackEntry(BaseModel):
    timestamp_ms: int
    message: str

    @property
    def is_error(self) -> bool:
        return self.message.startswith("Error")


class TickEvaluation(BaseModel):
    delta_penalty: int = 0
    feedback_entries: List[FeedbackEntry] = Field(default_factory=list)


class GradeReport(BaseModel):
    """Outcome of one grading session."""

    model_config = ConfigDict(frozen=True)

    lesson_id: uuid.UUID
    current_timestamp_ms: int
    accuracy: int = Field(ge=0, le=100)
    errors: Tuple[str, ...] = ()


class VerificationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_match: bool
    confidence: int = Field(ge=0, le=100)
    reason: str = ""


# ---------------------------------------------------------------------------
# Raw host input (what capture sources hand to the recorder)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RawPointer:
    x: float
    y: float
    click: bool = False
    at_ns: Optional[int] = None


@dataclass(frozen=True)
class RawKey:
    key: str
    target_id: str = ""
    value: str = ""
    at_ns: Optional[int] = None


def event_dump(model: BaseModel) -> dict:
    """Return a JSON-ready ``dict`` for any of the models above."""

    return model.model_dump(mode="json")


__all__ = [
    "FeedbackEntry",
    "GradeReport",
    "KeyEvent",
    "LessonSummary",
    "MediaAttachment",
    "PointerEvent",
    "PointerKind",
    "RawKey",
    "RawPointer",
    "RecordingMode",
    "ReplayCursor",
    "TickEvaluation",
    "Timeline",
    "VerificationResult",
    "event_dump",
    "utc_now",
]
