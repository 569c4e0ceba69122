"""Record live input into a :class:`~core.events.Timeline`."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from time import monotonic_ns
from typing import Any, Callable, List, Optional, Protocol

from core.collaborators import MediaSource
from core.errors import RecorderStateError
from core.events import (
    KeyEvent,
    PointerEvent,
    PointerKind,
    RawKey,
    RawPointer,
    RecordingMode,
    Timeline,
)
from core.timing.session_timer import SessionTimer

from .input_recorder import InputChannel, RawInput

logger = logging.getLogger(__name__)


class CaptureSource(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...


@dataclass
class RecordingDraft:
    """The in-progress timeline. Only the recorder appends to it."""

    mode: RecordingMode
    title: str = ""
    description: str = ""
    created_by: str = "teacher"
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    pointer_events: List[PointerEvent] = field(default_factory=list)
    key_events: List[KeyEvent] = field(default_factory=list)
    reference_image: Optional[bytes] = None

    def last_timestamp_ms(self) -> int:
        last = 0
        if self.pointer_events:
            last = self.pointer_events[-1].timestamp_ms
        if self.key_events:
            last = max(last, self.key_events[-1].timestamp_ms)
        return last


class LessonRecorder:
    """Sample host input into a timeline relative to a wall-clock origin.

    ``start`` fixes the origin ``t0``; every sampled event is stamped
    ``arrival - t0`` in whole milliseconds. Arrival order is real-time order,
    so streams are non-decreasing by construction; stamps that would step
    backwards (two producer threads racing the channel) are lifted to the
    previous stamp of the same stream.

    Input either arrives through :meth:`sample` directly or is queued on the
    ``channel`` by a capture source and pulled in with :meth:`pump`. In camera
    mode the recorder holds a video stream from ``media`` for the duration of
    the recording and grabs one reference frame at start.
    """

    def __init__(
        self,
        channel: Optional[InputChannel] = None,
        *,
        capture: Optional[CaptureSource] = None,
        media: Optional[MediaSource] = None,
        clock: Callable[[], int] = monotonic_ns,
    ) -> None:
        self.channel = channel if channel is not None else InputChannel(clock=clock)
        self.capture = capture
        self.media = media
        self._timer = SessionTimer(clock=clock)
        self._draft: Optional[RecordingDraft] = None
        self._stream: Optional[Any] = None

    @property
    def recording(self) -> bool:
        return self._draft is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(
        self,
        mode: RecordingMode = RecordingMode.SCREEN,
        *,
        title: str = "",
        description: str = "",
        created_by: str = "teacher",
    ) -> RecordingDraft:
        if self._draft is not None:
            raise RecorderStateError("recording already in progress")

        mode = RecordingMode(mode)
        draft = RecordingDraft(mode=mode, title=title, description=description, created_by=created_by)

        if mode is RecordingMode.CAMERA and self.media is not None:
            # PermissionDenied propagates; nothing has been started yet
            self._stream = self.media.acquire_video_stream()
            try:
                draft.reference_image = self.media.capture_frame(self._stream)
            except Exception:
                self._release_media()
                raise

        # events queued before the origin belong to nobody
        self.channel.drain()
        self._timer.start()
        self._draft = draft
        if self.capture is not None:
            try:
                self.capture.start()
            except Exception:
                self._draft = None
                self._release_media()
                raise

        logger.info("recording %s started (mode=%s)", draft.id, mode.value)
        return draft

    def sample(self, raw: RawInput) -> None:
        draft = self._require_draft()
        ts = self._timer.offset_ms(raw.at_ns)

        if isinstance(raw, RawPointer):
            if draft.pointer_events:
                ts = max(ts, draft.pointer_events[-1].timestamp_ms)
            kind = PointerKind.CLICK if raw.click else PointerKind.MOVE
            draft.pointer_events.append(PointerEvent(x=raw.x, y=raw.y, timestamp_ms=ts, kind=kind))
        elif isinstance(raw, RawKey):
            if draft.key_events:
                ts = max(ts, draft.key_events[-1].timestamp_ms)
            draft.key_events.append(
                KeyEvent(key=raw.key, timestamp_ms=ts, target_id=raw.target_id, value=raw.value)
            )
        else:
            raise TypeError(f"unsupported input {type(raw).__name__}")

    def pump(self) -> int:
        """Drain the channel into the draft; returns how many events were sampled."""

        items = self.channel.drain()
        for raw in items:
            self.sample(raw)
        return len(items)

    def finish(self, *, title: Optional[str] = None, description: Optional[str] = None) -> Timeline:
        draft = self._require_draft()
        try:
            if self.capture is not None:
                self.capture.stop()
            self.pump()
            elapsed = self._timer.stop()
        finally:
            self._draft = None
            self._release_media()

        duration_ms = max(1, elapsed, draft.last_timestamp_ms())
        timeline = Timeline(
            id=draft.id,
            title=title if title is not None else draft.title,
            description=description if description is not None else draft.description,
            duration_ms=duration_ms,
            mode=draft.mode,
            pointer_events=tuple(draft.pointer_events),
            key_events=tuple(draft.key_events),
            created_by=draft.created_by,
        )
        logger.info(
            "recording %s finished: %dms, %d pointer / %d key events",
            timeline.id,
            duration_ms,
            len(timeline.pointer_events),
            len(timeline.key_events),
        )
        return timeline

    def abort(self) -> None:
        """Stop without producing a timeline; safe to call when idle."""

        if self._draft is None:
            return
        draft_id = self._draft.id
        try:
            if self.capture is not None:
                self.capture.stop()
        finally:
            self._draft = None
            self._timer.running = False
            self._release_media()
        logger.info("recording %s aborted", draft_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _require_draft(self) -> RecordingDraft:
        if self._draft is None:
            raise RecorderStateError("recorder is not recording")
        return self._draft

    def _release_media(self) -> None:
        if self._stream is not None and self.media is not None:
            stream, self._stream = self._stream, None
            self.media.release(stream)


__all__ = ["CaptureSource", "LessonRecorder", "RecordingDraft"]
