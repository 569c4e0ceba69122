"""Contracts for the collaborators the engine talks to but does not own.

Implementations live under ``plugins/`` and are resolved through
:class:`sdk.registry.Registry`.
"""

from __future__ import annotations

from typing import Any, List, Optional, Protocol, Union, runtime_checkable
from uuid import UUID

from core.events import LessonSummary, Timeline, VerificationResult


@runtime_checkable
class MediaSource(Protocol):
    """Camera (or screen) capture.

    ``acquire_video_stream`` raises :class:`~core.errors.PermissionDenied`
    when access is refused. Every acquired handle must be passed to
    ``release`` exactly once; ``release`` of an already released handle is a
    no-op.
    """

    @property
    def live_handles(self) -> int: ...

    def acquire_video_stream(self) -> Any: ...

    def capture_frame(self, handle: Any) -> bytes: ...

    def release(self, handle: Any) -> None: ...


@runtime_checkable
class IdentityVerifier(Protocol):
    """Remote face comparison. May raise on transport failure."""

    def set_api_key(self, api_key: str) -> None: ...

    async def verify_identity(self, reference: bytes, live_frame: bytes) -> VerificationResult: ...


LessonId = Union[str, UUID]


@runtime_checkable
class LessonStore(Protocol):
    """Keeps completed timelines keyed by id and returns them unchanged."""

    def save(self, timeline: Timeline) -> None: ...

    def load(self, lesson_id: LessonId) -> Timeline: ...

    def list(self) -> List[LessonSummary]: ...

    def save_reference_image(self, lesson_id: LessonId, image: bytes) -> None: ...

    def load_reference_image(self, lesson_id: LessonId) -> Optional[bytes]: ...


__all__ = ["IdentityVerifier", "LessonId", "LessonStore", "MediaSource"]
