"""Exception taxonomy shared by the recorder, replayer, grader and session."""

from __future__ import annotations


class LessonError(Exception):
    """Base class for every error raised by lessoncast."""


class PermissionDenied(LessonError):
    """Camera or microphone access was refused.

    Surfaced to the caller as-is; nothing retries it automatically because a
    new attempt needs fresh user consent.
    """


class MissingCredential(LessonError):
    """No verification key or no reference image; blocks verification."""


class VerificationFailure(LessonError):
    """The verifier reported a non-match or could not be reached."""

    def __init__(self, reason: str, confidence: int = 0) -> None:
        super().__init__(reason)
        self.reason = reason
        self.confidence = confidence


class MalformedTimeline(LessonError):
    """An event lies outside ``[0, duration_ms]`` or a stream is out of order."""


class RecorderStateError(LessonError):
    """Recorder operation invoked in the wrong lifecycle state."""


class SessionStateError(LessonError):
    """Illegal transition requested on a test session."""


class LessonNotFound(LessonError, KeyError):
    """Store lookup for an unknown lesson id."""


__all__ = [
    "LessonError",
    "LessonNotFound",
    "MalformedTimeline",
    "MissingCredential",
    "PermissionDenied",
    "RecorderStateError",
    "SessionStateError",
    "VerificationFailure",
]
