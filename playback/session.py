r"""Verification-gated test flow around the grader.

States::

    awaiting_credentials -> verifying -> active -> ended
                                      \-> failed -> awaiting_credentials (retry)

The camera is acquired on entering ``verifying`` and released on every way
out of it (success, failure, error, cancellation, early end) unless the
policy asks to keep it through the active phase, in which case ``ended``
releases it. While active, a progress tick advances the grader's virtual
clock and a slower check tick runs the comparison; both belong to one tick
group and are cancelled together.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Protocol

from core.collaborators import IdentityVerifier, LessonStore, MediaSource
from core.errors import MissingCredential, PermissionDenied, SessionStateError, VerificationFailure
from core.events import FeedbackEntry, GradeReport, Timeline, VerificationResult
from core.timing.ticker import TickGroup
from sdk.config import AppConfig, SDK_CONFIG
from sdk.ids import new_handle_id

from .grader import Grader, GradingSession
from .replayer import TickerFactory, Ticker

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    AWAITING_CREDENTIALS = "awaiting_credentials"
    VERIFYING = "verifying"
    ACTIVE = "active"
    FAILED = "failed"
    ENDED = "ended"


class PointerSource(Protocol):
    def start(self, sink: Callable[[float, float], None]) -> None: ...

    def stop(self) -> None: ...


class AssessmentSession:
    """One student's attempt at one lesson, from identity check to report."""

    def __init__(
        self,
        timeline: Timeline,
        *,
        verifier: Optional[IdentityVerifier] = None,
        media: Optional[MediaSource] = None,
        store: Optional[LessonStore] = None,
        config: Optional[AppConfig] = None,
        grader: Optional[Grader] = None,
        pointer_source: Optional[PointerSource] = None,
        ticker_factory: TickerFactory = TickGroup,
        on_report: Optional[Callable[[GradeReport], None]] = None,
        on_feedback: Optional[Callable[[FeedbackEntry], None]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.timeline = timeline
        self.config = config or SDK_CONFIG
        self.verifier = verifier
        self.media = media
        self.store = store
        self.grader = grader or Grader(self.config.grading)
        self.pointer_source = pointer_source
        self.on_report = on_report
        self.on_feedback = on_feedback
        self.id = new_handle_id("session")

        self._ticker_factory = ticker_factory
        self._sleep = sleep
        self._state = SessionState.AWAITING_CREDENTIALS
        self._camera: Optional[Any] = None
        self._ticks: Optional[Ticker] = None
        self._tracking = False

        self.grading: Optional[GradingSession] = None
        self.report: Optional[GradeReport] = None
        self.last_result: Optional[VerificationResult] = None
        self.last_failure: Optional[VerificationFailure] = None
        self.history: List[SessionState] = [self._state]

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def holds_camera(self) -> bool:
        return self._camera is not None

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------
    async def begin_verification(
        self,
        credential: Optional[str] = None,
        reference_image: Optional[bytes] = None,
    ) -> VerificationResult:
        """Run the identity check; ends in ``active`` or ``failed``.

        Raises :class:`MissingCredential` (state unchanged) when there is no
        verifier key or no reference image, and :class:`PermissionDenied`
        (back to ``awaiting_credentials``) when the camera is refused.
        """

        self._require(SessionState.AWAITING_CREDENTIALS)
        if self.verifier is None or self.media is None:
            raise SessionStateError("verification needs both a verifier and a media source")

        key = credential or self.config.verifier.api_key
        if not key:
            raise MissingCredential("no verification key configured")
        reference = reference_image
        if reference is None and self.store is not None:
            reference = self.store.load_reference_image(self.timeline.id)
        if not reference:
            raise MissingCredential(f"no reference image for lesson {self.timeline.id}")
        self.verifier.set_api_key(key)

        self._set_state(SessionState.VERIFYING)
        try:
            self._camera = self.media.acquire_video_stream()
        except PermissionDenied:
            self._set_state(SessionState.AWAITING_CREDENTIALS)
            raise

        keep_camera = False
        try:
            await self._sleep(self.config.session.settle_delay_ms / 1000.0)
            if self._state is not SessionState.VERIFYING:
                # ended while settling
                return VerificationResult(is_match=False, confidence=0, reason="session ended")
            result = await self._check_identity(reference)
            self.last_result = result
            if self._state is not SessionState.VERIFYING:
                return result

            if result.is_match and result.confidence >= self.config.session.min_confidence:
                keep_camera = self.config.session.hold_camera_while_active
                if not keep_camera:
                    self._release_camera()
                self._enter_active()
            else:
                self.last_failure = VerificationFailure(result.reason, result.confidence)
                logger.warning(
                    "session %s verification failed (match=%s, confidence=%d): %s",
                    self.id,
                    result.is_match,
                    result.confidence,
                    result.reason,
                )
                self._set_state(SessionState.FAILED)
            return result
        except BaseException:
            if self._state is SessionState.VERIFYING:
                self._set_state(SessionState.AWAITING_CREDENTIALS)
            raise
        finally:
            if not keep_camera:
                self._release_camera()

    async def _check_identity(self, reference: bytes) -> VerificationResult:
        try:
            live_frame = self.media.capture_frame(self._camera)
            return await self.verifier.verify_identity(reference, live_frame)
        except MissingCredential:
            raise
        except Exception as exc:
            logger.warning("session %s: verifier unavailable: %s", self.id, exc)
            return VerificationResult(is_match=False, confidence=0, reason=f"Verification failed: {exc}")

    def retry(self) -> None:
        """``failed -> awaiting_credentials``."""

        self._require(SessionState.FAILED)
        self._release_camera()
        self.last_failure = None
        self._set_state(SessionState.AWAITING_CREDENTIALS)

    def start_without_verification(self) -> None:
        """Go straight to ``active`` when the policy does not require a check."""

        self._require(SessionState.AWAITING_CREDENTIALS)
        if self.config.session.require_verification:
            raise SessionStateError("identity verification is required for this session")
        self._enter_active()

    # ------------------------------------------------------------------
    # Active phase
    # ------------------------------------------------------------------
    def record_input(
        self,
        pointer_pos: Optional[tuple] = None,
        text_value: Optional[str] = None,
    ) -> None:
        if self._state is SessionState.ACTIVE and self.grading is not None:
            self.grader.record_live_input(self.grading, pointer_pos, text_value)

    def end(self) -> Optional[GradeReport]:
        """Terminate now. From ``active`` this finalizes and emits the report."""

        if self._state is SessionState.ENDED:
            return self.report
        self._shutdown()
        if self.grading is not None:
            self.report = self.grader.finalize(self.grading)
        self._set_state(SessionState.ENDED)
        if self.report is not None and self.on_report is not None:
            self._emit(self.on_report, self.report)
        return self.report

    def _enter_active(self) -> None:
        self.grading = self.grader.begin_grading(self.timeline)
        self._set_state(SessionState.ACTIVE)

        policy = self.config.grading
        ticks = self._ticker_factory(self.id)
        self._ticks = ticks
        ticks.every(policy.tick_ms, self._on_progress_tick, label="progress")
        ticks.every(policy.check_interval_ms, self._on_check_tick, label="check")

        if self.pointer_source is not None:
            self.pointer_source.start(self._on_pointer)
            self._tracking = True

    def _on_progress_tick(self) -> None:
        if self._state is not SessionState.ACTIVE or self.grading is None:
            return
        if self.grader.advance(self.grading):
            self.end()

    def _on_check_tick(self) -> None:
        if self._state is not SessionState.ACTIVE or self.grading is None:
            return
        evaluation = self.grader.evaluate_tick(self.grading)
        if self.on_feedback is not None:
            for entry in evaluation.feedback_entries:
                self._emit(self.on_feedback, entry)

    def _on_pointer(self, x: float, y: float) -> None:
        self.record_input(pointer_pos=(x, y))

    def _emit(self, sink: Callable[[Any], None], item: Any) -> None:
        # a failing listener must not stall the clock or block the report
        try:
            sink(item)
        except Exception:
            logger.exception("session %s: %s listener failed", self.id, type(item).__name__)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _shutdown(self) -> None:
        ticks, self._ticks = self._ticks, None
        if ticks is not None:
            ticks.cancel()
        if self._tracking and self.pointer_source is not None:
            self._tracking = False
            self.pointer_source.stop()
        self._release_camera()

    def _release_camera(self) -> None:
        camera, self._camera = self._camera, None
        if camera is not None and self.media is not None:
            self.media.release(camera)

    def _require(self, expected: SessionState) -> None:
        if self._state is not expected:
            raise SessionStateError(f"session is {self._state.value}, expected {expected.value}")

    def _set_state(self, state: SessionState) -> None:
        logger.info("session %s: %s -> %s", self.id, self._state.value, state.value)
        self._state = state
        self.history.append(state)


__all__ = ["AssessmentSession", "PointerSource", "SessionState"]
