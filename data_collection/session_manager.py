"""Utilities for orchestrating lesson recordings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from core.collaborators import LessonStore, MediaSource
from core.events import RecordingMode, Timeline
from data_collection.recorders.input_recorder import FocusProvider, InputCapture, InputChannel
from data_collection.recorders.lesson_recorder import LessonRecorder, RecordingDraft
from sdk.config import AppConfig, SDK_CONFIG

logger = logging.getLogger(__name__)


@dataclass
class RecordingConfig:
    """Configuration parameters for a recording."""

    title: str
    description: str = ""
    mode: RecordingMode = RecordingMode.SCREEN
    keyboard: bool = True
    mouse: bool = True


class RecordingManager:
    """Wire input capture, the recorder and the store for one recording."""

    def __init__(
        self,
        cfg: RecordingConfig,
        store: LessonStore,
        *,
        media: Optional[MediaSource] = None,
        app_config: Optional[AppConfig] = None,
        focus: Optional[FocusProvider] = None,
    ) -> None:
        self.cfg = cfg
        self.store = store
        self.app_config = app_config or SDK_CONFIG

        self.channel = InputChannel(maxsize=self.app_config.input_queue_size)
        self.capture = InputCapture(
            self.channel,
            capture_keyboard=cfg.keyboard,
            capture_mouse=cfg.mouse,
            focus=focus,
        )
        self.recorder = LessonRecorder(self.channel, capture=self.capture, media=media)
        self.draft: Optional[RecordingDraft] = None

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------
    def start(self) -> RecordingDraft:
        self.draft = self.recorder.start(
            self.cfg.mode,
            title=self.cfg.title,
            description=self.cfg.description,
            created_by=self.app_config.created_by,
        )
        for status in self.capture.consume_statuses():
            logger.warning("recording %s: %s", self.draft.id, status)
        return self.draft

    def poll(self) -> int:
        """Move queued input into the draft; call periodically while recording."""

        return self.recorder.pump()

    def stop(self) -> Timeline:
        timeline = self.recorder.finish()
        self.store.save(timeline)
        if self.draft is not None and self.draft.reference_image:
            self.store.save_reference_image(timeline.id, self.draft.reference_image)
        if self.channel.dropped:
            logger.warning("recording %s dropped %d input event(s)", timeline.id, self.channel.dropped)
        return timeline

    def abort(self) -> None:
        self.recorder.abort()


__all__ = ["RecordingConfig", "RecordingManager"]
