from __future__ import annotations
from typing import Dict, List, Optional

from core.collaborators import LessonId
from core.errors import LessonNotFound
from core.events import LessonSummary, Timeline

class MemoryLessonStore:
    """Process-local store. Implements the LessonStore contract."""
    def __init__(self):
        self._lessons: Dict[str, Timeline] = {}
        self._images: Dict[str, bytes] = {}

    def save(self, timeline: Timeline) -> None:
        self._lessons[str(timeline.id)] = timeline

    def load(self, lesson_id: LessonId) -> Timeline:
        try:
            return self._lessons[str(lesson_id)]
        except KeyError:
            raise LessonNotFound(str(lesson_id)) from None

    def list(self) -> List[LessonSummary]:
        return [t.summary() for t in self._lessons.values()]

    def save_reference_image(self, lesson_id: LessonId, image: bytes) -> None:
        self._images[str(lesson_id)] = image

    def load_reference_image(self, lesson_id: LessonId) -> Optional[bytes]:
        return self._images.get(str(lesson_id))
