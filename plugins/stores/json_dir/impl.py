from __future__ import annotations
import logging
import os
from pathlib import Path
from threading import Lock
from typing import List, Optional

from config.paths import get_paths
from core.collaborators import LessonId
from core.errors import LessonNotFound, MalformedTimeline
from core.events import LessonSummary, Timeline

logger = logging.getLogger(__name__)

def ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)

class JsonLessonStore:
    """
    One ``<id>.json`` document per lesson (plus ``<id>.ref.jpg``) under a directory.
    Writes go through a temp file and ``os.replace`` so readers never see half a lesson.
    Thread-safe within a process, not across processes.
    """
    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root is not None else get_paths().lessons_root
        ensure_dir(self.root)
        self._lock = Lock()

    def _doc(self, lesson_id: LessonId) -> Path:
        return self.root / f"{lesson_id}.json"

    def _ref(self, lesson_id: LessonId) -> Path:
        return self.root / f"{lesson_id}.ref.jpg"

    def _write(self, path: Path, data: bytes) -> None:
        tmp = path.with_name(path.name + ".tmp")
        with self._lock:
            tmp.write_bytes(data)
            os.replace(tmp, path)

    def save(self, timeline: Timeline) -> None:
        self._write(self._doc(timeline.id), timeline.model_dump_json(indent=2).encode("utf-8"))
        logger.info("saved lesson %s (%s) to %s", timeline.id, timeline.title, self.root)

    def load(self, lesson_id: LessonId) -> Timeline:
        path = self._doc(lesson_id)
        if not path.exists():
            raise LessonNotFound(str(lesson_id))
        return Timeline.model_validate_json(path.read_text(encoding="utf-8"))

    def list(self) -> List[LessonSummary]:
        docs = sorted(self.root.glob("*.json"), key=lambda x: x.stat().st_mtime, reverse=True)
        items = []
        for p in docs:
            try:
                items.append(Timeline.model_validate_json(p.read_text(encoding="utf-8")).summary())
            except (ValueError, MalformedTimeline) as exc:
                logger.warning("skipping unreadable lesson %s: %s", p.name, exc)
        return items

    def save_reference_image(self, lesson_id: LessonId, image: bytes) -> None:
        self._write(self._ref(lesson_id), image)

    def load_reference_image(self, lesson_id: LessonId) -> Optional[bytes]:
        path = self._ref(lesson_id)
        return path.read_bytes() if path.exists() else None
