from __future__ import annotations
import io
from typing import Dict, Optional

from PIL import Image

from core.errors import PermissionDenied

# optional deps; safe import even if missing
try:
    from mss import mss
except Exception:
    mss = None

class ScreenMedia:
    """Screen grabs through ``mss``. Implements the MediaSource contract.

    Each handle owns one ``mss`` instance; frames come back as JPEG bytes.
    A missing backend or display counts as a refused permission.
    """
    def __init__(self, monitor: int = 1, quality: int = 80, region: Optional[dict] = None):
        self.monitor = monitor
        self.quality = quality
        self.region = region
        self._live: Dict[int, object] = {}
        self._next = 1

    @property
    def live_handles(self) -> int:
        return len(self._live)

    def acquire_video_stream(self) -> int:
        if mss is None:
            raise PermissionDenied("mss is not installed; screen capture unavailable")
        try:
            grabber = mss()
        except Exception as exc:
            raise PermissionDenied(f"screen capture unavailable: {exc}") from exc
        handle = self._next
        self._next += 1
        self._live[handle] = grabber
        return handle

    def capture_frame(self, handle: int) -> bytes:
        grabber = self._live[handle]
        mon = grabber.monitors[self.monitor]
        # region: dict with x,y,w,h relative to the monitor
        if self.region:
            bbox = {
                "left": mon["left"] + self.region.get("x", 0),
                "top": mon["top"] + self.region.get("y", 0),
                "width": self.region.get("w", mon["width"]),
                "height": self.region.get("h", mon["height"]),
            }
        else:
            bbox = {"left": mon["left"], "top": mon["top"], "width": mon["width"], "height": mon["height"]}
        shot = grabber.grab(bbox)
        img = Image.frombytes("RGB", shot.size, shot.rgb)
        buf = io.BytesIO()
        img.save(buf, format="JPEG", quality=self.quality)
        return buf.getvalue()

    def release(self, handle: int) -> None:
        grabber = self._live.pop(handle, None)
        if grabber is not None:
            grabber.close()
