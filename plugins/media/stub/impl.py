from __future__ import annotations
from itertools import count
from typing import Optional, Set

from core.errors import PermissionDenied

# placeholder frame: bare JPEG start/end markers
BLANK_JPEG = b"\xff\xd8\xff\xd9"

class StubMedia:
    """In-memory media source. Implements the MediaSource contract.

    Returns ``frame`` for every capture; ``deny=True`` simulates a refused
    camera permission.
    """
    def __init__(self, frame: Optional[bytes] = None, deny: bool = False):
        self.frame = BLANK_JPEG if frame is None else frame
        self.deny = deny
        self._ids = count(1)
        self._live: Set[int] = set()
        self.acquired = 0

    @property
    def live_handles(self) -> int:
        return len(self._live)

    def acquire_video_stream(self) -> int:
        if self.deny:
            raise PermissionDenied("camera access denied")
        handle = next(self._ids)
        self._live.add(handle)
        self.acquired += 1
        return handle

    def capture_frame(self, handle: int) -> bytes:
        if handle not in self._live:
            raise ValueError(f"stream {handle} is not live")
        return self.frame

    def release(self, handle: int) -> None:
        self._live.discard(handle)
