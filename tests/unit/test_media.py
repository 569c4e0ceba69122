# tests/unit/test_media.py
import io

import pytest
from PIL import Image

from core.collaborators import MediaSource
from core.errors import PermissionDenied
from plugins.media.screen_mss import impl as screen
from plugins.media.stub.impl import BLANK_JPEG, StubMedia


class _Shot:
    size = (4, 2)
    rgb = bytes([255, 0, 0]) * 8


class _Grabber:
    monitors = [{}, {"left": 0, "top": 0, "width": 4, "height": 2}]

    def __init__(self):
        self.closed = False
        self.boxes = []

    def grab(self, bbox):
        self.boxes.append(bbox)
        return _Shot()

    def close(self):
        self.closed = True


def test_stub_tracks_handles():
    media = StubMedia()
    assert isinstance(media, MediaSource)
    a = media.acquire_video_stream()
    b = media.acquire_video_stream()
    assert media.live_handles == 2
    assert media.capture_frame(a) == BLANK_JPEG

    media.release(a)
    media.release(a)
    assert media.live_handles == 1
    with pytest.raises(ValueError):
        media.capture_frame(a)
    media.release(b)
    assert media.live_handles == 0


def test_stub_denial():
    with pytest.raises(PermissionDenied):
        StubMedia(deny=True).acquire_video_stream()


def test_screen_frames_are_jpeg(monkeypatch):
    grabbers = []

    def _factory():
        grabbers.append(_Grabber())
        return grabbers[-1]

    monkeypatch.setattr(screen, "mss", _factory)
    media = screen.ScreenMedia(region={"x": 1, "w": 2})
    handle = media.acquire_video_stream()

    frame = media.capture_frame(handle)

    assert Image.open(io.BytesIO(frame)).format == "JPEG"
    assert grabbers[0].boxes == [{"left": 1, "top": 0, "width": 2, "height": 2}]
    media.release(handle)
    assert grabbers[0].closed
    assert media.live_handles == 0


def test_screen_without_backend_is_denied(monkeypatch):
    monkeypatch.setattr(screen, "mss", None)
    with pytest.raises(PermissionDenied):
        screen.ScreenMedia().acquire_video_stream()
