# tests/conftest.py
import pytest

from plugins.media.stub.impl import StubMedia
from plugins.stores.memory.impl import MemoryLessonStore
from sdk.config import AppConfig
from factories import FakeClock, ManualScheduler


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def media():
    return StubMedia(frame=b"live-frame")


@pytest.fixture
def store():
    return MemoryLessonStore()


@pytest.fixture
def config():
    cfg = AppConfig()
    cfg.verifier.api_key = None
    return cfg
