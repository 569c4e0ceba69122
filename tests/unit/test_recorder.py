# tests/unit/test_recorder.py
import pytest

from core.errors import PermissionDenied, RecorderStateError
from core.events import PointerKind, RawKey, RawPointer, RecordingMode
from data_collection.recorders.input_recorder import InputChannel, format_key
from data_collection.recorders.lesson_recorder import LessonRecorder
from data_collection.session_manager import RecordingConfig, RecordingManager
from plugins.media.stub.impl import StubMedia
from factories import FakeClock


class _Capture:
    def __init__(self):
        self.started = 0
        self.stopped = 0

    def start(self):
        self.started += 1

    def stop(self):
        self.stopped += 1


def _recorder(clock, **kwargs):
    return LessonRecorder(InputChannel(clock=clock), clock=clock, **kwargs)


def test_stamps_are_relative_to_start(clock):
    rec = _recorder(clock)
    rec.start(title="intro")
    clock.advance_ms(250)
    rec.channel.offer(RawPointer(10, 20))
    clock.advance_ms(100)
    rec.channel.offer(RawKey("a", target_id="name", value="a"))
    clock.advance_ms(50)
    rec.channel.offer(RawPointer(11, 21, click=True))
    clock.advance_ms(600)

    timeline = rec.finish()

    assert [(e.timestamp_ms, e.kind) for e in timeline.pointer_events] == [
        (250, PointerKind.MOVE),
        (400, PointerKind.CLICK),
    ]
    key = timeline.key_events[0]
    assert (key.key, key.timestamp_ms, key.target_id, key.value) == ("a", 350, "name", "a")
    assert timeline.duration_ms == 1000
    assert timeline.title == "intro"
    assert not rec.recording


def test_input_queued_before_start_is_discarded(clock):
    rec = _recorder(clock)
    rec.channel.offer(RawKey("x"))
    rec.start()
    clock.advance_ms(10)
    assert rec.finish().key_events == ()


def test_stamps_never_step_backwards(clock):
    rec = _recorder(clock)
    origin_ns = clock()
    rec.start()
    rec.sample(RawPointer(1, 1, at_ns=origin_ns + 300_000_000))
    # a racing producer delivered an older arrival late
    rec.sample(RawPointer(2, 2, at_ns=origin_ns + 200_000_000))
    clock.advance_ms(400)
    timeline = rec.finish()
    assert [e.timestamp_ms for e in timeline.pointer_events] == [300, 300]


def test_events_at_the_origin_get_zero(clock):
    rec = _recorder(clock)
    rec.start()
    rec.sample(RawKey("q", at_ns=clock() - 5_000_000))
    assert rec.finish().key_events[0].timestamp_ms == 0


def test_empty_recording_still_has_positive_duration(clock):
    rec = _recorder(clock)
    rec.start()
    timeline = rec.finish()
    assert timeline.duration_ms == 1
    assert timeline.pointer_events == ()


def test_sampling_while_idle_is_rejected(clock):
    rec = _recorder(clock)
    with pytest.raises(RecorderStateError):
        rec.sample(RawKey("a"))
    with pytest.raises(RecorderStateError):
        rec.finish()


def test_double_start_is_rejected(clock):
    rec = _recorder(clock)
    rec.start()
    with pytest.raises(RecorderStateError):
        rec.start()


def test_camera_mode_grabs_reference_and_releases(clock):
    media = StubMedia(frame=b"face")
    rec = _recorder(clock, media=media)
    draft = rec.start(RecordingMode.CAMERA)
    assert draft.reference_image == b"face"
    assert media.live_handles == 1

    clock.advance_ms(20)
    timeline = rec.finish()
    assert timeline.mode is RecordingMode.CAMERA
    assert media.live_handles == 0


def test_camera_refusal_leaves_recorder_idle(clock):
    capture = _Capture()
    rec = _recorder(clock, media=StubMedia(deny=True), capture=capture)
    with pytest.raises(PermissionDenied):
        rec.start(RecordingMode.CAMERA)
    assert not rec.recording
    assert capture.started == 0


def test_abort_stops_capture_and_releases_media(clock):
    capture = _Capture()
    media = StubMedia()
    rec = _recorder(clock, media=media, capture=capture)
    rec.start(RecordingMode.CAMERA)
    rec.abort()
    rec.abort()
    assert (capture.started, capture.stopped) == (1, 1)
    assert media.live_handles == 0
    assert not rec.recording


def test_full_channel_drops_and_counts(clock):
    channel = InputChannel(maxsize=2, clock=clock)
    results = [channel.offer(RawPointer(i, i)) for i in range(4)]
    assert results == [True, True, False, False]
    assert channel.dropped == 2
    assert len(channel.drain()) == 2


def test_format_key_names():
    class _Char:
        char = "z"

    class _Special:
        char = None

        def __init__(self, name):
            self.name = name

    assert format_key(_Char()) == "z"
    assert format_key(_Special("space")) == " "
    assert format_key(_Special("enter")) == "enter"


def test_manager_saves_timeline_and_reference(store):
    media = StubMedia(frame=b"face")
    manager = RecordingManager(
        RecordingConfig(title="camera lesson", mode=RecordingMode.CAMERA, keyboard=False, mouse=False),
        store,
        media=media,
    )
    draft = manager.start()
    manager.channel.offer(RawKey("a"))
    assert manager.poll() == 1

    timeline = manager.stop()

    assert timeline.id == draft.id
    assert store.load(timeline.id) == timeline
    assert store.load_reference_image(timeline.id) == b"face"
    assert media.live_handles == 0
