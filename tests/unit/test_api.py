# tests/unit/test_api.py
import re

import pytest
from fastapi.testclient import TestClient

from apps.ui_api import main
from plugins.stores.memory.impl import MemoryLessonStore
from sdk.config import AppConfig
from factories import make_timeline


@pytest.fixture
def api_store():
    store = MemoryLessonStore()
    config = AppConfig()
    config.grading.tick_ms = 10
    config.grading.check_interval_ms = 30
    config.session.require_verification = False
    main.configure(config=config, store=store)
    yield store
    main.configure()


@pytest.fixture
def client(api_store):
    with TestClient(main.app) as c:
        yield c


def test_list_and_get(client, api_store):
    timeline = make_timeline(keys=[("a", 5)], duration_ms=100, title="api")
    api_store.save(timeline)

    listing = client.get("/lessons").json()["lessons"]
    assert [item["title"] for item in listing] == ["api"]

    body = client.get(f"/lessons/{timeline.id}").json()
    assert body["id"] == str(timeline.id)
    assert body["key_events"][0]["key"] == "a"


def test_get_missing_is_404(client):
    response = client.get("/lessons/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "not found"}


def test_replay_socket_streams_until_complete(client, api_store):
    timeline = make_timeline(pointers=[(1, 2, 0), (3, 4, 45)], keys=[("z", 15)], duration_ms=60)
    api_store.save(timeline)

    messages = []
    with client.websocket_connect(f"/ws/lessons/{timeline.id}/replay") as ws:
        while True:
            msg = ws.receive_json()
            messages.append(msg)
            if msg["type"] == "complete":
                break

    due = [m for m in messages if m["type"] == "due"]
    assert [e["x"] for m in due for e in m["pointer_events"]] == [1, 3]
    assert [k["key"] for m in due for k in m["key_events"]] == ["z"]
    assert messages[-1] == {"type": "complete", "duration_ms": 60}


def test_replay_socket_unknown_lesson(client):
    with client.websocket_connect("/ws/lessons/missing/replay") as ws:
        assert ws.receive_json() == {"type": "error", "msg": "not found"}


def test_graded_attempt_over_socket(client, api_store):
    timeline = make_timeline(pointers=[(100, 100, 20)], keys=[("o", 5), ("k", 10)], duration_ms=5000)
    api_store.save(timeline)

    with client.websocket_connect(f"/ws/lessons/{timeline.id}/test") as ws:
        ws.send_json({"pointer": [100, 100], "text": "ox"})
        msg = ws.receive_json()
        while 'got "ox"' not in msg.get("message", ""):
            assert msg["type"] == "feedback"
            msg = ws.receive_json()
        assert msg["is_error"] is True
        assert msg["message"] == 'Error: Expected "ok", got "ox"'

        ws.send_json({"type": "end"})
        while msg["type"] != "report":
            msg = ws.receive_json()

    assert msg["lesson_id"] == str(timeline.id)
    assert msg["accuracy"] <= 90
    assert 'Error: Expected "ok", got "ox"' in msg["errors"]


def test_verification_without_key_is_refused(api_store):
    config = AppConfig()
    config.verifier.api_key = None
    config.plugins["media"] = "plugins.media.stub.impl:StubMedia"
    main.configure(config=config, store=api_store)
    timeline = make_timeline(duration_ms=1000)
    api_store.save(timeline)

    with TestClient(main.app) as c:
        with c.websocket_connect(f"/ws/lessons/{timeline.id}/test") as ws:
            ws.send_json({"credential": None})
            msg = ws.receive_json()
    assert msg["type"] == "error"


def test_malformed_frame_does_not_stop_the_attempt(client, api_store):
    timeline = make_timeline(duration_ms=60_000)
    api_store.save(timeline)

    with client.websocket_connect(f"/ws/lessons/{timeline.id}/test") as ws:
        ws.send_json({"pointer": "ab"})
        ws.send_json(["not", "an", "object"])
        ws.send_json({"type": "end"})
        seen = []
        msg = ws.receive_json()
        while msg["type"] != "report":
            seen.append(msg)
            msg = ws.receive_json()

    assert [m["msg"] for m in seen] == ["pointer must be [x, y]", "expected an object"]
    assert msg["lesson_id"] == str(timeline.id)
    assert msg["current_timestamp_ms"] < 60_000


def test_verification_hello_must_be_an_object(api_store):
    config = AppConfig()
    config.plugins["media"] = "plugins.media.stub.impl:StubMedia"
    main.configure(config=config, store=api_store)
    timeline = make_timeline(duration_ms=1000)
    api_store.save(timeline)

    with TestClient(main.app) as c:
        with c.websocket_connect(f"/ws/lessons/{timeline.id}/test") as ws:
            ws.send_json(["secret"])
            msg = ws.receive_json()
    assert msg == {"type": "error", "msg": "expected an object with a credential"}


@pytest.mark.parametrize(
    "frame, error",
    [
        ({"pointer": "ab"}, "pointer must be [x, y]"),
        ({"pointer": [1, 2, 3]}, "pointer must be [x, y]"),
        ({"pointer": [True, 2]}, "pointer must be [x, y]"),
        ({"text": 42}, "text must be a string"),
        ("end", "expected an object"),
    ],
)
def test_parse_live_input_rejects_bad_frames(frame, error):
    with pytest.raises(ValueError, match=re.escape(error)):
        main.parse_live_input(frame)


def test_parse_live_input_accepts_partial_frames():
    assert main.parse_live_input({"pointer": [3, 4.5]}) == ((3.0, 4.5), None)
    assert main.parse_live_input({"text": "ok"}) == (None, "ok")
    assert main.parse_live_input({}) == (None, None)
