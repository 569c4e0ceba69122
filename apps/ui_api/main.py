from __future__ import annotations
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from typing import Optional
import asyncio, logging

from core.collaborators import LessonStore
from core.errors import LessonNotFound, MissingCredential, PermissionDenied
from core.events import FeedbackEntry, GradeReport, event_dump
from playback.replayer import ReplayFrame, Replayer
from playback.session import AssessmentSession, SessionState
from sdk.config import AppConfig, load_config
from sdk.registry import Registry, registry_from_config, verifier_from_config

logger = logging.getLogger(__name__)

app = FastAPI(title="lessoncast API")

_deps: dict = {}

def configure(config: Optional[AppConfig] = None, store: Optional[LessonStore] = None,
              registry: Optional[Registry] = None) -> None:
    """Override the config/store/registry used by the endpoints (tests, embedding)."""
    _deps.clear()
    if config is not None: _deps["config"] = config
    if store is not None: _deps["store"] = store
    if registry is not None: _deps["registry"] = registry

def get_config() -> AppConfig:
    if "config" not in _deps:
        _deps["config"] = load_config()
    return _deps["config"]

def get_registry() -> Registry:
    if "registry" not in _deps:
        _deps["registry"] = registry_from_config(get_config())
    return _deps["registry"]

def get_store() -> LessonStore:
    if "store" not in _deps:
        _deps["store"] = get_registry().create("store")
    return _deps["store"]

@app.get("/lessons")
def list_lessons():
    return {"lessons": [s.model_dump(mode="json") for s in get_store().list()]}

@app.get("/lessons/{lesson_id}")
def get_lesson(lesson_id: str):
    try:
        timeline = get_store().load(lesson_id)
    except LessonNotFound:
        return JSONResponse(status_code=404, content={"error": "not found"})
    return event_dump(timeline)

def _frame_message(frame: ReplayFrame) -> dict:
    return {
        "type": "due",
        "virtual_time_ms": frame.virtual_time_ms,
        "pointer_events": [event_dump(e) for e in frame.pointer_events],
        "key_events": [event_dump(k) for k in frame.key_events],
        "cursor": list(frame.cursor) if frame.cursor else None,
    }

def parse_live_input(data) -> tuple:
    """Validate one client frame of a test session into ``(pointer, text)``."""
    if not isinstance(data, dict):
        raise ValueError("expected an object")
    pointer = data.get("pointer")
    if pointer is not None:
        if (not isinstance(pointer, (list, tuple)) or len(pointer) != 2
                or not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in pointer)):
            raise ValueError("pointer must be [x, y]")
        pointer = (float(pointer[0]), float(pointer[1]))
    text = data.get("text")
    if text is not None and not isinstance(text, str):
        raise ValueError("text must be a string")
    return pointer, text

@app.websocket("/ws/lessons/{lesson_id}/replay")
async def ws_replay(ws: WebSocket, lesson_id: str):
    await ws.accept()
    try:
        timeline = get_store().load(lesson_id)
    except LessonNotFound:
        await ws.send_json({"type": "error", "msg": "not found"})
        await ws.close()
        return

    out: asyncio.Queue = asyncio.Queue()
    replayer = Replayer(tick_ms=get_config().grading.tick_ms)
    handle = replayer.play(
        timeline,
        on_due=lambda f: out.put_nowait(_frame_message(f)),
        on_complete=lambda: out.put_nowait({"type": "complete", "duration_ms": timeline.duration_ms}),
    )
    try:
        while True:
            msg = await out.get()
            await ws.send_json(msg)
            if msg["type"] == "complete":
                break
        await ws.close()
    except WebSocketDisconnect:
        return
    finally:
        replayer.reset(handle)

@app.websocket("/ws/lessons/{lesson_id}/test")
async def ws_test(ws: WebSocket, lesson_id: str):
    """Graded attempt. The client streams ``{"pointer": [x, y]}`` / ``{"text": "..."}``
    messages; the server answers with feedback entries and a final report.
    An optional first message ``{"credential": "..."}`` is used for verification."""
    await ws.accept()
    try:
        timeline = get_store().load(lesson_id)
    except LessonNotFound:
        await ws.send_json({"type": "error", "msg": "not found"})
        await ws.close()
        return

    config = get_config()
    out: asyncio.Queue = asyncio.Queue()

    def _on_feedback(entry: FeedbackEntry) -> None:
        out.put_nowait({"type": "feedback", **event_dump(entry), "is_error": entry.is_error})

    def _on_report(report: GradeReport) -> None:
        out.put_nowait({"type": "report", **event_dump(report)})

    session = AssessmentSession(
        timeline,
        config=config,
        store=get_store(),
        on_feedback=_on_feedback,
        on_report=_on_report,
    )
    try:
        if config.session.require_verification:
            try:
                hello = await ws.receive_json()
            except ValueError:
                hello = None
            credential = hello.get("credential") if isinstance(hello, dict) else None
            if not isinstance(hello, dict) or not isinstance(credential, (str, type(None))):
                await ws.send_json({"type": "error", "msg": "expected an object with a credential"})
                await ws.close()
                return
            registry = get_registry()
            session.media = registry.create("media")
            session.verifier = verifier_from_config(registry, config)
            try:
                result = await session.begin_verification(credential=credential)
            except (MissingCredential, PermissionDenied) as exc:
                await ws.send_json({"type": "error", "msg": str(exc)})
                await ws.close()
                return
            await ws.send_json({"type": "verification", **event_dump(result)})
            if session.state is not SessionState.ACTIVE:
                await ws.close()
                return
        else:
            session.start_without_verification()

        async def _pump_input() -> None:
            while True:
                try:
                    data = await ws.receive_json()
                except WebSocketDisconnect:
                    out.put_nowait({"type": "disconnect"})
                    return
                except ValueError:
                    out.put_nowait({"type": "error", "msg": "invalid JSON"})
                    continue
                if isinstance(data, dict) and data.get("type") == "end":
                    session.end()
                    return
                try:
                    pointer, text = parse_live_input(data)
                except ValueError as exc:
                    out.put_nowait({"type": "error", "msg": str(exc)})
                    continue
                session.record_input(pointer_pos=pointer, text_value=text)

        reader = asyncio.create_task(_pump_input())
        try:
            while True:
                msg = await out.get()
                if msg["type"] == "disconnect":
                    return
                await ws.send_json(msg)
                if msg["type"] == "report":
                    break
        finally:
            reader.cancel()
        await ws.close()
    except WebSocketDisconnect:
        logger.info("test session %s: client disconnected", session.id)
    finally:
        session.end()
