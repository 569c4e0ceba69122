from __future__ import annotations

import asyncio
import logging
import signal
import threading
from typing import Iterable, Optional

import typer

from config.paths import get_paths
from core.collaborators import LessonStore
from core.errors import LessonNotFound, MissingCredential, PermissionDenied
from core.events import GradeReport, RawKey, RecordingMode, Timeline
from data_collection.recorders.input_recorder import InputCapture, InputChannel, PointerFollower, RawInput
from data_collection.session_manager import RecordingConfig, RecordingManager
from playback.replayer import ReplayFrame, Replayer
from playback.session import AssessmentSession, SessionState
from sdk.config import AppConfig, load_config
from sdk.registry import registry_from_config, verifier_from_config

app = typer.Typer(add_completion=False, no_args_is_help=True)

_state: dict = {}


def _config() -> AppConfig:
    cfg = _state.get("config")
    if cfg is None:
        cfg = _state["config"] = load_config()
    return cfg


def _store() -> LessonStore:
    return registry_from_config(_config()).create("store")


def _load(store: LessonStore, lesson_id: str) -> Timeline:
    try:
        return store.load(lesson_id)
    except LessonNotFound:
        typer.echo(f"[lessoncast] no lesson with id {lesson_id}", err=True)
        raise typer.Exit(code=1)


def _require_writeable() -> None:
    try:
        get_paths().verify_writeable()
    except OSError as exc:
        typer.echo(f"[lessoncast] {exc}", err=True)
        raise typer.Exit(code=1)


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level, e.g. INFO or DEBUG"),
) -> None:
    """Record, inspect and replay lessons."""

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # environment may have changed since import; resolve paths and config afresh
    get_paths(force_refresh=True)
    _state["config"] = load_config()


@app.command()
def record(
    title: str = typer.Option(..., "--title", "-t", help="Lesson title"),
    description: str = typer.Option("", "--description", "-d", help="Optional description"),
    mode: RecordingMode = typer.Option(RecordingMode.SCREEN, help="screen or camera"),
    keyboard: bool = typer.Option(True, help="Record keystrokes"),
    mouse: bool = typer.Option(True, help="Record pointer moves and clicks"),
    poll_ms: int = typer.Option(50, help="How often queued input is moved into the lesson"),
) -> None:
    """Record a lesson from global keyboard/mouse input until Ctrl+C."""

    _require_writeable()
    cfg = _config()
    registry = registry_from_config(cfg)
    media = registry.create("media") if mode is RecordingMode.CAMERA else None
    manager = RecordingManager(
        RecordingConfig(title=title, description=description, mode=mode, keyboard=keyboard, mouse=mouse),
        _store(),
        media=media,
        app_config=cfg,
    )

    try:
        draft = manager.start()
    except PermissionDenied as exc:
        typer.echo(f"[lessoncast] cannot record: {exc}", err=True)
        raise typer.Exit(code=2)

    # Graceful shutdown
    stop_event = threading.Event()

    def _stop(*_object: object) -> None:
        stop_event.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    typer.echo(f"[lessoncast] Recording lesson '{title}' ({draft.id}, {mode.value} mode)")
    typer.echo("Press Ctrl+C to stop.")

    try:
        while not stop_event.is_set():
            stop_event.wait(poll_ms / 1000.0)
            manager.poll()
    except BaseException:
        manager.abort()
        raise

    timeline = manager.stop()
    typer.echo(
        f"[lessoncast] Saved {timeline.id}: {timeline.duration_ms / 1000:.1f}s, "
        f"{len(timeline.pointer_events)} pointer / {len(timeline.key_events)} key events"
    )


@app.command("lessons")
def list_lessons() -> None:
    """List stored lessons, newest first."""

    items = _store().list()
    if not items:
        typer.echo("No lessons available. Record a lesson first.")
        return
    for s in items:
        typer.echo(
            f"{s.id}  {s.title}  [{s.mode.value}]  {round(s.duration_ms / 1000)}s  "
            f"pointer={s.pointer_event_count} keys={s.key_event_count}"
        )


@app.command()
def show(lesson_id: str = typer.Argument(..., help="Lesson id")) -> None:
    """Print a stored lesson as JSON."""

    typer.echo(_load(_store(), lesson_id).model_dump_json(indent=2))


def format_frame(frame: ReplayFrame) -> list[str]:
    lines = []
    for e in frame.pointer_events:
        lines.append(f"{e.timestamp_ms / 1000:7.2f}s  {e.kind.value:<5}  ({e.x:g}, {e.y:g})")
    for k in frame.key_events:
        suffix = f"  #{k.target_id}={k.value!r}" if k.target_id else ""
        lines.append(f"{k.timestamp_ms / 1000:7.2f}s  key    {k.key!r}{suffix}")
    return lines


async def _replay(timeline: Timeline, tick_ms: int) -> None:
    done = asyncio.Event()

    def _on_due(frame: ReplayFrame) -> None:
        for line in format_frame(frame):
            typer.echo(line)

    Replayer(tick_ms=tick_ms).play(timeline, on_due=_on_due, on_complete=done.set)
    await done.wait()


@app.command()
def replay(
    lesson_id: str = typer.Argument(..., help="Lesson id"),
    tick_ms: Optional[int] = typer.Option(None, help="Replay tick; defaults to the configured tick"),
) -> None:
    """Replay a lesson in real time, printing events as they become due."""

    timeline = _load(_store(), lesson_id)
    step = tick_ms or _config().grading.tick_ms
    typer.echo(f"[lessoncast] Replaying '{timeline.title}' ({timeline.duration_ms / 1000:.1f}s)")
    asyncio.run(_replay(timeline, step))
    typer.echo("[lessoncast] Replay complete")


def apply_keys(text: str, keys: Iterable[RawInput]) -> str:
    """Fold captured key presses into the text a student has typed so far."""

    for raw in keys:
        if not isinstance(raw, RawKey):
            continue
        if raw.key == "backspace":
            text = text[:-1]
        elif len(raw.key) == 1 and raw.key.isprintable():
            text += raw.key
    return text


async def _attempt(
    timeline: Timeline,
    cfg: AppConfig,
    store: LessonStore,
    credential: Optional[str],
    poll_ms: int,
) -> Optional[GradeReport]:
    done = asyncio.Event()
    session = AssessmentSession(
        timeline,
        config=cfg,
        store=store,
        pointer_source=PointerFollower(),
        on_feedback=lambda e: typer.echo(f"{e.timestamp_ms / 1000:7.2f}s  {e.message}"),
        on_report=lambda _report: done.set(),
    )

    if cfg.session.require_verification:
        registry = registry_from_config(cfg)
        session.media = registry.create("media")
        session.verifier = verifier_from_config(registry, cfg)
        result = await session.begin_verification(credential=credential)
        typer.echo(f"[lessoncast] Verification: match={result.is_match} confidence={result.confidence}")
        if session.state is not SessionState.ACTIVE:
            typer.echo(f"[lessoncast] {result.reason}", err=True)
            return None
    else:
        session.start_without_verification()

    channel = InputChannel(maxsize=cfg.input_queue_size)
    keys = InputCapture(channel, capture_mouse=False)
    keys.start()
    text = ""
    try:
        while not done.is_set():
            await asyncio.sleep(poll_ms / 1000.0)
            text = apply_keys(text, channel.drain())
            session.record_input(text_value=text)
    finally:
        keys.stop()
        session.end()
    return session.report


@app.command()
def attempt(
    lesson_id: str = typer.Argument(..., help="Lesson id"),
    credential: Optional[str] = typer.Option(None, "--credential", help="Verifier API key; defaults to the configured key"),
    skip_verification: bool = typer.Option(False, help="Start without the identity check"),
    poll_ms: int = typer.Option(50, help="How often typed keys are handed to the grader"),
) -> None:
    """Take a graded attempt at a lesson with this machine's pointer and keyboard."""

    cfg = _config()
    store = _store()
    timeline = _load(store, lesson_id)
    if skip_verification:
        cfg.session.require_verification = False

    typer.echo(f"[lessoncast] Attempting '{timeline.title}' ({timeline.duration_ms / 1000:.1f}s)")
    try:
        report = asyncio.run(_attempt(timeline, cfg, store, credential, poll_ms))
    except (MissingCredential, PermissionDenied) as exc:
        typer.echo(f"[lessoncast] cannot start attempt: {exc}", err=True)
        raise typer.Exit(code=2)
    if report is None:
        raise typer.Exit(code=3)

    typer.echo(f"[lessoncast] Accuracy {report.accuracy}% at {report.current_timestamp_ms / 1000:.1f}s")
    for message in report.errors:
        typer.echo(f"  {message}")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind host"),
    port: int = typer.Option(8000, help="Bind port"),
) -> None:
    """Serve the HTTP/WebSocket API."""

    _require_writeable()
    import uvicorn

    from apps.ui_api.main import app as api

    uvicorn.run(api, host=host, port=port, log_level="info")


if __name__ == "__main__":
    app()
