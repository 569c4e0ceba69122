"""Keyboard and pointer capture feeding the lesson recorder."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import queue
import threading
from typing import Any, Callable, List, Optional, Tuple, Union

from core.events import RawKey, RawPointer
from sdk.ids import now_monotonic_ns

try:  # Optional dependency - not always available in CI containers
    from pynput import keyboard as _pynput_keyboard  # type: ignore
except Exception:  # pragma: no cover - defensive guard
    _pynput_keyboard = None  # type: ignore

try:  # Optional dependency - not always available in CI containers
    from pynput import mouse as _pynput_mouse  # type: ignore
except Exception:  # pragma: no cover - defensive guard
    _pynput_mouse = None  # type: ignore

logger = logging.getLogger(__name__)

RawInput = Union[RawPointer, RawKey]
FocusProvider = Callable[[], Tuple[str, str]]


class InputChannel:
    """Bounded hand-off from capture threads to the single recorder.

    Producers call :meth:`offer` from any thread; the arrival instant is
    stamped there so the recorder's timestamps reflect when the host
    delivered the event, not when it was drained. A full channel drops the
    incoming event and counts it.
    """

    def __init__(self, maxsize: int = 10_000, clock: Callable[[], int] = now_monotonic_ns) -> None:
        self._queue: "queue.Queue[RawInput]" = queue.Queue(maxsize=maxsize)
        self._clock = clock
        self._dropped = 0
        self._lock = threading.Lock()

    @property
    def dropped(self) -> int:
        return self._dropped

    def offer(self, raw: RawInput) -> bool:
        if raw.at_ns is None:
            stamped: RawInput
            if isinstance(raw, RawPointer):
                stamped = RawPointer(raw.x, raw.y, raw.click, self._clock())
            else:
                stamped = RawKey(raw.key, raw.target_id, raw.value, self._clock())
            raw = stamped
        try:
            self._queue.put_nowait(raw)
        except queue.Full:
            with self._lock:
                self._dropped += 1
                dropped = self._dropped
            if dropped == 1 or dropped % 1000 == 0:
                logger.warning("input channel full; %d event(s) dropped", dropped)
            return False
        return True

    def drain(self) -> List[RawInput]:
        items: List[RawInput] = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                return items


class InputCapture:
    """Capture keyboard and pointer events through ``pynput`` into a channel.

    Every pointer move the OS delivers is forwarded (no throttling). The hooks
    are owned by this object: :meth:`start` subscribes, :meth:`stop` tears the
    listeners down. When a backend is unavailable the capture degrades and
    records a status message instead of failing.

    ``focus`` may be supplied by a host that knows which value-bearing control
    has focus; it returns ``(target_id, current_value)`` and is consulted on
    every key press.
    """

    def __init__(
        self,
        channel: InputChannel,
        *,
        capture_keyboard: bool = True,
        capture_mouse: bool = True,
        focus: Optional[FocusProvider] = None,
    ) -> None:
        self.channel = channel
        self.capture_keyboard = capture_keyboard
        self.capture_mouse = capture_mouse
        self.focus = focus

        self._keyboard_listener: Optional[Any] = None
        self._mouse_listener: Optional[Any] = None
        self._running = False

        self._status_lock = threading.Lock()
        self._status_messages: List[str] = []

    # ------------------------------------------------------------------
    # Lifecycle management
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Start capturing events."""

        if self._running:
            self._record_status("start() called while capture already running")
            return

        self._running = True
        self._prepare_keyboard()
        self._prepare_mouse()
        logger.info(
            "input capture started (keyboard=%s, mouse=%s)",
            self._keyboard_listener is not None,
            self._mouse_listener is not None,
        )

    def stop(self) -> None:
        """Stop capturing events and release the OS hooks."""

        if not self._running:
            return

        self._running = False

        if self._keyboard_listener is not None:
            with contextlib.suppress(Exception):
                self._keyboard_listener.stop()
            self._keyboard_listener = None

        if self._mouse_listener is not None:
            with contextlib.suppress(Exception):
                self._mouse_listener.stop()
            self._mouse_listener = None

        logger.info("input capture stopped")

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Backend preparation helpers
    # ------------------------------------------------------------------
    def _prepare_keyboard(self) -> None:
        if not self.capture_keyboard:
            self._record_status("keyboard capture disabled by configuration")
            return

        if _pynput_keyboard is None:
            self._record_status("pynput.keyboard unavailable; keyboard events disabled")
            return

        self._keyboard_listener = _pynput_keyboard.Listener(on_press=self._on_key_press)
        self._keyboard_listener.start()

    def _prepare_mouse(self) -> None:
        if not self.capture_mouse:
            self._record_status("mouse capture disabled by configuration")
            return

        if _pynput_mouse is None:
            self._record_status("pynput.mouse unavailable; mouse events disabled")
            return

        self._mouse_listener = _pynput_mouse.Listener(
            on_move=self._on_mouse_move,
            on_click=self._on_mouse_click,
        )
        self._mouse_listener.start()

    # ------------------------------------------------------------------
    # Callbacks (run on pynput threads)
    # ------------------------------------------------------------------
    def _on_key_press(self, key) -> None:  # pragma: no cover - requires OS hooks
        target_id, value = self.focus() if self.focus is not None else ("", "")
        self.channel.offer(RawKey(format_key(key), target_id, value))

    def _on_mouse_move(self, x: float, y: float) -> None:  # pragma: no cover - requires OS hooks
        self.channel.offer(RawPointer(x, y))

    def _on_mouse_click(
        self, x: float, y: float, button, pressed: bool
    ) -> None:  # pragma: no cover - requires OS hooks
        if pressed:
            self.channel.offer(RawPointer(x, y, click=True))

    # ------------------------------------------------------------------
    # Status reporting
    # ------------------------------------------------------------------
    def _record_status(self, message: str) -> None:
        logger.info("input capture: %s", message)
        with self._status_lock:
            self._status_messages.append(message)

    def consume_statuses(self) -> List[str]:
        with self._status_lock:
            messages = list(self._status_messages)
            self._status_messages.clear()
            return messages


class PointerFollower:
    """Forward live pointer positions to a callback on the asyncio loop.

    Used while a test session is active: ``pynput`` delivers moves on its own
    thread; they are marshalled onto ``loop`` so the grader only ever sees
    them from the loop thread. Only the latest position matters to the
    grader, so nothing is queued here beyond what the loop itself buffers.
    """

    def __init__(self) -> None:
        self._listener: Optional[Any] = None

    def start(self, sink: Callable[[float, float], None], loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        if self._listener is not None:
            return
        if _pynput_mouse is None:
            logger.info("pynput.mouse unavailable; live pointer tracking disabled")
            return
        loop = loop or asyncio.get_running_loop()

        def _on_move(x: float, y: float) -> None:  # pragma: no cover - requires OS hooks
            loop.call_soon_threadsafe(sink, x, y)

        self._listener = _pynput_mouse.Listener(on_move=_on_move)
        self._listener.start()

    def stop(self) -> None:
        if self._listener is not None:
            with contextlib.suppress(Exception):
                self._listener.stop()
            self._listener = None


def format_key(key: Any) -> str:
    """Key identity as recorded: the character when there is one, else the key name."""

    try:
        char = key.char  # type: ignore[attr-defined]
    except AttributeError:
        char = None
    if char:
        return char
    name = getattr(key, "name", None)
    if name == "space":
        return " "
    return name or str(key)


__all__ = ["FocusProvider", "InputCapture", "InputChannel", "PointerFollower", "RawInput", "format_key"]
