from dataclasses import dataclass
from time import monotonic_ns
from typing import Callable, Optional

NS_PER_MS = 1_000_000

@dataclass
class SessionTimer:
    clock: Callable[[], int] = monotonic_ns
    started_ns: Optional[int] = None
    stopped_ns: Optional[int] = None
    running: bool = False

    def start(self) -> int:
        self.started_ns = self.clock()
        self.stopped_ns = None
        self.running = True
        return self.started_ns

    def stop(self) -> int:
        assert self.running
        self.stopped_ns = self.clock()
        self.running = False
        return self.elapsed_ms

    def offset_ms(self, at_ns: Optional[int] = None) -> int:
        """Whole milliseconds from the origin to ``at_ns`` (default: now), never negative."""
        assert self.started_ns is not None
        at = self.clock() if at_ns is None else at_ns
        return max(0, (at - self.started_ns) // NS_PER_MS)

    @property
    def elapsed_ms(self) -> int:
        if self.started_ns is None:
            return 0
        end = self.clock() if self.running else self.stopped_ns
        return max(0, (end - self.started_ns) // NS_PER_MS)
