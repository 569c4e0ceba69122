from __future__ import annotations
import time, ulid
def now_monotonic_ns() -> int: return time.monotonic_ns()
def new_ulid() -> str: return str(ulid.new())
def new_handle_id(kind: str) -> str:
    """Sortable id for an ephemeral handle, e.g. ``replay_01HV...``."""
    return f"{kind}_{new_ulid()}"
