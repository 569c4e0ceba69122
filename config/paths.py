# config/paths.py
"""
Centralized, cross-platform path management for lessoncast.

Design goals
- Single source of truth for data, logs and temp locations
- Honors these env vars:
    LESSONCAST_DATA_ROOT, LESSONCAST_LOGS_ROOT
- Sensible OS defaults when env vars are not provided
- Safe directory creation with writeability checks
- Helper for the lesson store directory
"""

from __future__ import annotations

import errno
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


# ---------- OS defaults (used only if env vars not set) ----------

def _platform_default_base() -> Path:
    """
    Returns an OS-specific base directory for user data, following conventions:
    - Windows: %LOCALAPPDATA%/lessoncast
    - macOS:   ~/Library/Application Support/lessoncast
    - Linux:   ~/.local/share/lessoncast
    """
    if sys.platform.startswith("win"):
        base = os.getenv("LOCALAPPDATA") or os.getenv("APPDATA") or str(Path.home() / "AppData" / "Local")
        return Path(base) / "lessoncast"
    elif sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "lessoncast"
    else:
        return Path(os.getenv("XDG_DATA_HOME", Path.home() / ".local" / "share")) / "lessoncast"


# ---------- Environment overrides ----------

def default_data_root() -> Path:
    return Path(os.getenv("LESSONCAST_DATA_ROOT", _platform_default_base() / "data"))


def default_logs_root() -> Path:
    return Path(os.getenv("LESSONCAST_LOGS_ROOT", _platform_default_base() / "logs"))


# ---------- Core dataclass ----------

@dataclass(frozen=True)
class Paths:
    """
    Canonical path container for lessoncast.

    Most callers should obtain a singleton instance via get_paths().
    """
    data_root: Path
    logs_root: Path
    tmp_root: Path

    @staticmethod
    def from_env() -> "Paths":
        data = default_data_root()
        return Paths(data, default_logs_root(), data / ".tmp")

    # ----- standard layout helpers -----

    @property
    def lessons_root(self) -> Path:
        return self.data_root / "lessons"

    # ----- setup / validation -----

    def ensure_all(self) -> None:
        """
        Create common directories used across modules.
        """
        for p in [self.data_root, self.logs_root, self.tmp_root, self.lessons_root]:
            p.mkdir(parents=True, exist_ok=True)

    def verify_writeable(self) -> None:
        """
        Raise OSError if critical roots are not writeable.
        """
        for p in [self.data_root, self.logs_root]:
            try:
                p.mkdir(parents=True, exist_ok=True)
                test = p / ".write_test"
                test.write_text("ok", encoding="utf-8")
                test.unlink(missing_ok=True)
            except Exception as e:
                raise OSError(errno.EACCES, f"Not writeable: {p}", e)


# ---------- Singleton access ----------

_paths_singleton: Optional[Paths] = None

def get_paths(force_refresh: bool = False) -> Paths:
    """
    Return a cached Paths instance, creating its directories on first use.
    """
    global _paths_singleton
    if force_refresh or _paths_singleton is None:
        _paths_singleton = Paths.from_env()
        _paths_singleton.ensure_all()
    return _paths_singleton

