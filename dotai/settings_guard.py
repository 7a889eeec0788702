"""Suppress reload echoes when the engine writes its own settings file."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Literal, Optional

GuardState = Literal["idle", "applying"]


class SettingsSyncGuard:
    """Two-state machine: ``idle`` until a programmatic write is in flight.

    ``begin(digest)`` marks the batch written by the engine. The next change
    notification whose on-disk digest matches that marker is the echo of the
    engine's own write and completes the batch; anything else is an external
    edit.
    """

    def __init__(self) -> None:
        self.state: GuardState = "idle"
        self._batch: Optional[str] = None

    @property
    def batch(self) -> Optional[str]:
        return self._batch

    def begin(self, digest: str) -> None:
        self.state = "applying"
        self._batch = digest

    def observe(self, path: Path) -> bool:
        """Return True when ``path`` holds the in-flight batch (an echo)."""
        if self.state != "applying":
            return False
        current = file_digest(path)
        if current is not None and current == self._batch:
            self._finish()
            return True
        # The file moved on past our write; treat it as an external change.
        self._finish()
        return False

    def cancel(self) -> None:
        self._finish()

    def _finish(self) -> None:
        self.state = "idle"
        self._batch = None


def file_digest(path: Path) -> Optional[str]:
    try:
        return hashlib.sha256(path.read_bytes()).hexdigest()
    except OSError:
        return None


__all__ = ["GuardState", "SettingsSyncGuard", "file_digest"]
