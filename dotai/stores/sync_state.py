"""Persistent record of when each tool was last synced."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, Tuple

from ..io.atomic_writer import AtomicFileWriter
from ..io.lock import SyncLock
from ..logging import get_logger
from ..models import ToolSyncResult
from ..platform_paths import dotai_home

STATE_FILENAME = ".sync-state.json"
STATE_LOCK_STALE_TIMEOUT = 5.0
STATE_LOCK_TIMEOUT = 5.0
STATE_LOCK_POLL_INTERVAL = 0.05

logger = get_logger("stores.sync_state")


class SyncStateStore:
    """JSON file mapping tool ids to their last successful sync timestamp.

    Writes re-read the file under a short-lived lock and merge into the
    latest on-disk content, so concurrent processes never lose each
    other's entries.
    """

    def __init__(
        self,
        state_path: Path | str | None = None,
        *,
        home: Path | None = None,
        writer: AtomicFileWriter | None = None,
    ) -> None:
        self.state_path = Path(state_path) if state_path else dotai_home(home) / STATE_FILENAME
        self._writer = writer or AtomicFileWriter()
        self._lock = SyncLock(
            self.state_path.with_name(self.state_path.name + ".lock"),
            stale_timeout=STATE_LOCK_STALE_TIMEOUT,
            poll_interval=STATE_LOCK_POLL_INTERVAL,
        )

    def load(self) -> Dict[str, object]:
        """Return ``{"tools": {...}, "lastGlobalSync": ...}``; unreadable files read as empty."""
        try:
            payload = json.loads(self.state_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return _empty_state()
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable sync state %s: %s", self.state_path, exc)
            return _empty_state()
        if not isinstance(payload, dict):
            return _empty_state()
        tools = payload.get("tools")
        last_global = payload.get("lastGlobalSync")
        return {
            "tools": {str(k): str(v) for k, v in tools.items()} if isinstance(tools, dict) else {},
            "lastGlobalSync": last_global if isinstance(last_global, str) else None,
        }

    def get_tool_sync_time(self, tool_id: str) -> Optional[datetime]:
        tools, _ = self._read()
        return _parse_timestamp(tools.get(tool_id))

    def get_last_global_sync(self) -> Optional[datetime]:
        _, last_global = self._read()
        return _parse_timestamp(last_global)

    def record_tool_sync(self, tool_id: str, timestamp: datetime | None = None) -> None:
        when = _format_timestamp(timestamp)
        self._save({tool_id: when}, last_global=None)

    def record_global_sync(
        self, results: Sequence[ToolSyncResult], timestamp: datetime | None = None
    ) -> None:
        """Stamp every successful tool plus ``lastGlobalSync`` with one timestamp."""
        when = _format_timestamp(timestamp)
        updates = {result.tool: when for result in results if result.status == "success"}
        self._save(updates, last_global=when)

    # ------------------------------------------------------------------
    # Internals

    def _read(self) -> Tuple[Dict[str, str], Optional[str]]:
        state = self.load()
        tools = state["tools"]
        last_global = state["lastGlobalSync"]
        return (
            tools if isinstance(tools, dict) else {},
            last_global if isinstance(last_global, str) else None,
        )

    def _save(self, tools: Mapping[str, str], *, last_global: Optional[str]) -> None:
        with self._lock.hold(STATE_LOCK_TIMEOUT):
            latest_tools, latest_global = self._read()
            payload = {
                "tools": {**latest_tools, **tools},
                "lastGlobalSync": last_global or latest_global,
            }
            self._writer.write(self.state_path, json.dumps(payload, indent=2) + "\n")
        logger.debug("Recorded sync state for %s", ", ".join(sorted(tools)) or "no tools")


def _empty_state() -> Dict[str, object]:
    return {"tools": {}, "lastGlobalSync": None}


def _format_timestamp(value: datetime | None) -> str:
    return (value or datetime.now(UTC)).isoformat()


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


__all__ = ["STATE_FILENAME", "SyncStateStore"]
