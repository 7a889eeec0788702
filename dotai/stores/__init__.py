"""Persistent stores."""

from .sync_state import STATE_FILENAME, SyncStateStore

__all__ = ["STATE_FILENAME", "SyncStateStore"]
