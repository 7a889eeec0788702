"""Filesystem primitives: atomic writes and the cross-process lock."""

from .atomic_writer import AtomicFileWriter
from .lock import SyncLock

__all__ = ["AtomicFileWriter", "SyncLock"]
