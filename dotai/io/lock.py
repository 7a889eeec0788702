"""Cross-process advisory lock guarding a whole sync run.

The lock is a file created with ``O_EXCL``. Its mtime marks liveness: a
lock file older than ``stale_timeout`` seconds is treated as abandoned by a
crashed process and may be reclaimed. While held, a heartbeat thread bumps
the mtime so a long pull or deploy never looks abandoned.

Creating, reclaiming and releasing the lock file all happen under a short
``flock`` on a sidecar ``.guard`` file, so a stale takeover cannot race a
second acquirer or the owner's release.
"""

from __future__ import annotations

import json
import os
import threading
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, Tuple

from ..errors import DotAIError, LockTimeoutError
from ..logging import get_logger

if os.name == "nt":
    import msvcrt

    def _try_lock_fd(fd: int) -> bool:
        try:
            msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
        except OSError:
            return False
        return True

    def _unlock_fd(fd: int) -> None:
        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)

else:
    import fcntl

    def _try_lock_fd(fd: int) -> bool:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return False
        return True

    def _unlock_fd(fd: int) -> None:
        fcntl.flock(fd, fcntl.LOCK_UN)


DEFAULT_STALE_TIMEOUT = 60.0
DEFAULT_ACQUIRE_TIMEOUT = 30.0
DEFAULT_POLL_INTERVAL = 0.5


class SyncLock:
    """File-based lock with polling acquisition, heartbeat and staleness reclaim."""

    def __init__(
        self,
        lock_file: Path | str,
        *,
        stale_timeout: float = DEFAULT_STALE_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        heartbeat_interval: float | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.lock_file = Path(lock_file)
        self.guard_file = self.lock_file.with_name(self.lock_file.name + ".guard")
        self.stale_timeout = stale_timeout
        self.poll_interval = poll_interval
        self.heartbeat_interval = (
            heartbeat_interval if heartbeat_interval is not None else stale_timeout / 4
        )
        self._clock = clock
        self._sleep = sleep
        self._token: Optional[str] = None
        self._heartbeat: Optional[Tuple[threading.Event, threading.Thread]] = None
        self.logger = get_logger("lock")

    @property
    def held(self) -> bool:
        return self._token is not None

    def acquire(self, timeout: float = DEFAULT_ACQUIRE_TIMEOUT) -> None:
        """Block until the lock is obtained or raise ``LockTimeoutError``."""
        if self._token is not None:
            raise DotAIError(f"Lock {self.lock_file} is already held by this process")
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        started = self._clock()
        while True:
            if self._attempt():
                self.logger.debug("Acquired lock %s", self.lock_file)
                self._start_heartbeat()
                return
            if self._clock() - started >= timeout:
                raise LockTimeoutError(str(self.lock_file), timeout)
            self._sleep(self.poll_interval)

    def release(self) -> None:
        """Remove the lock file if this instance still owns it."""
        self._stop_heartbeat()
        token, self._token = self._token, None
        if token is None:
            return
        with self._guard(wait=True):
            owner = self._read_token()
            if owner != token:
                self.logger.warning(
                    "Lock %s was reclaimed by another process before release", self.lock_file
                )
                return
            try:
                self.lock_file.unlink()
            except FileNotFoundError:
                return
        self.logger.debug("Released lock %s", self.lock_file)

    def refresh(self) -> None:
        if self._token is None:
            return
        try:
            os.utime(self.lock_file)
        except FileNotFoundError:
            self.logger.warning("Lock file %s disappeared while held", self.lock_file)

    def is_locked(self) -> bool:
        """Return True when a live (non-stale) lock file exists."""
        try:
            stat = self.lock_file.stat()
        except FileNotFoundError:
            return False
        return not self._is_stale(stat.st_mtime)

    @contextmanager
    def hold(self, timeout: float = DEFAULT_ACQUIRE_TIMEOUT) -> Iterator["SyncLock"]:
        self.acquire(timeout)
        try:
            yield self
        finally:
            self.release()

    # ------------------------------------------------------------------
    # Internals

    def _attempt(self) -> bool:
        with self._guard(wait=False) as guarded:
            if not guarded:
                return False
            if self._try_create():
                return True
            return self._reclaim_if_stale() and self._try_create()

    @contextmanager
    def _guard(self, *, wait: bool) -> Iterator[bool]:
        fd = os.open(self.guard_file, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            locked = _try_lock_fd(fd)
            while wait and not locked:
                self._sleep(self.poll_interval)
                locked = _try_lock_fd(fd)
            try:
                yield locked
            finally:
                if locked:
                    _unlock_fd(fd)
        finally:
            os.close(fd)

    def _try_create(self) -> bool:
        token = uuid.uuid4().hex
        try:
            fd = os.open(self.lock_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump({"pid": os.getpid(), "token": token, "created": self._clock()}, handle)
        self._token = token
        return True

    def _reclaim_if_stale(self) -> bool:
        # Caller holds the guard.
        try:
            stat = self.lock_file.stat()
        except FileNotFoundError:
            return True
        if not self._is_stale(stat.st_mtime):
            return False
        self.logger.warning(
            "Reclaiming stale lock %s (older than %gs)", self.lock_file, self.stale_timeout
        )
        try:
            self.lock_file.unlink()
        except FileNotFoundError:
            pass
        return True

    def _start_heartbeat(self) -> None:
        if self.heartbeat_interval <= 0:
            return
        stop = threading.Event()
        thread = threading.Thread(
            target=self._beat, args=(stop,), name="dotai-lock-heartbeat", daemon=True
        )
        self._heartbeat = (stop, thread)
        thread.start()

    def _beat(self, stop: threading.Event) -> None:
        while not stop.wait(self.heartbeat_interval):
            self.refresh()

    def _stop_heartbeat(self) -> None:
        if self._heartbeat is None:
            return
        stop, thread = self._heartbeat
        self._heartbeat = None
        stop.set()
        thread.join()

    def _is_stale(self, mtime: float) -> bool:
        return self._clock() - mtime > self.stale_timeout

    def _read_token(self) -> Optional[str]:
        try:
            payload = json.loads(self.lock_file.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        if not isinstance(payload, dict):
            return None
        token = payload.get("token")
        return token if isinstance(token, str) else None


__all__ = [
    "DEFAULT_ACQUIRE_TIMEOUT",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_STALE_TIMEOUT",
    "SyncLock",
]
