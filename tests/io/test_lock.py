"""Tests for the cross-process sync lock."""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Any, Callable, List

import pytest

from dotai.errors import DotAIError, LockTimeoutError
from dotai.io import SyncLock


class _FakeClock:
    def __init__(self, start: float) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


def test_acquire_and_release_round_trip(tmp_path: Path) -> None:
    lock_file = tmp_path / ".sync.lock"
    lock = SyncLock(lock_file)

    lock.acquire()
    assert lock.held
    assert lock_file.exists()
    assert lock.is_locked()

    lock.release()
    assert not lock.held
    assert not lock_file.exists()


def test_second_acquirer_times_out(tmp_path: Path) -> None:
    lock_file = tmp_path / ".sync.lock"
    first = SyncLock(lock_file)
    first.acquire()

    clock = _FakeClock(time.time())
    second = SyncLock(lock_file, clock=clock, sleep=clock.sleep)
    with pytest.raises(LockTimeoutError) as excinfo:
        second.acquire(timeout=2.0)

    assert excinfo.value.retryable is True
    assert first.held
    assert not second.held
    first.release()


def test_stale_lock_is_reclaimed(tmp_path: Path) -> None:
    lock_file = tmp_path / ".sync.lock"
    lock_file.write_text('{"pid": 1, "token": "abandoned"}', encoding="utf-8")
    old = time.time() - 120
    os.utime(lock_file, (old, old))

    lock = SyncLock(lock_file, stale_timeout=60.0)
    lock.acquire(timeout=1.0)

    assert lock.held
    lock.release()
    assert not lock_file.exists()


def test_release_does_not_remove_a_lock_taken_over_by_someone_else(tmp_path: Path) -> None:
    lock_file = tmp_path / ".sync.lock"
    lock = SyncLock(lock_file)
    lock.acquire()
    lock_file.write_text('{"pid": 2, "token": "someone-else"}', encoding="utf-8")

    lock.release()

    assert lock_file.exists()


def test_reacquire_while_held_is_an_error(tmp_path: Path) -> None:
    lock = SyncLock(tmp_path / ".sync.lock")
    with lock.hold():
        with pytest.raises(DotAIError):
            lock.acquire()
    assert not lock.held


def test_refresh_bumps_mtime(tmp_path: Path) -> None:
    lock_file = tmp_path / ".sync.lock"
    lock = SyncLock(lock_file)
    lock.acquire()
    old = time.time() - 30
    os.utime(lock_file, (old, old))

    lock.refresh()

    assert lock_file.stat().st_mtime > old + 20
    lock.release()


def test_heartbeat_keeps_a_long_held_lock_fresh(tmp_path: Path) -> None:
    lock_file = tmp_path / ".sync.lock"
    lock = SyncLock(lock_file, stale_timeout=0.4, heartbeat_interval=0.05)
    lock.acquire()

    time.sleep(1.0)

    rival = SyncLock(lock_file, stale_timeout=0.4)
    assert lock.is_locked()
    with pytest.raises(LockTimeoutError):
        rival.acquire(timeout=0)
    assert not rival.held
    lock.release()
    assert not lock_file.exists()


class _InterleavingLogger:
    """Runs ``hook`` at the moment the reclaim decision has been made."""

    def __init__(self, hook: Callable[[], None]) -> None:
        self.hook = hook

    def warning(self, *args: Any) -> None:
        self.hook()

    def debug(self, *args: Any) -> None:
        pass


def test_stale_takeover_cannot_race_another_acquirer(tmp_path: Path) -> None:
    lock_file = tmp_path / ".sync.lock"
    lock_file.write_text('{"pid": 1, "token": "abandoned"}', encoding="utf-8")
    old = time.time() - 120
    os.utime(lock_file, (old, old))

    first = SyncLock(lock_file, stale_timeout=60.0)
    second = SyncLock(lock_file, stale_timeout=60.0)
    outcomes: List[str] = []

    def first_tries_mid_reclaim() -> None:
        try:
            first.acquire(timeout=0)
        except LockTimeoutError:
            outcomes.append("timeout")
        else:
            outcomes.append("acquired")

    second.logger = _InterleavingLogger(first_tries_mid_reclaim)  # type: ignore[assignment]
    second.acquire(timeout=0)

    assert outcomes == ["timeout"]
    assert second.held
    assert not first.held
    second.release()
    assert not lock_file.exists()
