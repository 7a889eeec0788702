"""Tests for dotai.events."""

from __future__ import annotations

from typing import List

import pytest

from dotai.events import EventBus, SyncEvent


def test_typed_handlers_run_before_wildcard_handlers() -> None:
    bus = EventBus()
    seen: List[str] = []
    bus.subscribe("*", lambda event: seen.append(f"wild:{event.type}"))
    bus.subscribe("sync:start", lambda event: seen.append(f"typed:{event.type}"))

    bus.emit("sync:start")

    assert seen == ["typed:sync:start", "wild:sync:start"]


def test_handler_only_receives_subscribed_types() -> None:
    bus = EventBus()
    seen: List[SyncEvent] = []
    bus.subscribe(["lock:acquired", "lock:released"], seen.append)

    bus.emit("sync:start")
    bus.emit("lock:acquired", {"lockFile": "x"})
    bus.emit("lock:released")

    assert [event.type for event in seen] == ["lock:acquired", "lock:released"]
    assert seen[0].data == {"lockFile": "x"}
    assert seen[0].timestamp.tzinfo is not None


def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    seen: List[str] = []
    token = bus.subscribe("*", lambda event: seen.append(event.type))

    bus.emit("sync:start")
    assert bus.unsubscribe(token) is True
    bus.emit("sync:complete")

    assert seen == ["sync:start"]
    assert bus.unsubscribe(token) is False
    assert len(bus) == 0


def test_failing_handler_does_not_block_others(caplog: pytest.LogCaptureFixture) -> None:
    bus = EventBus()
    seen: List[str] = []

    def explode(event: SyncEvent) -> None:
        raise RuntimeError("boom")

    bus.subscribe("git:offline", explode)
    bus.subscribe("git:offline", lambda event: seen.append(event.type))

    bus.emit("git:offline")

    assert seen == ["git:offline"]


def test_unknown_event_types_are_rejected() -> None:
    bus = EventBus()
    with pytest.raises(ValueError):
        bus.subscribe("sync:started", lambda event: None)
    with pytest.raises(ValueError):
        bus.emit("not-an-event")


def test_clear_drops_every_subscription() -> None:
    bus = EventBus()
    bus.subscribe("*", lambda event: None)
    bus.subscribe("sync:start", lambda event: None)

    bus.clear()

    assert len(bus) == 0
