"""Synchronous publish/subscribe channel for sync lifecycle events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from itertools import count
from typing import Any, Callable, Dict, Iterable, List, Literal, Mapping, Tuple

from .logging import get_logger

EventType = Literal[
    "sync:start",
    "sync:complete",
    "sync:error",
    "git:pull:start",
    "git:pull:complete",
    "git:offline",
    "tool:deploy:start",
    "tool:deploy:complete",
    "tool:deploy:skip",
    "tool:deploy:error",
    "tool:validate:error",
    "conflict:detected",
    "lock:acquired",
    "lock:released",
]

EVENT_TYPES: Tuple[str, ...] = (
    "sync:start",
    "sync:complete",
    "sync:error",
    "git:pull:start",
    "git:pull:complete",
    "git:offline",
    "tool:deploy:start",
    "tool:deploy:complete",
    "tool:deploy:skip",
    "tool:deploy:error",
    "tool:validate:error",
    "conflict:detected",
    "lock:acquired",
    "lock:released",
)

WILDCARD = "*"


@dataclass(frozen=True)
class SyncEvent:
    """Lifecycle notification delivered to subscribers."""

    type: str
    timestamp: datetime
    data: Mapping[str, Any] = field(default_factory=dict)


Handler = Callable[[SyncEvent], None]


class EventBus:
    """Delivers events synchronously to typed and wildcard subscribers.

    ``subscribe`` returns an integer token; ``unsubscribe(token)`` stops
    delivery before the next ``emit``. A handler that raises is logged and
    the remaining handlers still receive the event.
    """

    def __init__(self) -> None:
        self._handlers: Dict[int, Tuple[frozenset[str] | None, Handler]] = {}
        self._tokens = count(1)
        self.logger = get_logger("events")

    def subscribe(self, types: str | Iterable[str], handler: Handler) -> int:
        if isinstance(types, str):
            selected = None if types == WILDCARD else frozenset({types})
        else:
            selected = frozenset(types)
        if selected is not None:
            unknown = selected.difference(EVENT_TYPES)
            if unknown:
                raise ValueError(f"Unknown event types: {', '.join(sorted(unknown))}")
        token = next(self._tokens)
        self._handlers[token] = (selected, handler)
        return token

    def unsubscribe(self, token: int) -> bool:
        return self._handlers.pop(token, None) is not None

    def clear(self) -> None:
        self._handlers.clear()

    def emit(self, event_type: str, data: Mapping[str, Any] | None = None) -> SyncEvent:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")
        event = SyncEvent(type=event_type, timestamp=datetime.now(UTC), data=dict(data or {}))
        self.publish(event)
        return event

    def publish(self, event: SyncEvent) -> None:
        typed: List[Handler] = []
        wildcard: List[Handler] = []
        for selected, handler in list(self._handlers.values()):
            if selected is None:
                wildcard.append(handler)
            elif event.type in selected:
                typed.append(handler)
        for handler in typed + wildcard:
            try:
                handler(event)
            except Exception:
                self.logger.exception("Event handler failed for %s", event.type)

    def __len__(self) -> int:
        return len(self._handlers)


__all__ = ["EVENT_TYPES", "EventBus", "EventType", "Handler", "SyncEvent", "WILDCARD"]
