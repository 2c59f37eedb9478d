"""Synchronous publish/subscribe channel for engine lifecycle events."""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

PROVIDER_ADDED = "provider-added"
PROVIDER_REMOVED = "provider-removed"
REQUEST_COMPLETED = "request-completed"
REQUEST_FAILED = "request-failed"

EVENTS = (PROVIDER_ADDED, PROVIDER_REMOVED, REQUEST_COMPLETED, REQUEST_FAILED)

Handler = Callable[..., Any]


class EventBus:
    """Best-effort dispatch: a failing subscriber is logged and the rest still run.

    Usage:
        bus = EventBus()
        unsubscribe = bus.subscribe(REQUEST_COMPLETED, on_done)
        bus.emit(REQUEST_COMPLETED, request, response, provider)
        unsubscribe()
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, List[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        if event not in EVENTS:
            raise ValueError(f"Unknown event: {event}")
        with self._lock:
            self._handlers.setdefault(event, []).append(handler)

        def unsubscribe() -> None:
            self.unsubscribe(event, handler)

        return unsubscribe

    def unsubscribe(self, event: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

    def emit(self, event: str, *args: Any) -> None:
        with self._lock:
            handlers = list(self._handlers.get(event, ()))
        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                logger.exception("Subscriber %r failed while handling %s", handler, event)

    def subscriber_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))
