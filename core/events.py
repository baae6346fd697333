"""
core/events.py -- In-process event hub and telemetry side channel.

EventHub is a synchronous publish/subscribe registry. Services emit domain
events ("admin.auth.success", "admin.auth.error", ...) without knowing who
listens; the app wires subscribers (audit log, metrics exporters) at startup.

A failing subscriber is logged and skipped. Emitting an event is a side
channel -- it must never turn a successful login into a 500.

Telemetry is a thin named-signal sender on top of the hub. Signals are
recorded once per name per process when sent with once=True.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger("adminauth.events")

Handler = Callable[[str, Any], None]


class EventTypes:
    AUTH_SUCCESS = "admin.auth.success"
    AUTH_ERROR = "admin.auth.error"
    TELEMETRY = "telemetry"


class EventHub:
    """Synchronous publish/subscribe registry.

    Usage:
        hub = EventHub()
        hub.subscribe(EventTypes.AUTH_ERROR, lambda name, event: audit.write(event))
        hub.emit(EventTypes.AUTH_ERROR, event)
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, name: str, handler: Handler) -> None:
        with self._lock:
            self._handlers[name].append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        with self._lock:
            if handler in self._handlers.get(name, []):
                self._handlers[name].remove(handler)

    def emit(self, name: str, payload: Any) -> None:
        with self._lock:
            handlers = list(self._handlers.get(name, []))
        for handler in handlers:
            try:
                handler(name, payload)
            except Exception:
                logger.exception("Event handler %r failed for %s", handler, name)


class Telemetry:
    """Named usage signals ("didCreateFirstAdmin", ...) routed through the EventHub."""

    def __init__(self, hub: EventHub) -> None:
        self._hub = hub
        self._sent: set[str] = set()
        self._lock = threading.Lock()

    def send(self, signal: str, once: bool = False, **properties: Any) -> bool:
        """Emit a telemetry signal. Returns False if once=True and it was already sent."""
        if once:
            with self._lock:
                if signal in self._sent:
                    return False
                self._sent.add(signal)
        logger.info("telemetry signal %s", signal)
        self._hub.emit(EventTypes.TELEMETRY, {"event": signal, "properties": properties})
        return True
