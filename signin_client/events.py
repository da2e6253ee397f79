"""
Sign-in notifications. Each flow ends in exactly one LoginSuccess or LoginError;
Debug carries diagnostic strings only.
"""
import logging
import threading
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

EVENT_LOGIN_SUCCESS = "LoginSuccess"
EVENT_LOGIN_ERROR = "LoginError"
EVENT_DEBUG = "Debug"

EVENTS = (EVENT_LOGIN_SUCCESS, EVENT_LOGIN_ERROR, EVENT_DEBUG)


class EventDispatcher:
    def __init__(self):
        self._handlers: dict[str, list[Callable[..., Any]]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event: str, handler: Callable[..., Any]) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown event {event!r}")
        with self._lock:
            self._handlers[event].append(handler)

    def unsubscribe(self, event: str, handler: Callable[..., Any]) -> None:
        with self._lock:
            if handler in self._handlers.get(event, []):
                self._handlers[event].remove(handler)

    def dispatch(self, event: str, *args: Any) -> None:
        """Call every handler for event. A failing handler is logged and does not stop the others."""
        with self._lock:
            handlers = list(self._handlers.get(event, []))
        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                logger.exception("%s handler %r failed", event, handler)
