import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

EventCallback = Callable[..., Any]


class Event(str, Enum):
    READY = "ready"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CHANGED = "changed"
    ERROR = "error"


def _kind(event) -> Optional[Event]:
    try:
        return Event(event)
    except ValueError:
        logger.warning("Ignoring unknown event kind %r", event)
        return None


class EventBus:
    """Per-client publish/subscribe table.

    Callbacks for a kind run in registration order on the emitting thread.
    A callback that raises is logged and the rest still run. Unknown kinds
    are logged and ignored.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._handlers: Dict[Event, List[EventCallback]] = {}

    def on(self, event: Event, callback: EventCallback):
        event = _kind(event)
        if event is None:
            return
        with self._lock:
            self._handlers.setdefault(event, []).append(callback)

    def off(self, event: Event, callback: Optional[EventCallback] = None):
        event = _kind(event)
        if event is None:
            return
        with self._lock:
            handlers = self._handlers.get(event)
            if not handlers:
                return
            if callback is None:
                del self._handlers[event]
                return
            try:
                handlers.remove(callback)
            except ValueError:
                pass

    def emit(self, event: Event, *payload: Any):
        event = _kind(event)
        if event is None:
            return
        with self._lock:
            handlers = list(self._handlers.get(event, ()))
        for handler in handlers:
            try:
                handler(*payload)
            except Exception:
                logger.exception("Subscriber for %r raised", event.value)

    def listeners(self, event: Event) -> List[EventCallback]:
        with self._lock:
            return list(self._handlers.get(_kind(event), ()))

    def clear(self):
        with self._lock:
            self._handlers.clear()
