"""
Synchronous change notifications for the RingGuard stores.

Listeners are called in registration order after a state transition has
committed, on the thread that committed it. A listener that raises does not
undo the transition; the error is logged and the remaining listeners run.
"""

import logging
import threading
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Listener = Callable[[str, Dict[str, Any]], None]


class EventSource:
    """Mixin giving a store ``subscribe``/``unsubscribe`` and an ``_emit`` hook."""

    def __init__(self):
        self._listeners: List[Listener] = []
        self._listener_lock = threading.Lock()

    def subscribe(self, listener: Listener) -> None:
        with self._listener_lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._listener_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _emit(self, event: str, **payload: Any) -> None:
        with self._listener_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, payload)
            except Exception:
                logger.exception("listener failed for event %s", event)
