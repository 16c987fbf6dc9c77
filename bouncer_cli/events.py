from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, List, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class Publisher(Generic[T]):
    """Fan out immutable snapshots to subscribed callbacks."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: List[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, value: T) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(value)
            except Exception:
                logger.exception("Subscriber %r failed", callback)

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()
