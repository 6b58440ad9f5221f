"""
Observable values shared between service calls and listener callbacks.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Observable(Generic[T]):
    """
    Holds a value and notifies subscribers on every replacement.

    Writes are serialized; subscribers run on the writing thread, in
    subscription order, after the new value is visible.
    """

    def __init__(self, initial: T):
        self._value = initial
        self._lock = threading.RLock()
        self._subscribers: List[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        with self._lock:
            return self._value

    def set(self, value: T) -> None:
        with self._lock:
            self._value = value
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(value)
            except Exception:
                logger.exception("Observable subscriber failed")

    def update(self, fn: Callable[[T], T]) -> None:
        with self._lock:
            self.set(fn(self._value))

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe
