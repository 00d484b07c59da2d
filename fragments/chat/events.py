"""Synchronous observer list for transcript and controller changes."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class SessionEvent(Generic[T]):
    """Deliver a payload to every connected observer, in connection order.

    Observers run on the caller's stack. One that raises is logged and
    skipped; the rest still receive the payload.
    """

    __slots__ = ("_observers",)

    def __init__(self) -> None:
        self._observers: list[Callable[[T], None]] = []

    def connect(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Add *callback* and return a function that removes it again."""
        self._observers.append(callback)
        return lambda: self.disconnect(callback)

    def disconnect(self, callback: Callable[[T], None]) -> bool:
        if callback not in self._observers:
            return False
        self._observers.remove(callback)
        return True

    def emit(self, payload: T) -> None:
        for observer in tuple(self._observers):
            try:
                observer(payload)
            except Exception:
                logger.exception("Observer %r failed", observer)

    def __len__(self) -> int:
        return len(self._observers)


__all__ = ["SessionEvent"]
