"""Cancellation flag shared by stream handles and transports."""

from __future__ import annotations

import logging
from collections.abc import Callable

__all__ = [
    "CancellationEvent",
    "CancellationRegistration",
    "OperationCancelledError",
    "raise_if_cancelled",
]

logger = logging.getLogger(__name__)


class OperationCancelledError(RuntimeError):
    """Raised when an in-flight operation is aborted via cancellation."""


class CancellationRegistration:
    """Returned by :meth:`CancellationEvent.register`; call :meth:`dispose` to detach."""

    __slots__ = ("_owner", "_callback")

    def __init__(self, owner: CancellationEvent, callback: Callable[[], None]) -> None:
        self._owner: CancellationEvent | None = owner
        self._callback = callback

    def dispose(self) -> None:
        owner, self._owner = self._owner, None
        if owner is not None:
            owner._unregister(self._callback)


class CancellationEvent:
    """One-shot flag that runs its callbacks when set.

    All callers live on one event loop, so no locking is needed.
    """

    __slots__ = ("_set", "_callbacks")

    def __init__(self) -> None:
        self._set = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._set

    def is_set(self) -> bool:
        return self._set

    def set(self) -> None:
        """Flag cancellation and run each registered callback once."""
        if self._set:
            return
        self._set = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

    def register(self, callback: Callable[[], None]) -> CancellationRegistration:
        """Run *callback* on cancellation, immediately if already cancelled."""
        if self._set:
            callback()
        else:
            self._callbacks.append(callback)
        return CancellationRegistration(self, callback)

    def raise_if_cancelled(self) -> None:
        if self._set:
            raise OperationCancelledError()

    def _unregister(self, callback: Callable[[], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)


def raise_if_cancelled(cancellation: CancellationEvent | None) -> None:
    if cancellation is not None:
        cancellation.raise_if_cancelled()
