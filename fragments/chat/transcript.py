"""Ordered conversation transcript."""

from __future__ import annotations

import dataclasses
from collections.abc import Iterator
from typing import Any

from ..messages import Message
from .events import SessionEvent


class TranscriptStore:
    """Own the ordered list of messages and notify observers on mutation.

    Every mutating call emits :attr:`changed` before returning, so observers
    never see a transcript that differs from what they were notified about.
    Operations on missing indices are silent no-ops.
    """

    def __init__(self, messages: list[Message] | None = None) -> None:
        self._messages: list[Message] = list(messages or [])
        self.changed: SessionEvent[TranscriptStore] = SessionEvent()

    # ------------------------------------------------------------------
    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def last_message(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    # ------------------------------------------------------------------
    def append(self, message: Message) -> int:
        """Append *message* and return its index."""
        self._messages.append(message)
        self._notify()
        return len(self._messages) - 1

    def replace_at(self, index: int, **changes: Any) -> bool:
        """Merge *changes* into the message at *index*.

        Returns ``False`` without notifying when *index* does not exist.
        """
        if not -len(self._messages) <= index < len(self._messages):
            return False
        self._messages[index] = dataclasses.replace(self._messages[index], **changes)
        self._notify()
        return True

    def truncate_last(self) -> Message | None:
        """Drop the most recent message and return it."""
        if not self._messages:
            return None
        removed = self._messages.pop()
        self._notify()
        return removed

    def clear(self) -> None:
        self._messages.clear()
        self._notify()

    def _notify(self) -> None:
        self.changed.emit(self)


__all__ = ["TranscriptStore"]
