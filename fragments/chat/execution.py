"""Book-keeping for a single reconciliation cycle."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from ..catalog import ModelDescriptor
from ..llm.receiver import StreamHandle
from ..util.time import utc_now_iso


@dataclass(slots=True)
class CycleHandle:
    """Track one submission from the user message to its execution result."""

    cycle_id: int
    prompt: str
    template: str
    model: ModelDescriptor | None = None
    has_files: bool = False
    submitted_at: str = field(default_factory=utc_now_iso)
    stream: StreamHandle | None = None
    reconcile_task: asyncio.Task[object] | None = None
    cancelled: bool = False

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled

    def cancel(self) -> None:
        """Supersede the cycle; the sandbox call itself is left to finish."""
        self.cancelled = True
        stream = self.stream
        if stream is not None:
            stream.cancel()


__all__ = ["CycleHandle"]
