"""Track one in-flight fragment stream at a time."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import ValidationError
from pydantic_core import from_json

from ..schema import Fragment
from ..util.cancellation import CancellationEvent, OperationCancelledError
from .logging import log_request, log_response
from .transport import ChatRequest, ObjectStreamTransport, StreamError

logger = logging.getLogger(__name__)

MALFORMED_FRAGMENT_MESSAGE = "The model returned a malformed fragment"


class StreamOutcome(str, Enum):
    """Lifecycle of a :class:`StreamHandle`."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class StreamHandle:
    """Track metadata for one call to the completion endpoint."""

    handle_id: int
    request: ChatRequest
    cancel_event: CancellationEvent
    task: asyncio.Task[None] | None = None
    latest: Fragment | None = None
    error: StreamError | None = None
    outcome: StreamOutcome = StreamOutcome.RUNNING

    @property
    def is_cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def is_loading(self) -> bool:
        return self.outcome is StreamOutcome.RUNNING

    def cancel(self) -> None:
        """Stop the stream; safe to call any number of times."""
        if self.outcome is StreamOutcome.RUNNING:
            self.outcome = StreamOutcome.CANCELLED
        self.cancel_event.set()

    async def wait(self) -> StreamOutcome:
        """Wait until the stream task has finished and return the outcome."""
        task = self.task
        if task is not None and not task.done():
            await asyncio.wait({task})
        return self.outcome


PartialCallback = Callable[[StreamHandle, Fragment], None]
FinishCallback = Callable[[StreamHandle, Fragment], None]
ErrorCallback = Callable[[StreamHandle, StreamError], None]


def parse_partial_object(text: str) -> Any | None:
    """Parse streamed JSON text, completing a truncated tail.

    An unterminated trailing string is kept as far as it has arrived; ``None``
    means nothing usable has arrived yet.
    """
    if not text.strip():
        return None
    try:
        return from_json(text, allow_partial="trailing-strings")
    except ValueError:
        return None


def _coerce_fragment(value: Any) -> Fragment | None:
    if not isinstance(value, Mapping):
        return None
    try:
        return Fragment.model_validate(dict(value))
    except ValidationError:
        return None


def finalize_fragment(text: str) -> Fragment:
    """Validate the full stream text; raise :class:`StreamError` when malformed."""
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise StreamError(MALFORMED_FRAGMENT_MESSAGE) from exc
    if not isinstance(data, Mapping):
        raise StreamError(MALFORMED_FRAGMENT_MESSAGE)
    try:
        return Fragment.model_validate(dict(data))
    except ValidationError as exc:
        raise StreamError(f"{MALFORMED_FRAGMENT_MESSAGE}: {exc.error_count()} invalid field(s)") from exc


class StreamingObjectReceiver:
    """Run completion streams and publish their partial and final fragments.

    Only the most recently started handle is current.  Starting a new stream
    cancels the previous handle first, and a cancelled or superseded handle
    never reaches the callbacks again, so late chunks from an abandoned
    request cannot leak into the next cycle.
    """

    def __init__(
        self,
        transport: ObjectStreamTransport,
        *,
        on_partial: PartialCallback | None = None,
        on_finish: FinishCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._transport = transport
        self._on_partial = on_partial
        self._on_finish = on_finish
        self._on_error = on_error
        self._handle_counter = 0
        self._current: StreamHandle | None = None

    @property
    def current(self) -> StreamHandle | None:
        return self._current

    @property
    def latest(self) -> Fragment | None:
        handle = self._current
        return handle.latest if handle is not None else None

    @property
    def is_loading(self) -> bool:
        handle = self._current
        return handle is not None and handle.is_loading

    @property
    def error(self) -> StreamError | None:
        handle = self._current
        return handle.error if handle is not None else None

    def start(self, request: ChatRequest) -> StreamHandle:
        """Begin streaming *request*; must be called from a running event loop."""
        loop = asyncio.get_running_loop()
        previous = self._current
        if previous is not None:
            previous.cancel()
        self._handle_counter += 1
        handle = StreamHandle(
            handle_id=self._handle_counter,
            request=request,
            cancel_event=CancellationEvent(),
        )
        self._current = handle
        task = loop.create_task(
            self._run(handle), name=f"fragment-stream-{handle.handle_id}"
        )
        handle.task = task
        handle.cancel_event.register(task.cancel)
        return handle

    def cancel(self, handle: StreamHandle | None = None) -> StreamHandle | None:
        """Cancel *handle* (the current one by default) and return it."""
        target = handle if handle is not None else self._current
        if target is None:
            return None
        target.cancel()
        return target

    def _accepts(self, handle: StreamHandle) -> bool:
        return not handle.is_cancelled and self._current is handle

    def _emit(
        self,
        handle: StreamHandle,
        callback: Callable[[StreamHandle, Any], None] | None,
        value: Any,
    ) -> None:
        if callback is None or not self._accepts(handle):
            return
        try:
            callback(handle, value)
        except Exception:
            logger.exception("Fragment stream callback failed for handle %s", handle.handle_id)

    def _mark_cancelled(self, handle: StreamHandle, start_time: float) -> None:
        if handle.outcome is StreamOutcome.RUNNING:
            handle.outcome = StreamOutcome.CANCELLED
        log_response(
            {"handle_id": handle.handle_id, "outcome": StreamOutcome.CANCELLED.value},
            start_time=start_time,
        )

    def _fail(self, handle: StreamHandle, error: StreamError, start_time: float) -> None:
        if not self._accepts(handle):
            self._mark_cancelled(handle, start_time)
            return
        handle.error = error
        handle.outcome = StreamOutcome.FAILED
        log_response(
            {
                "handle_id": handle.handle_id,
                "outcome": StreamOutcome.FAILED.value,
                "error": error.to_payload(),
            },
            start_time=start_time,
        )
        self._emit(handle, self._on_error, error)

    async def _run(self, handle: StreamHandle) -> None:
        start_time = time.monotonic()
        log_request(handle.request.to_payload(), handle_id=handle.handle_id)
        chunks: list[str] = []
        last_snapshot: dict[str, Any] | None = None
        try:
            async for chunk in self._transport.stream(
                handle.request, cancellation=handle.cancel_event
            ):
                if not self._accepts(handle):
                    raise OperationCancelledError()
                chunks.append(chunk)
                partial = _coerce_fragment(parse_partial_object("".join(chunks)))
                if partial is None:
                    continue
                snapshot = partial.to_payload()
                if not snapshot or snapshot == last_snapshot:
                    continue
                last_snapshot = snapshot
                handle.latest = partial
                self._emit(handle, self._on_partial, partial)
            fragment = finalize_fragment("".join(chunks))
        except asyncio.CancelledError:
            self._mark_cancelled(handle, start_time)
            raise
        except OperationCancelledError:
            self._mark_cancelled(handle, start_time)
            return
        except StreamError as exc:
            self._fail(handle, exc, start_time)
            return
        except Exception as exc:
            logger.exception("Fragment stream %s failed", handle.handle_id)
            self._fail(handle, StreamError(str(exc) or type(exc).__name__), start_time)
            return

        if not self._accepts(handle):
            self._mark_cancelled(handle, start_time)
            return
        handle.latest = fragment
        handle.outcome = StreamOutcome.COMPLETED
        log_response(
            {
                "handle_id": handle.handle_id,
                "outcome": StreamOutcome.COMPLETED.value,
                "fragment": fragment.to_payload(),
            },
            start_time=start_time,
        )
        self._emit(handle, self._on_finish, fragment)


__all__ = [
    "MALFORMED_FRAGMENT_MESSAGE",
    "StreamHandle",
    "StreamOutcome",
    "StreamingObjectReceiver",
    "finalize_fragment",
    "parse_partial_object",
]
