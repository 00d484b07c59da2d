"""Submission controls and the state machine that drives a chat session."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from ..auth import SessionGate, resolve_tier
from ..catalog import (
    ModelDescriptor,
    TemplateDefinition,
    filter_models,
    load_models,
    load_templates,
    resolve_model,
    resolve_templates,
)
from ..config import ConfigManager
from ..llm.constants import AUTO_TEMPLATE
from ..log import cycle_scope
from ..llm.receiver import StreamHandle, StreamingObjectReceiver
from ..llm.transport import ChatRequest, ObjectStreamTransport, StreamError
from ..messages import ImagePart, Message, image_part_from_file, to_wire_messages
from ..sandbox import SandboxExecutor
from ..schema import ExecutionResult, Fragment
from ..settings import LLMModelConfig
from ..telemetry import log_event
from .events import SessionEvent
from .execution import CycleHandle
from .reconciler import FragmentReconciler, ReconcileOutcome
from .transcript import TranscriptStore

logger = logging.getLogger(__name__)

AnalyticsCallback = Callable[[str, Mapping[str, Any]], None]
Attachment = ImagePart | Path | str


class ChatState(str, Enum):
    """Lifecycle of the chat session."""

    IDLE = "idle"
    SUBMITTING = "submitting"
    STREAMING = "streaming"
    RECONCILING = "reconciling"
    RATE_LIMITED = "rate_limited"
    ERRORED = "errored"
    CANCELLED = "cancelled"


BUSY_STATES = frozenset({ChatState.SUBMITTING, ChatState.STREAMING, ChatState.RECONCILING})


@dataclass(frozen=True, slots=True)
class ChatSnapshot:
    """Read-only view of the controller handed to observers."""

    state: ChatState
    cycle_id: int
    messages: tuple[Message, ...]
    fragment: Fragment | None
    result: ExecutionResult | None
    is_loading: bool
    is_preview_loading: bool
    is_rate_limited: bool
    error_message: str | None
    chat_input: str
    files: tuple[Attachment, ...]

    @property
    def is_errored(self) -> bool:
        return bool(self.error_message)


class ChatController:
    """Own the transcript, the active stream and the reconciliation cycle.

    Every mutation of session state goes through the methods of this class
    and runs on the event loop that called :meth:`submit`.  Observers
    subscribe to :attr:`changed` and receive a :class:`ChatSnapshot` after
    each change.
    """

    def __init__(
        self,
        *,
        transport: ObjectStreamTransport,
        executor: SandboxExecutor,
        session_gate: SessionGate | None = None,
        templates: Mapping[str, TemplateDefinition] | None = None,
        models: Sequence[ModelDescriptor] | None = None,
        language_model: LLMModelConfig | None = None,
        selected_template: str = AUTO_TEMPLATE,
        config: ConfigManager | None = None,
        analytics: AnalyticsCallback | None = None,
    ) -> None:
        self._templates = dict(templates if templates is not None else load_templates())
        self._models = tuple(models if models is not None else load_models())
        self._session_gate = session_gate
        self._config = config
        self._analytics = analytics
        if language_model is None:
            language_model = (
                config.get_language_model() if config is not None else LLMModelConfig()
            )
        self._language_model = language_model
        self._selected_template = selected_template
        self.changed: SessionEvent[ChatSnapshot] = SessionEvent()
        self.transcript = TranscriptStore()
        self.transcript.changed.connect(self._on_transcript_changed)
        self._receiver = StreamingObjectReceiver(
            transport,
            on_partial=self._on_stream_partial,
            on_finish=self._on_stream_finish,
            on_error=self._on_stream_error,
        )
        self._reconciler = FragmentReconciler(
            self.transcript,
            executor,
            is_current=self.is_current_cycle,
            session_gate=session_gate,
            on_change=self._notify,
        )
        self._cycle_counter = 0
        self._active_cycle: CycleHandle | None = None
        self._state = ChatState.IDLE
        self._fragment: Fragment | None = None
        self._error_message: str | None = None
        self._rate_limited = False
        self._chat_input = config.get_chat_input() if config is not None else ""
        self._files: list[Attachment] = []

    # ------------------------------------------------------------------
    @property
    def state(self) -> ChatState:
        return self._state

    @property
    def is_loading(self) -> bool:
        return self._state in BUSY_STATES

    @property
    def active_cycle(self) -> CycleHandle | None:
        return self._active_cycle

    @property
    def receiver(self) -> StreamingObjectReceiver:
        return self._receiver

    @property
    def reconciler(self) -> FragmentReconciler:
        return self._reconciler

    @property
    def fragment(self) -> Fragment | None:
        return self._fragment

    @property
    def result(self) -> ExecutionResult | None:
        return self._reconciler.result

    @property
    def error_message(self) -> str | None:
        return self._error_message

    @property
    def is_rate_limited(self) -> bool:
        return self._rate_limited

    @property
    def chat_input(self) -> str:
        return self._chat_input

    @property
    def files(self) -> tuple[Attachment, ...]:
        return tuple(self._files)

    @property
    def language_model(self) -> LLMModelConfig:
        return self._language_model

    @property
    def selected_template(self) -> str:
        return self._selected_template

    def available_models(self) -> list[ModelDescriptor]:
        """Return the models the signed-in team may use."""
        return filter_models(self._models, tier=resolve_tier(self._session_gate))

    def is_current_cycle(self, cycle: CycleHandle) -> bool:
        return not cycle.is_cancelled and self._active_cycle is cycle

    def snapshot(self) -> ChatSnapshot:
        cycle = self._active_cycle
        return ChatSnapshot(
            state=self._state,
            cycle_id=cycle.cycle_id if cycle is not None else 0,
            messages=self.transcript.messages,
            fragment=self._fragment,
            result=self._reconciler.result,
            is_loading=self.is_loading,
            is_preview_loading=self._reconciler.is_preview_loading,
            is_rate_limited=self._rate_limited,
            error_message=self._error_message,
            chat_input=self._chat_input,
            files=tuple(self._files),
        )

    # ------------------------------------------------------------------
    # preferences
    def set_language_model(self, config: LLMModelConfig) -> None:
        self._language_model = config
        if self._config is not None:
            self._config.set_language_model(config)
            self._config.flush()
        self._notify()

    def set_selected_template(self, template_id: str) -> None:
        if template_id != AUTO_TEMPLATE and template_id not in self._templates:
            raise KeyError(template_id)
        self._selected_template = template_id
        self._notify()

    def set_input(self, text: str) -> None:
        """Update the input draft and persist it."""
        self._chat_input = text
        self._persist_input()
        self._notify()

    def set_files(self, files: Iterable[Attachment]) -> None:
        self._files = list(files)
        self._notify()

    # ------------------------------------------------------------------
    # controls
    async def submit(
        self,
        text: str,
        files: Iterable[Attachment] = (),
        *,
        template: str | None = None,
        model: LLMModelConfig | None = None,
    ) -> CycleHandle | None:
        """Start a new cycle, or stop the running one.

        While a cycle is busy the call only stops it and returns ``None``.
        Otherwise the user message is appended and the stream is started
        with the whole transcript; the new :class:`CycleHandle` is returned.
        """
        if self.is_loading:
            self.stop()
            return None

        template_id = template or self._selected_template
        templates = resolve_templates(template_id, self._templates)
        images = [self._to_image(item) for item in files]
        config = model or self._language_model
        descriptor = resolve_model(self.available_models(), config.model)

        self._error_message = None
        self._rate_limited = False
        self._cycle_counter += 1
        cycle = CycleHandle(
            cycle_id=self._cycle_counter,
            prompt=text,
            template=template_id,
            model=descriptor,
            has_files=bool(images),
        )
        self._active_cycle = cycle
        self._set_state(ChatState.SUBMITTING)
        self.transcript.append(Message.user(text, images))

        analytics_payload = {
            "template": template_id,
            "model": config.model,
            "has_files": bool(images),
        }
        self._capture("chat_submit", analytics_payload)

        request = ChatRequest(
            messages=tuple(to_wire_messages(self.transcript.messages)),
            templates=templates,
            model=descriptor,
            config=config,
        )
        # the stream task, and the reconcile task it spawns, inherit the id
        with cycle_scope(cycle.cycle_id):
            log_event("CHAT_SUBMIT", analytics_payload)
            cycle.stream = self._receiver.start(request)
        self._set_state(ChatState.STREAMING)
        return cycle

    async def submit_input(self) -> CycleHandle | None:
        """Submit the buffered input and attachments, then empty both."""
        text = self._chat_input
        files = list(self._files)
        try:
            return await self.submit(text, files)
        finally:
            self._chat_input = ""
            self._files = []
            self._persist_input()
            self._notify()

    def stop(self) -> CycleHandle | None:
        """Cancel the busy cycle and return it; ``None`` when idle."""
        cycle = self._active_cycle
        if cycle is None or not self.is_loading:
            return None
        cycle.cancel()
        self._reconciler.cancel_preview()
        log_event("CHAT_STOP", {"cycle_id": cycle.cycle_id, "state": self._state.value})
        self._set_state(ChatState.CANCELLED)
        self._set_state(ChatState.IDLE)
        return cycle

    def undo(self) -> Message | None:
        """Drop the most recent message; no-op on an empty transcript."""
        removed = self.transcript.truncate_last()
        if removed is not None:
            log_event("CHAT_UNDO", {"role": removed.role, "remaining": len(self.transcript)})
        return removed

    def clear(self) -> None:
        """Stop any active cycle and reset the session to empty."""
        stopped = self.stop()
        self._active_cycle = None
        self._fragment = None
        self._chat_input = ""
        self._files = []
        self._persist_input()
        self._reconciler.reset()
        self.transcript.clear()
        log_event("CHAT_CLEAR", {"stopped": stopped is not None})

    def set_current_preview(
        self, fragment: Fragment | None, result: ExecutionResult | None
    ) -> None:
        """Show a previous message's fragment and result in the preview."""
        self._fragment = fragment
        self._reconciler.set_result(result)
        self._notify()

    def close_preview(self) -> None:
        self.set_current_preview(None, None)

    async def wait(self) -> ReconcileOutcome | None:
        """Wait for the active cycle to settle and return its reconcile outcome."""
        cycle = self._active_cycle
        if cycle is None:
            return None
        if cycle.stream is not None:
            await cycle.stream.wait()
        task = cycle.reconcile_task
        if task is None:
            return None
        await asyncio.wait({task})
        if task.cancelled():
            return None
        return task.result()

    # ------------------------------------------------------------------
    # stream callbacks
    def _cycle_for(self, handle: StreamHandle) -> CycleHandle | None:
        cycle = self._active_cycle
        if cycle is None or cycle.stream is not handle or cycle.is_cancelled:
            return None
        return cycle

    def _on_stream_partial(self, handle: StreamHandle, fragment: Fragment) -> None:
        if self._cycle_for(handle) is None:
            return
        self._fragment = fragment
        self._notify()

    def _on_stream_finish(self, handle: StreamHandle, fragment: Fragment) -> None:
        cycle = self._cycle_for(handle)
        if cycle is None:
            return
        if not fragment.is_empty():
            self._fragment = fragment
        self._set_state(ChatState.RECONCILING)
        cycle.reconcile_task = asyncio.get_running_loop().create_task(
            self._reconcile(cycle, fragment),
            name=f"fragment-reconcile-{cycle.cycle_id}",
        )

    def _on_stream_error(self, handle: StreamHandle, error: StreamError) -> None:
        cycle = self._cycle_for(handle)
        if cycle is None:
            return
        logger.warning("Fragment stream failed: %s", error.message)
        self._error_message = error.message
        self._rate_limited = error.rate_limited
        self._set_state(ChatState.RATE_LIMITED if error.rate_limited else ChatState.ERRORED)

    async def _reconcile(
        self, cycle: CycleHandle, fragment: Fragment
    ) -> ReconcileOutcome | None:
        outcome: ReconcileOutcome | None = None
        try:
            outcome = await self._reconciler.on_complete(cycle, fragment)
        except Exception:
            logger.exception("Reconciliation of cycle %s failed", cycle.cycle_id)
        if self.is_current_cycle(cycle) and self._state is ChatState.RECONCILING:
            self._set_state(ChatState.IDLE)
        return outcome

    # ------------------------------------------------------------------
    def _to_image(self, item: Attachment) -> ImagePart:
        if isinstance(item, ImagePart):
            return item
        return image_part_from_file(item)

    def _persist_input(self) -> None:
        if self._config is None:
            return
        self._config.set_chat_input(self._chat_input)
        try:
            self._config.flush()
        except OSError as exc:
            logger.warning("Failed to persist chat input: %s", exc)

    def _capture(self, event: str, payload: Mapping[str, Any]) -> None:
        if self._analytics is None:
            return
        try:
            self._analytics(event, dict(payload))
        except Exception:
            logger.exception("Analytics callback failed for %s", event)

    def _set_state(self, state: ChatState) -> None:
        if state is self._state:
            return
        self._state = state
        self._notify()

    def _on_transcript_changed(self, _store: TranscriptStore) -> None:
        self._notify()

    def _notify(self) -> None:
        self.changed.emit(self.snapshot())


__all__ = ["BUSY_STATES", "ChatController", "ChatSnapshot", "ChatState"]
