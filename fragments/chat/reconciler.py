"""Turn completed fragments into sandbox runs and assistant messages."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from ..auth import SessionGate, resolve_user_id
from ..messages import Message, assistant_content
from ..sandbox import SandboxExecutionError, SandboxExecutor
from ..schema import ExecutionResult, Fragment
from ..telemetry import log_event
from ..util.hashing import fingerprint
from .execution import CycleHandle
from .transcript import TranscriptStore

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, Enum):
    """What :meth:`FragmentReconciler.on_complete` did with a fragment."""

    EMPTY = "empty"
    STALE = "stale"
    DUPLICATE = "duplicate"
    REUSED = "reused"
    EXECUTED = "executed"
    EXECUTION_FAILED = "execution_failed"


def fragment_fingerprint(fragment: Fragment) -> str:
    """Return the canonical digest used to recognise repeated completions."""
    return fingerprint(fragment.to_payload())


class FragmentReconciler:
    """Bridge stream completion to sandbox execution and the transcript.

    A fragment value runs in the sandbox once: the digest of the last
    processed fragment is recorded before the sandbox call, so a repeated
    completion signal arriving while the call is pending is absorbed too. A
    later cycle reuses a settled run, successful or not, and runs the fragment
    again only when the earlier run was discarded as stale.
    ``is_current`` is consulted before and after the sandbox call; a cycle
    that was superseded in between leaves every piece of shared state alone.
    """

    def __init__(
        self,
        transcript: TranscriptStore,
        executor: SandboxExecutor,
        *,
        is_current: Callable[[CycleHandle], bool],
        session_gate: SessionGate | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._transcript = transcript
        self._executor = executor
        self._is_current = is_current
        self._session_gate = session_gate
        self._on_change = on_change
        self._last_fingerprint: str | None = None
        self._last_cycle_id: int | None = None
        self._result_fingerprint: str | None = None
        self._settled_fingerprint: str | None = None
        self._result: ExecutionResult | None = None
        self._last_error: SandboxExecutionError | None = None
        self._preview_loading = False

    # ------------------------------------------------------------------
    @property
    def result(self) -> ExecutionResult | None:
        return self._result

    @property
    def last_error(self) -> SandboxExecutionError | None:
        return self._last_error

    @property
    def is_preview_loading(self) -> bool:
        return self._preview_loading

    @property
    def last_fingerprint(self) -> str | None:
        return self._last_fingerprint

    def set_result(self, result: ExecutionResult | None) -> None:
        """Show *result* in the preview without running anything."""
        self._result = result
        self._result_fingerprint = None
        self._changed()

    def reset(self) -> None:
        """Forget the processed fragment, its result and any pending preview."""
        self._last_fingerprint = None
        self._last_cycle_id = None
        self._result_fingerprint = None
        self._settled_fingerprint = None
        self._result = None
        self._last_error = None
        self._preview_loading = False
        self._changed()

    def cancel_preview(self) -> None:
        if self._preview_loading:
            self._preview_loading = False
            self._changed()

    # ------------------------------------------------------------------
    async def on_complete(
        self, cycle: CycleHandle, fragment: Fragment | None
    ) -> ReconcileOutcome:
        if fragment is None or fragment.is_empty():
            return ReconcileOutcome.EMPTY
        if not self._is_current(cycle):
            self._log_stale(cycle, "before_execute")
            return ReconcileOutcome.STALE

        digest = fragment_fingerprint(fragment)
        if digest == self._last_fingerprint:
            if cycle.cycle_id == self._last_cycle_id:
                log_event(
                    "FRAGMENT_DUPLICATE",
                    {"cycle_id": cycle.cycle_id, "fingerprint": digest[:12]},
                )
                return ReconcileOutcome.DUPLICATE
            if self._settled_fingerprint == digest:
                # Same content answered a new submission; its run already
                # settled.
                self._last_cycle_id = cycle.cycle_id
                reused = self._result if self._result_fingerprint == digest else None
                self._upsert_assistant(cycle, fragment, reused)
                return ReconcileOutcome.REUSED
            # The earlier run was discarded unseen; run it for this cycle.

        self._last_fingerprint = digest
        self._last_cycle_id = cycle.cycle_id
        self._preview_loading = True
        self._changed()

        result: ExecutionResult | None = None
        failure: SandboxExecutionError | None = None
        try:
            result = await self._executor.execute(
                fragment, resolve_user_id(self._session_gate)
            )
        except SandboxExecutionError as exc:
            failure = exc
            logger.warning("Sandbox execution failed: %s", exc.message)
        except Exception as exc:
            logger.exception("Sandbox executor raised unexpectedly")
            failure = SandboxExecutionError(str(exc) or type(exc).__name__)

        owns_preview = (
            self._last_fingerprint == digest
            and self._last_cycle_id == cycle.cycle_id
        )
        if owns_preview:
            self._preview_loading = False
        if not owns_preview or not self._is_current(cycle):
            self._log_stale(cycle, "after_execute")
            self._changed()
            return ReconcileOutcome.STALE

        self._settled_fingerprint = digest
        if result is not None:
            self._result = result
            self._result_fingerprint = digest
            self._last_error = None
        else:
            self._last_error = failure
        self._changed()
        self._upsert_assistant(cycle, fragment, result)
        if result is None:
            return ReconcileOutcome.EXECUTION_FAILED
        return ReconcileOutcome.EXECUTED

    # ------------------------------------------------------------------
    def _upsert_assistant(
        self,
        cycle: CycleHandle,
        fragment: Fragment,
        result: ExecutionResult | None,
    ) -> None:
        last = self._transcript.last_message()
        if (
            last is not None
            and last.role == "assistant"
            and last.cycle_id == cycle.cycle_id
        ):
            self._transcript.replace_at(
                len(self._transcript) - 1,
                content=assistant_content(fragment),
                fragment=fragment,
                result=result if result is not None else last.result,
            )
            return
        self._transcript.append(
            Message.assistant(fragment, result=result, cycle_id=cycle.cycle_id)
        )

    def _log_stale(self, cycle: CycleHandle, stage: str) -> None:
        log_event("FRAGMENT_STALE", {"cycle_id": cycle.cycle_id, "stage": stage})

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()


__all__ = ["FragmentReconciler", "ReconcileOutcome", "fragment_fingerprint"]
