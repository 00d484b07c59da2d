"""Chat orchestration: transcript, reconciliation and controls."""

from .controller import ChatController, ChatSnapshot, ChatState
from .reconciler import FragmentReconciler, ReconcileOutcome
from .transcript import TranscriptStore

__all__ = [
    "ChatController",
    "ChatSnapshot",
    "ChatState",
    "FragmentReconciler",
    "ReconcileOutcome",
    "TranscriptStore",
]
