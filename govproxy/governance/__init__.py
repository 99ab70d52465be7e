"""
OpenGov governance core

Provides:
  - Track / Conviction / VotingState / Operation / Batch   (tracks.py, types.py)
  - lock_period_length / format_blocks                      (locks.py)
  - build_delegate_plan / build_cleanup_plan                (planner.py)
  - VotingStateReader                                       (reader.py)
  - TransactionMonitor / SubmissionOutcome                  (lifecycle.py)
  - BatchScheduler / chunk_plan                             (scheduler.py)

reader, lifecycle and scheduler depend on the chain adapter contract and
are loaded on first access.
"""

from .tracks import ALL_TRACK_IDS, TRACKS, Track, track_label, track_name, validate_track_ids
from .types import (
    AccountBalance,
    Batch,
    Casting,
    ClassifiedLock,
    ClassLock,
    Conviction,
    Delegate,
    Delegating,
    NotVoting,
    Operation,
    PriorLock,
    RemoveVote,
    Undelegate,
    Unlock,
    VotingSnapshot,
    VotingState,
)
from .locks import format_blocks, lock_period_length, lock_period_table
from .planner import build_cleanup_plan, build_delegate_plan

_LAZY = {
    "VotingStateReader": "reader",
    "TxStatus": "lifecycle",
    "TransactionMonitor": "lifecycle",
    "TransactionSubmission": "lifecycle",
    "SubmissionSuccess": "lifecycle",
    "SubmissionFailure": "lifecycle",
    "SubmissionOutcome": "lifecycle",
    "BatchScheduler": "scheduler",
    "BatchResult": "scheduler",
    "PlanSummary": "scheduler",
    "chunk_plan": "scheduler",
    "summarize": "scheduler",
}


def __getattr__(name):
    module = _LAZY.get(name)
    if module is None:
        raise AttributeError(f"module 'govproxy.governance' has no attribute {name!r}")
    from importlib import import_module
    return getattr(import_module(f".{module}", __name__), name)


__all__ = [
    # Tables
    "ALL_TRACK_IDS",
    "TRACKS",
    "Track",
    "track_label",
    "track_name",
    "validate_track_ids",
    # State
    "AccountBalance",
    "Casting",
    "ClassifiedLock",
    "ClassLock",
    "Conviction",
    "Delegating",
    "NotVoting",
    "PriorLock",
    "VotingSnapshot",
    "VotingState",
    # Operations
    "Batch",
    "Delegate",
    "Operation",
    "RemoveVote",
    "Undelegate",
    "Unlock",
    # Planning
    "build_cleanup_plan",
    "build_delegate_plan",
    "format_blocks",
    "lock_period_length",
    "lock_period_table",
    *_LAZY,
]
