"""
Transaction Lifecycle Monitor

Drives one submitted batch from SUBMITTED to exactly one terminal state:

    SUBMITTED ──► IN_BLOCK ──► FINALIZED
        │            ├──────► DISPATCH_FAILED
        │            └──────► TIMED_OUT
        ├──► DROPPED / INVALID / USURPED
        ├──► DISPATCH_FAILED
        └──► TIMED_OUT

The deadline runs from the start of tracking and is cancelled by the first
terminal state. The status subscription is closed as soon as a terminal
state is reached, so nothing arriving later can revisit the outcome. A
block containing a failed dispatch is never a success, even once
finalized. There is no retry here.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

from ..chain.adapter import DispatchFailure, StatusEvent, StatusKind, StatusSubscription
from ..constants import DEFAULT_TX_TIMEOUT_SECONDS
from ..exceptions import DispatchError, LifecycleError, TransportError
from ..logger import get_logger

logger = get_logger(__name__)


class TxStatus(str, Enum):
    """Submission status."""
    SUBMITTED = "SUBMITTED"
    IN_BLOCK = "IN_BLOCK"
    FINALIZED = "FINALIZED"
    DROPPED = "DROPPED"
    INVALID = "INVALID"
    USURPED = "USURPED"
    TIMED_OUT = "TIMED_OUT"
    DISPATCH_FAILED = "DISPATCH_FAILED"


_VALID_TRANSITIONS: Dict[TxStatus, Set[TxStatus]] = {
    TxStatus.SUBMITTED: {TxStatus.IN_BLOCK, TxStatus.DROPPED, TxStatus.INVALID,
                         TxStatus.USURPED, TxStatus.TIMED_OUT, TxStatus.DISPATCH_FAILED},
    TxStatus.IN_BLOCK:  {TxStatus.FINALIZED, TxStatus.TIMED_OUT, TxStatus.DISPATCH_FAILED},
    # Terminal states
    TxStatus.FINALIZED:       set(),
    TxStatus.DROPPED:         set(),
    TxStatus.INVALID:         set(),
    TxStatus.USURPED:         set(),
    TxStatus.TIMED_OUT:       set(),
    TxStatus.DISPATCH_FAILED: set(),
}

_TERMINAL_BY_KIND = {
    StatusKind.DROPPED: TxStatus.DROPPED,
    StatusKind.INVALID: TxStatus.INVALID,
    StatusKind.USURPED: TxStatus.USURPED,
}


# ══════════════════════════════════════════════════════════════════════
#  OUTCOMES
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SubmissionSuccess:
    """Batch finalized without a failed dispatch."""
    block_hash: Optional[str]
    status: TxStatus = TxStatus.FINALIZED
    detail: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return True


@dataclass(frozen=True)
class SubmissionFailure:
    """Batch reached a failing terminal state."""
    status: TxStatus
    error: Union[DispatchError, TransportError]
    block_hash: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return False


SubmissionOutcome = Union[SubmissionSuccess, SubmissionFailure]


# ══════════════════════════════════════════════════════════════════════
#  SUBMISSION RECORD
# ══════════════════════════════════════════════════════════════════════

@dataclass
class TransactionSubmission:
    """
    Mutable status record of one broadcast extrinsic.

    Fields:
        status:          Current lifecycle state
        dispatch_error:  Decoded failure once DISPATCH_FAILED
        block_hash:      Last block the extrinsic was seen in
        detail:          Node-supplied reason for a transport failure, or why the
                         dispatch result of an included block could not be read
    """
    status: TxStatus = TxStatus.SUBMITTED
    dispatch_error: Optional[DispatchFailure] = None
    block_hash: Optional[str] = None
    detail: Optional[str] = None
    submitted_at: float = field(default_factory=time.monotonic)
    _history: List[Dict[str, Any]] = field(default_factory=list, repr=False)

    def __post_init__(self):
        self._history.append({"status": self.status.value, "at": self.submitted_at})

    @property
    def is_terminal(self) -> bool:
        return not _VALID_TRANSITIONS[self.status]

    @property
    def history(self) -> List[Dict[str, Any]]:
        return list(self._history)

    def transition(self, new_status: TxStatus) -> None:
        if new_status not in _VALID_TRANSITIONS[self.status]:
            raise LifecycleError(
                f"Illegal transition {self.status.value} → {new_status.value}"
            )
        self.status = new_status
        self._history.append({"status": new_status.value, "at": time.monotonic()})

    def apply(self, event: StatusEvent) -> None:
        """Fold one status notification into the record. Ignored once terminal."""
        if self.is_terminal:
            return

        if event.block_hash:
            self.block_hash = event.block_hash

        if event.dispatch_error is not None:
            self.dispatch_error = event.dispatch_error
            self.transition(TxStatus.DISPATCH_FAILED)
            return

        if event.kind == StatusKind.IN_BLOCK:
            self.detail = event.detail
            if self.status == TxStatus.SUBMITTED:
                self.transition(TxStatus.IN_BLOCK)
        elif event.kind == StatusKind.FINALIZED:
            self.detail = event.detail
            # Some nodes skip inBlock and report finalized directly
            if self.status == TxStatus.SUBMITTED:
                self.transition(TxStatus.IN_BLOCK)
            self.transition(TxStatus.FINALIZED)
        elif event.kind in _TERMINAL_BY_KIND:
            self.detail = event.detail
            self.transition(_TERMINAL_BY_KIND[event.kind])
        else:
            logger.debug(f"Status {event.kind.value} (no transition)")

    def time_out(self) -> None:
        if not self.is_terminal:
            self.transition(TxStatus.TIMED_OUT)

    def outcome(self) -> SubmissionOutcome:
        if not self.is_terminal:
            raise LifecycleError(f"Submission still {self.status.value}")
        if self.status == TxStatus.FINALIZED:
            return SubmissionSuccess(block_hash=self.block_hash, detail=self.detail)
        if self.status == TxStatus.DISPATCH_FAILED:
            return SubmissionFailure(
                status=self.status,
                error=self.dispatch_error.to_error(),
                block_hash=self.block_hash,
            )
        return SubmissionFailure(
            status=self.status,
            error=TransportError(self.status.value, _transport_message(self.status, self.detail)),
            block_hash=self.block_hash,
        )


def _transport_message(status: TxStatus, detail: Optional[str]) -> str:
    message = {
        TxStatus.DROPPED: "Transaction was dropped",
        TxStatus.INVALID: "Transaction is invalid",
        TxStatus.USURPED: "Transaction was usurped",
        TxStatus.TIMED_OUT: "Transaction timeout - no terminal status before the deadline",
    }[status]
    return f"{message}: {detail}" if detail else message


# ══════════════════════════════════════════════════════════════════════
#  MONITOR
# ══════════════════════════════════════════════════════════════════════

class TransactionMonitor:
    """
    Resolves a status subscription to one SubmissionOutcome under a deadline.
    """

    def __init__(self, timeout: float = DEFAULT_TX_TIMEOUT_SECONDS):
        if timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {timeout}")
        self.timeout = timeout

    async def track(self, subscription: StatusSubscription) -> SubmissionOutcome:
        submission = TransactionSubmission()
        try:
            await asyncio.wait_for(self._consume(subscription, submission), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"No terminal status after {self.timeout:.0f}s")
            submission.time_out()
        finally:
            await subscription.aclose()

        if not submission.is_terminal:
            # Stream ended without a verdict
            submission.detail = "status stream closed"
            submission.transition(TxStatus.DROPPED)

        outcome = submission.outcome()
        if outcome.succeeded and outcome.detail:
            logger.warning(f"FINALIZED in block {outcome.block_hash}, {outcome.detail}")
        elif outcome.succeeded:
            logger.info(f"FINALIZED in block {outcome.block_hash}")
        else:
            logger.error(f"{outcome.status.value}: {outcome.error}")
        return outcome

    async def _consume(self, subscription: StatusSubscription, submission: TransactionSubmission) -> None:
        async for event in subscription:
            previous = submission.status
            submission.apply(event)
            if submission.status != previous and submission.status == TxStatus.IN_BLOCK:
                logger.info(f"IN_BLOCK {submission.block_hash}")
            if submission.is_terminal:
                return
