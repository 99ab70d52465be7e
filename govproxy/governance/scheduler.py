"""
Batch Scheduler

Splits a plan into contiguous chunks, wraps each chunk as
Proxy.proxy(real, Utility.batch_all(calls)) and submits the chunks one
after another. A chunk is all-or-nothing; the plan as a whole is not. A
failed chunk is recorded and the next one still runs. Failed chunks are
not retried.
"""

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, List, Optional, Sequence

from ..constants import DEFAULT_BLOCK_TIME_SECONDS
from ..exceptions import DispatchError, SubmissionError, ValidationError
from ..logger import get_logger
from .lifecycle import (
    SubmissionFailure,
    SubmissionOutcome,
    TransactionMonitor,
    TxStatus,
)
from .types import Batch, Operation

if TYPE_CHECKING:
    from ..chain.adapter import BaseChainAdapter

logger = get_logger(__name__)


def chunk_plan(plan: Sequence[Operation], max_per_batch: int) -> List[Batch]:
    """Contiguous chunks of at most *max_per_batch* operations, plan order preserved."""
    if isinstance(max_per_batch, bool) or not isinstance(max_per_batch, int) or max_per_batch < 1:
        raise ValidationError(f"max_per_batch must be a positive integer, got {max_per_batch!r}")
    chunks = [list(plan[i:i + max_per_batch]) for i in range(0, len(plan), max_per_batch)]
    return [
        Batch(index=i, total=len(chunks), operations=ops)
        for i, ops in enumerate(chunks)
    ]


@dataclass
class BatchResult:
    """Terminal outcome of one submitted batch."""
    batch: Batch
    outcome: SubmissionOutcome

    @property
    def succeeded(self) -> bool:
        return self.outcome.succeeded


@dataclass(frozen=True)
class PlanSummary:
    batches: int
    succeeded: int
    failed: int
    operations_applied: int
    operations_failed: int

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0


def summarize(results: Sequence[BatchResult]) -> PlanSummary:
    ok = [r for r in results if r.succeeded]
    bad = [r for r in results if not r.succeeded]
    return PlanSummary(
        batches=len(results),
        succeeded=len(ok),
        failed=len(bad),
        operations_applied=sum(len(r.batch) for r in ok),
        operations_failed=sum(len(r.batch) for r in bad),
    )


class BatchScheduler:
    """
    Sequential, failure-isolated submission of a plan.

    Args:
        adapter:            Connected chain adapter
        signer:             Proxy signing key (from adapter.create_signer)
        real_account:       Account the proxy acts for
        monitor:            Lifecycle monitor; default uses the standard deadline
        inter_batch_delay:  Seconds between batches; default one block period
        sleep:              Awaitable sleep, replaceable in tests
    """

    def __init__(
        self,
        adapter: "BaseChainAdapter",
        signer: Any,
        real_account: str,
        monitor: Optional[TransactionMonitor] = None,
        inter_batch_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.adapter = adapter
        self.signer = signer
        self.real_account = real_account
        self.monitor = monitor or TransactionMonitor()
        if inter_batch_delay is None:
            inter_batch_delay = getattr(adapter.network, "block_time_seconds", DEFAULT_BLOCK_TIME_SECONDS)
        if inter_batch_delay < 0:
            raise ValidationError(f"Inter-batch delay cannot be negative, got {inter_batch_delay}")
        self.inter_batch_delay = inter_batch_delay
        self._sleep = sleep

    async def wrap(self, batch: Batch) -> Any:
        """Build the proxied batch_all call for one chunk and record its encoding."""
        calls = [await self.adapter.build_call(op, self.real_account) for op in batch.operations]
        batch_call = await self.adapter.construct_atomic_batch(calls)
        proxy_call = await self.adapter.construct_proxy_call(self.real_account, batch_call)
        batch.call_data = self.adapter.encode_call(proxy_call)
        return proxy_call

    async def prepare(self, plan: Sequence[Operation], max_per_batch: int) -> List[Batch]:
        """Chunk and encode the plan without signing anything."""
        batches = chunk_plan(plan, max_per_batch)
        for batch in batches:
            await self.wrap(batch)
            logger.debug(f"{batch.label}: {len(batch)} call(s), {len(batch.call_data)} hex chars")
        return batches

    async def submit_plan(
        self,
        plan: Sequence[Operation],
        max_per_batch: int,
        dry_run: bool = False,
    ):
        """
        Submit every chunk of *plan* in order.

        Returns:
            List[BatchResult], one per chunk; or, when *dry_run*, the prepared
            List[Batch] without anything signed or broadcast.
        """
        if dry_run:
            batches = await self.prepare(plan, max_per_batch)
            logger.info(f"[DRY RUN] {len(batches)} batch(es) prepared, nothing submitted")
            return batches

        batches = chunk_plan(plan, max_per_batch)
        logger.info(f"Submitting {len(batches)} batch(es)")

        results: List[BatchResult] = []
        for batch in batches:
            logger.info(f"--- {batch.label} ({len(batch)} call(s)) ---")
            outcome = await self._submit(batch)
            results.append(BatchResult(batch=batch, outcome=outcome))

            if batch.index < batch.total - 1 and self.inter_batch_delay:
                logger.info(f"Waiting {self.inter_batch_delay:g}s before next batch")
                await self._sleep(self.inter_batch_delay)

        summary = summarize(results)
        logger.info(
            f"Plan finished: {summary.succeeded}/{summary.batches} batch(es) succeeded, "
            f"{summary.operations_failed} operation(s) failed"
        )
        return results

    async def _submit(self, batch: Batch) -> SubmissionOutcome:
        proxy_call = await self.wrap(batch)
        try:
            subscription = await self.adapter.sign_and_broadcast(proxy_call, self.signer)
        except SubmissionError as e:
            logger.error(f"{batch.label} rejected at broadcast: {e}")
            return SubmissionFailure(status=_broadcast_status(e), error=e)
        return await self.monitor.track(subscription)


# Terminal states a transport-level rejection can map to
_TRANSPORT_STATUSES = frozenset({
    TxStatus.DROPPED,
    TxStatus.INVALID,
    TxStatus.USURPED,
    TxStatus.TIMED_OUT,
})


def _broadcast_status(error: SubmissionError) -> TxStatus:
    """Status recorded for a batch rejected before a status stream existed."""
    if isinstance(error, DispatchError):
        return TxStatus.DISPATCH_FAILED
    try:
        status = TxStatus(str(getattr(error, "status", "")).strip().upper())
    except ValueError:
        return TxStatus.INVALID
    return status if status in _TRANSPORT_STATUSES else TxStatus.INVALID
