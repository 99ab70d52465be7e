"""
Batch chunking and sequential, failure-isolated submission.
"""

from unittest.mock import AsyncMock

import pytest

from govproxy.chain.adapter import DispatchFailure, StatusEvent, StatusKind
from govproxy.exceptions import DispatchError, TransportError, ValidationError
from govproxy.governance.lifecycle import TransactionMonitor, TxStatus
from govproxy.governance.planner import build_delegate_plan
from govproxy.governance.scheduler import BatchScheduler, chunk_plan, summarize
from govproxy.governance.types import Batch, RemoveVote, Undelegate, Unlock

from conftest import (
    DELEGATE_TARGET,
    KUSAMA_ACCOUNT,
    FakeChainAdapter,
    ScriptedStream,
    finalized,
    in_block,
    success_stream,
)

KSM = 10**12


def _delegate_plan():
    return build_delegate_plan(None, DELEGATE_TARGET, "Locked6x", 650 * KSM)


def _scheduler(adapter, sleep=None, timeout=5, delay=None):
    return BatchScheduler(
        adapter,
        signer=adapter.create_signer("seed words"),
        real_account=KUSAMA_ACCOUNT,
        monitor=TransactionMonitor(timeout=timeout),
        inter_batch_delay=delay,
        sleep=sleep or AsyncMock(),
    )


class TestChunkPlan:

    def test_sixteen_delegates_make_four_batches_of_four(self):
        batches = chunk_plan(_delegate_plan(), 4)
        assert len(batches) == 4
        assert [len(b) for b in batches] == [4, 4, 4, 4]

    @pytest.mark.parametrize("size,expected", [(1, 1), (4, 1), (5, 2), (9, 3), (16, 4), (17, 5)])
    def test_batch_count_is_ceiling(self, size, expected):
        plan = [Unlock(t) for t in range(size)]
        batches = chunk_plan(plan, 4)
        assert len(batches) == expected
        assert all(len(b) > 0 for b in batches)

    def test_concatenation_preserves_order(self):
        plan = [Undelegate(1), Undelegate(2), RemoveVote(0, 3), RemoveVote(0, 9), Unlock(0), Unlock(1)]
        batches = chunk_plan(plan, 4)
        assert [op for b in batches for op in b.operations] == plan
        assert [b.label for b in batches] == ["Batch 1/2", "Batch 2/2"]

    def test_empty_plan(self):
        assert chunk_plan([], 4) == []

    @pytest.mark.parametrize("size", [0, -1, True, 2.5])
    def test_invalid_batch_size(self, size):
        with pytest.raises(ValidationError):
            chunk_plan([Unlock(0)], size)


class TestProxyEnvelope:

    @pytest.mark.asyncio
    async def test_batch_all_inside_proxy(self):
        adapter = FakeChainAdapter()
        batch = Batch(0, 1, [Undelegate(2), Unlock(0)])
        call = await _scheduler(adapter).wrap(batch)

        assert call == (
            "proxy",
            KUSAMA_ACCOUNT,
            ("batch_all", (("undelegate", 2), ("unlock", 0, KUSAMA_ACCOUNT))),
        )
        assert batch.call_data == adapter.encode_call(call)


class TestSubmitPlan:

    @pytest.mark.asyncio
    async def test_all_batches_succeed(self):
        adapter = FakeChainAdapter()
        sleep = AsyncMock()
        results = await _scheduler(adapter, sleep=sleep).submit_plan(_delegate_plan(), 4)

        assert len(results) == 4
        assert all(r.succeeded for r in results)
        assert len(adapter.broadcasts) == 4
        summary = summarize(results)
        assert summary.all_succeeded
        assert summary.operations_applied == 16

    @pytest.mark.asyncio
    async def test_delay_between_batches_not_after_last(self):
        adapter = FakeChainAdapter()
        sleep = AsyncMock()
        await _scheduler(adapter, sleep=sleep).submit_plan(_delegate_plan(), 4)
        assert sleep.await_count == 3
        sleep.assert_awaited_with(6)

    @pytest.mark.asyncio
    async def test_custom_delay(self):
        sleep = AsyncMock()
        await _scheduler(FakeChainAdapter(), sleep=sleep, delay=1.5).submit_plan(_delegate_plan(), 8)
        sleep.assert_awaited_once_with(1.5)

    @pytest.mark.asyncio
    async def test_zero_delay_skips_sleep(self):
        sleep = AsyncMock()
        await _scheduler(FakeChainAdapter(), sleep=sleep, delay=0).submit_plan(_delegate_plan(), 4)
        sleep.assert_not_awaited()

    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError):
            _scheduler(FakeChainAdapter(), delay=-1)

    @pytest.mark.asyncio
    async def test_failed_batch_does_not_stop_the_plan(self):
        failure = DispatchFailure("ConvictionVoting", "AlreadyDelegating")
        adapter = FakeChainAdapter(streams=[
            success_stream(),
            ScriptedStream([in_block("0xbad", failure), finalized("0xbad")]),
            ScriptedStream([StatusEvent(StatusKind.DROPPED)]),
            success_stream(),
        ])
        results = await _scheduler(adapter).submit_plan(_delegate_plan(), 4)

        assert [r.succeeded for r in results] == [True, False, False, True]
        assert results[1].outcome.status == TxStatus.DISPATCH_FAILED
        assert isinstance(results[1].outcome.error, DispatchError)
        assert results[2].outcome.status == TxStatus.DROPPED
        summary = summarize(results)
        assert (summary.succeeded, summary.failed) == (2, 2)
        assert summary.operations_failed == 8

    @pytest.mark.asyncio
    async def test_broadcast_rejection_is_recorded(self):
        adapter = FakeChainAdapter(streams=[TransportError("INVALID", "1010: bad signature"), success_stream()])
        results = await _scheduler(adapter).submit_plan(_delegate_plan()[:8], 4)
        assert results[0].outcome.status == TxStatus.INVALID
        assert results[1].succeeded

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,expected", [
        ("invalid", TxStatus.INVALID),
        ("Dropped", TxStatus.DROPPED),
        ("USURPED", TxStatus.USURPED),
        ("rate-limited", TxStatus.INVALID),
        ("FINALIZED", TxStatus.INVALID),
    ])
    async def test_rejection_status_is_normalised(self, status, expected):
        adapter = FakeChainAdapter(streams=[TransportError(status, "rejected by node"), success_stream()])
        results = await _scheduler(adapter).submit_plan(_delegate_plan()[:8], 4)

        assert results[0].outcome.status == expected
        assert results[0].outcome.error.status == status
        assert results[1].succeeded

    @pytest.mark.asyncio
    async def test_timed_out_batch_then_next(self):
        adapter = FakeChainAdapter(streams=[ScriptedStream([in_block()], hang=True), success_stream()])
        results = await _scheduler(adapter, timeout=0.05).submit_plan(_delegate_plan()[:8], 4)
        assert results[0].outcome.status == TxStatus.TIMED_OUT
        assert results[1].succeeded

    @pytest.mark.asyncio
    async def test_sequential_submission(self):
        """The next batch is only broadcast after the previous one is terminal."""
        order = []
        adapter = FakeChainAdapter()

        class Recording(ScriptedStream):
            def __init__(self, name):
                super().__init__([0.01, in_block(), finalized()])
                self.name = name

            async def aclose(self):
                order.append(f"closed {self.name}")
                await super().aclose()

        adapter.streams = [Recording("first"), Recording("second")]
        original = adapter.sign_and_broadcast

        async def recording_broadcast(call, signer):
            order.append(f"broadcast {len(adapter.broadcasts) + 1}")
            return await original(call, signer)

        adapter.sign_and_broadcast = recording_broadcast
        await _scheduler(adapter).submit_plan(_delegate_plan()[:8], 4)
        assert order == ["broadcast 1", "closed first", "broadcast 2", "closed second"]

    @pytest.mark.asyncio
    async def test_dry_run_never_broadcasts(self):
        adapter = FakeChainAdapter()
        sleep = AsyncMock()
        batches = await _scheduler(adapter, sleep=sleep).submit_plan(_delegate_plan(), 4, dry_run=True)

        assert len(batches) == 4
        assert all(isinstance(b, Batch) for b in batches)
        assert all(b.call_data.startswith("0x") for b in batches)
        assert adapter.broadcasts == []
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dry_run_without_signer(self):
        adapter = FakeChainAdapter()
        scheduler = BatchScheduler(adapter, None, KUSAMA_ACCOUNT)
        batches = await scheduler.prepare(_delegate_plan(), 4)
        assert len(batches) == 4

    def test_default_delay_is_block_time(self, polkadot):
        scheduler = BatchScheduler(FakeChainAdapter(network=polkadot), None, KUSAMA_ACCOUNT)
        assert scheduler.inter_batch_delay == polkadot.block_time_seconds == 6
