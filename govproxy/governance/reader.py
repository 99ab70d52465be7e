"""
Voting State Reader

Builds a VotingSnapshot of one account. The block height is read once,
before any track is classified, so every Expired/Pending judgement refers
to the same point in time. Any failed query aborts the whole read.
"""

from typing import TYPE_CHECKING, Dict

from ..exceptions import ChainQueryError
from ..logger import get_logger
from .types import Casting, ClassifiedLock, VotingSnapshot, VotingState

if TYPE_CHECKING:
    from ..chain.adapter import BaseChainAdapter

logger = get_logger(__name__)


class VotingStateReader:

    def __init__(self, adapter: "BaseChainAdapter"):
        self.adapter = adapter

    async def read(self, account: str) -> VotingSnapshot:
        logger.info(f"Querying voting state across all tracks for {account}")
        try:
            current_block = await self.adapter.query_current_block_height()
            records = await self.adapter.query_voting_records(account)
            class_locks = await self.adapter.query_class_locks(account)
        except (KeyError, TypeError, ValueError, IndexError) as e:
            raise ChainQueryError(f"Malformed voting state for {account}: {e}") from e

        snapshot = VotingSnapshot(account=account, current_block=current_block)
        snapshot.states = dict(sorted(records.items()))
        snapshot.prior_locks = self.classify_locks(snapshot.states, current_block)
        snapshot.class_locks = sorted(class_locks, key=lambda l: l.track)

        logger.info(
            f"Block #{current_block}: {len(snapshot.delegations())} delegation(s), "
            f"{len(snapshot.votes())} vote(s), {len(snapshot.expired_locks())} expired "
            f"and {len(snapshot.pending_locks())} pending lock(s)"
        )
        return snapshot

    @staticmethod
    def classify_locks(states: Dict[int, VotingState], current_block: int) -> Dict[int, ClassifiedLock]:
        """Live prior locks of casting tracks, judged at *current_block*."""
        locks = {}
        for track, state in states.items():
            if not isinstance(state, Casting) or state.prior_lock is None:
                continue
            if not state.prior_lock.is_set:
                continue
            locks[track] = ClassifiedLock.classify(track, state.prior_lock, current_block)
        return locks
