"""
Governance Data Types

Conviction levels, per-track voting state as decoded from chain storage,
prior locks and their classification, and the operations a plan is built
from. Balances are integers in minor units (planck) throughout.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple, Union

from ..exceptions import InvalidConviction
from .tracks import track_label, track_name


# ══════════════════════════════════════════════════════════════════════
#  CONVICTION
# ══════════════════════════════════════════════════════════════════════

class Conviction(str, Enum):
    """Vote conviction as named by the ConvictionVoting pallet."""
    NONE = "None"
    LOCKED_1X = "Locked1x"
    LOCKED_2X = "Locked2x"
    LOCKED_3X = "Locked3x"
    LOCKED_4X = "Locked4x"
    LOCKED_5X = "Locked5x"
    LOCKED_6X = "Locked6x"

    @classmethod
    def parse(cls, value: Union["Conviction", str]) -> "Conviction":
        """Exact-name lookup. Anything that is not an enumerated level raises InvalidConviction."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
        raise InvalidConviction(value)

    @property
    def vote_multiplier(self) -> Decimal:
        """Weight applied to the balance when counting votes."""
        return _VOTE_MULTIPLIERS[self]

    @property
    def lock_periods(self) -> int:
        """Number of base lock periods the balance stays locked after removal."""
        return _LOCK_PERIOD_MULTIPLIERS[self]

    def __str__(self) -> str:
        return self.value


# Linear vote weight
_VOTE_MULTIPLIERS: Dict[Conviction, Decimal] = {
    Conviction.NONE:      Decimal("0.1"),
    Conviction.LOCKED_1X: Decimal("1"),
    Conviction.LOCKED_2X: Decimal("2"),
    Conviction.LOCKED_3X: Decimal("3"),
    Conviction.LOCKED_4X: Decimal("4"),
    Conviction.LOCKED_5X: Decimal("5"),
    Conviction.LOCKED_6X: Decimal("6"),
}

# Lock duration doubles per level
_LOCK_PERIOD_MULTIPLIERS: Dict[Conviction, int] = {
    Conviction.NONE:      0,
    Conviction.LOCKED_1X: 1,
    Conviction.LOCKED_2X: 2,
    Conviction.LOCKED_3X: 4,
    Conviction.LOCKED_4X: 8,
    Conviction.LOCKED_5X: 16,
    Conviction.LOCKED_6X: 32,
}


# ══════════════════════════════════════════════════════════════════════
#  VOTING STATE
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PriorLock:
    """Balance lock left behind by a removed vote or delegation."""
    unlock_block: int
    amount: int

    @property
    def is_set(self) -> bool:
        return self.unlock_block > 0 and self.amount > 0

    def is_expired_at(self, current_block: int) -> bool:
        return current_block >= self.unlock_block

    def blocks_remaining_at(self, current_block: int) -> int:
        return max(0, self.unlock_block - current_block)


@dataclass(frozen=True)
class NotVoting:
    """Track has no storage entry."""


@dataclass(frozen=True)
class Delegating:
    target: str
    balance: int
    conviction: Conviction


@dataclass(frozen=True)
class Casting:
    votes: FrozenSet[int] = frozenset()
    prior_lock: Optional[PriorLock] = None


VotingState = Union[NotVoting, Delegating, Casting]


@dataclass(frozen=True)
class ClassifiedLock:
    """A prior lock judged against one snapshot block."""
    track: int
    unlock_block: int
    amount: int
    expired: bool
    blocks_remaining: int

    @classmethod
    def classify(cls, track: int, lock: PriorLock, current_block: int) -> "ClassifiedLock":
        return cls(
            track=track,
            unlock_block=lock.unlock_block,
            amount=lock.amount,
            expired=lock.is_expired_at(current_block),
            blocks_remaining=lock.blocks_remaining_at(current_block),
        )


@dataclass(frozen=True)
class ClassLock:
    """Aggregate lock per track from ClassLocksFor."""
    track: int
    amount: int


@dataclass(frozen=True)
class AccountBalance:
    free: int = 0
    reserved: int = 0
    frozen: int = 0


@dataclass
class VotingSnapshot:
    """
    Governance state of one account at one block height.

    Attributes:
        account:        SS58 address that was read
        current_block:  Height used for every lock classification
        states:         track → VotingState (tracks without storage are absent)
        prior_locks:    track → ClassifiedLock, casting tracks with a live prior record only
        class_locks:    ClassLocksFor entries, display only
    """
    account: str
    current_block: int
    states: Dict[int, VotingState] = field(default_factory=dict)
    prior_locks: Dict[int, ClassifiedLock] = field(default_factory=dict)
    class_locks: List[ClassLock] = field(default_factory=list)

    def state_for(self, track: int) -> VotingState:
        return self.states.get(track, NotVoting())

    def delegations(self) -> List[Tuple[int, Delegating]]:
        return sorted(
            (t, s) for t, s in self.states.items() if isinstance(s, Delegating)
        )

    def votes(self) -> List[Tuple[int, int]]:
        """(track, referendum index) pairs, sorted."""
        pairs = []
        for track, state in self.states.items():
            if isinstance(state, Casting):
                pairs.extend((track, ref) for ref in state.votes)
        return sorted(pairs)

    def expired_locks(self) -> List[ClassifiedLock]:
        return sorted(
            (l for l in self.prior_locks.values() if l.expired), key=lambda l: l.track
        )

    def pending_locks(self) -> List[ClassifiedLock]:
        return sorted(
            (l for l in self.prior_locks.values() if not l.expired), key=lambda l: l.track
        )


# ══════════════════════════════════════════════════════════════════════
#  OPERATIONS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Delegate:
    track: int
    target: str
    conviction: Conviction
    balance: int

    def describe(self) -> str:
        return (
            f"Delegate {track_label(self.track)} to {self.target[:16]}... "
            f"({self.balance} planck @ {self.conviction})"
        )


@dataclass(frozen=True)
class Undelegate:
    track: int

    def describe(self) -> str:
        return f"Undelegate from track {self.track} ({track_name(self.track)})"


@dataclass(frozen=True)
class RemoveVote:
    track: int
    ref_index: int

    def describe(self) -> str:
        return f"Remove vote on referendum #{self.ref_index} (track {self.track})"


@dataclass(frozen=True)
class Unlock:
    track: int

    def describe(self) -> str:
        return f"Unlock expired lock on track {self.track} ({track_name(self.track)})"


Operation = Union[Delegate, Undelegate, RemoveVote, Unlock]


@dataclass
class Batch:
    """
    One chunk of a plan, submitted as a single proxied batch_all.

    Attributes:
        index:      Zero-based position in the plan
        total:      Number of batches in the plan
        operations: Operations in plan order
        call_data:  Hex-encoded proxy call, set once the batch is prepared
    """
    index: int
    total: int
    operations: List[Operation]
    call_data: Optional[str] = None

    @property
    def label(self) -> str:
        return f"Batch {self.index + 1}/{self.total}"

    def __len__(self) -> int:
        return len(self.operations)
