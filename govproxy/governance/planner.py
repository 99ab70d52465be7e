"""
Plan Builders

Turn a desired target state plus the observed VotingSnapshot into an
ordered list of operations. Ordering is fully deterministic:

  delegate plan:  one Delegate per requested track, in request order
  cleanup plan:   Undelegate (by track) → RemoveVote (by track, referendum)
                  → Unlock (by track, expired prior locks only)

An empty plan means there is nothing to do; it is not an error.
"""

from typing import Iterable, List, Optional, Union

from ..exceptions import ValidationError
from ..logger import get_logger
from .tracks import validate_track_ids
from .types import (
    Conviction,
    Delegate,
    Operation,
    RemoveVote,
    Undelegate,
    Unlock,
    VotingSnapshot,
)

logger = get_logger(__name__)


def build_delegate_plan(
    tracks: Optional[Iterable[int]],
    target: str,
    conviction: Union[Conviction, str],
    amount: int,
) -> List[Delegate]:
    """
    One Delegate per track.

    Args:
        tracks:      Track IDs, or None for every track
        target:      Account receiving the voting power
        conviction:  Conviction level or its name
        amount:      Balance per track, in minor units
    """
    conviction = Conviction.parse(conviction)
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"Balance must be a positive integer in minor units, got {amount!r}")
    if not target:
        raise ValidationError("Delegation target is required")
    track_ids = validate_track_ids(tracks)

    plan = [
        Delegate(track=track, target=target, conviction=conviction, balance=amount)
        for track in track_ids
    ]
    logger.debug(f"Delegate plan: {len(plan)} operation(s)")
    return plan


def build_cleanup_plan(snapshot: VotingSnapshot, unlock_only: bool = False) -> List[Operation]:
    """Operations that clear delegations and votes and release expired locks."""
    plan: List[Operation] = []

    if not unlock_only:
        # First: all undelegates
        plan.extend(Undelegate(track=track) for track, _ in snapshot.delegations())
        # Second: all vote removals
        plan.extend(
            RemoveVote(track=track, ref_index=ref) for track, ref in snapshot.votes()
        )

    # Third: unlock expired locks, once per track
    unlock_tracks = sorted({lock.track for lock in snapshot.prior_locks.values() if lock.expired})
    plan.extend(Unlock(track=track) for track in unlock_tracks)

    logger.debug(
        f"Cleanup plan (unlock_only={unlock_only}): {len(plan)} operation(s)"
    )
    return plan
