"""
Conviction lock periods.

Informational projections only. Whether an existing lock has expired is
always decided from the unlock block reported by the chain.
"""

from typing import Iterable, List, Tuple, Union

from ..constants import DEFAULT_BLOCK_TIME_SECONDS
from ..networks import NetworkConfig
from .types import Conviction


def lock_period_length(conviction: Union[Conviction, str], network: NetworkConfig) -> int:
    """Days the balance stays locked after undelegating or removing a vote."""
    return Conviction.parse(conviction).lock_periods * network.base_lock_period_days


def lock_period_table(
    networks: Iterable[NetworkConfig],
) -> List[Tuple[Conviction, List[int]]]:
    """Rows of (conviction, [days per network]) in conviction order."""
    networks = list(networks)
    return [
        (conviction, [lock_period_length(conviction, n) for n in networks])
        for conviction in Conviction
    ]


def format_blocks(blocks: int, block_time_seconds: int = DEFAULT_BLOCK_TIME_SECONDS) -> str:
    """Approximate wall-clock duration of a block count, e.g. '~3d 4h'."""
    seconds = max(0, blocks) * block_time_seconds
    days = seconds // 86400
    hours = (seconds % 86400) // 3600

    if days > 0:
        return f"~{days}d {hours}h"
    if hours > 0:
        return f"~{hours}h"
    return f"~{seconds // 60}m"
