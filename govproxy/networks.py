"""
Supported networks.

Static, read-only table of the Asset Hub chains that host OpenGov after the
relay-chain migration. Entries are frozen; an endpoint override yields a
new NetworkConfig and leaves the table untouched.
"""

from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Mapping, Optional

from .constants import DEFAULT_BLOCK_TIME_SECONDS
from .exceptions import ValidationError


@dataclass(frozen=True)
class NetworkConfig:
    """
    Per-network constants.

    Attributes:
        name:                     Table key ('kusama', 'polkadot')
        display_name:             Human-readable chain name
        rpc_endpoint:             Websocket RPC endpoint
        decimals:                 Minor units per whole token (10**decimals)
        symbol:                   Token symbol
        ss58_prefix:              Address format
        max_operations_per_batch: Calls per batch_all that fit in block weight with the proxy wrapper
        base_lock_period_days:    Lock period of Locked1x, in days
        block_time_seconds:       Target block period
    """
    name: str
    display_name: str
    rpc_endpoint: str
    decimals: int
    symbol: str
    ss58_prefix: int
    max_operations_per_batch: int
    base_lock_period_days: int
    block_time_seconds: int = DEFAULT_BLOCK_TIME_SECONDS

    def with_endpoint(self, endpoint: Optional[str]) -> "NetworkConfig":
        """Copy of this config pointing at another RPC endpoint."""
        if not endpoint:
            return self
        return replace(self, rpc_endpoint=endpoint)


NETWORKS: Mapping[str, NetworkConfig] = MappingProxyType({
    "kusama": NetworkConfig(
        name="kusama",
        display_name="Kusama Asset Hub",
        rpc_endpoint="wss://sys.ibp.network:443/asset-hub-kusama",
        decimals=12,
        symbol="KSM",
        ss58_prefix=2,
        max_operations_per_batch=4,
        base_lock_period_days=7,
    ),
    "polkadot": NetworkConfig(
        name="polkadot",
        display_name="Polkadot Asset Hub",
        rpc_endpoint="wss://sys.ibp.network:443/asset-hub-polkadot",
        decimals=10,
        symbol="DOT",
        ss58_prefix=0,
        max_operations_per_batch=4,
        base_lock_period_days=28,
    ),
})


def get_network(name: Optional[str]) -> NetworkConfig:
    """Look up a network by name (case-insensitive)."""
    key = (name or "").strip().lower()
    network = NETWORKS.get(key)
    if network is None:
        raise ValidationError(
            f"Invalid network: {name!r}. Use one of: {', '.join(NETWORKS)}"
        )
    return network
