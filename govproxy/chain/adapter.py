"""
Chain Client Adapter: the contract consumed by the governance core.

An adapter provides a uniform interface for:
  - Connecting to a chain node and closing the connection
  - Reading block height and ConvictionVoting storage
  - Constructing the known governance, batch and proxy calls
  - Signing, broadcasting and watching a call's status

Raw storage objects are decoded into the tagged VotingState variants here,
at the boundary. The core never inspects raw chain objects.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from ..exceptions import DispatchError, ValidationError
from ..governance.types import (
    AccountBalance,
    ClassLock,
    Conviction,
    Delegate,
    Operation,
    RemoveVote,
    Undelegate,
    Unlock,
    VotingState,
)
from ..logger import get_logger
from ..networks import NetworkConfig

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  STATUS EVENTS
# ══════════════════════════════════════════════════════════════════════

class StatusKind(str, Enum):
    """Transaction pool status notifications (author_submitAndWatchExtrinsic)."""
    READY = "ready"
    FUTURE = "future"
    BROADCAST = "broadcast"
    IN_BLOCK = "inBlock"
    RETRACTED = "retracted"
    FINALITY_TIMEOUT = "finalityTimeout"
    FINALIZED = "finalized"
    USURPED = "usurped"
    DROPPED = "dropped"
    INVALID = "invalid"


@dataclass(frozen=True)
class DispatchFailure:
    """Decoded module error of a failed extrinsic."""
    module: str
    name: str
    description: str = ""

    def to_error(self) -> DispatchError:
        return DispatchError(self.module, self.name, self.description)


@dataclass(frozen=True)
class StatusEvent:
    """
    One status notification for a watched extrinsic.

    Attributes:
        kind:            Pool status
        block_hash:      Block for inBlock / finalized / retracted / usurped
        dispatch_error:  Set when the block's events contain ExtrinsicFailed,
                         or when the node rejected dispatch outright
        detail:          Node-supplied reason, e.g. for a pool rejection
    """
    kind: StatusKind
    block_hash: Optional[str] = None
    dispatch_error: Optional[DispatchFailure] = None
    detail: Optional[str] = None


# Async iterator of StatusEvent; closed with ``aclose()`` when the caller is done
StatusSubscription = AsyncIterator[StatusEvent]


# ══════════════════════════════════════════════════════════════════════
#  BASE CHAIN ADAPTER  (Abstract)
# ══════════════════════════════════════════════════════════════════════

class BaseChainAdapter(ABC):
    """
    Abstract interface for interacting with a governance chain.

    Usable as an async context manager; the connection is closed on every
    exit path, including errors.
    """

    def __init__(self, network: NetworkConfig):
        self.network = network
        self._connected = False

    # ── Connection ──────────────────────────────────────────────────

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def endpoint(self) -> str:
        return self.network.rpc_endpoint

    @abstractmethod
    async def connect(self) -> "BaseChainAdapter":
        """
        Establish the connection to the chain node.

        Raises:
            ChainConnectionError: endpoint unreachable or handshake failed
        """
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection. Safe to call when not connected."""
        ...

    async def __aenter__(self) -> "BaseChainAdapter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    # ── State Reading ───────────────────────────────────────────────

    @abstractmethod
    async def chain_name(self) -> str:
        ...

    @abstractmethod
    async def query_current_block_height(self) -> int:
        ...

    @abstractmethod
    async def query_voting_records(self, account: str) -> Dict[int, VotingState]:
        """
        Every ConvictionVoting.VotingFor entry of *account*, keyed by track.

        Casting entries carry their raw prior record (possibly zeroed); the
        reader decides whether it is a live lock.

        Raises:
            ChainQueryError: on any failed query
        """
        ...

    @abstractmethod
    async def query_class_locks(self, account: str) -> List[ClassLock]:
        ...

    @abstractmethod
    async def query_account_balance(self, account: str) -> AccountBalance:
        ...

    # ── Call Construction ───────────────────────────────────────────

    @abstractmethod
    async def construct_delegate_call(
        self, track: int, target: str, conviction: Conviction, balance: int,
    ) -> Any:
        ...

    @abstractmethod
    async def construct_undelegate_call(self, track: int) -> Any:
        ...

    @abstractmethod
    async def construct_remove_vote_call(self, track: int, ref_index: int) -> Any:
        ...

    @abstractmethod
    async def construct_unlock_call(self, track: int, target: str) -> Any:
        ...

    @abstractmethod
    async def construct_atomic_batch(self, calls: Sequence[Any]) -> Any:
        """All-or-nothing batch (Utility.batch_all)."""
        ...

    @abstractmethod
    async def construct_proxy_call(self, real: str, call: Any) -> Any:
        """Dispatch *call* on behalf of *real* (Proxy.proxy, any proxy type)."""
        ...

    @abstractmethod
    def encode_call(self, call: Any) -> str:
        """Hex-encoded call data."""
        ...

    async def build_call(self, operation: Operation, account: str) -> Any:
        """Construct the chain call for one plan operation."""
        if isinstance(operation, Delegate):
            return await self.construct_delegate_call(
                operation.track, operation.target, operation.conviction, operation.balance,
            )
        elif isinstance(operation, Undelegate):
            return await self.construct_undelegate_call(operation.track)
        elif isinstance(operation, RemoveVote):
            return await self.construct_remove_vote_call(operation.track, operation.ref_index)
        elif isinstance(operation, Unlock):
            return await self.construct_unlock_call(operation.track, account)
        raise ValidationError(f"Unsupported operation: {operation!r}")

    # ── Signing & Submission ────────────────────────────────────────

    @abstractmethod
    def create_signer(self, mnemonic: str) -> Any:
        """
        Build the signing key from a mnemonic.

        Raises:
            KeyfileError: mnemonic rejected
        """
        ...

    @abstractmethod
    def signer_address(self, signer: Any) -> str:
        ...

    @abstractmethod
    async def sign_and_broadcast(self, call: Any, signer: Any) -> StatusSubscription:
        """
        Sign *call* with the next available nonce, broadcast it and watch it.

        Raises:
            TransportError: the node refused the extrinsic before a watch existed
        """
        ...
