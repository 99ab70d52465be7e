"""
Shared fixtures: an in-memory chain adapter and scripted status streams.
"""

import asyncio
import os
import sys
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Sequence

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from govproxy.chain.adapter import BaseChainAdapter, StatusEvent, StatusKind
from govproxy.exceptions import ChainQueryError, KeyfileError
from govproxy.governance.types import AccountBalance, ClassLock, Conviction, VotingState
from govproxy.networks import NetworkConfig, get_network


KUSAMA_ACCOUNT = "HqRcfhH8VXMhuCk5JXe28WMgDDuW9MVDVNofe1nnTcefVZn"
DELEGATE_TARGET = "JKupaR2H6CgVFjLNqWFwdGAgy9ZP6eV6AXWPHwXJqD1P3oP"
PROXY_ADDRESS = "FproxyAccountXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXX"


class ScriptedStream:
    """
    Async status stream. Items are StatusEvents, or numbers meaning
    "sleep this many seconds". With *hang* the stream never ends on its own.
    """

    def __init__(self, items: Sequence[Any] = (), hang: bool = False):
        self._items = list(items)
        self.hang = hang
        self.closed = False
        self.consumed = 0

    def __aiter__(self):
        return self

    async def __anext__(self) -> StatusEvent:
        while self._items:
            item = self._items.pop(0)
            if isinstance(item, (int, float)):
                await asyncio.sleep(item)
                continue
            self.consumed += 1
            return item
        if self.hang:
            await asyncio.Event().wait()
        raise StopAsyncIteration

    async def aclose(self) -> None:
        self.closed = True


def in_block(block_hash="0xaa", dispatch_error=None):
    return StatusEvent(StatusKind.IN_BLOCK, block_hash, dispatch_error)


def finalized(block_hash="0xaa", dispatch_error=None):
    return StatusEvent(StatusKind.FINALIZED, block_hash, dispatch_error)


def success_stream():
    return ScriptedStream([StatusEvent(StatusKind.READY), in_block(), finalized()])


class FakeChainAdapter(BaseChainAdapter):
    """
    In-memory BaseChainAdapter.

    Calls are plain tuples so tests can inspect exactly what would be sent.
    Each sign_and_broadcast consumes the next entry of *streams*; an
    exception entry is raised instead of returning a stream.
    """

    def __init__(
        self,
        network: Optional[NetworkConfig] = None,
        block: int = 1200,
        records: Optional[Dict[int, VotingState]] = None,
        class_locks: Optional[List[ClassLock]] = None,
        balance: Optional[AccountBalance] = None,
        streams: Optional[List[Any]] = None,
    ):
        super().__init__(network or get_network("kusama"))
        self.block = block
        self.records = dict(records or {})
        self.class_locks = list(class_locks or [])
        self.balance = balance or AccountBalance(free=10**15, reserved=0, frozen=0)
        self.streams = list(streams or [])
        self.fail_query: Optional[str] = None
        self.calls: List[str] = []
        self.broadcasts: List[Any] = []
        self.connects = 0
        self.disconnects = 0

    async def connect(self):
        self.connects += 1
        self._connected = True
        return self

    async def disconnect(self):
        self.disconnects += 1
        self._connected = False

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_query == name:
            raise ChainQueryError(f"{name} failed")

    async def chain_name(self):
        return self.network.display_name

    async def query_current_block_height(self):
        self._check("block")
        return self.block

    async def query_voting_records(self, account):
        self._check("voting")
        return dict(self.records)

    async def query_class_locks(self, account):
        self._check("class_locks")
        return list(self.class_locks)

    async def query_account_balance(self, account):
        self._check("balance")
        return self.balance

    async def construct_delegate_call(self, track, target, conviction: Conviction, balance):
        return ("delegate", track, target, conviction.value, balance)

    async def construct_undelegate_call(self, track):
        return ("undelegate", track)

    async def construct_remove_vote_call(self, track, ref_index):
        return ("remove_vote", track, ref_index)

    async def construct_unlock_call(self, track, target):
        return ("unlock", track, target)

    async def construct_atomic_batch(self, calls):
        return ("batch_all", tuple(calls))

    async def construct_proxy_call(self, real, call):
        return ("proxy", real, call)

    def encode_call(self, call):
        return "0x" + repr(call).encode().hex()

    def create_signer(self, mnemonic):
        if mnemonic == "bad":
            raise KeyfileError("Invalid proxy mnemonic")
        return SimpleNamespace(mnemonic=mnemonic, ss58_address=PROXY_ADDRESS)

    def signer_address(self, signer):
        return signer.ss58_address

    async def sign_and_broadcast(self, call, signer):
        self.broadcasts.append(call)
        item = self.streams.pop(0) if self.streams else success_stream()
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def kusama():
    return get_network("kusama")


@pytest.fixture
def polkadot():
    return get_network("polkadot")


@pytest.fixture
def fake_adapter():
    return FakeChainAdapter()
