"""
Substrate chain adapter built on substrate-interface.

substrate-interface is synchronous; every call runs in a worker thread via
``asyncio.to_thread`` so the event loop stays responsive for the status
deadline. Only one worker touches the websocket at a time.

Extrinsic watching uses ``author_submitAndWatchExtrinsic`` through
``rpc_request(..., result_handler=...)``. The handler runs in the worker
thread and hands decoded StatusEvents to the event loop through an
asyncio.Queue.
"""

import asyncio
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence

from substrateinterface import ExtrinsicReceipt, Keypair, SubstrateInterface
from substrateinterface.exceptions import ExtrinsicNotFound, SubstrateRequestException
from websocket import WebSocketException

from ..exceptions import (
    ChainConnectionError,
    ChainError,
    ChainQueryError,
    KeyfileError,
    ValidationError,
)
from ..governance.types import (
    AccountBalance,
    Casting,
    ClassLock,
    Conviction,
    Delegating,
    NotVoting,
    PriorLock,
    VotingState,
)
from ..logger import get_logger
from ..networks import NetworkConfig
from .adapter import (
    BaseChainAdapter,
    DispatchFailure,
    StatusEvent,
    StatusKind,
    StatusSubscription,
)

logger = get_logger(__name__)

# Errors raised by the websocket transport underneath substrate-interface
_TRANSPORT_ERRORS = (ConnectionError, OSError, WebSocketException)

# Errors reading or decoding the events of an included extrinsic
_RECEIPT_ERRORS = (SubstrateRequestException, ExtrinsicNotFound, KeyError, TypeError, ValueError)

# Statuses after which the node sends nothing more for the watch
_FINAL_KINDS = frozenset({
    StatusKind.FINALIZED,
    StatusKind.USURPED,
    StatusKind.DROPPED,
    StatusKind.INVALID,
    StatusKind.FINALITY_TIMEOUT,
})

_END = object()

# Seconds to let a worker finish on its own before the socket is reset
_WORKER_GRACE_SECONDS = 2.0


# ══════════════════════════════════════════════════════════════════════
#  STORAGE DECODING
# ══════════════════════════════════════════════════════════════════════

def decode_voting(value: Any) -> VotingState:
    """Decode a ConvictionVoting.VotingFor value into a VotingState."""
    if not value:
        return NotVoting()

    if "Delegating" in value:
        delegating = value["Delegating"]
        try:
            conviction = Conviction.parse(delegating["conviction"])
        except ValidationError as e:
            raise ChainQueryError(f"Undecodable conviction in VotingFor: {e}") from e
        return Delegating(
            target=str(delegating["target"]),
            balance=int(delegating["balance"]),
            conviction=conviction,
        )

    if "Casting" in value:
        casting = value["Casting"]
        votes = frozenset(int(entry[0]) for entry in casting.get("votes") or [])
        return Casting(votes=votes, prior_lock=decode_prior(casting.get("prior")))

    raise ChainQueryError(f"Unrecognised VotingFor entry: {value!r}")


def decode_prior(prior: Any) -> Optional[PriorLock]:
    """PriorLock is a (BlockNumber, Balance) tuple struct."""
    if not prior:
        return None
    if isinstance(prior, dict):
        prior = list(prior.values())
    unlock_block, amount = prior[0], prior[1]
    return PriorLock(unlock_block=int(unlock_block), amount=int(amount))


def decode_status(result: Any) -> Optional[StatusEvent]:
    """
    Decode one author_extrinsicUpdate payload.

    Plain statuses arrive as strings ("ready"), the rest as single-key
    objects ({"inBlock": "0x.."}). Unknown statuses decode to None.
    """
    if isinstance(result, str):
        key, value = result, None
    elif isinstance(result, dict) and len(result) == 1:
        (key, value), = result.items()
    else:
        return None

    try:
        kind = StatusKind(key)
    except ValueError:
        return None

    block_hash = value if isinstance(value, str) else None
    return StatusEvent(kind=kind, block_hash=block_hash)


class SubstrateChainAdapter(BaseChainAdapter):
    """
    BaseChainAdapter over a SubstrateInterface websocket connection.

    Args:
        network:            Network constants (endpoint, ss58 prefix)
        substrate_factory:  Callable building the SubstrateInterface, replaceable in tests
    """

    def __init__(
        self,
        network: NetworkConfig,
        substrate_factory: Callable[..., SubstrateInterface] = SubstrateInterface,
    ):
        super().__init__(network)
        self._factory = substrate_factory
        self._substrate: Optional[SubstrateInterface] = None

    # ── Connection ──────────────────────────────────────────────────

    async def connect(self) -> "SubstrateChainAdapter":
        if self._connected:
            return self
        logger.info(f"Connecting to {self.network.display_name} at {self.endpoint}")
        try:
            self._substrate = await asyncio.to_thread(
                self._factory,
                url=self.endpoint,
                ss58_format=self.network.ss58_prefix,
            )
        except (SubstrateRequestException, *_TRANSPORT_ERRORS) as e:
            raise ChainConnectionError(f"Could not connect to {self.endpoint}: {e}") from e
        self._connected = True
        return self

    async def disconnect(self) -> None:
        if self._substrate is None:
            return
        substrate, self._substrate = self._substrate, None
        self._connected = False
        try:
            await asyncio.to_thread(substrate.close)
        except _TRANSPORT_ERRORS as e:
            logger.warning(f"Error while closing connection: {e}")
        logger.info("Disconnected")

    def _require(self) -> SubstrateInterface:
        if self._substrate is None:
            raise ChainConnectionError("Not connected")
        return self._substrate

    async def _run(self, fn: Callable, *args, **kwargs) -> Any:
        """Run a blocking substrate-interface call, mapping its errors to ChainQueryError."""
        self._require()
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except SubstrateRequestException as e:
            raise ChainQueryError(str(e)) from e
        except _TRANSPORT_ERRORS as e:
            raise ChainConnectionError(f"Connection lost: {e}") from e

    # ── State Reading ───────────────────────────────────────────────

    async def chain_name(self) -> str:
        response = await self._run(self._require().rpc_request, "system_chain", [])
        return str(response.get("result", ""))

    async def query_current_block_height(self) -> int:
        substrate = self._require()

        def _height() -> int:
            return int(substrate.get_block_number(substrate.get_chain_head()))

        return await self._run(_height)

    async def query_voting_records(self, account: str) -> Dict[int, VotingState]:
        substrate = self._require()

        def _records() -> Dict[int, VotingState]:
            # query_map pages lazily, so iterate inside the worker
            entries = substrate.query_map(
                module="ConvictionVoting",
                storage_function="VotingFor",
                params=[account],
            )
            return {int(key.value): decode_voting(voting.value) for key, voting in entries}

        return await self._run(_records)

    async def query_class_locks(self, account: str) -> List[ClassLock]:
        result = await self._run(
            self._require().query,
            module="ConvictionVoting",
            storage_function="ClassLocksFor",
            params=[account],
        )
        return [
            ClassLock(track=int(track), amount=int(amount))
            for track, amount in (result.value or [])
        ]

    async def query_account_balance(self, account: str) -> AccountBalance:
        result = await self._run(
            self._require().query,
            module="System",
            storage_function="Account",
            params=[account],
        )
        data = (result.value or {}).get("data", {})
        return AccountBalance(
            free=int(data.get("free", 0)),
            reserved=int(data.get("reserved", 0)),
            frozen=int(data.get("frozen", data.get("misc_frozen", 0))),
        )

    # ── Call Construction ───────────────────────────────────────────

    async def _compose(self, module: str, function: str, params: Dict[str, Any]) -> Any:
        return await self._run(
            self._require().compose_call,
            call_module=module,
            call_function=function,
            call_params=params,
        )

    async def construct_delegate_call(
        self, track: int, target: str, conviction: Conviction, balance: int,
    ) -> Any:
        return await self._compose("ConvictionVoting", "delegate", {
            "class": track,
            "to": target,
            "conviction": conviction.value,
            "balance": balance,
        })

    async def construct_undelegate_call(self, track: int) -> Any:
        return await self._compose("ConvictionVoting", "undelegate", {"class": track})

    async def construct_remove_vote_call(self, track: int, ref_index: int) -> Any:
        return await self._compose("ConvictionVoting", "remove_vote", {
            "class": track,
            "index": ref_index,
        })

    async def construct_unlock_call(self, track: int, target: str) -> Any:
        return await self._compose("ConvictionVoting", "unlock", {
            "class": track,
            "target": target,
        })

    async def construct_atomic_batch(self, calls: Sequence[Any]) -> Any:
        return await self._compose("Utility", "batch_all", {"calls": list(calls)})

    async def construct_proxy_call(self, real: str, call: Any) -> Any:
        return await self._compose("Proxy", "proxy", {
            "real": real,
            "force_proxy_type": None,
            "call": call,
        })

    def encode_call(self, call: Any) -> str:
        return call.data.to_hex()

    # ── Signing & Submission ────────────────────────────────────────

    def create_signer(self, mnemonic: str) -> Keypair:
        try:
            return Keypair.create_from_mnemonic(mnemonic, ss58_format=self.network.ss58_prefix)
        except (ValueError, TypeError) as e:
            raise KeyfileError(f"Invalid proxy mnemonic: {e}") from e

    def signer_address(self, signer: Keypair) -> str:
        return signer.ss58_address

    async def sign_and_broadcast(self, call: Any, signer: Keypair) -> StatusSubscription:
        # nonce=None asks the node for the next available index
        extrinsic = await self._run(
            self._require().create_signed_extrinsic, call=call, keypair=signer,
        )
        extrinsic_hash = f"0x{extrinsic.extrinsic_hash.hex()}"
        logger.info(f"Broadcasting extrinsic {extrinsic_hash}")
        return self._watch(extrinsic, extrinsic_hash)

    async def _watch(self, extrinsic: Any, extrinsic_hash: str) -> StatusSubscription:
        substrate = self._require()
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        stop = threading.Event()
        notified = threading.Event()

        def publish(item: Any) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, item)

        def handler(message: Dict[str, Any], update_nr: int, subscription_id: str) -> Any:
            if stop.is_set():
                return message
            event = decode_status(message["params"]["result"])
            if event is None:
                logger.debug(f"Ignoring unknown status: {message['params']['result']!r}")
                return None
            notified.set()
            if event.kind in (StatusKind.IN_BLOCK, StatusKind.FINALIZED):
                event = self._with_receipt(event, extrinsic_hash)
            publish(event)
            return message if event.kind in _FINAL_KINDS else None

        def run() -> None:
            try:
                substrate.rpc_request(
                    "author_submitAndWatchExtrinsic",
                    [str(extrinsic.data)],
                    result_handler=handler,
                )
            except SubstrateRequestException as e:
                if notified.is_set():
                    publish(ChainQueryError(f"Status watch for {extrinsic_hash} failed: {e}"))
                else:
                    # Pool rejected the extrinsic outright (e.g. 1010 Invalid Transaction)
                    publish(StatusEvent(StatusKind.INVALID, detail=str(e)))
            except _TRANSPORT_ERRORS as e:
                if not stop.is_set():
                    publish(ChainConnectionError(f"Connection lost while watching {extrinsic_hash}: {e}"))
            finally:
                publish(_END)

        worker = asyncio.ensure_future(asyncio.to_thread(run))
        try:
            while True:
                item = await queue.get()
                if item is _END:
                    await asyncio.wait({worker})
                    error = None if worker.cancelled() else worker.exception()
                    if error is not None:
                        raise ChainQueryError(f"Status watch for {extrinsic_hash} failed: {error}") from error
                    return
                if isinstance(item, ChainError):
                    raise item
                yield item
        finally:
            await self._stop_worker(worker, stop)

    def _with_receipt(self, event: StatusEvent, extrinsic_hash: str) -> StatusEvent:
        """
        Attach the dispatch result of the block to an inBlock / finalized event.

        When the block's events cannot be read the event is passed on without
        a dispatch error and the reason goes into ``detail``. The finalized
        notification reads the receipt again.
        """
        try:
            failure = self._dispatch_failure(extrinsic_hash, event.block_hash)
        except _RECEIPT_ERRORS as e:
            logger.warning(
                f"Could not read events of {extrinsic_hash} in block {event.block_hash}: {e}"
            )
            return StatusEvent(event.kind, event.block_hash, detail=f"dispatch result unavailable: {e}")
        return StatusEvent(event.kind, event.block_hash, failure)

    async def _stop_worker(self, worker: asyncio.Future, stop: threading.Event) -> None:
        """Tear down the watch; a worker still blocked on the socket is released by resetting it."""
        done, _ = await asyncio.wait({worker}, timeout=_WORKER_GRACE_SECONDS)
        if not done:
            stop.set()
            substrate = self._require()
            logger.debug("Resetting websocket to release the status watch")
            try:
                await asyncio.to_thread(substrate.websocket.close)
            except _TRANSPORT_ERRORS as e:
                logger.debug(f"Websocket close during teardown: {e}")
            await asyncio.wait({worker})
            try:
                await asyncio.to_thread(substrate.connect_websocket)
            except _TRANSPORT_ERRORS as e:
                raise ChainConnectionError(f"Could not reconnect to {self.endpoint}: {e}") from e

        if not worker.cancelled() and worker.exception() is not None:
            logger.warning(f"Status watch worker ended with {worker.exception()!r}")

    # ── Dispatch error decoding ─────────────────────────────────────

    def _dispatch_failure(self, extrinsic_hash: str, block_hash: Optional[str]) -> Optional[DispatchFailure]:
        """
        Look for a failed dispatch in the block's events for this extrinsic.

        Runs in the watch worker; nested requests on the same thread are
        queued by substrate-interface alongside the subscription.
        """
        substrate = self._require()
        receipt = ExtrinsicReceipt(
            substrate=substrate, extrinsic_hash=extrinsic_hash, block_hash=block_hash,
        )
        for event in receipt.triggered_events:
            module_id, event_id, attributes = _event_parts(event.value)
            if module_id == "System" and event_id == "ExtrinsicFailed":
                error = attributes.get("dispatch_error") if isinstance(attributes, dict) else attributes
                return self.decode_dispatch_error(error)
            # The proxy extrinsic itself succeeds when the proxied batch fails
            if module_id == "Proxy" and event_id == "ProxyExecuted":
                result = attributes.get("result") if isinstance(attributes, dict) else attributes
                if isinstance(result, dict) and "Err" in result:
                    return self.decode_dispatch_error(result["Err"])
        return None

    def decode_dispatch_error(self, error: Any) -> DispatchFailure:
        """Turn a DispatchError value into (module, name, description)."""
        if isinstance(error, dict) and "Module" in error:
            module = error["Module"]
            module_index = int(module["index"])
            error_index = _error_index(module["error"])
            module_name = self._pallet_name(module_index) or f"Pallet{module_index}"
            metadata_error = self._require().metadata.get_module_error(
                module_index=module_index, error_index=error_index,
            )
            if metadata_error is None:
                return DispatchFailure(module_name, f"Error{error_index}")
            docs = metadata_error.docs
            if isinstance(docs, (list, tuple)):
                docs = " ".join(docs)
            return DispatchFailure(module_name, metadata_error.name, str(docs or ""))

        if isinstance(error, dict) and len(error) == 1:
            (name, detail), = error.items()
            if detail is None:
                return DispatchFailure("System", str(name))
            return DispatchFailure(str(name), str(detail))

        return DispatchFailure("System", str(error))

    def _pallet_name(self, index: int) -> Optional[str]:
        for pallet in self._require().metadata.pallets:
            value = pallet.value
            if value.get("index") == index:
                return value.get("name")
        return None


def _event_parts(value: Dict[str, Any]):
    """(module_id, event_id, attributes) from a decoded event record."""
    event = value.get("event", value)
    return (
        value.get("module_id") or event.get("module_id"),
        value.get("event_id") or event.get("event_id"),
        value.get("attributes", event.get("attributes")),
    )


def _error_index(raw: Any) -> int:
    """Module error is either an int or 4 little-endian bytes as hex, first byte is the index."""
    if isinstance(raw, int):
        return raw
    text = str(raw)
    if text.startswith("0x"):
        return int(text[2:4], 16)
    return int(text)
