"""
Signed Calls - authenticated entry points into the auction engine.

On a chain, the execution environment tells the contract who the caller
is. Off-chain, the caller proves it: every state-changing call is an
envelope carrying the sender address, the parameters, a per-sender nonce
and an ECDSA signature over all of them.

Call Processing:
---------------
1. Verify the signature recovers to the claimed sender
2. Check the nonce is the sender's next nonce (replay protection)
3. Route to the engine with caller = sender
4. Consume the nonce only if the engine accepted the call
"""

import json
import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Iterable, Optional

from gavel.core.auction.engine import AuctionEngine
from gavel.core.auction.models import ItemInput
from gavel.core.errors import InvalidNonce, InvalidSignature
from gavel.core.storage.storage_manager import StorageManager
from gavel.crypto import (
    KeyPair,
    bytes_to_hex,
    keccak256,
    recover_signer,
    short_address,
    sign,
)
from gavel.utils.logger import get_logger

logger = get_logger("calls")


# =============================================================================
# Enums
# =============================================================================


class CallMethod(IntEnum):
    """State-changing engine entry points."""
    INIT_AUCTION = 1
    BID = 2


# =============================================================================
# Call Envelope
# =============================================================================


@dataclass
class AuctionCall:
    """
    A signed request to run one engine method.

    Attributes:
        method: Which entry point to run
        sender: 20-byte address the call claims to come from
        params: Method parameters (JSON-serializable)
        nonce: Sender's call counter, starting at 0
        signature: 64-byte r || s over signing_hash()
    """
    method: CallMethod
    sender: bytes
    params: Dict[str, Any]
    nonce: int
    signature: bytes = field(default=b"", repr=False)

    def signing_payload(self) -> bytes:
        """Canonical JSON encoding of everything the signature covers."""
        return json.dumps(
            {
                "method": int(self.method),
                "sender": bytes_to_hex(self.sender),
                "params": self.params,
                "nonce": self.nonce,
            },
            sort_keys=True,
            separators=(",", ":"),
        ).encode("utf-8")

    def signing_hash(self) -> bytes:
        return keccak256(self.signing_payload())

    def sign(self, private_key: bytes) -> None:
        """Sign the call in place."""
        self.signature = sign(self.signing_hash(), private_key)

    def verify_signature(self) -> bool:
        """Whether the signature was made by the sender's key."""
        if len(self.signature) != 64:
            return False
        return recover_signer(self.signing_hash(), self.signature, self.sender)


# =============================================================================
# Call Builders
# =============================================================================


def create_init_call(
    keypair: KeyPair,
    items: Iterable[Any],
    deadline: int,
    nonce: int,
) -> AuctionCall:
    """
    Build and sign an init_auction call.

    Items are normalized to {desc, startingPrice}; ids are dropped since
    the engine assigns them anyway.
    """
    normalized = []
    for item in items:
        entry = ItemInput.coerce(item)
        normalized.append({"desc": entry.description, "startingPrice": entry.starting_price})

    call = AuctionCall(
        method=CallMethod.INIT_AUCTION,
        sender=keypair.address,
        params={"items": normalized, "deadline": deadline},
        nonce=nonce,
    )
    call.sign(keypair.private_key)
    return call


def create_bid_call(keypair: KeyPair, item_id: int, amount: int, nonce: int) -> AuctionCall:
    """Build and sign a bid call."""
    call = AuctionCall(
        method=CallMethod.BID,
        sender=keypair.address,
        params={"item_id": item_id, "amount": amount},
        nonce=nonce,
    )
    call.sign(keypair.private_key)
    return call


# =============================================================================
# Dispatcher
# =============================================================================


class CallDispatcher:
    """
    Verifies signed calls and routes them into an engine.

    Nonces live here rather than in the engine: the engine only ever sees
    an authenticated caller. With a storage manager the stored nonce is
    authoritative, so several hosts sharing one database agree on it.
    """

    def __init__(self, engine: AuctionEngine, storage_manager: Optional[StorageManager] = None):
        """
        Args:
            engine: Engine the calls run against
            storage_manager: Persistence for nonces. None = in-memory only
        """
        self.engine = engine
        self.storage_manager = storage_manager
        self._nonces: Dict[bytes, int] = {}
        self._lock = threading.Lock()

    def next_nonce(self, sender: bytes) -> int:
        """Nonce the sender's next call must carry."""
        sender = bytes(sender)
        if self.storage_manager:
            self._nonces[sender] = self.storage_manager.load_nonce(sender)
        return self._nonces.get(sender, 0)

    def submit(self, call: AuctionCall) -> None:
        """
        Verify and execute a call.

        The nonce is claimed before the engine runs and handed back if the
        engine rejects the call.

        Raises:
            InvalidSignature: signature does not match sender
            InvalidNonce: nonce is not next_nonce(sender)
            AuctionError: whatever the engine raises for the method
            ValueError: unknown method or malformed params
        """
        if not call.verify_signature():
            logger.warning(f"Rejected call from {short_address(call.sender)}: bad signature")
            raise InvalidSignature(f"Signature does not match sender {bytes_to_hex(call.sender)}")

        sender = bytes(call.sender)
        with self._lock:
            expected = self.next_nonce(sender)
            if call.nonce != expected:
                raise InvalidNonce(f"Expected nonce {expected}, got {call.nonce}")

            self._claim_nonce(sender, expected)
            try:
                self._dispatch(call)
            except Exception:
                self._release_nonce(sender, expected)
                raise

        logger.debug(f"Executed {call.method.name} from {short_address(sender)} nonce={call.nonce}")

    def _claim_nonce(self, sender: bytes, nonce: int) -> None:
        if self.storage_manager:
            swapped, stored = self.storage_manager.swap_nonce(sender, nonce, nonce + 1)
            self._nonces[sender] = stored
            if not swapped:
                raise InvalidNonce(f"Expected nonce {stored}, got {nonce}")
        else:
            self._nonces[sender] = nonce + 1

    def _release_nonce(self, sender: bytes, nonce: int) -> None:
        # No-op in storage if a later call from the sender already advanced it
        if self.storage_manager:
            _, self._nonces[sender] = self.storage_manager.swap_nonce(sender, nonce + 1, nonce)
        else:
            self._nonces[sender] = nonce

    def _dispatch(self, call: AuctionCall) -> None:
        if call.method == CallMethod.INIT_AUCTION:
            self.engine.init_auction(call.sender, _param(call, "items"), _param(call, "deadline"))
        elif call.method == CallMethod.BID:
            self.engine.bid(call.sender, _param(call, "item_id"), _param(call, "amount"))
        else:
            raise ValueError(f"Unknown call method: {call.method!r}")


def _param(call: AuctionCall, name: str) -> Any:
    if name not in call.params:
        raise ValueError(f"Missing parameter {name!r} for {call.method.name}")
    return call.params[name]
