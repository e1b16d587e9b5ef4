"""
Auction Engine - single-auction settlement state machine.

Conceptual Background:
---------------------
One administrator seeds a catalog of items, participants bid against a
single deadline, and after the deadline anyone can read the winners.

1. **AccessControl**: the administrator is fixed at construction. Only the
   administrator may initialize; the administrator may never bid.
2. **ItemCatalog**: items are numbered by position. Ids supplied by the
   caller are discarded so the catalog is always dense and duplicate-free.
3. **BidLedger**: one BidRecord per item, opened at the starting price with
   no bidder. A bid replaces the record only if strictly higher.
4. **WinnerResolver**: after the deadline the ledger is projected, in
   catalog order, into the winners report.

Phase:
-----
UNINITIALIZED -> OPEN -> ENDED, derived on every call from the initialized
flag and one clock reading. Nothing caches it.

Concurrency:
-----------
A single lock serializes every operation, so check-then-write on the
ledger cannot interleave with another bid on the same item. Hosts that
share one database are serialized by the storage layer instead: writes
re-check the stored ledger inside a write transaction and the engine
adopts whatever the database holds when it loses.
"""

import threading
from typing import Any, Dict, Iterable, List, Optional

from gavel.core.auction.models import AuctionItem, BidRecord, ItemInput, WinnerEntry
from gavel.core.auction.phase import AuctionPhase, derive_phase
from gavel.core.clock import Clock, SystemClock
from gavel.core.errors import (
    AlreadyInitialized,
    AuctionAlreadyEnded,
    AuctionNotEndedYet,
    AuctionNotInitialized,
    BidTooLow,
    ItemNotFound,
    Unauthorized,
)
from gavel.core.storage.storage_manager import StorageManager
from gavel.crypto import ZERO_ADDRESS, bytes_to_hex, short_address
from gavel.utils.logger import get_logger
from gavel.utils.validation import (
    MAX_AMOUNT,
    MAX_ITEMS,
    validate_address,
    validate_timestamp,
)

logger = get_logger("engine")


class AuctionEngine:
    """
    The auction state machine.

    Attributes:
        clock: Time source, read once per operation
        max_items: Largest catalog accepted by init_auction
        storage_manager: Optional persistence; None = in-memory only
    """

    def __init__(
        self,
        administrator: bytes,
        clock: Optional[Clock] = None,
        storage_manager: Optional[StorageManager] = None,
        max_items: int = MAX_ITEMS,
    ):
        """
        Initialize the engine.

        Args:
            administrator: 20-byte address allowed to initialize the auction
            clock: Time source. None = SystemClock
            storage_manager: Persistence manager. None = in-memory only
            max_items: Catalog size limit
        """
        ok, error = validate_address(administrator)
        if not ok:
            raise ValueError(f"Invalid administrator: {error}")
        if administrator == ZERO_ADDRESS:
            raise ValueError("Administrator cannot be the zero address")

        self._administrator = bytes(administrator)
        self.clock = clock or SystemClock()
        self.max_items = max_items

        # Catalog and ledger, parallel lists indexed by item id
        self._items: List[AuctionItem] = []
        self._records: List[BidRecord] = []

        self._deadline: Optional[int] = None
        self._initialized = False

        self._lock = threading.Lock()

        self.storage_manager = storage_manager
        if storage_manager:
            self._attach_storage()

    @classmethod
    def load(
        cls,
        storage_manager: StorageManager,
        clock: Optional[Clock] = None,
        max_items: int = MAX_ITEMS,
    ) -> "AuctionEngine":
        """Reopen an engine whose administrator is already in storage."""
        administrator = storage_manager.load_administrator()
        if administrator is None:
            raise ValueError(f"No engine stored at {storage_manager.db_path}")
        return cls(administrator, clock=clock, storage_manager=storage_manager, max_items=max_items)

    # =========================================================================
    # Access Control
    # =========================================================================

    @property
    def administrator(self) -> bytes:
        """The fixed administrator address."""
        return self._administrator

    def _require_administrator(self, caller: bytes, action: str) -> None:
        if caller != self._administrator:
            raise Unauthorized(f"Only the administrator may {action}")

    def _reject_administrator(self, caller: bytes, action: str) -> None:
        if caller == self._administrator:
            raise Unauthorized(f"The administrator may not {action}")

    # =========================================================================
    # Phase
    # =========================================================================

    def phase(self) -> AuctionPhase:
        """Current phase, derived from the clock right now."""
        return derive_phase(self._initialized, self._deadline, self.clock.now())

    # =========================================================================
    # Initialization
    # =========================================================================

    def init_auction(self, caller: bytes, items: Iterable[Any], deadline: int) -> None:
        """
        Seed the catalog and ledger and fix the deadline. Succeeds once.

        Args:
            caller: Address performing the call
            items: ItemInput instances or mappings with desc/startingPrice;
                any id they carry is ignored
            deadline: Unix timestamp, strictly after now

        Raises:
            Unauthorized: caller is not the administrator
            AlreadyInitialized: a previous call succeeded
            AuctionAlreadyEnded: deadline is not in the future
            ValueError: malformed items or too many of them
        """
        with self._lock:
            now = self.clock.now()

            self._require_administrator(caller, "initialize the auction")
            self._sync_initialization()
            if self._initialized:
                raise AlreadyInitialized("Auction already initialized")

            if isinstance(deadline, bool) or not isinstance(deadline, int):
                raise TypeError(f"deadline must be int, got {type(deadline).__name__}")
            if deadline <= now:
                raise AuctionAlreadyEnded(f"Deadline {deadline} is not after current time {now}")
            ok, error = validate_timestamp(deadline, "deadline")
            if not ok:
                raise ValueError(error)

            inputs = [ItemInput.coerce(item) for item in items]
            if len(inputs) > self.max_items:
                raise ValueError(f"Too many items: {len(inputs)} > {self.max_items}")

            # Position is the id, whatever the request said
            catalog = [
                AuctionItem(id=position, description=entry.description, starting_price=entry.starting_price)
                for position, entry in enumerate(inputs)
            ]
            records = [BidRecord.opening(item) for item in catalog]

            if self.storage_manager and not self.storage_manager.persist_initialization(catalog, records, deadline):
                self._load_from_storage()
                raise AlreadyInitialized("Auction already initialized by another host")

            self._items = catalog
            self._records = records
            self._deadline = deadline
            self._initialized = True

        logger.info(f"Auction initialized: {len(catalog)} items, deadline={deadline}")

    # =========================================================================
    # Bidding
    # =========================================================================

    def bid(self, caller: bytes, item_id: int, amount: int) -> None:
        """
        Place a bid on one item.

        Checks run in this order: caller is not the administrator, auction
        is initialized, deadline not reached, item exists, amount strictly
        above the current highest bid.

        Raises:
            Unauthorized: caller is the administrator
            AuctionNotInitialized: catalog not seeded yet
            AuctionAlreadyEnded: now >= deadline
            ItemNotFound: item_id outside the catalog
            BidTooLow: amount <= current highest bid
        """
        with self._lock:
            now = self.clock.now()

            self._reject_administrator(caller, "bid")
            ok, error = validate_address(caller)
            if not ok or caller == ZERO_ADDRESS:
                raise ValueError(f"Invalid bidder: {error or 'zero address'}")
            self._sync_initialization()

            current_phase = derive_phase(self._initialized, self._deadline, now)
            if current_phase == AuctionPhase.UNINITIALIZED:
                raise AuctionNotInitialized("Auction has not been initialized")
            if current_phase == AuctionPhase.ENDED:
                raise AuctionAlreadyEnded(f"Auction ended at {self._deadline}")

            current = self._record(item_id)
            if isinstance(amount, bool) or not isinstance(amount, int):
                raise TypeError(f"amount must be int, got {type(amount).__name__}")
            if amount > MAX_AMOUNT:
                raise ValueError(f"amount exceeds maximum {MAX_AMOUNT}")
            if amount <= current.highest_bid:
                logger.debug(f"Rejected bid {amount} on item {item_id}: highest is {current.highest_bid}")
                raise BidTooLow(f"Bid {amount} must exceed current highest bid {current.highest_bid}")

            record = BidRecord(highest_bid=amount, highest_bidder=bytes(caller))
            if self.storage_manager:
                accepted, (stored_bid, stored_bidder) = self.storage_manager.persist_bid(item_id, record)
                if not accepted:
                    # Another host sharing the database got there first
                    self._records[item_id] = BidRecord(highest_bid=stored_bid, highest_bidder=stored_bidder)
                    logger.debug(f"Rejected bid {amount} on item {item_id}: stored highest is {stored_bid}")
                    raise BidTooLow(f"Bid {amount} must exceed current highest bid {stored_bid}")
            self._records[item_id] = record

        logger.debug(f"Bid accepted: item={item_id} amount={amount} bidder={short_address(caller)}")

    # =========================================================================
    # Winner Resolution
    # =========================================================================

    def determine_winner(self) -> List[WinnerEntry]:
        """
        Winners report: one entry per item, in catalog order.

        Items nobody bid on report the zero address and their starting
        price. Callable by anyone, any number of times, once ENDED.

        Raises:
            AuctionNotInitialized: catalog not seeded yet
            AuctionNotEndedYet: now < deadline
        """
        with self._lock:
            if self.storage_manager:
                self._load_from_storage()
            current_phase = derive_phase(self._initialized, self._deadline, self.clock.now())
            if current_phase == AuctionPhase.UNINITIALIZED:
                raise AuctionNotInitialized("Auction has not been initialized")
            if current_phase == AuctionPhase.OPEN:
                raise AuctionNotEndedYet(f"Auction ends at {self._deadline}")

            report = [
                WinnerEntry(id=item.id, highest_bidder=record.highest_bidder, bid_amt=record.highest_bid)
                for item, record in zip(self._items, self._records)
            ]

        logger.info(f"Winners resolved for {len(report)} items")
        return report

    # =========================================================================
    # Read Accessors
    # =========================================================================

    @property
    def deadline(self) -> Optional[int]:
        """Deadline timestamp, None before initialization."""
        return self._deadline

    # Alias used by deployment scripts
    end_time = deadline

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def item_count(self) -> int:
        return len(self._items)

    def item(self, index: int) -> AuctionItem:
        """Catalog entry at a position."""
        self._check_item_id(index)
        return self._items[index]

    def items(self) -> List[AuctionItem]:
        """Copy of the whole catalog."""
        return list(self._items)

    def bid_record_for(self, item_id: int) -> BidRecord:
        """Current ledger entry for an item."""
        return self._record(item_id)

    def highest_bid(self, item_id: int) -> int:
        return self._record(item_id).highest_bid

    def highest_bidder(self, item_id: int) -> bytes:
        return self._record(item_id).highest_bidder

    def _check_item_id(self, item_id: int) -> None:
        # Reject negatives explicitly; list indexing would wrap them
        if isinstance(item_id, bool) or not isinstance(item_id, int):
            raise ItemNotFound(f"Item id must be int, got {type(item_id).__name__}")
        if item_id < 0 or item_id >= len(self._items):
            raise ItemNotFound(f"Item {item_id} out of range [0, {len(self._items)})")

    def _record(self, item_id: int) -> BidRecord:
        self._check_item_id(item_id)
        return self._records[item_id]

    # =========================================================================
    # Persistence
    # =========================================================================

    def _attach_storage(self) -> None:
        """Claim or reload the storage this engine was given."""
        stored_admin = self.storage_manager.load_administrator()
        if stored_admin is None:
            self.storage_manager.save_administrator(self._administrator)
            return
        if stored_admin != self._administrator:
            raise ValueError(
                f"Storage belongs to administrator {bytes_to_hex(stored_admin)}, "
                f"not {bytes_to_hex(self._administrator)}"
            )
        self._load_from_storage()

    def _sync_initialization(self) -> None:
        """Pick up an initialization written by another host since we loaded."""
        if not self._initialized and self.storage_manager:
            self._load_from_storage()

    def _load_from_storage(self) -> None:
        initialized, deadline, item_rows, bid_rows = self.storage_manager.load_engine_state()
        if not initialized:
            return

        self._items = [
            AuctionItem(id=item_id, description=description, starting_price=price)
            for item_id, description, price in item_rows
        ]
        self._records = [
            BidRecord(highest_bid=amount, highest_bidder=bidder)
            for _, amount, bidder in bid_rows
        ]
        if len(self._items) != len(self._records):
            raise ValueError(
                f"Corrupt storage: {len(self._items)} items but {len(self._records)} ledger rows"
            )
        self._deadline = deadline
        self._initialized = True

        logger.info(f"Loaded auction: {len(self._items)} items, deadline={deadline}")

    # =========================================================================
    # Utility
    # =========================================================================

    def __repr__(self) -> str:
        return (
            f"AuctionEngine(admin={short_address(self._administrator)}, "
            f"items={len(self._items)}, phase={self.phase().name})"
        )

    def stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        return {
            "administrator": bytes_to_hex(self._administrator),
            "phase": self.phase().name,
            "deadline": self._deadline,
            "item_count": len(self._items),
            "items_with_bids": sum(1 for record in self._records if record.has_bidder),
        }
