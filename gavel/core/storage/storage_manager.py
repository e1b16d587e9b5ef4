from pathlib import Path
from typing import List, Optional, Tuple

from gavel.core.storage.sqlite_adapter import SQLiteAdapter
from gavel.utils.logger import get_logger

logger = get_logger("storage.manager")


class StorageManager:
    """
    Manages persistent storage for one auction engine.

    The engine is the state boundary; this class only makes that state
    survive a host restart. Handles:
    - Administrator identity
    - Catalog, bid ledger and deadline
    - Signed-call nonces
    """

    def __init__(self, data_dir: Path, db_name: str = "gavel.db"):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        logger.info(f"StorageManager initialized at {self.db_path}")

    # =========================================================================
    # Access Control
    # =========================================================================

    def save_administrator(self, administrator: bytes):
        self.adapter.set_meta("administrator", administrator.hex())

    def load_administrator(self) -> Optional[bytes]:
        value = self.adapter.get_meta("administrator")
        return bytes.fromhex(value) if value else None

    def has_engine(self) -> bool:
        return self.load_administrator() is not None

    # =========================================================================
    # Catalog & Ledger
    # =========================================================================

    def persist_initialization(self, items, records, deadline: int) -> bool:
        """
        Persist the result of a successful initialization in one transaction.

        Args:
            items: AuctionItem sequence in catalog order
            records: BidRecord sequence, parallel to items
            deadline: Unix timestamp

        Returns:
            False if another host initialized the database first
        """
        item_rows = [(item.id, item.description, item.starting_price) for item in items]
        bid_rows = [
            (item.id, record.highest_bid, record.highest_bidder)
            for item, record in zip(items, records)
        ]
        return self.adapter.save_initialization(item_rows, bid_rows, deadline)

    def persist_bid(self, item_id: int, record) -> Tuple[bool, Tuple[int, bytes]]:
        """
        Persist a new BidRecord for one item if it beats the stored one.

        Returns:
            (accepted, (highest_bid, highest_bidder)) as stored afterwards
        """
        accepted, amount, bidder = self.adapter.save_bid(item_id, record.highest_bid, record.highest_bidder)
        return accepted, (amount, bidder)

    def load_engine_state(self) -> Tuple[bool, Optional[int], List[Tuple], List[Tuple]]:
        """
        Load full engine state.

        Returns:
            (initialized, deadline, items, bids)
            items: List[(item_id, description, starting_price)]
            bids: List[(item_id, highest_bid, highest_bidder)]
        """
        initialized = self.adapter.get_meta("initialized") == "1"
        deadline_raw = self.adapter.get_meta("deadline")
        deadline = int(deadline_raw) if deadline_raw is not None else None
        return initialized, deadline, self.adapter.get_items(), self.adapter.get_bids()

    # =========================================================================
    # Call Nonces
    # =========================================================================

    def load_nonce(self, sender: bytes) -> int:
        return self.adapter.get_nonce(sender)

    def swap_nonce(self, sender: bytes, expected: int, new: int) -> Tuple[bool, int]:
        """Compare-and-set a sender's next nonce. Returns (swapped, stored value)."""
        return self.adapter.swap_nonce(sender, expected, new)

    def close(self):
        self.adapter.close()
