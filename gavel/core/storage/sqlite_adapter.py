import sqlite3
import threading
from pathlib import Path
from typing import List, Optional, Tuple

from gavel.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for persistent engine state.

    Provides:
    1. Engine metadata (administrator, deadline, initialized flag).
    2. Catalog and bid ledger rows, one per item.
    3. Signed-call nonces per sender.

    Amounts are stored as decimal TEXT; SQLite integers stop at 64 bits.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn_local = threading.local()

        if not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            self._conn_local.conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False
            )
            self._conn_local.conn.row_factory = sqlite3.Row
            self._conn_local.conn.execute("PRAGMA journal_mode=WAL;")
            self._conn_local.conn.execute("PRAGMA synchronous=NORMAL;")
        return self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS engine_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

            # Catalog: item_id is the position, never caller input
            conn.execute("""
                CREATE TABLE IF NOT EXISTS items (
                    item_id INTEGER PRIMARY KEY,
                    description TEXT NOT NULL,
                    starting_price TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS bids (
                    item_id INTEGER PRIMARY KEY,
                    highest_bid TEXT NOT NULL,
                    highest_bidder BLOB NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS call_nonces (
                    sender BLOB PRIMARY KEY,
                    next_nonce INTEGER NOT NULL
                )
            """)

    def close(self):
        """Close this thread's connection."""
        conn = getattr(self._conn_local, "conn", None)
        if conn is not None:
            conn.close()
            del self._conn_local.conn

    # =========================================================================
    # Metadata
    # =========================================================================

    def set_meta(self, key: str, value: str):
        conn = self._get_conn()
        with conn:
            conn.execute("INSERT OR REPLACE INTO engine_meta (key, value) VALUES (?, ?)", (key, value))

    def get_meta(self, key: str) -> Optional[str]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT value FROM engine_meta WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row['value'] if row else None

    # =========================================================================
    # Catalog & Ledger
    # =========================================================================

    def save_initialization(
        self,
        items: List[Tuple[int, str, int]],
        bids: List[Tuple[int, int, bytes]],
        deadline: int,
    ) -> bool:
        """
        Atomically write the catalog, the opening ledger and the deadline.

        The initialized flag is checked inside the same write transaction,
        so only one of several hosts sharing the file can seed it.

        Args:
            items: (item_id, description, starting_price)
            bids: (item_id, highest_bid, highest_bidder)
            deadline: Unix timestamp

        Returns:
            False if the database was already initialized (nothing written)
        """
        conn = self._get_conn()
        with conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute("SELECT value FROM engine_meta WHERE key = 'initialized'").fetchone()
            if row and row['value'] == "1":
                return False

            conn.executemany(
                "INSERT INTO items (item_id, description, starting_price) VALUES (?, ?, ?)",
                [(i, desc, str(price)) for i, desc, price in items]
            )
            conn.executemany(
                "INSERT INTO bids (item_id, highest_bid, highest_bidder) VALUES (?, ?, ?)",
                [(i, str(amount), bidder) for i, amount, bidder in bids]
            )
            conn.execute("INSERT OR REPLACE INTO engine_meta (key, value) VALUES (?, ?)", ("deadline", str(deadline)))
            conn.execute("INSERT OR REPLACE INTO engine_meta (key, value) VALUES (?, ?)", ("initialized", "1"))
        return True

    def save_bid(self, item_id: int, highest_bid: int, highest_bidder: bytes) -> Tuple[bool, int, bytes]:
        """
        Replace an item's ledger row if the new bid beats the stored one.

        The stored amount is re-read under a write lock, so a host whose
        in-memory ledger is stale can never lower the highest bid.

        Returns:
            (accepted, highest_bid, highest_bidder) as stored afterwards
        """
        conn = self._get_conn()
        with conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT highest_bid, highest_bidder FROM bids WHERE item_id = ?", (item_id,)
            ).fetchone()
            if row is None:
                raise sqlite3.IntegrityError(f"No ledger row for item {item_id}")

            # TEXT column: compare as Python ints, not in SQL
            stored_bid = int(row['highest_bid'])
            if highest_bid <= stored_bid:
                return False, stored_bid, bytes(row['highest_bidder'])

            conn.execute(
                "UPDATE bids SET highest_bid = ?, highest_bidder = ? WHERE item_id = ?",
                (str(highest_bid), highest_bidder, item_id)
            )
        return True, highest_bid, highest_bidder

    def get_items(self) -> List[Tuple[int, str, int]]:
        """Get all catalog rows ordered by item_id."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT item_id, description, starting_price FROM items ORDER BY item_id ASC")
        return [(row['item_id'], row['description'], int(row['starting_price'])) for row in cursor]

    def get_bids(self) -> List[Tuple[int, int, bytes]]:
        """Get all ledger rows ordered by item_id."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT item_id, highest_bid, highest_bidder FROM bids ORDER BY item_id ASC")
        return [(row['item_id'], int(row['highest_bid']), bytes(row['highest_bidder'])) for row in cursor]

    # =========================================================================
    # Call Nonces
    # =========================================================================

    def get_nonce(self, sender: bytes) -> int:
        conn = self._get_conn()
        row = conn.execute("SELECT next_nonce FROM call_nonces WHERE sender = ?", (sender,)).fetchone()
        return row['next_nonce'] if row else 0

    def swap_nonce(self, sender: bytes, expected: int, new: int) -> Tuple[bool, int]:
        """
        Set a sender's next nonce to `new` only if it is still `expected`.

        Returns:
            (swapped, next_nonce) as stored afterwards
        """
        conn = self._get_conn()
        with conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute("SELECT next_nonce FROM call_nonces WHERE sender = ?", (sender,)).fetchone()
            stored = row['next_nonce'] if row else 0
            if stored != expected:
                return False, stored
            conn.execute(
                "INSERT OR REPLACE INTO call_nonces (sender, next_nonce) VALUES (?, ?)",
                (sender, new)
            )
        return True, new
