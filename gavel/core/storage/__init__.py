"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- Administrator identity and deadline
- Item catalog and bid ledger
- Signed-call nonces
"""

from gavel.core.storage.sqlite_adapter import SQLiteAdapter
from gavel.core.storage.storage_manager import StorageManager

__all__ = ["SQLiteAdapter", "StorageManager"]
