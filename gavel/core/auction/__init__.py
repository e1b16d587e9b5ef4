"""
Gavel Auction Module.

This module provides the single-auction settlement engine:
- Item catalog with position-assigned ids
- Bid ledger with strictly increasing highest bids
- Derived phase (uninitialized, open, ended)
- Winners report after the deadline
"""

from gavel.core.auction.models import (
    ItemInput,
    AuctionItem,
    BidRecord,
    WinnerEntry,
)

from gavel.core.auction.phase import (
    AuctionPhase,
    derive_phase,
)

from gavel.core.auction.engine import AuctionEngine

__all__ = [
    # Models
    "ItemInput",
    "AuctionItem",
    "BidRecord",
    "WinnerEntry",
    # Phase
    "AuctionPhase",
    "derive_phase",
    # Engine
    "AuctionEngine",
]
