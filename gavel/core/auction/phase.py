"""
Auction phase derivation.

The phase is never stored. Every entry point recomputes it from whether the
catalog has been initialized and where the clock stands against the deadline.
"""

from enum import IntEnum
from typing import Optional


class AuctionPhase(IntEnum):
    """Lifecycle of the single auction."""
    UNINITIALIZED = 0  # Constructed, catalog not seeded
    OPEN = 1           # Accepting bids
    ENDED = 2          # Deadline reached, winners readable


def derive_phase(initialized: bool, deadline: Optional[int], now: int) -> AuctionPhase:
    """
    Compute the phase at time `now`.

    The deadline itself belongs to ENDED: a bid at exactly the deadline is
    too late, and winners are readable from that second on.
    """
    if not initialized or deadline is None:
        return AuctionPhase.UNINITIALIZED
    if now >= deadline:
        return AuctionPhase.ENDED
    return AuctionPhase.OPEN
