"""
Auction error kinds.

Every failure is raised to the caller of the operation that hit it; no
operation leaves partial state behind when it raises.
"""


class AuctionError(Exception):
    """Base class for auction rule violations."""


class Unauthorized(AuctionError):
    """Caller lacks the identity required for the operation."""


class AuctionAlreadyEnded(AuctionError):
    """Deadline has passed (or would already have passed on creation)."""


class AuctionNotEndedYet(AuctionError):
    """Winners requested while bidding is still open."""


class BidTooLow(AuctionError):
    """Bid is not strictly greater than the current highest bid."""


class AlreadyInitialized(AuctionError):
    """The one-time initialization has already happened."""


class AuctionNotInitialized(AuctionError):
    """Operation requires an initialized catalog."""


class ItemNotFound(AuctionError, IndexError):
    """Item id outside [0, item_count)."""


class InvalidSignature(AuctionError):
    """Signed call does not verify against its sender."""


class InvalidNonce(AuctionError):
    """Signed call nonce is not the sender's next nonce."""
