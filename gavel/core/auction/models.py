"""
Auction data structures.

ItemInput is the request shape accepted at initialization and is validated
with pydantic; everything the engine stores afterwards is a plain frozen
dataclass.
"""

from dataclasses import dataclass
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gavel.crypto import ZERO_ADDRESS, bytes_to_hex
from gavel.utils.validation import (
    MAX_DESCRIPTION_LENGTH,
    validate_amount,
    validate_description,
)


# =============================================================================
# Request Models
# =============================================================================


class ItemInput(BaseModel):
    """
    One catalog entry as supplied by the administrator.

    The `id` field is accepted for compatibility with callers that number
    their items, but the engine discards it and assigns positions, so it
    is not validated at all. The starting price must be a real int: no
    strings, floats or bools.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    id: Any = None
    description: str = Field(alias="desc", max_length=MAX_DESCRIPTION_LENGTH)
    starting_price: int = Field(alias="startingPrice", strict=True)

    @field_validator("description")
    @classmethod
    def _check_description(cls, value: str) -> str:
        ok, error = validate_description(value)
        if not ok:
            raise ValueError(error)
        return value

    @field_validator("starting_price")
    @classmethod
    def _check_starting_price(cls, value: int) -> int:
        ok, error = validate_amount(value, "starting_price")
        if not ok:
            raise ValueError(error)
        return value

    @classmethod
    def coerce(cls, value: Any) -> "ItemInput":
        """Accept an ItemInput or anything mapping-shaped."""
        if isinstance(value, cls):
            return value
        return cls.model_validate(value)


# =============================================================================
# Stored State
# =============================================================================


@dataclass(frozen=True)
class AuctionItem:
    """A catalog entry. `id` equals the item's position in the catalog."""
    id: int
    description: str
    starting_price: int


@dataclass(frozen=True)
class BidRecord:
    """Current highest bid on one item."""
    highest_bid: int
    highest_bidder: bytes = ZERO_ADDRESS

    @property
    def has_bidder(self) -> bool:
        return self.highest_bidder != ZERO_ADDRESS

    @classmethod
    def opening(cls, item: AuctionItem) -> "BidRecord":
        """Starting price as the first 'bid', placed by nobody."""
        return cls(highest_bid=item.starting_price, highest_bidder=ZERO_ADDRESS)


@dataclass(frozen=True)
class WinnerEntry:
    """One line of the winners report."""
    id: int
    highest_bidder: bytes
    bid_amt: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "highestBidder": bytes_to_hex(self.highest_bidder),
            "bidAmt": self.bid_amt,
        }
