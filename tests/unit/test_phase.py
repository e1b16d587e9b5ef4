"""
Unit tests for phase derivation, clocks and auction models.
"""

import pytest
from pydantic import ValidationError

from gavel.core.auction import AuctionItem, AuctionPhase, BidRecord, ItemInput, derive_phase
from gavel.core.clock import ManualClock, SystemClock
from gavel.crypto import ZERO_ADDRESS
from gavel.utils.validation import MAX_AMOUNT, MAX_DESCRIPTION_LENGTH


# =============================================================================
# Phase Tests
# =============================================================================


class TestDerivePhase:
    """Tests for the pure phase function."""

    def test_uninitialized(self):
        assert derive_phase(False, None, 100) == AuctionPhase.UNINITIALIZED

    def test_uninitialized_ignores_clock(self):
        """Without initialization the deadline is meaningless."""
        assert derive_phase(False, 50, 100) == AuctionPhase.UNINITIALIZED

    def test_open_before_deadline(self):
        assert derive_phase(True, 200, 199) == AuctionPhase.OPEN

    def test_ended_at_deadline(self):
        assert derive_phase(True, 200, 200) == AuctionPhase.ENDED

    def test_ended_after_deadline(self):
        assert derive_phase(True, 200, 10_000) == AuctionPhase.ENDED


# =============================================================================
# Clock Tests
# =============================================================================


class TestManualClock:
    """Tests for the simulated clock."""

    def test_starts_at_given_time(self):
        clock = ManualClock(start=1000)
        assert clock.now() == 1000
        assert clock.latest() == 1000

    def test_increase(self):
        clock = ManualClock(start=1000)
        assert clock.increase(60) == 1060
        assert clock.now() == 1060

    def test_set_forward(self):
        clock = ManualClock(start=1000)
        clock.set(5000)
        assert clock.now() == 5000

    def test_never_moves_backwards(self):
        """Time is monotonic."""
        clock = ManualClock(start=1000)
        with pytest.raises(ValueError):
            clock.set(999)
        with pytest.raises(ValueError):
            clock.increase(-1)
        assert clock.now() == 1000

    def test_defaults_to_wall_clock(self):
        clock = ManualClock()
        assert abs(clock.now() - SystemClock().now()) <= 2


class TestSystemClock:
    def test_returns_int(self):
        assert isinstance(SystemClock().now(), int)


# =============================================================================
# Model Tests
# =============================================================================


class TestItemInput:
    """Tests for the initialization request model."""

    def test_accepts_request_aliases(self):
        item = ItemInput.model_validate({"id": 3, "desc": "ball", "startingPrice": 1})
        assert item.description == "ball"
        assert item.starting_price == 1
        assert item.id == 3

    def test_accepts_field_names(self):
        item = ItemInput(description="book", starting_price=3)
        assert item.id is None

    def test_coerce_passes_instances_through(self):
        item = ItemInput(description="book", starting_price=3)
        assert ItemInput.coerce(item) is item

    def test_id_is_not_validated(self):
        item = ItemInput.model_validate({"id": "abc", "desc": "ball", "startingPrice": 1})
        assert item.id == "abc"

    @pytest.mark.parametrize("price", ["3", True, 2.0])
    def test_price_is_not_coerced(self, price):
        with pytest.raises(ValidationError):
            ItemInput.model_validate({"desc": "ball", "startingPrice": price})

    def test_rejects_negative_price(self):
        with pytest.raises(ValidationError):
            ItemInput.model_validate({"desc": "ball", "startingPrice": -1})

    def test_rejects_price_beyond_uint256(self):
        with pytest.raises(ValidationError):
            ItemInput.model_validate({"desc": "ball", "startingPrice": MAX_AMOUNT + 1})

    def test_accepts_max_uint256_price(self):
        item = ItemInput.model_validate({"desc": "ball", "startingPrice": MAX_AMOUNT})
        assert item.starting_price == MAX_AMOUNT

    def test_rejects_blank_description(self):
        with pytest.raises(ValidationError):
            ItemInput.model_validate({"desc": "   ", "startingPrice": 1})

    def test_rejects_long_description(self):
        with pytest.raises(ValidationError):
            ItemInput.model_validate({"desc": "x" * (MAX_DESCRIPTION_LENGTH + 1), "startingPrice": 1})

    def test_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            ItemInput.model_validate({"desc": "ball", "startingPrice": 1, "reserve": 5})

    def test_validation_error_is_value_error(self):
        """Callers can catch plain ValueError."""
        with pytest.raises(ValueError):
            ItemInput.model_validate({"desc": "ball"})


class TestBidRecord:
    def test_opening_record(self):
        item = AuctionItem(id=0, description="ball", starting_price=7)
        record = BidRecord.opening(item)
        assert record.highest_bid == 7
        assert record.highest_bidder == ZERO_ADDRESS
        assert not record.has_bidder

    def test_records_are_immutable(self):
        record = BidRecord(highest_bid=1)
        with pytest.raises(AttributeError):
            record.highest_bid = 2
