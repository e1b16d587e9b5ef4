"""
Input Validation - sanity checks for values crossing into the engine.

Validators return (is_valid, error_message) so callers can decide whether
to raise, print, or skip.
"""

from typing import Any, Tuple

from gavel.crypto import ADDRESS_LENGTH

# =============================================================================
# Constants
# =============================================================================

MAX_DESCRIPTION_LENGTH = 1024
MAX_ITEMS = 256

# uint256 bounds, as the ledger was defined on-chain
MIN_AMOUNT = 0
MAX_AMOUNT = 2**256 - 1

MAX_TIMESTAMP = 2**64 - 1


# =============================================================================
# Validation Functions
# =============================================================================


def validate_address(address: Any) -> Tuple[bool, str]:
    """Validate a 20-byte participant address."""
    if not isinstance(address, (bytes, bytearray)):
        return False, f"address must be bytes, got {type(address).__name__}"
    if len(address) != ADDRESS_LENGTH:
        return False, f"address must be {ADDRESS_LENGTH} bytes, got {len(address)}"
    return True, ""


def validate_amount(value: Any, name: str = "amount") -> Tuple[bool, str]:
    """Validate an unsigned 256-bit amount."""
    # bool is an int subclass but never a meaningful amount
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{name} must be int, got {type(value).__name__}"
    if value < MIN_AMOUNT:
        return False, f"{name} cannot be negative: {value}"
    if value > MAX_AMOUNT:
        return False, f"{name} exceeds maximum {MAX_AMOUNT}"
    return True, ""


def validate_timestamp(value: Any, name: str = "timestamp") -> Tuple[bool, str]:
    """Validate a Unix timestamp in seconds."""
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{name} must be int, got {type(value).__name__}"
    if value < 0 or value > MAX_TIMESTAMP:
        return False, f"{name} out of range: {value}"
    return True, ""


def validate_description(description: Any) -> Tuple[bool, str]:
    """Validate an item description."""
    if not isinstance(description, str):
        return False, f"description must be str, got {type(description).__name__}"
    if not description.strip():
        return False, "description cannot be empty"
    if len(description) > MAX_DESCRIPTION_LENGTH:
        return False, f"description exceeds max length {MAX_DESCRIPTION_LENGTH}, got {len(description)}"
    return True, ""
