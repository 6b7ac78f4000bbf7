"""Input validation utilities for the relay."""

from typing import Optional, Tuple

from config import RELAY_PAIRING_CODE_MIN, RELAY_PAIRING_CODE_MAX


def validate_port(port: int) -> Tuple[bool, Optional[str]]:
    """Validate a port number.

    Args:
        port: Port number to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(port, int):
        return False, f"Port must be an integer, got {type(port).__name__}"

    if port < 0 or port > 65535:
        return False, f"Port must be between 0 and 65535, got {port}"

    return True, None


def validate_pairing_code(code: str) -> Tuple[bool, Optional[str]]:
    """Check that a string looks like a pairing code (six digits, no leading zero).

    Args:
        code: Code as typed by the user

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not code:
        return False, "Pairing code cannot be empty"

    if not (code.isascii() and code.isdigit()) or len(code) != 6:
        return False, f"Pairing code must be 6 digits, got {code!r}"

    if not RELAY_PAIRING_CODE_MIN <= int(code) <= RELAY_PAIRING_CODE_MAX:
        return False, f"Pairing code out of range: {code}"

    return True, None
