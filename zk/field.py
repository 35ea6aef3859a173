"""
BN254 scalar field helpers.

Every value that is hashed with Poseidon or handed to the circuit as a signal
lives in [0, FIELD_PRIME).
"""

import logging
import secrets
from typing import Any

from .errors import EntropyUnavailable

logger = logging.getLogger(__name__)

# BN254 scalar field prime
FIELD_PRIME = 21888242871839275222246405745257275088548364400416034343698204186575808495617

# 31 bytes = 248 bits, always below FIELD_PRIME so no modular bias
RANDOM_BYTES = 31


def random_field_element() -> int:
    """Sample a secret scalar. Only for credential secrets and nullifiers."""
    try:
        raw = secrets.token_bytes(RANDOM_BYTES)
    except (OSError, NotImplementedError) as e:
        logger.critical(f"Secure random source unavailable: {e}")
        raise EntropyUnavailable(f"Cannot sample field element: {e}") from e

    return int.from_bytes(raw, 'big')


def canonicalize(value: int) -> int:
    """Reduce into [0, FIELD_PRIME)"""
    return int(value) % FIELD_PRIME


def is_field_element(value: Any) -> bool:
    return (isinstance(value, int) and not isinstance(value, bool)
            and 0 <= value < FIELD_PRIME)


def parse_field_element(value: Any, name: str = "value") -> int:
    """
    Strictly parse a field element from an int, a decimal string or a 0x-prefixed
    hex string. Raises ValueError for anything else, including values >= FIELD_PRIME.
    """
    if isinstance(value, bool):
        raise ValueError(f"{name} must be numeric, got a boolean")

    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        if text.lower().startswith('0x'):
            digits = text[2:]
            if not digits or any(c not in '0123456789abcdefABCDEF' for c in digits):
                raise ValueError(f"{name} is not a valid hex number")
            number = int(digits, 16)
        else:
            if not text or not text.isdigit() or not text.isascii():
                raise ValueError(f"{name} is not a decimal number")
            number = int(text, 10)
    else:
        raise ValueError(
            f"{name} must be an int or numeric string, got {type(value).__name__}")

    if number < 0 or number >= FIELD_PRIME:
        raise ValueError(f"{name} is outside the field range")

    return number
