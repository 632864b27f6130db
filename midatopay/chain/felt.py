"""
Felt helpers. Starknet addresses, hashes and ids are field elements that nodes
return as hex strings with or without zero padding, so comparisons go through int.
"""

from typing import Union

FELT_BOUND = 2 ** 252

FeltLike = Union[int, str]


def to_felt(value: FeltLike) -> int:
    """Parse a felt from an int, a 0x-prefixed hex string or a decimal string"""
    if isinstance(value, bool):
        raise ValueError("bool is not a felt")
    if isinstance(value, int):
        felt = value
    elif isinstance(value, str):
        text = value.strip().lower()
        if not text:
            raise ValueError("empty felt")
        felt = int(text, 16) if text.startswith("0x") else int(text, 10)
    else:
        raise ValueError(f"cannot parse felt from {type(value).__name__}")
    if not 0 <= felt < FELT_BOUND:
        raise ValueError(f"felt out of range: {value}")
    return felt


def felt_hex(value: FeltLike) -> str:
    """Canonical lowercase hex form without zero padding"""
    return hex(to_felt(value))


def is_valid_address(value: FeltLike) -> bool:
    try:
        to_felt(value)
    except (ValueError, TypeError):
        return False
    return True


def same_felt(a: FeltLike, b: FeltLike) -> bool:
    try:
        return to_felt(a) == to_felt(b)
    except (ValueError, TypeError):
        return False
