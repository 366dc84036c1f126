"""Felt encoding for calldata sent to StarkNet contracts."""

from typing import Any, List, Sequence

from eth_utils import keccak

from .constants import FIELD_PRIME, MAX_SHORT_STRING_LENGTH, SELECTOR_MASK
from .exceptions import CalldataEncodingError


def to_felt(value: Any) -> int:
    """
    Convert a single calldata value to a field element.

    Accepted inputs:
    - int (bool is rejected)
    - decimal string, e.g. "1234"
    - 0x-prefixed hex string, e.g. "0x4d2"

    Args:
        value: Value to convert

    Returns:
        Integer in [0, FIELD_PRIME)

    Raises:
        CalldataEncodingError: If the value is malformed, negative or does not fit
    """
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise CalldataEncodingError(
            f"Cannot encode {type(value).__name__} value {value!r} as a felt"
        )

    if isinstance(value, str):
        text = value.strip()
        try:
            if text.lower().startswith("0x"):
                number = int(text, 16)
            elif text.isdigit():
                number = int(text, 10)
            else:
                raise ValueError(text)
        except ValueError:
            raise CalldataEncodingError(
                f"String {value!r} is not a decimal or 0x-hex number; "
                "use encode_short_string() for text"
            ) from None
    else:
        number = value

    if number < 0:
        raise CalldataEncodingError(f"Negative value {value!r} cannot be encoded as a felt")
    if number >= FIELD_PRIME:
        raise CalldataEncodingError(f"Value {value!r} overflows the felt range")
    return number


def to_hex(value: int) -> str:
    """Format a felt as 0x-prefixed lowercase hex, as sent over the wire."""
    return hex(value)


def encode_short_string(text: str) -> int:
    """
    Pack ASCII text of at most 31 characters into one felt (big-endian).

    Raises:
        CalldataEncodingError: If the text is not ASCII or too long
    """
    if not text.isascii():
        raise CalldataEncodingError(f"Short string {text!r} is not ASCII")
    if len(text) > MAX_SHORT_STRING_LENGTH:
        raise CalldataEncodingError(
            f"Short string {text!r} is longer than {MAX_SHORT_STRING_LENGTH} characters"
        )
    return int.from_bytes(text.encode("ascii"), "big")


def decode_short_string(value: int) -> str:
    """Inverse of encode_short_string()."""
    felt = to_felt(value)
    return felt.to_bytes((felt.bit_length() + 7) // 8, "big").decode("ascii")


def flatten_calldata(values: Sequence[Any]) -> List[int]:
    """
    Convert calldata values to a flat felt list.

    Nested lists and tuples become Cairo arrays: their length followed by
    their elements.
    """
    felts: List[int] = []
    for value in values:
        if isinstance(value, (list, tuple)):
            felts.append(len(value))
            felts.extend(flatten_calldata(value))
        else:
            felts.append(to_felt(value))
    return felts


def encode_calldata(values: Sequence[Any]) -> List[str]:
    """Encode calldata values into the hex felt list sent over the wire."""
    return [to_hex(felt) for felt in flatten_calldata(values)]


def get_selector_from_name(name: str) -> int:
    """Compute the entrypoint selector: starknet_keccak of the entrypoint name."""
    return int.from_bytes(keccak(text=name), "big") & SELECTOR_MASK
