"""
Utility functions for voucherauth.

Address normalization, byte/hex conversion, integer range checks and time.
"""

import json
import time
from typing import Any, Union

from eth_utils import is_address, to_bytes, to_checksum_address

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

UINT256_MAX = 2 ** 256 - 1


def now_epoch() -> int:
    """Get current Unix timestamp as integer."""
    return int(time.time())


def normalize_address(value: Union[str, bytes], field_name: str = "address") -> str:
    """
    Return the EIP-55 checksum form of an address.

    Accepts 20 raw bytes or a 0x-prefixed hex string in any case.

    Raises:
        ValueError: If the value is not a 20-byte address
    """
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            raise ValueError(f"{field_name} must be 20 bytes, got {len(value)}")
        return to_checksum_address(bytes(value))
    if not isinstance(value, str) or not is_address(value):
        raise ValueError(f"{field_name} is not a valid address: {value!r}")
    return to_checksum_address(value)


def is_zero_address(address: str) -> bool:
    return address.lower() == ZERO_ADDRESS


def check_uint(value: Any, bits: int, field_name: str) -> int:
    """Validate an unsigned integer that fits in `bits` bits."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field_name} must be an integer")
    if value < 0 or value > 2 ** bits - 1:
        raise ValueError(f"{field_name} out of range for uint{bits}: {value}")
    return value


def hex_to_bytes(value: Union[str, bytes]) -> bytes:
    """Decode a 0x-prefixed hex string (or pass raw bytes through)."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return to_bytes(hexstr=value)


def bytes_to_hex(value: bytes) -> str:
    return "0x" + value.hex()


def load_json(path: str) -> Any:
    """Load JSON from file."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def save_json(data: Any, path: str) -> None:
    """Save JSON to file."""
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
