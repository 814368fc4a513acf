"""Shared type definitions: addresses and uint256 amounts.

Addresses are 20-byte identifiers written as ``0x`` + 40 hex characters. The
engine always stores them lowercased, so comparing two normalized strings is
the same as comparing the underlying bytes; that comparison is the canonical
total order used to sort a pool's assets.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BeforeValidator, Field, PlainSerializer

from cpamm.errors import IdenticalAddresses, InvalidAddress, ZeroAddress
from cpamm.safe_int import UINT256_MAX

ZERO_ADDRESS = "0x" + "00" * 20


def validate_uint256(value: Any) -> int:
    """Coerce a decimal string or int into a uint256 int.

    Raises:
        ValueError: If value is not a non-negative integer within uint256 range
    """
    if isinstance(value, bool):
        raise ValueError("Uint256 cannot be a boolean")
    if isinstance(value, str):
        try:
            value = int(value)
        except ValueError as err:
            raise ValueError(f"Uint256 must be a decimal integer string: '{value}'") from err
    if not isinstance(value, int):
        raise ValueError(f"Uint256 must be string or int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"Uint256 cannot be negative: {value}")
    if value > UINT256_MAX:
        raise ValueError(f"Uint256 overflow: {value} > 2^256-1")
    return value


def validate_address(value: Any) -> str:
    """Pydantic hook: validate and normalize an address."""
    if not isinstance(value, str) or not is_valid_address(value):
        raise ValueError(f"Invalid address: {value!r}")
    return normalize_address(value)


# Ethereum-style address, normalized to lowercase
Address = Annotated[str, BeforeValidator(validate_address)]

# 256-bit unsigned integer, accepted as int or decimal string, emitted as a string
Uint256 = Annotated[
    int,
    BeforeValidator(validate_uint256),
    PlainSerializer(str, return_type=str, when_used="json"),
    Field(description="256-bit unsigned integer"),
]


def normalize_address(address: str, *, validate: bool = False) -> str:
    """Normalize an address to lowercase with a 0x prefix.

    Raises:
        InvalidAddress: If validate=True and address is not well formed
    """
    addr = address.lower()
    if not addr.startswith("0x"):
        addr = "0x" + addr

    if validate and not is_valid_address(addr):
        raise InvalidAddress(f"Invalid address: {address}")

    return addr


def is_valid_address(address: str) -> bool:
    """Check if a string is a well-formed 20-byte hex address."""
    if not isinstance(address, str):
        return False
    if not address.startswith("0x"):
        return False
    if len(address) != 42:
        return False
    try:
        int(address, 16)
        return True
    except ValueError:
        return False


def sort_tokens(token_a: str, token_b: str) -> tuple[str, str]:
    """Return the pair in canonical order (token0 < token1).

    Raises:
        IdenticalAddresses: If both identifiers are the same
        ZeroAddress: If the smaller identifier is the zero address
    """
    token_a = normalize_address(token_a, validate=True)
    token_b = normalize_address(token_b, validate=True)
    if token_a == token_b:
        raise IdenticalAddresses(f"Identical addresses: {token_a}")
    token0, token1 = (token_a, token_b) if token_a < token_b else (token_b, token_a)
    if token0 == ZERO_ADDRESS:
        raise ZeroAddress()
    return token0, token1
