"""Shared models and types."""

from cpamm.models.types import (
    ZERO_ADDRESS,
    Address,
    Uint256,
    is_valid_address,
    normalize_address,
    sort_tokens,
)

__all__ = [
    "ZERO_ADDRESS",
    "Address",
    "Uint256",
    "is_valid_address",
    "normalize_address",
    "sort_tokens",
]
