"""Constant-product pricing helpers shared by the router, oracles and valuation.

Formula (exact input):
    amount_out = (amount_in * fee_factor * reserve_out)
                 / (reserve_in * fee_base + amount_in * fee_factor)

With fee_factor=997 and fee_base=1000 this is the 0.3% fee. The exact-output
inverse adds 1 after flooring, so it never rounds in the trader's favour.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from cpamm.errors import (
    InsufficientAmount,
    InsufficientInputAmount,
    InsufficientLiquidity,
    InsufficientOutputAmount,
    InvalidPath,
)
from cpamm.factory import pool_address
from cpamm.models.types import normalize_address, sort_tokens
from cpamm.pool import Pool
from cpamm.safe_int import S

if TYPE_CHECKING:
    from cpamm.factory import Factory

DEFAULT_FEE_FACTOR = 997
DEFAULT_FEE_BASE = 1000


def pool_for(factory: Factory, token_a: str, token_b: str) -> Pool:
    """Resolve the pool at the pair's computed location.

    Raises:
        InsufficientLiquidity: If nothing is deployed there
    """
    address = pool_address(factory.address, token_a, token_b, factory.config.pool_code_hash)
    pool = factory.host.at(address)
    if not isinstance(pool, Pool):
        raise InsufficientLiquidity(f"No pool for {token_a}/{token_b}")
    return pool


def get_reserves(factory: Factory, token_a: str, token_b: str) -> tuple[int, int]:
    """Reserves ordered as (reserve_a, reserve_b)."""
    token0, _ = sort_tokens(token_a, token_b)
    reserve0, reserve1, _ = pool_for(factory, token_a, token_b).get_reserves()
    if normalize_address(token_a) == token0:
        return reserve0, reserve1
    return reserve1, reserve0


def quote(amount_a: int, reserve_a: int, reserve_b: int) -> int:
    """Equivalent amount of B for amount_a of A at the current ratio (no fee)."""
    if amount_a <= 0:
        raise InsufficientAmount()
    if reserve_a <= 0 or reserve_b <= 0:
        raise InsufficientLiquidity()
    return (S(amount_a) * reserve_b // reserve_a).value


def get_amount_out(
    amount_in: int,
    reserve_in: int,
    reserve_out: int,
    fee_factor: int = DEFAULT_FEE_FACTOR,
    fee_base: int = DEFAULT_FEE_BASE,
) -> int:
    """Maximum output for an exact input.

    Raises:
        InsufficientInputAmount: If amount_in is not positive
        InsufficientLiquidity: If either reserve is empty
    """
    if amount_in <= 0:
        raise InsufficientInputAmount()
    if reserve_in <= 0 or reserve_out <= 0:
        raise InsufficientLiquidity()
    amount_in_with_fee = S(amount_in) * fee_factor
    numerator = amount_in_with_fee * reserve_out
    denominator = S(reserve_in) * fee_base + amount_in_with_fee
    return (numerator // denominator).value


def get_amount_in(
    amount_out: int,
    reserve_in: int,
    reserve_out: int,
    fee_factor: int = DEFAULT_FEE_FACTOR,
    fee_base: int = DEFAULT_FEE_BASE,
) -> int:
    """Minimum input for an exact output, rounded up.

    Raises:
        InsufficientOutputAmount: If amount_out is not positive
        InsufficientLiquidity: If either reserve is empty or amount_out drains reserve_out
    """
    if amount_out <= 0:
        raise InsufficientOutputAmount()
    if reserve_in <= 0 or reserve_out <= 0:
        raise InsufficientLiquidity()
    if amount_out >= reserve_out:
        raise InsufficientLiquidity(f"Output {amount_out} >= reserve {reserve_out}")
    numerator = S(reserve_in) * amount_out * fee_base
    denominator = (S(reserve_out) - amount_out) * fee_factor
    return ((numerator // denominator) + 1).value


def get_amounts_out(
    factory: Factory, amount_in: int, path: Sequence[str]
) -> list[int]:
    """Chain get_amount_out across a path, reading each hop's live reserves."""
    if len(path) < 2:
        raise InvalidPath()
    config = factory.config
    amounts = [amount_in]
    for token_in, token_out in zip(path, path[1:]):
        reserve_in, reserve_out = get_reserves(factory, token_in, token_out)
        amounts.append(
            get_amount_out(amounts[-1], reserve_in, reserve_out, config.fee_factor, config.fee_base)
        )
    return amounts


def get_amounts_in(
    factory: Factory, amount_out: int, path: Sequence[str]
) -> list[int]:
    """Chain get_amount_in backwards across a path."""
    if len(path) < 2:
        raise InvalidPath()
    config = factory.config
    amounts = [0] * len(path)
    amounts[-1] = amount_out
    for i in range(len(path) - 1, 0, -1):
        reserve_in, reserve_out = get_reserves(factory, path[i - 1], path[i])
        amounts[i - 1] = get_amount_in(
            amounts[i], reserve_in, reserve_out, config.fee_factor, config.fee_base
        )
    return amounts


__all__ = [
    "DEFAULT_FEE_BASE",
    "DEFAULT_FEE_FACTOR",
    "get_amount_in",
    "get_amount_out",
    "get_amounts_in",
    "get_amounts_out",
    "get_reserves",
    "pool_for",
    "quote",
]
