"""Liquidity valuation and arbitrage sizing.

Everything here is read-only except ``swap_to_price``. The valuation helpers
answer "what would this liquidity redeem for" either at the current reserves
or after an arbitrageur has moved the pool to an external reference price,
accounting for the protocol fee that the next liquidity event would mint.

Composite valuations read the pool once into a ``PoolSnapshot`` and feed that
same snapshot to every step. Re-reading reserves between the arbitrage step
and the valuation step gives a different (wrong) answer if anything touched
the pool in between.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from cpamm import library
from cpamm.errors import (
    InvalidLiquidityAmount,
    ZeroAmountIn,
    ZeroPoolReserves,
    ZeroPrice,
    ZeroSpend,
)
from cpamm.math import isqrt, mul_div
from cpamm.models.types import ZERO_ADDRESS

if TYPE_CHECKING:
    from cpamm.factory import Factory
    from cpamm.router import Router

logger = structlog.get_logger()


@dataclass(frozen=True)
class PoolSnapshot:
    """Everything a valuation needs, read at one instant."""

    reserve_a: int
    reserve_b: int
    total_supply: int
    fee_on: bool
    k_last: int


def read_snapshot(factory: Factory, token_a: str, token_b: str) -> PoolSnapshot:
    pool = library.pool_for(factory, token_a, token_b)
    reserve_a, reserve_b = library.get_reserves(factory, token_a, token_b)
    fee_on = factory.fee_to != ZERO_ADDRESS
    return PoolSnapshot(
        reserve_a=reserve_a,
        reserve_b=reserve_b,
        total_supply=pool.total_supply,
        fee_on=fee_on,
        k_last=pool.k_last if fee_on else 0,
    )


def compute_profit_maximizing_trade(
    true_price_token_a: int,
    true_price_token_b: int,
    reserve_a: int,
    reserve_b: int,
    fee_factor: int = library.DEFAULT_FEE_FACTOR,
    fee_base: int = library.DEFAULT_FEE_BASE,
) -> tuple[bool, int]:
    """Direction and input size that move the pool to the reference price.

    The target input solves ``(reserve_in + x * fee) * reserve_out' = k`` with the
    post-trade ratio equal to the reference ratio:

        x = sqrt(k * fee_base * p_in / (p_out * fee_factor)) - reserve_in * fee_base / fee_factor

    Returns:
        Tuple of (a_to_b, amount_in). (False, 0) when no trade is profitable.
    """
    a_to_b = mul_div(reserve_a, true_price_token_b, reserve_b) < true_price_token_a
    invariant = reserve_a * reserve_b

    price_in, price_out = (
        (true_price_token_a, true_price_token_b) if a_to_b else (true_price_token_b, true_price_token_a)
    )
    left_side = isqrt(mul_div(invariant * fee_base, price_in, price_out * fee_factor))
    right_side = (reserve_a if a_to_b else reserve_b) * fee_base // fee_factor

    if left_side < right_side:
        return False, 0
    return a_to_b, left_side - right_side


def get_reserves_after_arbitrage(
    snapshot: PoolSnapshot,
    true_price_token_a: int,
    true_price_token_b: int,
    fee_factor: int = library.DEFAULT_FEE_FACTOR,
    fee_base: int = library.DEFAULT_FEE_BASE,
) -> tuple[int, int]:
    """Reserves after a profit-maximizing trade toward the reference price.

    Raises:
        ZeroPoolReserves: If either reserve is empty
    """
    reserve_a, reserve_b = snapshot.reserve_a, snapshot.reserve_b
    if reserve_a <= 0 or reserve_b <= 0:
        raise ZeroPoolReserves()

    a_to_b, amount_in = compute_profit_maximizing_trade(
        true_price_token_a, true_price_token_b, reserve_a, reserve_b, fee_factor, fee_base
    )
    if amount_in == 0:
        return reserve_a, reserve_b

    if a_to_b:
        amount_out = library.get_amount_out(amount_in, reserve_a, reserve_b, fee_factor, fee_base)
        return reserve_a + amount_in, reserve_b - amount_out
    amount_out = library.get_amount_out(amount_in, reserve_b, reserve_a, fee_factor, fee_base)
    return reserve_a - amount_out, reserve_b + amount_in


def compute_liquidity_value(
    reserves_a: int,
    reserves_b: int,
    total_supply: int,
    liquidity_amount: int,
    fee_on: bool,
    k_last: int,
) -> tuple[int, int]:
    """Pro-rata share of both reserves, after the pending protocol fee mint.

    Raises:
        ZeroPoolReserves: If no liquidity has been issued
    """
    if total_supply <= 0:
        raise ZeroPoolReserves("Pool has no liquidity outstanding")
    if fee_on and k_last > 0:
        root_k = isqrt(reserves_a * reserves_b)
        root_k_last = isqrt(k_last)
        if root_k > root_k_last:
            numerator1 = total_supply
            numerator2 = root_k - root_k_last
            denominator = root_k * 5 + root_k_last
            fee_liquidity = mul_div(numerator1, numerator2, denominator)
            total_supply = total_supply + fee_liquidity
    return (
        reserves_a * liquidity_amount // total_supply,
        reserves_b * liquidity_amount // total_supply,
    )


def get_liquidity_value(
    factory: Factory, token_a: str, token_b: str, liquidity_amount: int
) -> tuple[int, int]:
    """Value of ``liquidity_amount`` at the pool's current reserves."""
    snapshot = read_snapshot(factory, token_a, token_b)
    return compute_liquidity_value(
        snapshot.reserve_a,
        snapshot.reserve_b,
        snapshot.total_supply,
        liquidity_amount,
        snapshot.fee_on,
        snapshot.k_last,
    )


def get_liquidity_value_after_arbitrage_to_price(
    factory: Factory,
    token_a: str,
    token_b: str,
    true_price_token_a: int,
    true_price_token_b: int,
    liquidity_amount: int,
    snapshot: PoolSnapshot | None = None,
) -> tuple[int, int]:
    """Value of ``liquidity_amount`` once the pool trades at the reference price.

    Args:
        snapshot: Pool state to value against. Read from the pool when None;
            both the arbitrage and the valuation step use this one snapshot.

    Raises:
        InvalidLiquidityAmount: If the amount is zero or above the total supply
    """
    if snapshot is None:
        snapshot = read_snapshot(factory, token_a, token_b)
    if not 0 < liquidity_amount <= snapshot.total_supply:
        raise InvalidLiquidityAmount(
            f"Liquidity {liquidity_amount} outside (0, {snapshot.total_supply}]"
        )
    config = factory.config
    reserves_a, reserves_b = get_reserves_after_arbitrage(
        snapshot, true_price_token_a, true_price_token_b, config.fee_factor, config.fee_base
    )
    return compute_liquidity_value(
        reserves_a,
        reserves_b,
        snapshot.total_supply,
        liquidity_amount,
        snapshot.fee_on,
        snapshot.k_last,
    )


def swap_to_price(
    router: Router,
    sender: str,
    token_a: str,
    token_b: str,
    true_price_token_a: int,
    true_price_token_b: int,
    max_spend_token_a: int,
    max_spend_token_b: int,
    to: str,
    deadline: int,
) -> Sequence[int]:
    """Trade the pool toward a reference price, spending at most the given caps.

    ``sender`` must have approved the router for the input asset.

    Raises:
        ZeroPrice: If either reference price is zero
        ZeroSpend: If both spend caps are zero
        ZeroAmountIn: If the pool already trades at the reference price
    """
    if true_price_token_a == 0 or true_price_token_b == 0:
        raise ZeroPrice()
    if max_spend_token_a == 0 and max_spend_token_b == 0:
        raise ZeroSpend()

    factory = router.factory
    reserve_a, reserve_b = library.get_reserves(factory, token_a, token_b)
    a_to_b, amount_in = compute_profit_maximizing_trade(
        true_price_token_a,
        true_price_token_b,
        reserve_a,
        reserve_b,
        factory.config.fee_factor,
        factory.config.fee_base,
    )
    if amount_in == 0:
        raise ZeroAmountIn()

    max_spend = max_spend_token_a if a_to_b else max_spend_token_b
    path = [token_a, token_b] if a_to_b else [token_b, token_a]
    amount_in = min(amount_in, max_spend)
    logger.info("swap_to_price", a_to_b=a_to_b, amount_in=amount_in)
    return router.swap_exact_tokens_for_tokens(sender, amount_in, 0, path, to, deadline)
