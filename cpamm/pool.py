"""Constant-product liquidity pool.

A pool holds two assets in canonical order (token0 < token1) and is itself the
ERC-20 liquidity token for its depositors. Reserves change only through
``mint``, ``burn``, ``swap``, ``skim`` and ``sync``; each of them runs inside a
host transaction and behind the pool's reentrancy lock.

Pools never pull funds. Callers transfer assets in first and then call the
mutator, which measures what arrived by comparing held balances with the
cached reserves. This is what makes fee-on-transfer assets and flash swaps
work: only the balances observed at the end of the call matter.
"""

from __future__ import annotations

import functools
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

import structlog

from cpamm.errors import (
    AlreadyInitialized,
    Forbidden,
    IdenticalAddresses,
    InsufficientInputAmount,
    InsufficientLiquidity,
    InsufficientLiquidityBurned,
    InsufficientLiquidityMinted,
    InsufficientOutputAmount,
    InvalidTo,
    InvalidToken,
    InvariantViolation,
    Locked,
    TransferFailed,
    ZeroAddress,
)
from cpamm.host import Host, atomic
from cpamm.math import encode, isqrt, uqdiv
from cpamm.models.types import ZERO_ADDRESS, normalize_address
from cpamm.safe_int import S, mask
from cpamm.token import ERC20, Token

if TYPE_CHECKING:
    from cpamm.factory import Factory

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])


@runtime_checkable
class FlashSwapCallee(Protocol):
    """Recipient of optimistically transferred swap output.

    Called after the outputs have been sent and before the pool checks its
    invariant. By the time it returns, the pool must hold enough input to
    cover the outputs plus the fee.
    """

    def on_flash_swap(self, sender: str, amount0: int, amount1: int, data: bytes) -> None: ...


def lock(method: F) -> F:
    """Reject re-entry into any locked method of the same pool."""

    @functools.wraps(method)
    def wrapper(self: Pool, *args: Any, **kwargs: Any) -> Any:
        if not self._unlocked:
            raise Locked()
        self._unlocked = False
        try:
            return method(self, *args, **kwargs)
        finally:
            self._unlocked = True

    return wrapper  # type: ignore[return-value]


class Pool(ERC20):
    """Two-asset reserve enforcing the fee-adjusted constant-product invariant."""

    _state_fields = ERC20._state_fields + (
        "token0",
        "token1",
        "reserve0",
        "reserve1",
        "block_timestamp_last",
        "price0_cumulative_last",
        "price1_cumulative_last",
        "k_last",
        "_unlocked",
    )

    def __init__(self, host: Host, address: str, factory: Factory) -> None:
        config = factory.config
        super().__init__(host, address, config.lp_name, config.lp_symbol, 18, config.chain_id)
        self.factory = factory
        self.config = config
        self.token0 = ZERO_ADDRESS
        self.token1 = ZERO_ADDRESS
        self.reserve0 = 0
        self.reserve1 = 0
        # uint32, wraps
        self.block_timestamp_last = 0
        self.price0_cumulative_last = 0
        self.price1_cumulative_last = 0
        # reserve0 * reserve1 as of the most recent liquidity event
        self.k_last = 0
        self._unlocked = True

    @property
    def minimum_liquidity(self) -> int:
        return self.config.minimum_liquidity

    def get_reserves(self) -> tuple[int, int, int]:
        """Return (reserve0, reserve1, block_timestamp_last)."""
        return self.reserve0, self.reserve1, self.block_timestamp_last

    def _token(self, address: str) -> Token:
        token = self.host.at(address)
        if not isinstance(token, Token):
            raise InvalidToken(f"No asset deployed at {address}")
        return token

    def _safe_transfer(self, token: str, to: str, value: int) -> None:
        if not self._token(token).transfer(self.address, to, value):
            raise TransferFailed()

    def _balances_held(self) -> tuple[int, int]:
        return (
            self._token(self.token0).balance_of(self.address),
            self._token(self.token1).balance_of(self.address),
        )

    @atomic
    def initialize(self, sender: str, token0: str, token1: str) -> None:
        """Fix the canonical asset assignment; callable once, by the factory."""
        if normalize_address(sender) != self.factory.address:
            raise Forbidden()
        if self.token0 != ZERO_ADDRESS or self.token1 != ZERO_ADDRESS:
            raise AlreadyInitialized()
        token0, token1 = normalize_address(token0), normalize_address(token1)
        if token0 == token1:
            raise IdenticalAddresses()
        if ZERO_ADDRESS in (token0, token1):
            raise ZeroAddress()
        self.token0, self.token1 = token0, token1

    def _update(self, balance0: int, balance1: int, reserve0: int, reserve1: int) -> None:
        """Store new reserves and, on the first call per timestamp, advance prices."""
        S(balance0).to_uint(112)
        S(balance1).to_uint(112)
        block_timestamp = mask(self.host.timestamp, 32)
        time_elapsed = S(block_timestamp).wrapping_sub(self.block_timestamp_last, 32).value
        if time_elapsed > 0 and reserve0 != 0 and reserve1 != 0:
            # Accumulators wrap at 2**256; readers only ever use differences
            self.price0_cumulative_last = mask(
                self.price0_cumulative_last + uqdiv(encode(reserve1), reserve0).x * time_elapsed,
                256,
            )
            self.price1_cumulative_last = mask(
                self.price1_cumulative_last + uqdiv(encode(reserve0), reserve1).x * time_elapsed,
                256,
            )
        self.reserve0 = balance0
        self.reserve1 = balance1
        self.block_timestamp_last = block_timestamp
        self.emit("Sync", reserve0=balance0, reserve1=balance1)

    def _mint_fee(self, reserve0: int, reserve1: int) -> bool:
        """Mint the protocol's 1/6 share of sqrt(k) growth since the last checkpoint."""
        fee_to = self.factory.fee_to
        fee_on = fee_to != ZERO_ADDRESS
        k_last = self.k_last
        if fee_on:
            if k_last != 0:
                root_k = isqrt(reserve0 * reserve1)
                root_k_last = isqrt(k_last)
                if root_k > root_k_last:
                    numerator = S(self.total_supply) * (S(root_k) - root_k_last)
                    denominator = S(root_k) * 5 + root_k_last
                    liquidity = (numerator // denominator).value
                    if liquidity > 0:
                        self._mint(fee_to, liquidity)
                        logger.info(
                            "protocol_fee_minted",
                            pool=self.address[-8:],
                            fee_to=fee_to[-8:],
                            liquidity=liquidity,
                        )
        elif k_last != 0:
            self.k_last = 0
        return fee_on

    @atomic
    @lock
    def mint(self, sender: str, to: str) -> int:
        """Issue liquidity for the assets transferred in since the last update.

        Raises:
            InsufficientLiquidityMinted: If the computed liquidity is not positive
        """
        reserve0, reserve1, _ = self.get_reserves()
        balance0, balance1 = self._balances_held()
        amount0 = (S(balance0) - reserve0).value
        amount1 = (S(balance1) - reserve1).value

        fee_on = self._mint_fee(reserve0, reserve1)
        # Read after _mint_fee, which may have grown the supply
        total_supply = self.total_supply
        if total_supply == 0:
            liquidity = isqrt(amount0 * amount1) - self.minimum_liquidity
            if liquidity <= 0:
                raise InsufficientLiquidityMinted(
                    f"Initial liquidity {isqrt(amount0 * amount1)} does not exceed "
                    f"the {self.minimum_liquidity} locked units"
                )
            # Permanently lock the first MINIMUM_LIQUIDITY units
            self._mint(ZERO_ADDRESS, self.minimum_liquidity)
        else:
            liquidity = min(
                amount0 * total_supply // reserve0,
                amount1 * total_supply // reserve1,
            )
        if liquidity <= 0:
            raise InsufficientLiquidityMinted()
        self._mint(to, liquidity)

        self._update(balance0, balance1, reserve0, reserve1)
        if fee_on:
            self.k_last = self.reserve0 * self.reserve1
        self.emit("Mint", sender=normalize_address(sender), amount0=amount0, amount1=amount1)
        logger.debug("liquidity_minted", pool=self.address[-8:], liquidity=liquidity)
        return liquidity

    @atomic
    @lock
    def burn(self, sender: str, to: str) -> tuple[int, int]:
        """Redeem the liquidity tokens held by the pool itself, pro rata to balances.

        Raises:
            InsufficientLiquidityBurned: If either output rounds down to zero
        """
        reserve0, reserve1, _ = self.get_reserves()
        balance0, balance1 = self._balances_held()
        liquidity = self.balance_of(self.address)

        fee_on = self._mint_fee(reserve0, reserve1)
        total_supply = self.total_supply
        amount0 = (S(liquidity) * balance0 // total_supply).value
        amount1 = (S(liquidity) * balance1 // total_supply).value
        if amount0 <= 0 or amount1 <= 0:
            raise InsufficientLiquidityBurned()
        self._burn(self.address, liquidity)
        self._safe_transfer(self.token0, to, amount0)
        self._safe_transfer(self.token1, to, amount1)
        balance0, balance1 = self._balances_held()

        self._update(balance0, balance1, reserve0, reserve1)
        if fee_on:
            self.k_last = self.reserve0 * self.reserve1
        self.emit(
            "Burn",
            sender=normalize_address(sender),
            amount0=amount0,
            amount1=amount1,
            to=normalize_address(to),
        )
        return amount0, amount1

    @atomic
    @lock
    def swap(
        self,
        sender: str,
        amount0_out: int,
        amount1_out: int,
        to: str,
        data: bytes = b"",
    ) -> None:
        """Send outputs optimistically, then require the invariant to hold.

        If ``data`` is non-empty the recipient's ``on_flash_swap`` runs between
        the transfers and the check, so it can pay for the outputs with
        whatever it received.

        Raises:
            InsufficientOutputAmount: If an output is negative or neither is positive
            InsufficientLiquidity: If an output reaches its reserve
            InvalidTo: If ``to`` is one of the pool's assets or cannot take a callback
            InsufficientInputAmount: If nothing was paid in
            InvariantViolation: If the fee-adjusted product decreased
        """
        if amount0_out < 0 or amount1_out < 0:
            raise InsufficientOutputAmount(f"Negative output: {amount0_out}, {amount1_out}")
        if amount0_out <= 0 and amount1_out <= 0:
            raise InsufficientOutputAmount()
        reserve0, reserve1, _ = self.get_reserves()
        if amount0_out >= reserve0 or amount1_out >= reserve1:
            raise InsufficientLiquidity()

        to = normalize_address(to)
        if to in (self.token0, self.token1):
            raise InvalidTo()
        if amount0_out > 0:
            self._safe_transfer(self.token0, to, amount0_out)
        if amount1_out > 0:
            self._safe_transfer(self.token1, to, amount1_out)
        if data:
            callee = self.host.at(to)
            if not isinstance(callee, FlashSwapCallee):
                raise InvalidTo(f"{to} does not accept flash swap callbacks")
            callee.on_flash_swap(normalize_address(sender), amount0_out, amount1_out, data)
        # Balances are read after the callback: whatever it did is what counts
        balance0, balance1 = self._balances_held()

        amount0_in = balance0 - (reserve0 - amount0_out) if balance0 > reserve0 - amount0_out else 0
        amount1_in = balance1 - (reserve1 - amount1_out) if balance1 > reserve1 - amount1_out else 0
        if amount0_in <= 0 and amount1_in <= 0:
            raise InsufficientInputAmount()

        fee, base = self.config.fee, self.config.fee_base
        balance0_adjusted = balance0 * base - amount0_in * fee
        balance1_adjusted = balance1 * base - amount1_in * fee
        if balance0_adjusted * balance1_adjusted < reserve0 * reserve1 * base**2:
            raise InvariantViolation(
                f"K decreased: {balance0_adjusted * balance1_adjusted} < "
                f"{reserve0 * reserve1 * base**2}"
            )

        self._update(balance0, balance1, reserve0, reserve1)
        self.emit(
            "Swap",
            sender=normalize_address(sender),
            amount0_in=amount0_in,
            amount1_in=amount1_in,
            amount0_out=amount0_out,
            amount1_out=amount1_out,
            to=to,
        )

    @atomic
    @lock
    def skim(self, sender: str, to: str) -> None:
        """Send any balance above the reserves to ``to``."""
        balance0, balance1 = self._balances_held()
        self._safe_transfer(self.token0, to, (S(balance0) - self.reserve0).value)
        self._safe_transfer(self.token1, to, (S(balance1) - self.reserve1).value)

    @atomic
    @lock
    def sync(self, sender: str) -> None:
        """Make the reserves match the balances actually held."""
        balance0, balance1 = self._balances_held()
        self._update(balance0, balance1, self.reserve0, self.reserve1)
