"""Router: slippage- and deadline-protected entry points over the pools.

The router never holds intermediate funds. For a multi-hop swap it computes
every hop's amount up front, pulls the input straight into the first pool and
has each pool send its output directly to the next pool, or to the final
recipient on the last hop. Native value is wrapped on the way in and unwrapped
on the way out; the router only accepts native value from the wrapper.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from cpamm import library
from cpamm.errors import (
    ExcessiveInputAmount,
    Expired,
    Forbidden,
    InsufficientAAmount,
    InsufficientBAmount,
    InsufficientOutputAmount,
    InvalidPath,
    InvalidToken,
    TransferFailed,
    ZeroAddress,
)
from cpamm.factory import Factory
from cpamm.host import Contract, Host, atomic
from cpamm.models.types import ZERO_ADDRESS, normalize_address, sort_tokens
from cpamm.pool import Pool
from cpamm.safe_int import UINT256_MAX, S
from cpamm.token import Token
from cpamm.weth import WrappedNative

logger = structlog.get_logger()


class Router(Contract):
    """Liquidity and swap entry points. Every mutator takes ``sender`` first."""

    def __init__(self, host: Host, address: str, factory: Factory, weth: WrappedNative) -> None:
        super().__init__(host, address)
        self.factory = factory
        self.weth = weth

    # --- Guards and plumbing ---

    def _ensure(self, deadline: int) -> None:
        if deadline < self.host.timestamp:
            raise Expired(f"Deadline {deadline} < now {self.host.timestamp}")

    @staticmethod
    def _recipient(to: str) -> str:
        to = normalize_address(to, validate=True)
        if to == ZERO_ADDRESS:
            raise ZeroAddress("Recipient is the zero address")
        return to

    @staticmethod
    def _path(path: Sequence[str]) -> list[str]:
        if len(path) < 2:
            raise InvalidPath()
        return [normalize_address(token, validate=True) for token in path]

    def _token(self, address: str) -> Token:
        token = self.host.at(address)
        if not isinstance(token, Token):
            raise InvalidToken(f"No asset deployed at {address}")
        return token

    def _pool(self, token_a: str, token_b: str) -> Pool:
        return library.pool_for(self.factory, token_a, token_b)

    def _pull(self, token: str, owner: str, to: str, value: int) -> None:
        if not self._token(token).transfer_from(self.address, owner, to, value):
            raise TransferFailed()

    def _push(self, token: str, to: str, value: int) -> None:
        if not self._token(token).transfer(self.address, to, value):
            raise TransferFailed()

    def receive(self, sender: str, value: int) -> None:
        """Native value is accepted only when unwrapping."""
        if normalize_address(sender) != self.weth.address:
            raise Forbidden("Router only accepts native value from the wrapper")

    # --- Add liquidity ---

    def _add_liquidity(
        self,
        token_a: str,
        token_b: str,
        amount_a_desired: int,
        amount_b_desired: int,
        amount_a_min: int,
        amount_b_min: int,
    ) -> tuple[int, int]:
        """Optimal deposit at the current ratio; creates the pool if needed.

        The side that would exceed its desired amount is the one reduced, so
        neither amount is ever raised above what the caller offered.
        """
        if self.factory.get_pool(token_a, token_b) == ZERO_ADDRESS:
            self.factory.create_pool(self.address, token_a, token_b)
        reserve_a, reserve_b = library.get_reserves(self.factory, token_a, token_b)
        if reserve_a == 0 and reserve_b == 0:
            return amount_a_desired, amount_b_desired

        amount_b_optimal = library.quote(amount_a_desired, reserve_a, reserve_b)
        if amount_b_optimal <= amount_b_desired:
            if amount_b_optimal < amount_b_min:
                raise InsufficientBAmount(f"{amount_b_optimal} < minimum {amount_b_min}")
            return amount_a_desired, amount_b_optimal

        amount_a_optimal = library.quote(amount_b_desired, reserve_b, reserve_a)
        if amount_a_optimal > amount_a_desired or amount_a_optimal < amount_a_min:
            raise InsufficientAAmount(f"{amount_a_optimal} < minimum {amount_a_min}")
        return amount_a_optimal, amount_b_desired

    @atomic
    def add_liquidity(
        self,
        sender: str,
        token_a: str,
        token_b: str,
        amount_a_desired: int,
        amount_b_desired: int,
        amount_a_min: int,
        amount_b_min: int,
        to: str,
        deadline: int,
    ) -> tuple[int, int, int]:
        """Deposit both assets and mint liquidity to ``to``.

        Returns:
            Tuple of (amount_a, amount_b, liquidity)
        """
        self._ensure(deadline)
        to = self._recipient(to)
        amount_a, amount_b = self._add_liquidity(
            token_a, token_b, amount_a_desired, amount_b_desired, amount_a_min, amount_b_min
        )
        pool = self._pool(token_a, token_b)
        self._pull(token_a, sender, pool.address, amount_a)
        self._pull(token_b, sender, pool.address, amount_b)
        liquidity = pool.mint(self.address, to)
        logger.info(
            "liquidity_added",
            pool=pool.address[-8:],
            amount_a=amount_a,
            amount_b=amount_b,
            liquidity=liquidity,
        )
        return amount_a, amount_b, liquidity

    @atomic
    def add_liquidity_eth(
        self,
        sender: str,
        token: str,
        amount_token_desired: int,
        amount_token_min: int,
        amount_eth_min: int,
        to: str,
        deadline: int,
        *,
        value: int,
    ) -> tuple[int, int, int]:
        """Deposit a token against native value; unused native value is refunded.

        Returns:
            Tuple of (amount_token, amount_eth, liquidity)
        """
        self.host.move_value(sender, self.address, value)
        self._ensure(deadline)
        to = self._recipient(to)
        amount_token, amount_eth = self._add_liquidity(
            token, self.weth.address, amount_token_desired, value, amount_token_min, amount_eth_min
        )
        pool = self._pool(token, self.weth.address)
        self._pull(token, sender, pool.address, amount_token)
        self.weth.deposit(self.address, amount_eth)
        self._push(self.weth.address, pool.address, amount_eth)
        liquidity = pool.mint(self.address, to)
        if value > amount_eth:
            self.host.send_value(self.address, sender, value - amount_eth)
        return amount_token, amount_eth, liquidity

    # --- Remove liquidity ---

    def _remove_liquidity(
        self,
        sender: str,
        token_a: str,
        token_b: str,
        liquidity: int,
        amount_a_min: int,
        amount_b_min: int,
        to: str,
    ) -> tuple[int, int]:
        pool = self._pool(token_a, token_b)
        # Liquidity goes into the pool first; burn redeems what the pool holds
        pool.transfer_from(self.address, sender, pool.address, liquidity)
        amount0, amount1 = pool.burn(self.address, to)
        token0, _ = sort_tokens(token_a, token_b)
        if normalize_address(token_a) == token0:
            amount_a, amount_b = amount0, amount1
        else:
            amount_a, amount_b = amount1, amount0
        if amount_a < amount_a_min:
            raise InsufficientAAmount(f"{amount_a} < minimum {amount_a_min}")
        if amount_b < amount_b_min:
            raise InsufficientBAmount(f"{amount_b} < minimum {amount_b_min}")
        logger.info(
            "liquidity_removed",
            pool=pool.address[-8:],
            liquidity=liquidity,
            amount_a=amount_a,
            amount_b=amount_b,
        )
        return amount_a, amount_b

    @atomic
    def remove_liquidity(
        self,
        sender: str,
        token_a: str,
        token_b: str,
        liquidity: int,
        amount_a_min: int,
        amount_b_min: int,
        to: str,
        deadline: int,
    ) -> tuple[int, int]:
        self._ensure(deadline)
        to = self._recipient(to)
        return self._remove_liquidity(
            sender, token_a, token_b, liquidity, amount_a_min, amount_b_min, to
        )

    @atomic
    def remove_liquidity_eth(
        self,
        sender: str,
        token: str,
        liquidity: int,
        amount_token_min: int,
        amount_eth_min: int,
        to: str,
        deadline: int,
    ) -> tuple[int, int]:
        self._ensure(deadline)
        to = self._recipient(to)
        amount_token, amount_eth = self._remove_liquidity(
            sender,
            token,
            self.weth.address,
            liquidity,
            amount_token_min,
            amount_eth_min,
            self.address,
        )
        self._push(token, to, amount_token)
        self.weth.withdraw(self.address, amount_eth)
        self.host.send_value(self.address, to, amount_eth)
        return amount_token, amount_eth

    def _permit(
        self,
        sender: str,
        token_a: str,
        token_b: str,
        liquidity: int,
        deadline: int,
        approve_max: bool,
        v: int,
        r: int,
        s: int,
    ) -> None:
        value = UINT256_MAX if approve_max else liquidity
        self._pool(token_a, token_b).permit(sender, self.address, value, deadline, v, r, s)

    @atomic
    def remove_liquidity_with_permit(
        self,
        sender: str,
        token_a: str,
        token_b: str,
        liquidity: int,
        amount_a_min: int,
        amount_b_min: int,
        to: str,
        deadline: int,
        approve_max: bool,
        v: int,
        r: int,
        s: int,
    ) -> tuple[int, int]:
        """remove_liquidity authorized by a signed approval instead of a prior approve."""
        self._permit(sender, token_a, token_b, liquidity, deadline, approve_max, v, r, s)
        return self.remove_liquidity(
            sender, token_a, token_b, liquidity, amount_a_min, amount_b_min, to, deadline
        )

    @atomic
    def remove_liquidity_eth_with_permit(
        self,
        sender: str,
        token: str,
        liquidity: int,
        amount_token_min: int,
        amount_eth_min: int,
        to: str,
        deadline: int,
        approve_max: bool,
        v: int,
        r: int,
        s: int,
    ) -> tuple[int, int]:
        self._permit(sender, token, self.weth.address, liquidity, deadline, approve_max, v, r, s)
        return self.remove_liquidity_eth(
            sender, token, liquidity, amount_token_min, amount_eth_min, to, deadline
        )

    @atomic
    def remove_liquidity_eth_supporting_fee_on_transfer_tokens(
        self,
        sender: str,
        token: str,
        liquidity: int,
        amount_token_min: int,
        amount_eth_min: int,
        to: str,
        deadline: int,
    ) -> int:
        """Like remove_liquidity_eth, but forwards whatever token amount actually arrived."""
        self._ensure(deadline)
        to = self._recipient(to)
        _, amount_eth = self._remove_liquidity(
            sender,
            token,
            self.weth.address,
            liquidity,
            amount_token_min,
            amount_eth_min,
            self.address,
        )
        self._push(token, to, self._token(token).balance_of(self.address))
        self.weth.withdraw(self.address, amount_eth)
        self.host.send_value(self.address, to, amount_eth)
        return amount_eth

    @atomic
    def remove_liquidity_eth_with_permit_supporting_fee_on_transfer_tokens(
        self,
        sender: str,
        token: str,
        liquidity: int,
        amount_token_min: int,
        amount_eth_min: int,
        to: str,
        deadline: int,
        approve_max: bool,
        v: int,
        r: int,
        s: int,
    ) -> int:
        self._permit(sender, token, self.weth.address, liquidity, deadline, approve_max, v, r, s)
        return self.remove_liquidity_eth_supporting_fee_on_transfer_tokens(
            sender, token, liquidity, amount_token_min, amount_eth_min, to, deadline
        )

    # --- Swaps ---

    def _swap(self, amounts: list[int], path: list[str], to: str) -> None:
        """Execute precomputed hop amounts; requires the input already in the first pool."""
        for i, (token_in, token_out) in enumerate(zip(path, path[1:])):
            token0, _ = sort_tokens(token_in, token_out)
            amount_out = amounts[i + 1]
            amount0_out, amount1_out = (0, amount_out) if token_in == token0 else (amount_out, 0)
            hop_to = self._pool(token_out, path[i + 2]).address if i < len(path) - 2 else to
            self._pool(token_in, token_out).swap(self.address, amount0_out, amount1_out, hop_to)

    def _log_swap(self, kind: str, path: list[str], amounts: list[int]) -> None:
        logger.info(
            "swap_executed",
            kind=kind,
            hops=len(path) - 1,
            amount_in=amounts[0],
            amount_out=amounts[-1],
        )

    @atomic
    def swap_exact_tokens_for_tokens(
        self,
        sender: str,
        amount_in: int,
        amount_out_min: int,
        path: Sequence[str],
        to: str,
        deadline: int,
    ) -> list[int]:
        self._ensure(deadline)
        path, to = self._path(path), self._recipient(to)
        amounts = library.get_amounts_out(self.factory, amount_in, path)
        if amounts[-1] < amount_out_min:
            raise InsufficientOutputAmount(f"{amounts[-1]} < minimum {amount_out_min}")
        self._pull(path[0], sender, self._pool(path[0], path[1]).address, amounts[0])
        self._swap(amounts, path, to)
        self._log_swap("exact_in", path, amounts)
        return amounts

    @atomic
    def swap_tokens_for_exact_tokens(
        self,
        sender: str,
        amount_out: int,
        amount_in_max: int,
        path: Sequence[str],
        to: str,
        deadline: int,
    ) -> list[int]:
        self._ensure(deadline)
        path, to = self._path(path), self._recipient(to)
        amounts = library.get_amounts_in(self.factory, amount_out, path)
        if amounts[0] > amount_in_max:
            raise ExcessiveInputAmount(f"{amounts[0]} > maximum {amount_in_max}")
        self._pull(path[0], sender, self._pool(path[0], path[1]).address, amounts[0])
        self._swap(amounts, path, to)
        self._log_swap("exact_out", path, amounts)
        return amounts

    @atomic
    def swap_exact_eth_for_tokens(
        self,
        sender: str,
        amount_out_min: int,
        path: Sequence[str],
        to: str,
        deadline: int,
        *,
        value: int,
    ) -> list[int]:
        self.host.move_value(sender, self.address, value)
        self._ensure(deadline)
        path, to = self._path(path), self._recipient(to)
        if path[0] != self.weth.address:
            raise InvalidPath("Path must start with the wrapped native asset")
        amounts = library.get_amounts_out(self.factory, value, path)
        if amounts[-1] < amount_out_min:
            raise InsufficientOutputAmount(f"{amounts[-1]} < minimum {amount_out_min}")
        self.weth.deposit(self.address, amounts[0])
        self._push(self.weth.address, self._pool(path[0], path[1]).address, amounts[0])
        self._swap(amounts, path, to)
        self._log_swap("exact_eth_in", path, amounts)
        return amounts

    @atomic
    def swap_tokens_for_exact_eth(
        self,
        sender: str,
        amount_out: int,
        amount_in_max: int,
        path: Sequence[str],
        to: str,
        deadline: int,
    ) -> list[int]:
        self._ensure(deadline)
        path, to = self._path(path), self._recipient(to)
        if path[-1] != self.weth.address:
            raise InvalidPath("Path must end with the wrapped native asset")
        amounts = library.get_amounts_in(self.factory, amount_out, path)
        if amounts[0] > amount_in_max:
            raise ExcessiveInputAmount(f"{amounts[0]} > maximum {amount_in_max}")
        self._pull(path[0], sender, self._pool(path[0], path[1]).address, amounts[0])
        self._swap(amounts, path, self.address)
        self.weth.withdraw(self.address, amounts[-1])
        self.host.send_value(self.address, to, amounts[-1])
        self._log_swap("exact_eth_out", path, amounts)
        return amounts

    @atomic
    def swap_exact_tokens_for_eth(
        self,
        sender: str,
        amount_in: int,
        amount_out_min: int,
        path: Sequence[str],
        to: str,
        deadline: int,
    ) -> list[int]:
        self._ensure(deadline)
        path, to = self._path(path), self._recipient(to)
        if path[-1] != self.weth.address:
            raise InvalidPath("Path must end with the wrapped native asset")
        amounts = library.get_amounts_out(self.factory, amount_in, path)
        if amounts[-1] < amount_out_min:
            raise InsufficientOutputAmount(f"{amounts[-1]} < minimum {amount_out_min}")
        self._pull(path[0], sender, self._pool(path[0], path[1]).address, amounts[0])
        self._swap(amounts, path, self.address)
        self.weth.withdraw(self.address, amounts[-1])
        self.host.send_value(self.address, to, amounts[-1])
        self._log_swap("exact_in_eth_out", path, amounts)
        return amounts

    @atomic
    def swap_eth_for_exact_tokens(
        self,
        sender: str,
        amount_out: int,
        path: Sequence[str],
        to: str,
        deadline: int,
        *,
        value: int,
    ) -> list[int]:
        self.host.move_value(sender, self.address, value)
        self._ensure(deadline)
        path, to = self._path(path), self._recipient(to)
        if path[0] != self.weth.address:
            raise InvalidPath("Path must start with the wrapped native asset")
        amounts = library.get_amounts_in(self.factory, amount_out, path)
        if amounts[0] > value:
            raise ExcessiveInputAmount(f"{amounts[0]} > value {value}")
        self.weth.deposit(self.address, amounts[0])
        self._push(self.weth.address, self._pool(path[0], path[1]).address, amounts[0])
        self._swap(amounts, path, to)
        if value > amounts[0]:
            self.host.send_value(self.address, sender, value - amounts[0])
        self._log_swap("eth_in_exact_out", path, amounts)
        return amounts

    # --- Swaps with fee-on-transfer assets ---

    def _swap_supporting_fee_on_transfer_tokens(self, path: list[str], to: str) -> None:
        """Size every hop from what the pool actually received."""
        config = self.factory.config
        for i, (token_in, token_out) in enumerate(zip(path, path[1:])):
            token0, _ = sort_tokens(token_in, token_out)
            pool = self._pool(token_in, token_out)
            reserve0, reserve1, _ = pool.get_reserves()
            if token_in == token0:
                reserve_in, reserve_out = reserve0, reserve1
            else:
                reserve_in, reserve_out = reserve1, reserve0
            amount_in = (S(self._token(token_in).balance_of(pool.address)) - reserve_in).value
            amount_out = library.get_amount_out(
                amount_in, reserve_in, reserve_out, config.fee_factor, config.fee_base
            )
            amount0_out, amount1_out = (0, amount_out) if token_in == token0 else (amount_out, 0)
            hop_to = self._pool(token_out, path[i + 2]).address if i < len(path) - 2 else to
            pool.swap(self.address, amount0_out, amount1_out, hop_to)

    @atomic
    def swap_exact_tokens_for_tokens_supporting_fee_on_transfer_tokens(
        self,
        sender: str,
        amount_in: int,
        amount_out_min: int,
        path: Sequence[str],
        to: str,
        deadline: int,
    ) -> None:
        self._ensure(deadline)
        path, to = self._path(path), self._recipient(to)
        self._pull(path[0], sender, self._pool(path[0], path[1]).address, amount_in)
        token_out = self._token(path[-1])
        balance_before = token_out.balance_of(to)
        self._swap_supporting_fee_on_transfer_tokens(path, to)
        received = token_out.balance_of(to) - balance_before
        if received < amount_out_min:
            raise InsufficientOutputAmount(f"{received} < minimum {amount_out_min}")

    @atomic
    def swap_exact_eth_for_tokens_supporting_fee_on_transfer_tokens(
        self,
        sender: str,
        amount_out_min: int,
        path: Sequence[str],
        to: str,
        deadline: int,
        *,
        value: int,
    ) -> None:
        self.host.move_value(sender, self.address, value)
        self._ensure(deadline)
        path, to = self._path(path), self._recipient(to)
        if path[0] != self.weth.address:
            raise InvalidPath("Path must start with the wrapped native asset")
        self.weth.deposit(self.address, value)
        self._push(self.weth.address, self._pool(path[0], path[1]).address, value)
        token_out = self._token(path[-1])
        balance_before = token_out.balance_of(to)
        self._swap_supporting_fee_on_transfer_tokens(path, to)
        received = token_out.balance_of(to) - balance_before
        if received < amount_out_min:
            raise InsufficientOutputAmount(f"{received} < minimum {amount_out_min}")

    @atomic
    def swap_exact_tokens_for_eth_supporting_fee_on_transfer_tokens(
        self,
        sender: str,
        amount_in: int,
        amount_out_min: int,
        path: Sequence[str],
        to: str,
        deadline: int,
    ) -> None:
        self._ensure(deadline)
        path, to = self._path(path), self._recipient(to)
        if path[-1] != self.weth.address:
            raise InvalidPath("Path must end with the wrapped native asset")
        self._pull(path[0], sender, self._pool(path[0], path[1]).address, amount_in)
        self._swap_supporting_fee_on_transfer_tokens(path, self.address)
        amount_out = self.weth.balance_of(self.address)
        if amount_out < amount_out_min:
            raise InsufficientOutputAmount(f"{amount_out} < minimum {amount_out_min}")
        self.weth.withdraw(self.address, amount_out)
        self.host.send_value(self.address, to, amount_out)

    # --- Quotes ---

    def quote(self, amount_a: int, reserve_a: int, reserve_b: int) -> int:
        return library.quote(amount_a, reserve_a, reserve_b)

    def get_amount_out(self, amount_in: int, reserve_in: int, reserve_out: int) -> int:
        config = self.factory.config
        return library.get_amount_out(
            amount_in, reserve_in, reserve_out, config.fee_factor, config.fee_base
        )

    def get_amount_in(self, amount_out: int, reserve_in: int, reserve_out: int) -> int:
        config = self.factory.config
        return library.get_amount_in(
            amount_out, reserve_in, reserve_out, config.fee_factor, config.fee_base
        )

    def get_amounts_out(self, amount_in: int, path: Sequence[str]) -> list[int]:
        return library.get_amounts_out(self.factory, amount_in, self._path(path))

    def get_amounts_in(self, amount_out: int, path: Sequence[str]) -> list[int]:
        return library.get_amounts_in(self.factory, amount_out, self._path(path))
