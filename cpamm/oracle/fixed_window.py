"""Fixed-window TWAP oracle.

Records one pool's cumulative prices, and once a full period has passed turns
the difference into an average price that stays fixed until the next update.
"""

from __future__ import annotations

import structlog

from cpamm import library
from cpamm.errors import InvalidToken, NoReserves, PeriodNotElapsed
from cpamm.factory import Factory
from cpamm.host import Contract, atomic
from cpamm.math import UQ112x112
from cpamm.models.types import normalize_address
from cpamm.oracle.library import average_price, current_cumulative_prices
from cpamm.safe_int import S

logger = structlog.get_logger()

PERIOD = 24 * 60 * 60


class FixedWindowOracle(Contract):
    _state_fields = (
        "price0_cumulative_last",
        "price1_cumulative_last",
        "block_timestamp_last",
        "price0_average",
        "price1_average",
    )

    def __init__(
        self,
        address: str,
        factory: Factory,
        token_a: str,
        token_b: str,
        period: int = PERIOD,
    ) -> None:
        super().__init__(factory.host, address)
        self.period = period
        self.pool = library.pool_for(factory, token_a, token_b)
        self.token0 = self.pool.token0
        self.token1 = self.pool.token1
        self.price0_cumulative_last = self.pool.price0_cumulative_last
        self.price1_cumulative_last = self.pool.price1_cumulative_last
        reserve0, reserve1, self.block_timestamp_last = self.pool.get_reserves()
        if reserve0 == 0 or reserve1 == 0:
            raise NoReserves()
        self.price0_average = UQ112x112(0)
        self.price1_average = UQ112x112(0)

    @atomic
    def update(self) -> None:
        """Recompute the averages; requires a full period since the last update.

        Raises:
            PeriodNotElapsed: If called again too soon
        """
        price0_cumulative, price1_cumulative, block_timestamp = current_cumulative_prices(
            self.pool, self.host
        )
        time_elapsed = S(block_timestamp).wrapping_sub(self.block_timestamp_last, 32).value
        if time_elapsed < self.period:
            raise PeriodNotElapsed(f"{time_elapsed}s elapsed, period is {self.period}s")

        self.price0_average = average_price(
            self.price0_cumulative_last, price0_cumulative, time_elapsed
        )
        self.price1_average = average_price(
            self.price1_cumulative_last, price1_cumulative, time_elapsed
        )
        self.price0_cumulative_last = price0_cumulative
        self.price1_cumulative_last = price1_cumulative
        self.block_timestamp_last = block_timestamp
        logger.debug("oracle_updated", pool=self.pool.address[-8:], elapsed=time_elapsed)

    def consult(self, token: str, amount_in: int) -> int:
        """Amount of the other asset that ``amount_in`` of ``token`` is worth on average.

        Raises:
            InvalidToken: If token is not one of the pool's assets
        """
        token = normalize_address(token)
        if token == self.token0:
            return self.price0_average.mul(amount_in).decode144()
        if token != self.token1:
            raise InvalidToken(f"{token} is not in the pool")
        return self.price1_average.mul(amount_in).decode144()
