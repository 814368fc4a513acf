"""Sliding-window TWAP oracle.

Keeps ``granularity`` observations per pool in a ring buffer covering
``window_size`` seconds. Slot ``(timestamp // period_size) % granularity`` is
refreshed at most once per period. A consult uses the observation in the slot
right after the current one, which is the oldest in the window, so the answer
is the average price over roughly the last ``window_size`` seconds.

Observations must be refreshed at least once per period for every pool that
is consulted; a stale slot makes ``consult`` fail rather than answer over the
wrong window.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from cpamm import library
from cpamm.errors import (
    InvalidOracleConfig,
    MissingHistoricalObservation,
    UnexpectedTimeElapsed,
)
from cpamm.factory import Factory
from cpamm.host import Contract, atomic
from cpamm.models.types import normalize_address, sort_tokens
from cpamm.oracle.library import average_price, current_cumulative_prices

logger = structlog.get_logger()


@dataclass(frozen=True)
class Observation:
    timestamp: int
    price0_cumulative: int
    price1_cumulative: int


EMPTY_OBSERVATION = Observation(0, 0, 0)


def compute_amount_out(
    price_cumulative_start: int,
    price_cumulative_end: int,
    time_elapsed: int,
    amount_in: int,
) -> int:
    """Convert ``amount_in`` at the average price between two readings."""
    price_average = average_price(price_cumulative_start, price_cumulative_end, time_elapsed)
    return price_average.mul(amount_in).decode144()


class SlidingWindowOracle(Contract):
    _state_fields = ("_observations",)

    def __init__(self, address: str, factory: Factory, window_size: int, granularity: int) -> None:
        """Initialize the oracle.

        Args:
            address: Oracle address
            factory: Factory whose pools are observed
            window_size: Seconds the consulted average should cover
            granularity: Observations per window; must evenly divide window_size

        Raises:
            InvalidOracleConfig: If granularity <= 1 or does not divide window_size
        """
        super().__init__(factory.host, address)
        if granularity <= 1:
            raise InvalidOracleConfig("granularity must be greater than 1")
        period_size = window_size // granularity
        if period_size * granularity != window_size:
            raise InvalidOracleConfig("window_size must be evenly divisible by granularity")
        self.factory = factory
        self.window_size = window_size
        self.granularity = granularity
        self.period_size = period_size
        # (pool address, slot) -> observation; missing slots are empty
        self._observations: dict[tuple[str, int], Observation] = {}

    def observation_index_of(self, timestamp: int) -> int:
        epoch_period = timestamp // self.period_size
        return epoch_period % self.granularity

    def observation(self, pool: str, index: int) -> Observation:
        return self._observations.get((normalize_address(pool), index), EMPTY_OBSERVATION)

    def first_observation_in_window(self, pool: str) -> Observation:
        """The oldest slot, i.e. the one right after the current slot."""
        index = self.observation_index_of(self.host.timestamp)
        return self.observation(pool, (index + 1) % self.granularity)

    @atomic
    def update(self, token_a: str, token_b: str) -> None:
        """Record the pool's cumulative prices if the current slot is older than a period."""
        pool = library.pool_for(self.factory, token_a, token_b)
        now = self.host.timestamp
        index = self.observation_index_of(now)
        time_elapsed = now - self.observation(pool.address, index).timestamp
        if time_elapsed > self.period_size:
            price0_cumulative, price1_cumulative, _ = current_cumulative_prices(pool, self.host)
            self._observations[(pool.address, index)] = Observation(
                now, price0_cumulative, price1_cumulative
            )
            logger.debug("observation_recorded", pool=pool.address[-8:], slot=index)

    def consult(self, token_in: str, amount_in: int, token_out: str) -> int:
        """Average-price conversion over the window.

        Raises:
            MissingHistoricalObservation: If the oldest observation is older than the window
            UnexpectedTimeElapsed: If it is more than two periods too recent
        """
        pool = library.pool_for(self.factory, token_in, token_out)
        first = self.first_observation_in_window(pool.address)

        time_elapsed = self.host.timestamp - first.timestamp
        if time_elapsed > self.window_size:
            raise MissingHistoricalObservation(
                f"Oldest observation is {time_elapsed}s old, window is {self.window_size}s"
            )
        if time_elapsed < self.window_size - self.period_size * 2 or time_elapsed == 0:
            raise UnexpectedTimeElapsed(f"Oldest observation is only {time_elapsed}s old")

        price0_cumulative, price1_cumulative, _ = current_cumulative_prices(pool, self.host)
        token0, _ = sort_tokens(token_in, token_out)
        if normalize_address(token_in) == token0:
            return compute_amount_out(
                first.price0_cumulative, price0_cumulative, time_elapsed, amount_in
            )
        return compute_amount_out(first.price1_cumulative, price1_cumulative, time_elapsed, amount_in)
