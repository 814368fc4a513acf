"""Counterfactual cumulative prices.

A pool only advances its accumulators when it is touched. To read a price
"as of now" the oracle adds the contribution of the time elapsed since the
pool's last update, using the pool's current reserves, without writing
anything back.
"""

from __future__ import annotations

from cpamm.errors import NoReserves
from cpamm.host import Host
from cpamm.math import UQ112x112, fraction
from cpamm.pool import Pool
from cpamm.safe_int import S, mask


def current_block_timestamp(host: Host) -> int:
    """Host time truncated to the pool's uint32 clock (wraps every ~136 years)."""
    return mask(host.timestamp, 32)


def current_cumulative_prices(pool: Pool, host: Host | None = None) -> tuple[int, int, int]:
    """Return (price0_cumulative, price1_cumulative, block_timestamp) as of now.

    Raises:
        NoReserves: If the pool has an empty reserve and time has passed
    """
    host = host or pool.host
    block_timestamp = current_block_timestamp(host)
    price0_cumulative = pool.price0_cumulative_last
    price1_cumulative = pool.price1_cumulative_last

    reserve0, reserve1, block_timestamp_last = pool.get_reserves()
    if block_timestamp_last != block_timestamp:
        if reserve0 == 0 or reserve1 == 0:
            raise NoReserves()
        # Wrapping subtraction: correct across the uint32 rollover
        time_elapsed = S(block_timestamp).wrapping_sub(block_timestamp_last, 32).value
        price0_cumulative = mask(
            price0_cumulative + fraction(reserve1, reserve0).x * time_elapsed, 256
        )
        price1_cumulative = mask(
            price1_cumulative + fraction(reserve0, reserve1).x * time_elapsed, 256
        )
    return price0_cumulative, price1_cumulative, block_timestamp


def average_price(cumulative_start: int, cumulative_end: int, time_elapsed: int) -> UQ112x112:
    """Time-weighted average between two accumulator readings.

    The accumulator difference wraps at 2**256 and the average is truncated to
    a 224-bit ratio, matching fixed-width accumulator arithmetic.
    """
    delta = S(cumulative_end).wrapping_sub(cumulative_start).value
    return UQ112x112(mask(delta // time_elapsed, 224))
