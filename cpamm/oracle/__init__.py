"""Time-weighted average price oracles built on pool price accumulators."""

from cpamm.oracle.fixed_window import PERIOD, FixedWindowOracle
from cpamm.oracle.library import average_price, current_block_timestamp, current_cumulative_prices
from cpamm.oracle.sliding_window import Observation, SlidingWindowOracle, compute_amount_out

__all__ = [
    "PERIOD",
    "FixedWindowOracle",
    "Observation",
    "SlidingWindowOracle",
    "average_price",
    "compute_amount_out",
    "current_block_timestamp",
    "current_cumulative_prices",
]
