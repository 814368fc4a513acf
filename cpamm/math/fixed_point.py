"""Binary fixed-point ratios (UQ112x112).

A UQ112x112 value is an unsigned integer of at most 224 bits whose low 112 bits
are the fractional part. Pools accumulate prices in this format, and oracles
turn accumulated deltas back into amounts through the UQ144x112 product.

All widths are enforced by masking / range checks, so the results match a
fixed-width machine bit for bit.
"""

from __future__ import annotations

from dataclasses import dataclass

from cpamm.errors import Overflow
from cpamm.safe_int import UINT112_MAX, UINT224_MAX, UINT256_MAX, S

__all__ = [
    "RESOLUTION",
    "Q112",
    "UQ112x112",
    "UQ144x112",
    "encode",
    "uqdiv",
    "fraction",
    "mul_div",
]

RESOLUTION = 112
Q112 = 1 << RESOLUTION


@dataclass(frozen=True)
class UQ144x112:
    """Product of a UQ112x112 ratio and an integer (up to 256 bits)."""

    x: int

    def decode144(self) -> int:
        """Integer part of the product."""
        return self.x >> RESOLUTION


@dataclass(frozen=True)
class UQ112x112:
    """Unsigned 112.112 fixed-point ratio."""

    x: int

    def __post_init__(self) -> None:
        if not 0 <= self.x <= UINT224_MAX:
            raise Overflow(f"UQ112x112 out of range: {self.x}")

    def mul(self, y: int) -> UQ144x112:
        """Multiply by an integer.

        Raises:
            Overflow: If the product does not fit in 256 bits
        """
        z = self.x * y
        if y < 0 or z > UINT256_MAX:
            raise Overflow("FixedPoint: MUL_OVERFLOW")
        return UQ144x112(z)

    def decode(self) -> int:
        """Integer part of the ratio (fits in 112 bits)."""
        return self.x >> RESOLUTION


def encode(y: int) -> UQ112x112:
    """Encode a uint112 as a UQ112x112 (never overflows)."""
    S(y).to_uint(112)
    return UQ112x112(y * Q112)


def uqdiv(x: UQ112x112, y: int) -> UQ112x112:
    """Divide a UQ112x112 by a uint112, rounding down."""
    S(y).to_uint(112)
    return UQ112x112((S(x.x) // y).value)


def fraction(numerator: int, denominator: int) -> UQ112x112:
    """Ratio ``numerator / denominator`` as a UQ112x112.

    Both operands are uint112 values (pool reserves). The shift happens before
    the division so that no precision is lost to an early truncation.

    Raises:
        ValueError: If denominator is zero
        Overflow: If either operand exceeds uint112 or the ratio exceeds 224 bits
    """
    if denominator == 0:
        raise ValueError("FixedPoint: DIV_BY_ZERO")
    if numerator > UINT112_MAX or denominator > UINT112_MAX:
        raise Overflow("FixedPoint: FRACTION_OVERFLOW")
    return UQ112x112((numerator << RESOLUTION) // denominator)


def mul_div(a: int, b: int, denominator: int) -> int:
    """Full-precision ``floor(a * b / denominator)``.

    The intermediate product is never truncated; only the result must fit in
    256 bits.
    """
    result = (S(a) * b // denominator).value
    return S(result).to_uint(256)
