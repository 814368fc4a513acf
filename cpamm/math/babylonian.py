"""Integer square root via Newton's (Babylonian) method."""

from __future__ import annotations

__all__ = ["isqrt"]


def isqrt(y: int) -> int:
    """Return ``floor(sqrt(y))`` for a non-negative integer.

    Starts from ``y // 2 + 1`` and iterates ``x = (y // x + x) // 2`` until the
    estimate stops decreasing. Values 1..3 short-circuit to 1.

    Raises:
        ValueError: If y is negative
    """
    if y < 0:
        raise ValueError(f"isqrt of negative value: {y}")
    if y > 3:
        z = y
        x = y // 2 + 1
        while x < z:
            z = x
            x = (y // x + x) // 2
        return z
    if y != 0:
        return 1
    return 0
