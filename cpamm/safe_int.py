"""Checked integer wrapper for pool and router arithmetic.

Python integers never overflow, so every fixed-width rule of the engine
(uint112 reserves, uint32 timestamps, uint256 accumulators) has to be stated
explicitly. SafeInt makes the common cases loud:

- Division by zero raises DivisionByZero
- Subtraction below zero raises Underflow
- Width checks (``to_uint``) raise Overflow
- Wrapping arithmetic (``wrapping_add`` / ``wrapping_sub``) masks instead

Usage pattern:
    from cpamm.safe_int import S

    def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int) -> int:
        amount_in_with_fee = S(amount_in) * 997
        numerator = amount_in_with_fee * reserve_out
        denominator = S(reserve_in) * 1000 + amount_in_with_fee
        return (numerator // denominator).value
"""

from __future__ import annotations

from cpamm.errors import Overflow as WidthOverflow

UINT32_MAX = 2**32 - 1
UINT112_MAX = 2**112 - 1
UINT224_MAX = 2**224 - 1
UINT256_MAX = 2**256 - 1


def mask(value: int, bits: int) -> int:
    """Reduce a value modulo 2**bits (two's-complement wrap)."""
    return value & ((1 << bits) - 1)


class SafeIntError(ArithmeticError):
    """Base class for SafeInt arithmetic errors."""


class DivisionByZero(SafeIntError):
    """Division or modulo by zero."""


class Underflow(SafeIntError):
    """Subtraction would produce a negative result."""


class SafeInt:
    """Non-negative integer with checked arithmetic.

    Attributes:
        value: The underlying integer value (read-only)
    """

    __slots__ = ("_value",)
    _value: int

    def __init__(self, value: int | SafeInt) -> None:
        if isinstance(value, SafeInt):
            self._value = value._value
        elif isinstance(value, int) and not isinstance(value, bool):
            self._value = value
        else:
            raise TypeError(f"SafeInt requires int, got {type(value).__name__}")

    @property
    def value(self) -> int:
        return self._value

    def __repr__(self) -> str:
        return f"SafeInt({self._value})"

    def __hash__(self) -> int:
        return hash(self._value)

    def __add__(self, other: SafeInt | int) -> SafeInt:
        return SafeInt(self._value + _extract_value(other))

    __radd__ = __add__

    def __sub__(self, other: SafeInt | int) -> SafeInt:
        """Subtract other from self.

        Raises:
            Underflow: If result would be negative
        """
        other_val = _extract_value(other)
        result = self._value - other_val
        if result < 0:
            raise Underflow(f"Underflow: {self._value} - {other_val}")
        return SafeInt(result)

    def __rsub__(self, other: int) -> SafeInt:
        return SafeInt(other) - self

    def __mul__(self, other: SafeInt | int) -> SafeInt:
        return SafeInt(self._value * _extract_value(other))

    __rmul__ = __mul__

    def __floordiv__(self, other: SafeInt | int) -> SafeInt:
        """Floor division.

        Raises:
            DivisionByZero: If other is zero
        """
        other_val = _extract_value(other)
        if other_val == 0:
            raise DivisionByZero(f"Division by zero: {self._value} // 0")
        return SafeInt(self._value // other_val)

    def __mod__(self, other: SafeInt | int) -> SafeInt:
        other_val = _extract_value(other)
        if other_val == 0:
            raise DivisionByZero(f"Modulo by zero: {self._value} % 0")
        return SafeInt(self._value % other_val)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SafeInt):
            return self._value == other._value
        if isinstance(other, int):
            return self._value == other
        return NotImplemented

    def __lt__(self, other: SafeInt | int) -> bool:
        return self._value < _extract_value(other)

    def __le__(self, other: SafeInt | int) -> bool:
        return self._value <= _extract_value(other)

    def __gt__(self, other: SafeInt | int) -> bool:
        return self._value > _extract_value(other)

    def __ge__(self, other: SafeInt | int) -> bool:
        return self._value >= _extract_value(other)

    def __int__(self) -> int:
        return self._value

    def __index__(self) -> int:
        return self._value

    def __bool__(self) -> bool:
        return self._value != 0

    # --- Width-aware operations ---

    def to_uint(self, bits: int) -> int:
        """Return the value, validating that it fits in an unsigned ``bits`` word.

        Raises:
            Overflow: If the value is negative or too wide
        """
        if self._value < 0 or self._value >> bits:
            raise WidthOverflow(f"Value does not fit uint{bits}: {self._value}")
        return self._value

    def wrapping_add(self, other: SafeInt | int, bits: int = 256) -> SafeInt:
        """Add modulo 2**bits."""
        return SafeInt(mask(self._value + _extract_value(other), bits))

    def wrapping_sub(self, other: SafeInt | int, bits: int = 256) -> SafeInt:
        """Subtract modulo 2**bits; never raises Underflow."""
        return SafeInt(mask(self._value - _extract_value(other), bits))

    def min(self, other: SafeInt | int) -> SafeInt:
        return SafeInt(min(self._value, _extract_value(other)))


def _extract_value(x: SafeInt | int) -> int:
    if isinstance(x, SafeInt):
        return x._value
    return x


# Convenience alias for concise code
S = SafeInt
