"""Mathematical primitives for the AMM engine.

- UQ112x112: binary fixed-point ratio used for cumulative prices
- isqrt: Newton's-method integer square root
"""

from cpamm.math.babylonian import isqrt
from cpamm.math.fixed_point import UQ112x112, UQ144x112, encode, fraction, mul_div, uqdiv

__all__ = ["UQ112x112", "UQ144x112", "encode", "fraction", "isqrt", "mul_div", "uqdiv"]
