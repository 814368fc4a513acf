"""Engine configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass

from eth_utils import keccak

# Code fingerprint mixed into every pool location. Changing it relocates every
# pool, so it is versioned.
POOL_CODE_HASH = keccak(text="cpamm.pool.Pool/v1")


@dataclass(frozen=True)
class EngineConfig:
    """Centralized configuration for pools, factory and router.

    Attributes:
        fee_factor: Fraction of the input that is traded (997 for a 0.3% fee)
        fee_base: Denominator of fee_factor (1000)
        minimum_liquidity: Liquidity units locked forever on first mint
        chain_id: Chain identifier bound into permit signatures
        pool_code_hash: Code fingerprint used in pool location derivation
        lp_name: Liquidity token name (also the EIP-712 domain name)
        lp_symbol: Liquidity token symbol
    """

    fee_factor: int = 997
    fee_base: int = 1000
    minimum_liquidity: int = 1000
    chain_id: int = 1
    pool_code_hash: bytes = POOL_CODE_HASH
    lp_name: str = "CPAMM Liquidity"
    lp_symbol: str = "CPAMM-LP"

    def __post_init__(self) -> None:
        if not 0 < self.fee_factor <= self.fee_base:
            raise ValueError(
                f"fee_factor must be in (0, fee_base], got {self.fee_factor}/{self.fee_base}"
            )
        if self.minimum_liquidity < 0:
            raise ValueError("minimum_liquidity cannot be negative")
        if len(self.pool_code_hash) != 32:
            raise ValueError("pool_code_hash must be 32 bytes")

    @property
    def fee(self) -> int:
        """Fee numerator over fee_base (3 for 997/1000)."""
        return self.fee_base - self.fee_factor

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Build a config from CPAMM_* environment variables with defaults."""
        defaults = cls()
        return cls(
            fee_factor=int(os.environ.get("CPAMM_FEE_FACTOR", defaults.fee_factor)),
            fee_base=int(os.environ.get("CPAMM_FEE_BASE", defaults.fee_base)),
            minimum_liquidity=int(
                os.environ.get("CPAMM_MINIMUM_LIQUIDITY", defaults.minimum_liquidity)
            ),
            chain_id=int(os.environ.get("CPAMM_CHAIN_ID", defaults.chain_id)),
        )


# Default configuration instance
DEFAULT_CONFIG = EngineConfig()
