"""Error classes for the AMM engine.

Every error raised by a pool, the factory, the router or an oracle derives
from AmmError and carries a stable upper-snake ``code``. The families map to
how a caller should react:

- ValidationError: malformed input, rejected before any state change
- EconomicError: liquidity / output / invariant failures
- TemporalError: deadline or signature validity problems
- UniquenessError: something that may exist only once already exists
- AccessError: caller not allowed, or re-entry into a locked pool

All of them are terminal for the triggering call. The host transaction
restores every piece of state touched by the call before the error leaves it.
"""

from __future__ import annotations

from typing import ClassVar


class AmmError(Exception):
    """Base error for AMM operations."""

    code: ClassVar[str] = "AMM_ERROR"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.code
        super().__init__(self.detail)


# --- Validation ---


class ValidationError(AmmError):
    code = "VALIDATION_ERROR"


class IdenticalAddresses(ValidationError):
    code = "IDENTICAL_ADDRESSES"


class ZeroAddress(ValidationError):
    code = "ZERO_ADDRESS"


class InvalidAddress(ValidationError):
    code = "INVALID_ADDRESS"


class InvalidPath(ValidationError):
    code = "INVALID_PATH"


class InsufficientAmount(ValidationError):
    code = "INSUFFICIENT_AMOUNT"


class InvalidTo(ValidationError):
    code = "INVALID_TO"


class InvalidToken(ValidationError):
    code = "INVALID_TOKEN"


class InvalidOracleConfig(ValidationError):
    code = "INVALID_ORACLE_CONFIG"


class InvalidLiquidityAmount(ValidationError):
    code = "LIQUIDITY_AMOUNT"


class ZeroPrice(ValidationError):
    code = "ZERO_PRICE"


class ZeroSpend(ValidationError):
    code = "ZERO_SPEND"


# --- Economic ---


class EconomicError(AmmError):
    code = "ECONOMIC_ERROR"


class InsufficientLiquidity(EconomicError):
    code = "INSUFFICIENT_LIQUIDITY"


class InsufficientLiquidityMinted(EconomicError):
    code = "INSUFFICIENT_LIQUIDITY_MINTED"


class InsufficientLiquidityBurned(EconomicError):
    code = "INSUFFICIENT_LIQUIDITY_BURNED"


class InsufficientInputAmount(EconomicError):
    code = "INSUFFICIENT_INPUT_AMOUNT"


class InsufficientOutputAmount(EconomicError):
    code = "INSUFFICIENT_OUTPUT_AMOUNT"


class InsufficientAAmount(EconomicError):
    code = "INSUFFICIENT_A_AMOUNT"


class InsufficientBAmount(EconomicError):
    code = "INSUFFICIENT_B_AMOUNT"


class ExcessiveInputAmount(EconomicError):
    code = "EXCESSIVE_INPUT_AMOUNT"


class InvariantViolation(EconomicError):
    """Fee-adjusted constant product decreased across a swap."""

    code = "K"


class InsufficientBalance(EconomicError):
    code = "INSUFFICIENT_BALANCE"


class InsufficientAllowance(EconomicError):
    code = "INSUFFICIENT_ALLOWANCE"


class TransferFailed(EconomicError):
    code = "TRANSFER_FAILED"


class Overflow(EconomicError):
    code = "OVERFLOW"


class NoReserves(EconomicError):
    code = "NO_RESERVES"


class ZeroPoolReserves(EconomicError):
    code = "ZERO_PAIR_RESERVES"


class ZeroAmountIn(EconomicError):
    code = "ZERO_AMOUNT_IN"


# --- Temporal ---


class TemporalError(AmmError):
    code = "TEMPORAL_ERROR"


class Expired(TemporalError):
    code = "EXPIRED"


class InvalidSignature(TemporalError):
    code = "INVALID_SIGNATURE"


class PeriodNotElapsed(TemporalError):
    code = "PERIOD_NOT_ELAPSED"


class MissingHistoricalObservation(TemporalError):
    code = "MISSING_HISTORICAL_OBSERVATION"


class UnexpectedTimeElapsed(TemporalError):
    code = "UNEXPECTED_TIME_ELAPSED"


# --- Uniqueness ---


class UniquenessError(AmmError):
    code = "UNIQUENESS_ERROR"


class PoolExists(UniquenessError):
    code = "PAIR_EXISTS"


class AlreadyInitialized(UniquenessError):
    code = "ALREADY_INITIALIZED"


# --- Access ---


class AccessError(AmmError):
    code = "ACCESS_ERROR"


class Forbidden(AccessError):
    code = "FORBIDDEN"


class Locked(AccessError):
    code = "LOCKED"
