"""Request and response models for the quote service.

Amounts are uint256 values; they are accepted as ints or decimal strings and
always returned as decimal strings.
"""

from pydantic import BaseModel, Field, field_validator

from cpamm.models.types import Address, Uint256


class AmountOutRequest(BaseModel):
    """Single-hop exact-input quote against explicit reserves."""

    amount_in: Uint256 = Field(alias="amountIn")
    reserve_in: Uint256 = Field(alias="reserveIn")
    reserve_out: Uint256 = Field(alias="reserveOut")

    model_config = {"populate_by_name": True}


class AmountInRequest(BaseModel):
    """Single-hop exact-output quote against explicit reserves."""

    amount_out: Uint256 = Field(alias="amountOut")
    reserve_in: Uint256 = Field(alias="reserveIn")
    reserve_out: Uint256 = Field(alias="reserveOut")

    model_config = {"populate_by_name": True}


class AmountResponse(BaseModel):
    amount: Uint256


class AmountsOutRequest(BaseModel):
    """Multi-hop exact-input quote along a path of deployed pools."""

    amount_in: Uint256 = Field(alias="amountIn")
    path: list[Address]

    model_config = {"populate_by_name": True}

    @field_validator("path")
    @classmethod
    def validate_path(cls, path: list[str]) -> list[str]:
        if len(path) < 2:
            raise ValueError("path must contain at least two assets")
        return path


class AmountsInRequest(BaseModel):
    """Multi-hop exact-output quote along a path of deployed pools."""

    amount_out: Uint256 = Field(alias="amountOut")
    path: list[Address]

    model_config = {"populate_by_name": True}

    @field_validator("path")
    @classmethod
    def validate_path(cls, path: list[str]) -> list[str]:
        if len(path) < 2:
            raise ValueError("path must contain at least two assets")
        return path


class AmountsResponse(BaseModel):
    amounts: list[Uint256]


class PoolInfo(BaseModel):
    """Public state of one pool."""

    address: Address
    token0: Address
    token1: Address
    reserve0: Uint256
    reserve1: Uint256
    total_supply: Uint256 = Field(serialization_alias="totalSupply")
    block_timestamp_last: int = Field(serialization_alias="blockTimestampLast")
    price0_cumulative_last: Uint256 = Field(serialization_alias="price0CumulativeLast")
    price1_cumulative_last: Uint256 = Field(serialization_alias="price1CumulativeLast")
    k_last: Uint256 = Field(serialization_alias="kLast")


class PoolList(BaseModel):
    pools: list[PoolInfo]


class ErrorResponse(BaseModel):
    code: str
    detail: str
