"""Quote service endpoints."""

import functools

import structlog
from fastapi import APIRouter, Depends, HTTPException

from cpamm.api.models import (
    AmountInRequest,
    AmountOutRequest,
    AmountResponse,
    AmountsInRequest,
    AmountsOutRequest,
    AmountsResponse,
    PoolInfo,
    PoolList,
)
from cpamm.deployment import Deployment, deploy
from cpamm.models.types import normalize_address
from cpamm.pool import Pool

logger = structlog.get_logger()

router = APIRouter()


@functools.cache
def _default_deployment() -> Deployment:
    return deploy()


def get_deployment() -> Deployment:
    """Dependency provider for the engine the service quotes against.

    Override this in tests to inject a populated deployment:
        app.dependency_overrides[get_deployment] = lambda: deployment
    """
    return _default_deployment()


def _pool_info(pool: Pool) -> PoolInfo:
    reserve0, reserve1, block_timestamp_last = pool.get_reserves()
    return PoolInfo(
        address=pool.address,
        token0=pool.token0,
        token1=pool.token1,
        reserve0=reserve0,
        reserve1=reserve1,
        total_supply=pool.total_supply,
        block_timestamp_last=block_timestamp_last,
        price0_cumulative_last=pool.price0_cumulative_last,
        price1_cumulative_last=pool.price1_cumulative_last,
        k_last=pool.k_last,
    )


@router.get("/pools")
async def list_pools(deployment: Deployment = Depends(get_deployment)) -> PoolList:
    """All pools in creation order."""
    factory = deployment.factory
    pools = []
    for i in range(factory.all_pools_length()):
        pool = deployment.host.at(factory.all_pools(i))
        if isinstance(pool, Pool):
            pools.append(_pool_info(pool))
    return PoolList(pools=pools)


@router.get("/pools/{token_a}/{token_b}")
async def get_pool(
    token_a: str,
    token_b: str,
    deployment: Deployment = Depends(get_deployment),
) -> PoolInfo:
    """State of the pool for an unordered pair.

    Error Handling:
        - Malformed address: 400 with code INVALID_ADDRESS
        - No pool for the pair: 404
    """
    token_a = normalize_address(token_a, validate=True)
    token_b = normalize_address(token_b, validate=True)
    pool = deployment.factory.pool(token_a, token_b)
    if pool is None:
        raise HTTPException(status_code=404, detail=f"No pool for {token_a}/{token_b}")
    return _pool_info(pool)


@router.post("/quote/amount-out")
async def quote_amount_out(
    request: AmountOutRequest,
    deployment: Deployment = Depends(get_deployment),
) -> AmountResponse:
    amount = deployment.router.get_amount_out(
        request.amount_in, request.reserve_in, request.reserve_out
    )
    return AmountResponse(amount=amount)


@router.post("/quote/amount-in")
async def quote_amount_in(
    request: AmountInRequest,
    deployment: Deployment = Depends(get_deployment),
) -> AmountResponse:
    amount = deployment.router.get_amount_in(
        request.amount_out, request.reserve_in, request.reserve_out
    )
    return AmountResponse(amount=amount)


@router.post("/quote/amounts-out")
async def quote_amounts_out(
    request: AmountsOutRequest,
    deployment: Deployment = Depends(get_deployment),
) -> AmountsResponse:
    """Chained exact-input quote across live pools."""
    amounts = deployment.router.get_amounts_out(request.amount_in, request.path)
    logger.info("quoted_amounts_out", hops=len(request.path) - 1, amount_out=amounts[-1])
    return AmountsResponse(amounts=amounts)


@router.post("/quote/amounts-in")
async def quote_amounts_in(
    request: AmountsInRequest,
    deployment: Deployment = Depends(get_deployment),
) -> AmountsResponse:
    """Chained exact-output quote across live pools."""
    amounts = deployment.router.get_amounts_in(request.amount_out, request.path)
    logger.info("quoted_amounts_in", hops=len(request.path) - 1, amount_in=amounts[0])
    return AmountsResponse(amounts=amounts)
