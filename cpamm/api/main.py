"""FastAPI application for the quote service."""

import os

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cpamm.api.endpoints import router
from cpamm.api.models import ErrorResponse
from cpamm.errors import AmmError

logger = structlog.get_logger()

HOST = os.environ.get("CPAMM_HOST", "0.0.0.0")
PORT = int(os.environ.get("CPAMM_PORT", "8000"))
DEBUG = os.environ.get("CPAMM_DEBUG", "false").lower() in ("true", "1", "yes")

app = FastAPI(
    title="CPAMM quote service",
    description="Quotes and pool state for a constant-product AMM engine",
    version="0.1.0",
)


@app.exception_handler(AmmError)
async def amm_error_handler(request: Request, exc: AmmError) -> JSONResponse:
    """Engine errors are client errors: report the stable code."""
    logger.info("request_rejected", path=request.url.path, code=exc.code, detail=exc.detail)
    body = ErrorResponse(code=exc.code, detail=exc.detail)
    return JSONResponse(status_code=400, content=body.model_dump())


app.include_router(router)


@app.get("/health")
async def health() -> dict[str, object]:
    """Health check endpoint."""
    return {"status": "ok"}


def run() -> None:
    """Run the quote server.

    Configuration via environment variables:
    - CPAMM_HOST: Host to bind to (default: 0.0.0.0)
    - CPAMM_PORT: Port to bind to (default: 8000)
    - CPAMM_DEBUG: Enable debug/reload mode (default: false)
    """
    uvicorn.run(
        "cpamm.api.main:app",
        host=HOST,
        port=PORT,
        reload=DEBUG,
    )


if __name__ == "__main__":
    run()
