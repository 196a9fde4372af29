"""
FastAPI application entry point.
"""

import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from variant_matrix.api.v1.router import router as v1_router
from variant_matrix.config import configure_logging
from variant_matrix.deps import close_redis, get_redis
from variant_matrix.schemas.common import HealthResponse, RedisHealthResponse

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    logger.info("Variant Matrix API starting")
    yield
    await close_redis()


app = FastAPI(
    title="Variant Matrix API",
    description="Variant combination generator and editor for marketplace product listings",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(v1_router, prefix="/api/v1")


@app.get("/api/v1/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(ok=True)


@app.get("/api/v1/health/redis", response_model=RedisHealthResponse, tags=["health"])
async def health_check_redis():
    """Check Redis connection health."""
    try:
        redis = await get_redis()
        await redis.ping()
        return RedisHealthResponse(ok=True, redis="connected")
    except Exception as e:
        logger.warning(f"Redis health check failed: {str(e)}")
        return RedisHealthResponse(ok=False, redis="disconnected", error=str(e))


@app.get("/", tags=["root"])
async def root():
    """Root endpoint."""
    return {
        "message": "Variant Matrix API",
        "version": "1.0.0",
        "docs": "/docs"
    }
