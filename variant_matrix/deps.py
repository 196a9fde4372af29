"""
Dependency injection for FastAPI.
"""

from typing import AsyncIterator, Optional
import redis.asyncio as aioredis

from variant_matrix.config import get_settings
from variant_matrix.core.events import UploadEventEmitter
from variant_matrix.core.session_store import RedisSessionStore
from variant_matrix.core.storefront_client import StorefrontClient
from variant_matrix.core.upload_client import UploadClient


_redis_client: Optional[aioredis.Redis] = None


async def get_redis() -> aioredis.Redis:
    """Get Redis client (singleton) with lazy connection."""
    global _redis_client
    if _redis_client is None:
        settings = get_settings()
        _redis_client = aioredis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=1.0,
            socket_timeout=20.0,  # above the 15s XREAD block used by SSE
            retry_on_timeout=True,
            health_check_interval=30
        )
    return _redis_client


async def close_redis():
    """Close Redis connection."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


async def get_session_store() -> RedisSessionStore:
    """Session store bound to the shared Redis client."""
    settings = get_settings()
    return RedisSessionStore(
        await get_redis(),
        options=settings.matrix_options(),
        ttl_seconds=settings.session_ttl_seconds
    )


async def get_upload_client() -> AsyncIterator[UploadClient]:
    """UploadClient for the configured storefront, closed after the request."""
    settings = get_settings()
    client = UploadClient(
        store_url=settings.storefront_url,
        upload_path=settings.upload_path,
        api_token=settings.storefront_api_token,
        timeout=settings.upload_timeout
    )
    try:
        yield client
    finally:
        await client.close()


async def get_storefront_client() -> AsyncIterator[StorefrontClient]:
    """StorefrontClient for the configured storefront, closed after the request."""
    settings = get_settings()
    client = StorefrontClient(
        store_url=settings.storefront_url,
        variants_path=settings.variants_path,
        api_token=settings.storefront_api_token,
        timeout=settings.request_timeout
    )
    try:
        yield client
    finally:
        await client.close()


async def get_upload_events(session_id: str) -> UploadEventEmitter:
    """Progress emitter for a session's uploads."""
    return UploadEventEmitter(await get_redis(), session_id)
