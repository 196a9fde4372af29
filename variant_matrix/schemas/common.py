"""
Common schemas.
"""

from typing import Optional
from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Health check response."""
    ok: bool = True


class RedisHealthResponse(BaseModel):
    """Redis health check response."""
    ok: bool
    redis: str
    error: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error response (validation, not found, upstream failures)."""
    detail: str


ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    404: {"model": ErrorResponse, "description": "Session or row not found"},
    409: {"model": ErrorResponse, "description": "Session changed concurrently"},
    502: {"model": ErrorResponse, "description": "Storefront request failed"},
}
