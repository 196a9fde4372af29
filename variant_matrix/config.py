"""
Configuration management for the Variant Matrix API.
"""

import logging
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from variant_matrix.core.matrix import MatrixOptions


class Settings(BaseSettings):
    """Application settings (environment variables or .env)."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    redis_url: str = "redis://localhost:6379/0"

    # Storefront backend
    storefront_url: str = "http://localhost:5000"
    storefront_api_token: Optional[str] = None
    upload_path: str = "/api/upload"
    variants_path: str = "/api/products/{product_id}/variants"
    request_timeout: float = Field(default=30.0, gt=0)
    upload_timeout: float = Field(default=120.0, gt=0)
    # Upload flags older than this no longer block row regeneration
    upload_stale_seconds: int = Field(default=600, ge=1)

    # Row defaults
    placeholder_base_url: str = "https://placehold.co"
    sku_prefix_length: int = Field(default=10, ge=1)
    sku_fallback_token: str = "PROD"

    session_ttl_seconds: int = Field(default=86400, ge=60)
    log_level: str = "INFO"

    def matrix_options(self) -> MatrixOptions:
        """Options for SKU and placeholder synthesis."""
        return MatrixOptions(
            placeholder_base_url=self.placeholder_base_url,
            sku_prefix_length=self.sku_prefix_length,
            sku_fallback_token=self.sku_fallback_token,
            upload_stale_seconds=self.upload_stale_seconds
        )


_settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return _settings


def configure_logging(level: Optional[str] = None):
    """Configure root logging from LOG_LEVEL."""
    logging.basicConfig(
        level=(level or _settings.log_level).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )
