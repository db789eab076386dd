"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables (or a .env file) with
sensible defaults. Mock mode enables local development without a bucket.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core.storage.models import (
    DEFAULT_DELETE_CONCURRENCY,
    DEFAULT_MAX_AGE,
    DEFAULT_MAX_KEYS,
    FallbackLocation,
    StorageOptions,
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like api_keys), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "Bucket Storage API"
    api_version: str = "v1"
    api_keys: str = Field(
        default="dev-key-1,dev-key-2",
        description="Comma-separated API keys accepted in the X-API-Key header."
    )

    # Bucket Configuration
    storage_bucket: str = Field(
        default="",
        description="Primary bucket name"
    )
    storage_endpoint_url: Optional[str] = Field(
        default=None,
        description="Endpoint for S3-compatible stores (R2, MinIO). Leave unset for AWS."
    )
    storage_region: str = Field(
        default="us-east-1",
        description="Region of the primary bucket"
    )
    storage_access_key_id: Optional[str] = Field(
        default=None,
        description="Access key ID. Falls back to the boto3 credential chain when unset."
    )
    storage_secret_access_key: Optional[str] = Field(
        default=None,
        description="Secret access key"
    )
    storage_addressing_style: str = Field(
        default="path",
        description="S3 addressing style: path, virtual or auto"
    )
    storage_mock_mode: bool = Field(
        default=False,
        description="Use the in-memory backend instead of a real bucket."
    )

    # Key layout and caching
    storage_key_prefix: Optional[str] = Field(
        default=None,
        description="Namespace prepended to every key"
    )
    storage_max_age: int = Field(
        default=DEFAULT_MAX_AGE,
        ge=0,
        description="Default Cache-Control max-age (seconds) for written objects"
    )
    storage_max_keys: int = Field(
        default=DEFAULT_MAX_KEYS,
        ge=1,
        le=1000,
        description="Keys requested per list call. S3 caps this at 1000."
    )
    storage_delete_concurrency: int = Field(
        default=DEFAULT_DELETE_CONCURRENCY,
        ge=1,
        description="Maximum concurrent deletes during a prefix delete"
    )

    # Fallback bucket (read-through during region migration)
    storage_fallback_bucket: Optional[str] = Field(
        default=None,
        description="Bucket consulted when an object is missing from the primary"
    )
    storage_fallback_region: Optional[str] = Field(
        default=None,
        description="Region of the fallback bucket"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def api_keys_list(self) -> list[str]:
        """Parse comma-separated API keys into a list."""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]

    @property
    def fallback_location(self) -> Optional[FallbackLocation]:
        if not self.storage_fallback_bucket:
            return None
        return FallbackLocation(
            bucket=self.storage_fallback_bucket,
            region=self.storage_fallback_region or self.storage_region,
        )

    def storage_options(self) -> StorageOptions:
        """Build the immutable StorageOptions for ObjectStorage."""
        bucket = self.storage_bucket
        if not bucket and self.storage_mock_mode:
            bucket = "mock-bucket"

        return StorageOptions(
            bucket=bucket,
            endpoint_url=self.storage_endpoint_url,
            region=self.storage_region,
            access_key_id=self.storage_access_key_id,
            secret_access_key=self.storage_secret_access_key,
            key_prefix=self.storage_key_prefix or None,
            max_age=self.storage_max_age,
            max_keys=self.storage_max_keys,
            delete_concurrency=self.storage_delete_concurrency,
            fallback=self.fallback_location,
        )

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode settings.

        Returns list of missing required fields.
        Credentials are optional on AWS (instance roles), but an explicit
        endpoint means a third-party store that needs them.
        """
        missing = []

        if self.storage_mock_mode:
            return missing

        if not self.storage_bucket:
            missing.append("STORAGE_BUCKET")

        if self.storage_endpoint_url:
            if not self.storage_access_key_id:
                missing.append("STORAGE_ACCESS_KEY_ID")
            if not self.storage_secret_access_key:
                missing.append("STORAGE_SECRET_ACCESS_KEY")

        if self.storage_fallback_bucket and not self.storage_fallback_region:
            missing.append("STORAGE_FALLBACK_REGION")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once per process.
    For tests, call get_settings.cache_clear() to reset.
    """
    return Settings()
