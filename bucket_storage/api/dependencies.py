"""
FastAPI dependency injection.

Routes receive the settings, the API-key check and the ObjectStorage
instance through these dependencies, so tests can override any of them
via app.dependency_overrides.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.storage.service import ObjectStorage
from ..infrastructure.storage.client import MockObjectBackend, create_object_storage

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Process-wide storage instance (one boto3 client per region)
_object_storage: Optional[ObjectStorage] = None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Validate API key from request header.

    Raises 403 if key is invalid or missing.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8] if api_key else ""}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_object_storage(
    settings: Annotated[Settings, Depends(get_settings)],
) -> ObjectStorage:
    """
    Provide the ObjectStorage instance.

    Created on first use and reused afterwards. In mock mode the in-memory
    backend therefore keeps its objects for the life of the process.
    """
    global _object_storage

    if _object_storage is None:
        options = settings.storage_options()
        if settings.storage_mock_mode:
            _object_storage = create_object_storage(options, mock_backend=MockObjectBackend())
            logger.info("Created shared mock object storage")
        else:
            _object_storage = create_object_storage(
                options, addressing_style=settings.storage_addressing_style
            )
            logger.info(
                "Created object storage",
                extra={"bucket": options.bucket, "fallback": options.fallback is not None}
            )

    return _object_storage


def reset_object_storage() -> None:
    """Drop the cached instance (used by tests and on shutdown)."""
    global _object_storage
    _object_storage = None


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

AuthenticatedUser = Annotated[str, Depends(verify_api_key)]
ObjectStorageDep = Annotated[ObjectStorage, Depends(get_object_storage)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
