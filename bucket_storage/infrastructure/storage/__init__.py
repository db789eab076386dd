"""
Object storage backends.

Supports S3 and S3-compatible stores (R2, MinIO) via boto3.
Includes an in-memory mock for local development without credentials.
"""

from .client import (
    MockObjectBackend,
    S3BackendConfig,
    S3ObjectBackend,
    create_object_storage,
    create_storage_backend,
)

__all__ = [
    "MockObjectBackend",
    "S3BackendConfig",
    "S3ObjectBackend",
    "create_object_storage",
    "create_storage_backend",
]
