"""
Object storage adapter.

Contains the storage facade, key building, paginated listing and the
metadata-first read stream.
"""

from .backend import GetObjectResult, ListPage, ObjectBackend
from .errors import (
    BackendError,
    FileNotFound,
    ObjectNotFoundError,
    StorageError,
    StreamStateError,
)
from .keys import build_key
from .listing import ListCursor, list_keys
from .models import (
    FALLBACK,
    FallbackLocation,
    FileInfo,
    Key,
    ObjectMetadata,
    StorageOptions,
)
from .service import ObjectStorage
from .streaming import (
    ObjectReadStream,
    StreamEnded,
    StreamFailed,
    StreamMissing,
    StreamOutcome,
)

__all__ = [
    "BackendError",
    "FALLBACK",
    "FallbackLocation",
    "FileInfo",
    "FileNotFound",
    "GetObjectResult",
    "Key",
    "ListCursor",
    "ListPage",
    "ObjectBackend",
    "ObjectMetadata",
    "ObjectNotFoundError",
    "ObjectReadStream",
    "ObjectStorage",
    "StorageError",
    "StorageOptions",
    "StreamEnded",
    "StreamFailed",
    "StreamMissing",
    "StreamOutcome",
    "StreamStateError",
    "build_key",
    "list_keys",
]
