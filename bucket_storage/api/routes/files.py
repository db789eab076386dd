"""
File serving and management endpoints.

GET /files/{path} is the main consumer of the metadata-first stream: the
object's headers are copied onto the HTTP response before the first body
byte is sent. Objects that only exist in the fallback bucket are served
from there and flagged with X-Storage-Source: fallback, so whoever runs
the migration can see what still needs copying.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ...core.storage.errors import BackendError
from ...core.storage.models import FALLBACK, ObjectMetadata
from ...core.storage.streaming import StreamMissing
from ..dependencies import AuthenticatedUser, ObjectStorageDep

logger = logging.getLogger(__name__)

router = APIRouter()

# Metadata headers forwarded to HTTP clients
_FORWARDED_HEADERS = (
    "content-length",
    "cache-control",
    "etag",
    "content-encoding",
    "last-modified",
)


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------

class FileListResponse(BaseModel):
    """Keys found under a prefix."""
    prefix: str = Field(description="Logical prefix that was listed")
    keys: list[str] = Field(description="Physical keys, in listing order")
    count: int = Field(description="Number of keys")


class DeleteResponse(BaseModel):
    """Result of a prefix delete."""
    prefix: str = Field(description="Logical prefix that was deleted")
    deleted: int = Field(description="Number of objects deleted")


class MetadataResponse(BaseModel):
    """Normalized headers of a stored object."""
    path: str = Field(description="Logical path")
    key: str = Field(description="Physical key")
    content_type: Optional[str] = Field(None, description="Stored Content-Type")
    content_length: Optional[int] = Field(None, description="Object size in bytes")
    headers: dict[str, str] = Field(description="All headers, lower-cased names")


def _backend_unavailable(error: BackendError, path: str) -> HTTPException:
    logger.error(
        "Storage backend error",
        extra={"path": path, "error": str(error)},
        exc_info=error,
    )
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail="Storage backend unavailable",
    )


def _response_headers(metadata: ObjectMetadata, from_fallback: bool) -> dict[str, str]:
    headers = {name: metadata[name] for name in _FORWARDED_HEADERS if name in metadata}
    if from_fallback:
        headers["X-Storage-Source"] = "fallback"
    return headers


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/files",
    response_model=FileListResponse,
    summary="List files under a prefix",
)
async def list_files(
    storage: ObjectStorageDep,
    api_key: AuthenticatedUser,
    prefix: str = Query(default="", description="Logical prefix to list"),
) -> FileListResponse:
    try:
        keys = await storage.list_files(prefix)
    except BackendError as e:
        raise _backend_unavailable(e, prefix)

    return FileListResponse(prefix=prefix, keys=list(keys), count=len(keys))


@router.delete(
    "/files",
    response_model=DeleteResponse,
    summary="Delete every file under a prefix",
)
async def delete_files(
    storage: ObjectStorageDep,
    api_key: AuthenticatedUser,
    prefix: str = Query(min_length=1, description="Logical prefix to delete"),
) -> DeleteResponse:
    try:
        deleted = await storage.delete_files(prefix)
    except BackendError as e:
        raise _backend_unavailable(e, prefix)

    logger.info("Deleted files", extra={"prefix": prefix, "count": deleted})
    return DeleteResponse(prefix=prefix, deleted=deleted)


@router.get(
    "/files/{path:path}",
    summary="Stream a stored file",
    responses={404: {"description": "File not found"}},
)
async def read_file(
    path: str,
    storage: ObjectStorageDep,
    api_key: AuthenticatedUser,
) -> StreamingResponse:
    """
    Stream a file, reading through to the fallback bucket when needed.

    The response status and headers are decided from the object's metadata
    before the body starts, so a missing object is a clean 404 rather than
    a broken 200.
    """
    try:
        exists = await storage.file_exists(path)
    except BackendError as e:
        raise _backend_unavailable(e, path)

    if exists is False:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    from_fallback = exists == FALLBACK
    stream = storage.read_file_stream(path, use_fallback=from_fallback)
    metadata = await stream.metadata()

    if metadata is None:
        outcome = stream.outcome
        if isinstance(outcome, StreamMissing):
            # Deleted between the existence check and the read
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
        raise _backend_unavailable(outcome.error, path)

    return StreamingResponse(
        stream.body(),
        media_type=metadata.content_type or "application/octet-stream",
        headers=_response_headers(metadata, from_fallback),
    )


@router.get(
    "/metadata/{path:path}",
    response_model=MetadataResponse,
    summary="Get a file's metadata",
    responses={404: {"description": "File not found"}},
)
async def get_metadata(
    path: str,
    storage: ObjectStorageDep,
    api_key: AuthenticatedUser,
) -> MetadataResponse:
    try:
        metadata = await storage.get_metadata(path)
    except BackendError as e:
        raise _backend_unavailable(e, path)

    if metadata is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    return MetadataResponse(
        path=path,
        key=storage.build_key(path),
        content_type=metadata.content_type,
        content_length=metadata.content_length,
        headers=dict(metadata),
    )
