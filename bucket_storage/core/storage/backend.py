"""
Storage backend capability.

ObjectStorage talks to the remote store only through this Protocol, so
the facade doesn't know whether it's S3, R2, MinIO or the in-memory mock.
Implementations live in infrastructure.storage.
"""

from dataclasses import dataclass, field
from typing import BinaryIO, Optional, Protocol, Union

from .models import Key


class ReadableBody(Protocol):
    """Response body handed out by ObjectBackend.get."""

    def read(self, amt: Optional[int] = None) -> bytes:
        ...

    def close(self) -> None:
        ...


@dataclass
class GetObjectResult:
    """Headers are available as soon as get() returns; the body is not yet read."""
    headers: dict[str, str]
    body: ReadableBody


@dataclass
class ListPage:
    """One bounded page of a listing."""
    keys: list[Key] = field(default_factory=list)
    truncated: bool = False


class ObjectBackend(Protocol):
    """
    Async capability interface of a bucket-style object store.

    get() and head() raise ObjectNotFoundError when the key doesn't exist.
    Every other failure is raised as BackendError.
    list_objects() returns keys in lexicographic order, strictly after
    continuation_token when one is given.
    """

    async def put(
        self,
        bucket: str,
        key: Key,
        body: Union[bytes, BinaryIO],
        *,
        content_type: str,
        cache_control: str,
        acl: str,
        content_encoding: Optional[str] = None,
        content_length: Optional[int] = None,
    ) -> None:
        """Single-shot upload."""
        ...

    async def upload(
        self,
        bucket: str,
        key: Key,
        body: Union[bytes, BinaryIO],
        *,
        content_type: str,
        cache_control: str,
        acl: str,
        content_encoding: Optional[str] = None,
    ) -> None:
        """Streaming (multipart) upload for bodies of unknown length."""
        ...

    async def get(self, bucket: str, key: Key) -> GetObjectResult:
        ...

    async def head(self, bucket: str, key: Key) -> dict[str, str]:
        ...

    async def list_objects(
        self,
        bucket: str,
        prefix: Key,
        max_keys: int,
        continuation_token: Optional[Key] = None,
    ) -> ListPage:
        ...

    async def delete(self, bucket: str, key: Key) -> None:
        ...
