"""
Domain models for object storage.

These models describe what is stored and how the adapter is configured.
They have no dependency on boto3, FastAPI or any particular backend.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import BinaryIO, Literal, NewType, Optional, Union

# Physical backend key (prefix already applied)
Key = NewType("Key", str)

# Returned by file_exists when the object only lives in the fallback bucket
FALLBACK: Literal["fallback"] = "fallback"

ExistsResult = Union[bool, Literal["fallback"]]

DEFAULT_MAX_AGE = 30 * 60 * 30
DEFAULT_MAX_KEYS = 1000
DEFAULT_DELETE_CONCURRENCY = 10


@dataclass(frozen=True)
class FallbackLocation:
    """Secondary bucket consulted when an object is missing from the primary."""
    bucket: str
    region: str


@dataclass(frozen=True)
class StorageOptions:
    """
    Immutable configuration for an ObjectStorage instance.

    Connection parameters are carried along so a backend can be created
    from the same options object; ObjectStorage itself only reads the
    bucket, prefix, cache and paging fields.
    """
    bucket: str
    endpoint_url: Optional[str] = None
    region: str = "us-east-1"
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    key_prefix: Optional[str] = None
    max_age: int = DEFAULT_MAX_AGE
    max_keys: int = DEFAULT_MAX_KEYS
    delete_concurrency: int = DEFAULT_DELETE_CONCURRENCY
    fallback: Optional[FallbackLocation] = None

    def __post_init__(self) -> None:
        if not self.bucket:
            raise ValueError("bucket is required")
        if self.max_keys < 1:
            raise ValueError("max_keys must be at least 1")
        if self.max_age < 0:
            raise ValueError("max_age cannot be negative")
        if self.delete_concurrency < 1:
            raise ValueError("delete_concurrency must be at least 1")


@dataclass
class FileInfo:
    """
    A single write request.

    contents may be raw bytes or a binary file-like object. size is the
    declared length and is sent to the backend for validation on
    single-shot writes.
    """
    path: str
    contents: Union[bytes, BinaryIO]
    size: Optional[int] = None
    gzip_encoded: bool = False
    max_age: Optional[int] = None


class ObjectMetadata(Mapping[str, str]):
    """
    Normalized response headers of a stored object.

    Header names are lower-cased so "Content-Type", "content-type" and
    "CONTENT-TYPE" all resolve to the same entry. Values are kept as the
    backend sent them.
    """

    def __init__(self, headers: Optional[Mapping[str, object]] = None) -> None:
        self._headers: dict[str, str] = {}
        for name, value in (headers or {}).items():
            if value is None:
                continue
            self._headers[str(name).strip().lower()] = str(value)

    def __getitem__(self, name: str) -> str:
        return self._headers[name.lower()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._headers)

    def __len__(self) -> int:
        return len(self._headers)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._headers

    def __repr__(self) -> str:
        return f"ObjectMetadata({self._headers!r})"

    @property
    def content_type(self) -> Optional[str]:
        return self.get("content-type")

    @property
    def content_length(self) -> Optional[int]:
        value = self.get("content-length")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    @property
    def cache_control(self) -> Optional[str]:
        return self.get("cache-control")

    @property
    def etag(self) -> Optional[str]:
        return self.get("etag")

    @property
    def content_encoding(self) -> Optional[str]:
        return self.get("content-encoding")

    @property
    def is_gzip(self) -> bool:
        """True when the stored bytes are gzip-encoded."""
        return (self.content_encoding or "").lower() == "gzip"
