"""
Object storage backends.

Supports AWS S3 and S3-compatible stores (R2, MinIO) through boto3, with
an in-memory mock for local development and tests.

boto3 is synchronous, so every SDK call is pushed to a worker thread with
asyncio.to_thread. That keeps the ObjectBackend protocol async without
blocking the event loop.
"""

import asyncio
import hashlib
import io
import logging
from collections import deque
from dataclasses import dataclass
from email.utils import formatdate
from typing import Any, BinaryIO, Optional, Union

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ...core.storage.backend import GetObjectResult, ListPage, ObjectBackend
from ...core.storage.errors import BackendError, ObjectNotFoundError
from ...core.storage.models import Key, StorageOptions
from ...core.storage.service import ObjectStorage

logger = logging.getLogger(__name__)

# Error codes S3 uses for "no such object" (head_object only gets "404")
_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}

# Most recent MockObjectBackend calls kept in .calls
DEFAULT_CALL_LOG_SIZE = 1000

# Typed response fields -> HTTP header names
_HEADER_FIELDS = {
    "ContentType": "content-type",
    "ContentLength": "content-length",
    "CacheControl": "cache-control",
    "ContentEncoding": "content-encoding",
    "ETag": "etag",
    "LastModified": "last-modified",
}


@dataclass
class S3BackendConfig:
    """
    Connection settings for an S3-compatible endpoint.

    endpoint_url is None for AWS itself; set it for R2 or MinIO.
    Credentials left as None fall through to boto3's default chain.
    """
    region: str = "us-east-1"
    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    addressing_style: str = "path"

    @classmethod
    def from_options(
        cls,
        options: StorageOptions,
        region: Optional[str] = None,
        addressing_style: str = "path",
    ) -> "S3BackendConfig":
        return cls(
            region=region or options.region,
            endpoint_url=options.endpoint_url,
            access_key_id=options.access_key_id,
            secret_access_key=options.secret_access_key,
            addressing_style=addressing_style,
        )


def _is_not_found(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    return code in _NOT_FOUND_CODES


def _backend_error(operation: str, bucket: str, key: str, error: Exception) -> BackendError:
    logger.debug(
        "Storage backend call failed",
        extra={"operation": operation, "bucket": bucket, "key": key, "error": str(error)}
    )
    return BackendError(f"{operation} failed for {bucket}/{key}: {error}")


def _response_headers(response: dict[str, Any]) -> dict[str, str]:
    """Collect headers from a get_object/head_object response."""
    headers: dict[str, str] = {}
    for field_name, header in _HEADER_FIELDS.items():
        value = response.get(field_name)
        if value is None:
            continue
        if field_name == "LastModified" and hasattr(value, "timestamp"):
            value = formatdate(value.timestamp(), usegmt=True)
        headers[header] = str(value)

    for name, value in (response.get("Metadata") or {}).items():
        headers[f"x-amz-meta-{name}"] = value

    # Raw headers win when the transport exposes them
    raw = response.get("ResponseMetadata", {}).get("HTTPHeaders") or {}
    headers.update(raw)
    return headers


class _S3Body:
    """Wraps botocore's StreamingBody so read errors surface as BackendError."""

    def __init__(self, body: Any, bucket: str, key: str) -> None:
        self._body = body
        self._bucket = bucket
        self._key = key

    def read(self, amt: Optional[int] = None) -> bytes:
        try:
            return self._body.read(amt)
        except BotoCoreError as e:
            raise _backend_error("read_body", self._bucket, self._key, e) from e

    def close(self) -> None:
        self._body.close()


class S3ObjectBackend:
    """
    ObjectBackend on top of a boto3 S3 client.

    One instance wraps one client, bound to one region. A fallback bucket
    in another region gets its own instance.
    """

    def __init__(self, config: S3BackendConfig) -> None:
        self._config = config

        boto_config = Config(
            signature_version="s3v4",
            s3={"addressing_style": config.addressing_style},
            region_name=config.region,
        )

        self._s3_client = boto3.client(
            "s3",
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region,
            config=boto_config,
        )

        logger.info(
            "Initialized S3 storage backend",
            extra={"region": config.region, "endpoint": config.endpoint_url}
        )

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
        params: dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "Body": body,
            "ContentType": content_type,
            "CacheControl": cache_control,
            "ACL": acl,
        }
        if content_encoding:
            params["ContentEncoding"] = content_encoding
        if content_length is not None:
            params["ContentLength"] = content_length

        logger.debug(
            "putObject",
            extra={"bucket": bucket, "key": key, "content_encoding": content_encoding}
        )
        try:
            await asyncio.to_thread(self._s3_client.put_object, **params)
        except (BotoCoreError, ClientError) as e:
            raise _backend_error("put_object", bucket, key, e) from e

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
        fileobj = io.BytesIO(body) if isinstance(body, (bytes, bytearray)) else body
        extra_args: dict[str, str] = {
            "ContentType": content_type,
            "CacheControl": cache_control,
            "ACL": acl,
        }
        if content_encoding:
            extra_args["ContentEncoding"] = content_encoding

        logger.debug(
            "upload",
            extra={"bucket": bucket, "key": key, "content_encoding": content_encoding}
        )
        try:
            await asyncio.to_thread(
                self._s3_client.upload_fileobj,
                fileobj,
                bucket,
                key,
                ExtraArgs=extra_args,
            )
        except (BotoCoreError, ClientError) as e:
            raise _backend_error("upload", bucket, key, e) from e

    async def get(self, bucket: str, key: Key) -> GetObjectResult:
        try:
            response = await asyncio.to_thread(
                self._s3_client.get_object, Bucket=bucket, Key=key
            )
        except ClientError as e:
            if _is_not_found(e):
                raise ObjectNotFoundError(bucket, key) from e
            raise _backend_error("get_object", bucket, key, e) from e
        except BotoCoreError as e:
            raise _backend_error("get_object", bucket, key, e) from e

        return GetObjectResult(
            headers=_response_headers(response),
            body=_S3Body(response["Body"], bucket, key),
        )

    async def head(self, bucket: str, key: Key) -> dict[str, str]:
        try:
            response = await asyncio.to_thread(
                self._s3_client.head_object, Bucket=bucket, Key=key
            )
        except ClientError as e:
            if _is_not_found(e):
                raise ObjectNotFoundError(bucket, key) from e
            raise _backend_error("head_object", bucket, key, e) from e
        except BotoCoreError as e:
            raise _backend_error("head_object", bucket, key, e) from e

        return _response_headers(response)

    async def list_objects(
        self,
        bucket: str,
        prefix: Key,
        max_keys: int,
        continuation_token: Optional[Key] = None,
    ) -> ListPage:
        params: dict[str, Any] = {"Bucket": bucket, "Prefix": prefix, "MaxKeys": max_keys}
        if continuation_token:
            params["StartAfter"] = continuation_token

        try:
            response = await asyncio.to_thread(self._s3_client.list_objects_v2, **params)
        except (BotoCoreError, ClientError) as e:
            raise _backend_error("list_objects_v2", bucket, prefix, e) from e

        keys = [Key(obj["Key"]) for obj in response.get("Contents", []) or []]
        return ListPage(keys=keys, truncated=bool(response.get("IsTruncated")))

    async def delete(self, bucket: str, key: Key) -> None:
        try:
            await asyncio.to_thread(self._s3_client.delete_object, Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise _backend_error("delete_object", bucket, key, e) from e


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

@dataclass
class _StoredObject:
    data: bytes
    headers: dict[str, str]


class MockObjectBackend:
    """
    In-memory ObjectBackend.

    Behaves like S3 where the adapter can tell the difference: keys are
    listed in lexicographic order and paged by max_keys, missing objects
    raise ObjectNotFoundError, and a declared content length that doesn't
    match the body is rejected. Headers come back in canonical HTTP casing.

    inject_failure() makes a given operation raise BackendError, which is
    how tests exercise the error paths. calls holds the most recent
    (operation, bucket, key) tuples, up to call_log_size.
    """

    def __init__(self, call_log_size: int = DEFAULT_CALL_LOG_SIZE) -> None:
        # {bucket: {key: object}}
        self._buckets: dict[str, dict[str, _StoredObject]] = {}
        self._failures: dict[tuple[str, Optional[str]], BackendError] = {}
        self.calls: deque[tuple[str, str, Optional[str]]] = deque(maxlen=call_log_size)
        logger.info("Initialized mock storage backend (in-memory)")

    def inject_failure(
        self,
        operation: str,
        key: Optional[str] = None,
        error: Optional[BackendError] = None,
    ) -> None:
        """
        Fail future calls of operation ("put", "get", "list_objects", ...).

        With key, only calls for that key fail; for list_objects the key is
        matched against the continuation token.
        """
        self._failures[(operation, key)] = error or BackendError(f"injected {operation} failure")

    def clear_failures(self) -> None:
        self._failures.clear()

    def keys(self, bucket: str) -> list[str]:
        return sorted(self._buckets.get(bucket, {}))

    def _check(self, operation: str, bucket: str, key: Optional[str]) -> None:
        self.calls.append((operation, bucket, key))
        error = self._failures.get((operation, key)) or self._failures.get((operation, None))
        if error is not None:
            raise error

    def _store(self, bucket: str) -> dict[str, _StoredObject]:
        return self._buckets.setdefault(bucket, {})

    def _save(
        self,
        bucket: str,
        key: Key,
        body: Union[bytes, BinaryIO],
        content_type: str,
        cache_control: str,
        content_encoding: Optional[str],
    ) -> bytes:
        data = bytes(body) if isinstance(body, (bytes, bytearray)) else body.read()
        headers = {
            "Content-Type": content_type,
            "Content-Length": str(len(data)),
            "Cache-Control": cache_control,
            "ETag": f'"{hashlib.md5(data).hexdigest()}"',
            "Last-Modified": formatdate(usegmt=True),
        }
        if content_encoding:
            headers["Content-Encoding"] = content_encoding
        self._store(bucket)[key] = _StoredObject(data=data, headers=headers)
        return data

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
        self._check("put", bucket, key)
        data = bytes(body) if isinstance(body, (bytes, bytearray)) else body.read()
        if content_length is not None and content_length != len(data):
            raise BackendError(
                f"Content-Length {content_length} does not match body size {len(data)}"
            )
        self._save(bucket, key, data, content_type, cache_control, content_encoding)

        logger.debug(
            "Stored object in mock storage",
            extra={"bucket": bucket, "key": key, "size_bytes": len(data)}
        )

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
        self._check("upload", bucket, key)
        data = self._save(bucket, key, body, content_type, cache_control, content_encoding)

        logger.debug(
            "Uploaded object to mock storage",
            extra={"bucket": bucket, "key": key, "size_bytes": len(data)}
        )

    async def get(self, bucket: str, key: Key) -> GetObjectResult:
        self._check("get", bucket, key)
        stored = self._store(bucket).get(key)
        if stored is None:
            raise ObjectNotFoundError(bucket, key)
        return GetObjectResult(headers=dict(stored.headers), body=io.BytesIO(stored.data))

    async def head(self, bucket: str, key: Key) -> dict[str, str]:
        self._check("head", bucket, key)
        stored = self._store(bucket).get(key)
        if stored is None:
            raise ObjectNotFoundError(bucket, key)
        return dict(stored.headers)

    async def list_objects(
        self,
        bucket: str,
        prefix: Key,
        max_keys: int,
        continuation_token: Optional[Key] = None,
    ) -> ListPage:
        self._check("list_objects", bucket, continuation_token)
        matching = [
            key for key in sorted(self._store(bucket))
            if key.startswith(prefix)
            and (continuation_token is None or key > continuation_token)
        ]
        page = [Key(key) for key in matching[:max_keys]]
        return ListPage(keys=page, truncated=len(matching) > max_keys)

    async def delete(self, bucket: str, key: Key) -> None:
        self._check("delete", bucket, key)
        # S3 deletes are idempotent
        self._store(bucket).pop(key, None)


# ---------------------------------------------------------------------------
# Factory Functions
# ---------------------------------------------------------------------------

def create_storage_backend(
    config: Optional[S3BackendConfig] = None,
    mock_mode: bool = False,
) -> ObjectBackend:
    """
    Create a storage backend.

    Args:
        config: S3 connection settings (required if not mock_mode)
        mock_mode: If True, return the in-memory backend

    Returns:
        ObjectBackend implementation (S3 or Mock)
    """
    if mock_mode:
        return MockObjectBackend()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return S3ObjectBackend(config)


def create_object_storage(
    options: StorageOptions,
    mock_backend: Optional[MockObjectBackend] = None,
    addressing_style: str = "path",
) -> ObjectStorage:
    """
    Build an ObjectStorage with its primary and fallback backends.

    With mock_backend, both buckets live in that one in-memory backend.
    Otherwise one boto3 client is created for the primary region and, if
    a fallback is configured, another for the fallback region.
    """
    if mock_backend is not None:
        fallback = mock_backend if options.fallback is not None else None
        return ObjectStorage(options, mock_backend, fallback)

    backend = create_storage_backend(
        S3BackendConfig.from_options(options, addressing_style=addressing_style)
    )
    fallback_backend = None
    if options.fallback is not None:
        fallback_backend = create_storage_backend(
            S3BackendConfig.from_options(
                options,
                region=options.fallback.region,
                addressing_style=addressing_style,
            )
        )

    return ObjectStorage(options, backend, fallback_backend)
