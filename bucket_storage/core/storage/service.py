"""
Object storage facade.

ObjectStorage is the public entry point: write, read, stream, list,
delete, existence checks and metadata lookups against one bucket, with
keys namespaced under an optional prefix and optional read-through to a
fallback bucket in another region.

Absence is never an error here. get()/head() on a missing key come back
as None, False or a StreamMissing outcome. Backend failures propagate
as BackendError, untouched and never retried.
"""

import asyncio
import logging
from typing import Optional, Union

from .backend import ObjectBackend
from .content_types import content_type_for
from .errors import ObjectNotFoundError
from .keys import build_key
from .listing import list_keys
from .models import (
    FALLBACK,
    ExistsResult,
    FileInfo,
    Key,
    ObjectMetadata,
    StorageOptions,
)
from .streaming import ObjectReadStream

logger = logging.getLogger(__name__)

PUBLIC_READ = "public-read"


class ObjectStorage:
    """
    Storage adapter for a single bucket.

    Owns one primary backend handle and, when a fallback location is
    configured, one fallback backend handle. Holds no other state, so a
    single instance can serve any number of concurrent operations.
    """

    def __init__(
        self,
        options: StorageOptions,
        backend: ObjectBackend,
        fallback_backend: Optional[ObjectBackend] = None,
    ) -> None:
        self._options = options
        self._backend = backend
        self._fallback_backend = fallback_backend

        if options.fallback is not None and fallback_backend is None:
            logger.warning(
                "Fallback location configured without a fallback backend",
                extra={"fallback_bucket": options.fallback.bucket}
            )

    @property
    def options(self) -> StorageOptions:
        return self._options

    @property
    def has_fallback(self) -> bool:
        return self._options.fallback is not None and self._fallback_backend is not None

    def build_key(self, path: str) -> Key:
        return build_key(path, self._options.key_prefix)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def write_file(self, file_info: FileInfo) -> None:
        """
        Upload a file in one request.

        The declared size is sent as Content-Length so the backend can
        reject a short or oversized body.
        """
        key = self.build_key(file_info.path)
        content_encoding = self._content_encoding(file_info)

        logger.debug(
            "Writing object",
            extra={"key": key, "content_encoding": content_encoding, "size": file_info.size}
        )

        await self._backend.put(
            self._options.bucket,
            key,
            file_info.contents,
            content_type=content_type_for(file_info.path),
            cache_control=self._cache_control(file_info),
            acl=PUBLIC_READ,
            content_encoding=content_encoding,
            content_length=file_info.size,
        )

    async def write_stream(self, file_info: FileInfo) -> None:
        """Upload a file whose length isn't known up front (multipart path)."""
        key = self.build_key(file_info.path)
        content_encoding = self._content_encoding(file_info)

        logger.debug(
            "Streaming object upload",
            extra={"key": key, "content_encoding": content_encoding}
        )

        await self._backend.upload(
            self._options.bucket,
            key,
            file_info.contents,
            content_type=content_type_for(file_info.path),
            cache_control=self._cache_control(file_info),
            acl=PUBLIC_READ,
            content_encoding=content_encoding,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read_file(
        self,
        path: str,
        encoding: Optional[str] = None,
    ) -> Union[bytes, str, None]:
        """Read a whole object. Returns None if it doesn't exist."""
        key = self.build_key(path)
        try:
            response = await self._backend.get(self._options.bucket, key)
        except ObjectNotFoundError:
            return None

        try:
            data = await asyncio.to_thread(response.body.read)
        finally:
            response.body.close()

        if encoding is not None:
            return data.decode(encoding)
        return data

    def read_file_stream(self, path: str, use_fallback: bool = False) -> ObjectReadStream:
        """
        Open a metadata-first read stream (see streaming.ObjectReadStream).

        With use_fallback the fallback bucket is read instead of the primary.
        Asking for the fallback when none is configured yields a stream that
        reports the object as missing.
        """
        key = self.build_key(path)

        if not use_fallback:
            return ObjectReadStream(path, key, self._options.bucket, self._backend)

        if not self.has_fallback:
            logger.warning(
                "Fallback read requested but no fallback is configured",
                extra={"key": key}
            )
            return ObjectReadStream(path, key, None, None)

        return ObjectReadStream(
            path, key, self._options.fallback.bucket, self._fallback_backend
        )

    async def get_metadata(self, path: str) -> Optional[ObjectMetadata]:
        """Return the object's normalized headers, or None if it doesn't exist."""
        key = self.build_key(path)
        try:
            headers = await self._backend.head(self._options.bucket, key)
        except ObjectNotFoundError:
            return None
        return ObjectMetadata(headers)

    async def file_exists(self, path: str) -> ExistsResult:
        """
        Check whether an object exists.

        Returns True when it's in the primary bucket, "fallback" when it only
        exists in the fallback bucket (callers use this to migrate it), and
        False otherwise.
        """
        key = self.build_key(path)
        logger.debug("Checking if object exists", extra={"key": key})

        if await self._probe(self._backend, self._options.bucket, key):
            return True

        if not self.has_fallback:
            return False

        if await self._probe(self._fallback_backend, self._options.fallback.bucket, key):
            logger.info(
                "Object found in fallback bucket",
                extra={"key": key, "fallback_bucket": self._options.fallback.bucket}
            )
            return FALLBACK

        return False

    # ------------------------------------------------------------------
    # Listing and deletion
    # ------------------------------------------------------------------

    async def list_files(self, prefix: str) -> list[Key]:
        """Return every physical key under prefix."""
        return await list_keys(
            self._backend,
            self._options.bucket,
            self.build_key(prefix),
            self._options.max_keys,
        )

    async def delete_files(self, prefix: str) -> int:
        """
        Delete every object under prefix. Returns the number deleted.

        Deletes run concurrently (bounded by delete_concurrency). The first
        failure cancels the deletes that haven't run yet and is raised;
        objects already deleted stay deleted.
        """
        keys = await self.list_files(prefix)
        if not keys:
            return 0

        semaphore = asyncio.Semaphore(self._options.delete_concurrency)

        async def delete_one(key: Key) -> None:
            async with semaphore:
                await self._backend.delete(self._options.bucket, key)

        tasks = [asyncio.ensure_future(delete_one(key)) for key in keys]
        try:
            await asyncio.gather(*tasks)
        except Exception as e:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.warning(
                "Batch delete aborted",
                extra={"prefix": prefix, "count": len(keys), "error": str(e)}
            )
            raise

        logger.info("Deleted objects", extra={"prefix": prefix, "count": len(keys)})
        return len(keys)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _probe(self, backend: ObjectBackend, bucket: str, key: Key) -> bool:
        try:
            await backend.head(bucket, key)
        except ObjectNotFoundError:
            return False
        return True

    def _cache_control(self, file_info: FileInfo) -> str:
        max_age = file_info.max_age if file_info.max_age is not None else self._options.max_age
        return f"public, max-age={max_age}"

    @staticmethod
    def _content_encoding(file_info: FileInfo) -> Optional[str]:
        return "gzip" if file_info.gzip_encoded else None
