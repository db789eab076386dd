"""
Metadata-first streaming reads.

A read stream is a two-phase handle:

1. ``await stream.metadata()`` issues the request and returns the object's
   normalized headers before a single body byte is consumed. The consumer
   can use them to decide how to read what follows (e.g. gunzip when
   ``metadata.is_gzip``), or to set HTTP response headers.
2. ``stream.body()`` yields the bytes. It refuses to run until step 1 has
   produced metadata.

How the read ended is reported once, through ``stream.outcome``:
StreamEnded, StreamMissing or StreamFailed. Exactly one of them is ever set.

    async with storage.read_file_stream("index.html") as stream:
        metadata = await stream.metadata()
        if metadata is None:
            ...  # inspect stream.outcome
        async for chunk in stream.body():
            ...
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .backend import GetObjectResult, ObjectBackend
from .errors import BackendError, FileNotFound, ObjectNotFoundError, StreamStateError
from .models import Key, ObjectMetadata

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class StreamEnded:
    """The whole body was delivered."""
    bytes_read: int


@dataclass(frozen=True)
class StreamMissing:
    """The object does not exist. error.code == "fileNotFound"."""
    error: FileNotFound


@dataclass(frozen=True)
class StreamFailed:
    """The backend or the transport failed."""
    error: BackendError


StreamOutcome = Union[StreamEnded, StreamMissing, StreamFailed]


class _State(Enum):
    PENDING = "pending"
    OPENING = "opening"        # request in flight
    READY = "ready"            # metadata delivered, body not yet taken
    STREAMING = "streaming"
    FINISHED = "finished"
    CLOSED = "closed"


class ObjectReadStream:
    """
    Handle for one streaming read.

    Created by ObjectStorage.read_file_stream without any I/O. Each handle
    owns its own backend request; nothing is shared between streams.
    A handle built with backend=None reports the object as missing.
    """

    def __init__(
        self,
        path: str,
        key: Key,
        bucket: Optional[str],
        backend: Optional[ObjectBackend],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.path = path
        self.key = key
        self.bucket = bucket
        self._backend = backend
        self._chunk_size = chunk_size
        self._state = _State.PENDING
        self._response: Optional[GetObjectResult] = None
        self._outcome: Optional[StreamOutcome] = None

    @property
    def outcome(self) -> Optional[StreamOutcome]:
        """How the stream ended, or None while it is still open."""
        return self._outcome

    async def metadata(self) -> Optional[ObjectMetadata]:
        """
        Issue the request and return the object's headers.

        Returns None when the object is missing or the request failed;
        ``outcome`` then says which. Can only be called once. Returns None
        without an outcome if the stream is closed while the request is
        in flight.
        """
        if self._state is not _State.PENDING:
            raise StreamStateError("metadata() can only be awaited once")

        if self._backend is None or self.bucket is None:
            self._finish(StreamMissing(FileNotFound(self.path)))
            return None

        self._state = _State.OPENING
        try:
            response = await self._backend.get(self.bucket, self.key)
        except ObjectNotFoundError:
            logger.debug(
                "Streamed object missing",
                extra={"bucket": self.bucket, "key": self.key}
            )
            self._finish(StreamMissing(FileNotFound(self.path)))
            return None
        except BackendError as e:
            logger.debug(
                "Failed to open object stream",
                extra={"bucket": self.bucket, "key": self.key, "error": str(e)}
            )
            self._finish(StreamFailed(e))
            return None

        if self._state is _State.CLOSED:
            response.body.close()
            return None

        self._response = response
        self._state = _State.READY
        return ObjectMetadata(response.headers)

    def body(self) -> AsyncIterator[bytes]:
        """
        Return the body as an async iterator of chunks.

        A transport error mid-body sets the StreamFailed outcome and is
        re-raised from the iterator so consumers don't mistake a cut-off
        body for a complete one.
        """
        if self._state in (_State.PENDING, _State.OPENING):
            raise StreamStateError("await metadata() before reading the body")
        if self._state is not _State.READY or self._response is None:
            raise StreamStateError("body is not available on this stream")

        self._state = _State.STREAMING
        return self._iter_body(self._response)

    async def _iter_body(self, response: GetObjectResult) -> AsyncIterator[bytes]:
        bytes_read = 0
        try:
            while True:
                if self._state is _State.CLOSED:
                    return
                try:
                    chunk = await asyncio.to_thread(response.body.read, self._chunk_size)
                except BackendError as e:
                    logger.warning(
                        "Object stream interrupted",
                        extra={
                            "bucket": self.bucket,
                            "key": self.key,
                            "bytes_read": bytes_read,
                            "error": str(e),
                        }
                    )
                    self._finish(StreamFailed(e))
                    raise

                if self._state is _State.CLOSED:
                    return
                if not chunk:
                    break
                bytes_read += len(chunk)
                yield chunk

            self._finish(StreamEnded(bytes_read))
        finally:
            response.body.close()

    async def completion(self) -> StreamOutcome:
        """Return the final outcome; raises StreamStateError if not finished."""
        if self._outcome is None:
            raise StreamStateError("stream has not completed")
        return self._outcome

    async def read(self) -> Optional[bytes]:
        """Convenience: metadata, then the whole body. None if missing or failed."""
        if await self.metadata() is None:
            return None
        chunks = [chunk async for chunk in self.body()]
        return b"".join(chunks)

    def close(self) -> None:
        """Detach from the stream and release the response body."""
        if self._state in (_State.FINISHED, _State.CLOSED):
            return
        if self._response is not None:
            self._response.body.close()
        self._state = _State.CLOSED

    async def __aenter__(self) -> "ObjectReadStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _finish(self, outcome: StreamOutcome) -> None:
        # A closed stream never gets an outcome
        if self._state is _State.CLOSED:
            return
        if self._outcome is None:
            self._outcome = outcome
        self._state = _State.FINISHED
