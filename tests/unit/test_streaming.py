"""
Unit tests for metadata-first streaming reads.

A stream hands out metadata before any body byte, then the body, then a
single outcome: StreamEnded, StreamMissing or StreamFailed.
"""

import asyncio
import gzip
import io

import pytest

from bucket_storage.core.storage.backend import GetObjectResult
from bucket_storage.core.storage.errors import BackendError, StreamStateError
from bucket_storage.core.storage.models import FileInfo, Key
from bucket_storage.core.storage.service import ObjectStorage
from bucket_storage.core.storage.streaming import (
    ObjectReadStream,
    StreamEnded,
    StreamFailed,
    StreamMissing,
)


class _BrokenBody:
    """Body that delivers one chunk and then loses the connection."""

    def __init__(self) -> None:
        self.closed = False
        self._reads = 0

    def read(self, amt=None):
        self._reads += 1
        if self._reads == 1:
            return b"partial"
        raise BackendError("connection reset")

    def close(self):
        self.closed = True


class _BrokenBackend:
    def __init__(self) -> None:
        self.body = _BrokenBody()

    async def get(self, bucket, key):
        return GetObjectResult(headers={"Content-Type": "text/plain"}, body=self.body)


class _SlowBackend:
    """Backend whose get() waits until the test releases it."""

    def __init__(self) -> None:
        self.gets = 0
        self.release = asyncio.Event()
        self.body = io.BytesIO(b"slow contents")

    async def get(self, bucket, key):
        self.gets += 1
        await self.release.wait()
        return GetObjectResult(headers={"Content-Type": "text/plain"}, body=self.body)


async def _write(storage: ObjectStorage, path: str, data: bytes, **kwargs) -> None:
    await storage.write_file(FileInfo(path=path, contents=data, size=len(data), **kwargs))


class TestReadFileStream:
    """Tests for ObjectStorage.read_file_stream."""

    @pytest.mark.asyncio
    async def test_metadata_arrives_before_body(self, storage):
        """Content type is known before the first chunk is read."""
        await _write(storage, "files/plain.txt", b"text file contents")

        stream = storage.read_file_stream("files/plain.txt")
        metadata = await stream.metadata()

        assert metadata.content_type == "text/plain; charset=utf-8"
        assert stream.outcome is None

        chunks = [chunk async for chunk in stream.body()]

        assert b"".join(chunks) == b"text file contents"
        assert stream.outcome == StreamEnded(bytes_read=len(b"text file contents"))

    @pytest.mark.asyncio
    async def test_body_is_chunked(self, backend, options):
        data = b"x" * 10
        storage = ObjectStorage(options, backend)
        await _write(storage, "big.bin", data)

        stream = ObjectReadStream("big.bin", Key("big.bin"), options.bucket, backend, chunk_size=4)
        await stream.metadata()
        chunks = [chunk async for chunk in stream.body()]

        assert chunks == [b"xxxx", b"xxxx", b"xx"]

    @pytest.mark.asyncio
    async def test_metadata_lets_consumer_choose_decoding(self, storage):
        """Gzip-encoded objects announce it up front."""
        await _write(storage, "app.js", gzip.compress(b"console.log(1)"), gzip_encoded=True)

        async with storage.read_file_stream("app.js") as stream:
            metadata = await stream.metadata()
            raw = b"".join([chunk async for chunk in stream.body()])

        assert metadata.is_gzip
        assert gzip.decompress(raw) == b"console.log(1)"

    @pytest.mark.asyncio
    async def test_missing_object_reports_file_not_found(self, storage):
        """Missing is its own outcome, with code fileNotFound, and never ends."""
        stream = storage.read_file_stream("missingfile.txt")

        assert await stream.metadata() is None

        outcome = await stream.completion()
        assert isinstance(outcome, StreamMissing)
        assert outcome.error.code == "fileNotFound"
        assert outcome.error.path == "missingfile.txt"
        assert not isinstance(outcome, StreamEnded)

    @pytest.mark.asyncio
    async def test_backend_error_reports_failure_not_missing(self, storage, backend):
        backend.inject_failure("get")

        stream = storage.read_file_stream("files/plain.txt")

        assert await stream.metadata() is None
        assert isinstance(stream.outcome, StreamFailed)
        assert isinstance(stream.outcome.error, BackendError)

    @pytest.mark.asyncio
    async def test_error_mid_body_fails_stream(self):
        backend = _BrokenBackend()
        stream = ObjectReadStream("a.txt", Key("a.txt"), "bucket", backend)

        await stream.metadata()
        received = []
        with pytest.raises(BackendError):
            async for chunk in stream.body():
                received.append(chunk)

        assert received == [b"partial"]
        assert isinstance(stream.outcome, StreamFailed)
        assert backend.body.closed

    @pytest.mark.asyncio
    async def test_reads_from_fallback_bucket(self, fallback_storage, backend):
        await backend.put(
            "deployments-us-west",
            Key("legacy.txt"),
            b"from the old region",
            content_type="text/plain; charset=utf-8",
            cache_control="public, max-age=0",
            acl="public-read",
        )

        primary = fallback_storage.read_file_stream("legacy.txt")
        fallback = fallback_storage.read_file_stream("legacy.txt", use_fallback=True)

        assert await primary.read() is None
        assert await fallback.read() == b"from the old region"
        assert isinstance(fallback.outcome, StreamEnded)

    @pytest.mark.asyncio
    async def test_fallback_without_configuration_degrades_to_missing(self, storage, backend):
        """Asking for a fallback that doesn't exist is "not found", not an error."""
        await _write(storage, "files/plain.txt", b"primary copy")

        stream = storage.read_file_stream("files/plain.txt", use_fallback=True)

        assert await stream.metadata() is None
        assert isinstance(stream.outcome, StreamMissing)
        assert not any(op == "get" for op, _, _ in backend.calls)


class TestStreamState:
    """The handle enforces the metadata -> body -> outcome order."""

    @pytest.mark.asyncio
    async def test_body_before_metadata_is_rejected(self, storage):
        stream = storage.read_file_stream("files/plain.txt")

        with pytest.raises(StreamStateError, match="metadata"):
            stream.body()

    @pytest.mark.asyncio
    async def test_metadata_is_delivered_once(self, storage):
        await _write(storage, "files/plain.txt", b"abc")
        stream = storage.read_file_stream("files/plain.txt")
        await stream.metadata()

        with pytest.raises(StreamStateError):
            await stream.metadata()

    @pytest.mark.asyncio
    async def test_body_can_only_be_taken_once(self, storage):
        await _write(storage, "files/plain.txt", b"abc")
        stream = storage.read_file_stream("files/plain.txt")
        await stream.metadata()
        stream.body()

        with pytest.raises(StreamStateError):
            stream.body()

    @pytest.mark.asyncio
    async def test_body_unavailable_for_missing_object(self, storage):
        stream = storage.read_file_stream("missingfile.txt")
        await stream.metadata()

        with pytest.raises(StreamStateError):
            stream.body()

    @pytest.mark.asyncio
    async def test_completion_while_open_is_rejected(self, storage):
        await _write(storage, "files/plain.txt", b"abc")
        stream = storage.read_file_stream("files/plain.txt")
        await stream.metadata()

        with pytest.raises(StreamStateError):
            await stream.completion()

    @pytest.mark.asyncio
    async def test_close_before_end_leaves_no_outcome(self, storage):
        await _write(storage, "files/plain.txt", b"abc")

        async with storage.read_file_stream("files/plain.txt") as stream:
            await stream.metadata()

        assert stream.outcome is None
        with pytest.raises(StreamStateError):
            stream.body()

    @pytest.mark.asyncio
    async def test_streams_are_independent(self, storage):
        await _write(storage, "a.txt", b"aaa")
        await _write(storage, "b.txt", b"bbb")

        first = storage.read_file_stream("a.txt")
        second = storage.read_file_stream("b.txt")

        assert await second.read() == b"bbb"
        assert await first.read() == b"aaa"

    @pytest.mark.asyncio
    async def test_concurrent_metadata_sends_one_request(self):
        """A second metadata() while the first is in flight is rejected."""
        backend = _SlowBackend()
        stream = ObjectReadStream("a.txt", Key("a.txt"), "bucket", backend)

        first = asyncio.ensure_future(stream.metadata())
        await asyncio.sleep(0)

        with pytest.raises(StreamStateError):
            await stream.metadata()

        backend.release.set()
        metadata = await first

        assert metadata.content_type == "text/plain"
        assert backend.gets == 1
        assert b"".join([chunk async for chunk in stream.body()]) == b"slow contents"

    @pytest.mark.asyncio
    async def test_close_while_opening_releases_response(self):
        backend = _SlowBackend()
        stream = ObjectReadStream("a.txt", Key("a.txt"), "bucket", backend)

        pending = asyncio.ensure_future(stream.metadata())
        await asyncio.sleep(0)
        stream.close()
        backend.release.set()

        assert await pending is None
        assert stream.outcome is None
        assert backend.body.closed
        with pytest.raises(StreamStateError):
            stream.body()

    @pytest.mark.asyncio
    async def test_close_during_body_stops_iteration(self, backend, options):
        storage = ObjectStorage(options, backend)
        await _write(storage, "big.bin", b"x" * 10)

        stream = ObjectReadStream("big.bin", Key("big.bin"), options.bucket, backend, chunk_size=4)
        await stream.metadata()
        chunks = stream.body()

        assert await chunks.__anext__() == b"xxxx"
        stream.close()
        rest = [chunk async for chunk in chunks]

        assert rest == []
        assert stream.outcome is None


def test_stream_outcomes_are_values():
    """Outcomes compare by value, so tests and callers can match on them."""
    assert StreamEnded(3) == StreamEnded(3)
    assert StreamEnded(3) != StreamEnded(4)
