"""
Unit tests for paginated listing.

The backend caps every page at max_keys; these tests make sure the lister
keeps going until the backend says it's done, and never returns a partial
result.
"""

import pytest

from bucket_storage.core.storage.backend import ListPage
from bucket_storage.core.storage.errors import BackendError
from bucket_storage.core.storage.listing import ListCursor, list_keys
from bucket_storage.core.storage.models import Key
from bucket_storage.infrastructure.storage.client import MockObjectBackend


async def _seed(backend: MockObjectBackend, bucket: str, keys: list[str]) -> None:
    for key in keys:
        await backend.put(
            bucket,
            Key(key),
            key.encode(),
            content_type="text/plain",
            cache_control="public, max-age=0",
            acl="public-read",
        )


class _ScriptedBackend:
    """Returns pre-baked pages regardless of the request."""

    def __init__(self, pages: list[ListPage]) -> None:
        self._pages = list(pages)
        self.tokens = []

    async def list_objects(self, bucket, prefix, max_keys, continuation_token=None):
        self.tokens.append(continuation_token)
        return self._pages.pop(0)


class TestListCursor:
    """Tests for the cursor value object."""

    def test_advance_keeps_scope_and_replaces_token(self):
        cursor = ListCursor(bucket="b", prefix=Key("p/"), max_keys=2)
        advanced = cursor.advance(Key("p/b"))

        assert advanced.continuation_token == "p/b"
        assert advanced.prefix == "p/"
        assert cursor.continuation_token is None


class TestListKeys:
    """Tests for list_keys."""

    @pytest.mark.asyncio
    async def test_returns_every_key_across_pages(self):
        """Five keys with a page size of two need three pages."""
        backend = MockObjectBackend()
        keys = [f"site/{name}" for name in ("a", "b", "c", "d", "e")]
        await _seed(backend, "bucket", keys)

        result = await list_keys(backend, "bucket", Key("site/"), max_keys=2)

        assert result == keys
        assert len(set(result)) == 5

    @pytest.mark.asyncio
    async def test_continuation_token_is_last_key_of_page(self):
        """Each follow-up request resumes after the previous page's last key."""
        backend = MockObjectBackend()
        await _seed(backend, "bucket", ["p/1", "p/2", "p/3", "p/4", "p/5"])

        await list_keys(backend, "bucket", Key("p/"), max_keys=2)

        tokens = [key for op, _, key in backend.calls if op == "list_objects"]
        assert tokens == [None, "p/2", "p/4"]

    @pytest.mark.asyncio
    async def test_scopes_to_prefix(self):
        backend = MockObjectBackend()
        await _seed(backend, "bucket", ["app/a", "app/b", "apple/c"])

        assert await list_keys(backend, "bucket", Key("app/"), max_keys=10) == ["app/a", "app/b"]

    @pytest.mark.asyncio
    async def test_empty_prefix_returns_empty_list(self):
        backend = MockObjectBackend()
        assert await list_keys(backend, "bucket", Key("nothing/"), max_keys=2) == []

    @pytest.mark.asyncio
    async def test_exact_page_multiple_stops_on_untruncated_page(self):
        """Four keys, page size two: the second page is the last one."""
        backend = MockObjectBackend()
        await _seed(backend, "bucket", ["k/1", "k/2", "k/3", "k/4"])

        result = await list_keys(backend, "bucket", Key("k/"), max_keys=2)

        assert result == ["k/1", "k/2", "k/3", "k/4"]
        assert len([c for c in backend.calls if c[0] == "list_objects"]) == 2

    @pytest.mark.asyncio
    async def test_preserves_page_order_without_dedup(self):
        """Whatever the pages contain is returned as-is, in arrival order."""
        backend = _ScriptedBackend([
            ListPage(keys=[Key("z"), Key("a")], truncated=True),
            ListPage(keys=[Key("a"), Key("m")], truncated=False),
        ])

        result = await list_keys(backend, "bucket", Key(""), max_keys=2)

        assert result == ["z", "a", "a", "m"]
        assert backend.tokens == [None, "a"]

    @pytest.mark.asyncio
    async def test_failure_on_later_page_propagates(self):
        """No partial result: a failing second page fails the whole listing."""
        backend = MockObjectBackend()
        await _seed(backend, "bucket", ["p/1", "p/2", "p/3"])
        backend.inject_failure("list_objects", key="p/2")

        with pytest.raises(BackendError):
            await list_keys(backend, "bucket", Key("p/"), max_keys=2)

    @pytest.mark.asyncio
    async def test_truncated_page_without_keys_is_an_error(self):
        """Without a last key there's nothing to resume from."""
        backend = _ScriptedBackend([ListPage(keys=[], truncated=True)])

        with pytest.raises(BackendError, match="Truncated"):
            await list_keys(backend, "bucket", Key("p/"), max_keys=2)
