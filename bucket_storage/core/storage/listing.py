"""
Exhaustive key listing over a paginated backend.

Backends cap the number of keys per list call (S3 returns at most 1000).
list_keys keeps asking for the next page until the backend says there
are no more, so callers never see a silently truncated result.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional

from .backend import ObjectBackend
from .errors import BackendError
from .models import Key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ListCursor:
    """Position within a listing. continuation_token is the last key seen."""
    bucket: str
    prefix: Key
    max_keys: int
    continuation_token: Optional[Key] = None

    def advance(self, token: Key) -> "ListCursor":
        return replace(self, continuation_token=token)


async def list_keys(
    backend: ObjectBackend,
    bucket: str,
    prefix: Key,
    max_keys: int,
) -> list[Key]:
    """
    Return every key under prefix, in page-arrival order.

    Pages are fetched one after another; the next request is only issued
    once the previous response is in, because its token is the last key
    of that response. Any page failure propagates and the keys collected
    so far are dropped.
    """
    cursor = ListCursor(bucket=bucket, prefix=prefix, max_keys=max_keys)
    keys: list[Key] = []
    pages = 0

    while True:
        page = await backend.list_objects(
            cursor.bucket,
            cursor.prefix,
            cursor.max_keys,
            cursor.continuation_token,
        )
        pages += 1
        keys.extend(page.keys)

        logger.debug(
            "Listed page",
            extra={
                "bucket": bucket,
                "prefix": prefix,
                "page": pages,
                "page_keys": len(page.keys),
                "truncated": page.truncated,
            }
        )

        if not page.truncated:
            break

        if not page.keys:
            # Can't continue without a last key to resume from
            raise BackendError(
                f"Truncated listing page without keys for prefix {prefix!r}"
            )

        cursor = cursor.advance(page.keys[-1])

    logger.debug(
        "Listing complete",
        extra={"bucket": bucket, "prefix": prefix, "pages": pages, "count": len(keys)}
    )
    return keys
