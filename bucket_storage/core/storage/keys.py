"""Logical path to physical key mapping."""

import re
from typing import Optional

from .models import Key

_SEPARATOR_RUN = re.compile(r"/{2,}")


def build_key(logical_path: str, key_prefix: Optional[str] = None) -> Key:
    """
    Map a logical path to the backend key.

    Without a prefix the path is returned unchanged. With a prefix the two
    are joined by exactly one "/"; a trailing "/" on the path is kept
    because it matters for prefix listing ("a/" does not match "ab").

        build_key("css/site.css", "apps/123")  -> "apps/123/css/site.css"
        build_key("/css//site.css", "/apps/")  -> "apps/css/site.css"
        build_key("", "apps")                  -> "apps/"
    """
    if not key_prefix:
        return Key(logical_path)

    prefix = key_prefix.strip("/")
    path = logical_path.lstrip("/")
    joined = f"{prefix}/{path}" if prefix else path
    return Key(_SEPARATOR_RUN.sub("/", joined))
