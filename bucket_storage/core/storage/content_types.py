"""
Content-Type inference from file extensions.

The stdlib mimetypes registry does the lookup; text-like types get an
explicit utf-8 charset so browsers don't have to guess.
"""

import mimetypes
import posixpath

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Non text/* types that are served as text
_CHARSET_TYPES = {
    "application/javascript",
    "application/json",
    "application/xml",
    "image/svg+xml",
}


def content_type_for(path: str) -> str:
    """Return the Content-Type header value for a file path."""
    _, ext = posixpath.splitext(path)
    if not ext:
        return DEFAULT_CONTENT_TYPE

    content_type, _ = mimetypes.guess_type(f"file{ext.lower()}", strict=False)
    if content_type is None:
        return DEFAULT_CONTENT_TYPE

    if content_type.startswith("text/") or content_type in _CHARSET_TYPES:
        return f"{content_type}; charset=utf-8"
    return content_type
