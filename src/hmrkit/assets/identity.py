"""Content-hash naming rules for build artifacts."""

from __future__ import annotations

import re
from pathlib import PurePosixPath

HASHED_FILE_PATTERN = re.compile(r"\.[a-z0-9]{8}\.(js|css|mjs)$")
_HASH_SEGMENT_PATTERN = re.compile(r"\.[a-z0-9]{8}(\.(?:js|css|mjs))$")

CHUNK_PREFIX = "chunk-"

MIME_TYPES = {
    ".css": "text/css",
    ".html": "text/html",
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".json": "application/json",
    ".svg": "image/svg+xml",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
}


def is_hashed_path(path: str) -> bool:
    """Return True when the path follows the `<name>.<8-char-hash>.<ext>` convention."""
    return HASHED_FILE_PATTERN.search(path) is not None


def logical_identity(path: str) -> str:
    """Strip the content hash from a build path.

    ``/react/indexes/Page.abc12345.js`` -> ``/react/indexes/Page.js``.
    Paths without a hash segment are their own identity.
    """
    return _HASH_SEGMENT_PATTERN.sub(r"\1", path)


def is_web_path(path: str) -> bool:
    return path.startswith("/")


def is_chunk_file(filename: str, prefix: str = CHUNK_PREFIX) -> bool:
    return filename.startswith(prefix)


def mime_type_for(path: str) -> str:
    """Content-Type for a served asset, from its extension."""
    suffix = PurePosixPath(path).suffix.lower()
    return MIME_TYPES.get(suffix, "application/octet-stream")
