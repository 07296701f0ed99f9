"""Map source paths to the framework that builds them."""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Optional

REACT = "react"
SVELTE = "svelte"
VUE = "vue"
ANGULAR = "angular"
HTML = "html"
HTMX = "htmx"
ASSETS = "assets"
UNKNOWN = "unknown"
IGNORED = "ignored"

# Frameworks the client can patch without reloading the page.
PATCHABLE_FRAMEWORKS = frozenset({REACT, HTML, HTMX, VUE, SVELTE})

# htmx first: an htmx directory usually also matches the html heuristics.
_DIRECTORY_ORDER = (HTMX, REACT, SVELTE, VUE, ANGULAR, HTML, ASSETS)

_IGNORED_SEGMENTS = ("/build/", "/compiled/", "/indexes/", "/node_modules/", "/.git/")
_IGNORED_SUFFIXES = (".log", ".tmp", "/compiled", "/compiled/")

_EXTENSION_FRAMEWORKS = (
    (".tsx", REACT),
    (".jsx", REACT),
    (".svelte", SVELTE),
    (".vue", VUE),
    (".html", HTML),
)


def _normalize(path: str | Path) -> str:
    return str(path).replace("\\", "/")


def should_ignore_path(path: str | Path) -> bool:
    """True for build output, vendored code, VCS metadata and scratch files."""
    normalized = _normalize(path)
    if any(segment in normalized for segment in _IGNORED_SEGMENTS):
        return True
    if normalized.endswith(_IGNORED_SUFFIXES):
        return True
    return normalized.rsplit("/", 1)[-1].startswith(".") or normalized == "compiled"


def detect_framework(path: str | Path, directories: Optional[Mapping[str, Path]] = None) -> str:
    """Return the framework for a source file.

    Configured framework directories win; path segments and extensions are
    heuristics for files outside them.
    """
    if should_ignore_path(path):
        return IGNORED

    normalized = _normalize(path)

    if directories:
        for framework in _DIRECTORY_ORDER:
            directory = directories.get(framework)
            if directory is None:
                continue
            prefix = _normalize(directory).rstrip("/") + "/"
            if normalized.startswith(prefix):
                return framework
    else:
        for framework in (HTMX, REACT, SVELTE, VUE, ANGULAR, HTML):
            if f"/{framework}/" in normalized:
                return framework

    for suffix, framework in _EXTENSION_FRAMEWORKS:
        if normalized.endswith(suffix):
            return framework
    if normalized.endswith(".ts") and ANGULAR in normalized:
        return ANGULAR

    if "/assets/" in normalized:
        return ASSETS

    if normalized.endswith(".css"):
        for framework in (VUE, SVELTE, REACT, ANGULAR, HTML, HTMX):
            if f"/{framework}/" in normalized or f"/{framework}-" in normalized:
                return framework
        return ASSETS

    return UNKNOWN
