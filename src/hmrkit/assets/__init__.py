"""Content-addressed build artifacts: identity, in-memory store, disk sweeping."""

from hmrkit.assets.identity import is_hashed_path, logical_identity, mime_type_for
from hmrkit.assets.store import AssetStore
from hmrkit.assets.sweeper import StaleAssetSweeper

__all__ = [
    "AssetStore",
    "StaleAssetSweeper",
    "is_hashed_path",
    "logical_identity",
    "mime_type_for",
]
