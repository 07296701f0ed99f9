"""Hot module replacement dev server for multi-framework web builds."""

from __future__ import annotations

from hmrkit.assets import AssetStore, StaleAssetSweeper
from hmrkit.runtime import RebuildState, check_staleness, merge_versions, validate_client_message

__version__ = "0.1.0"

__all__ = [
    "AssetStore",
    "RebuildState",
    "StaleAssetSweeper",
    "__version__",
    "check_staleness",
    "merge_versions",
    "validate_client_message",
]
