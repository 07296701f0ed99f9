from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict, Iterable, List, Mapping

from hmrkit.assets.identity import is_hashed_path, is_web_path, logical_identity


class StaleAssetSweeper:
    """
    Removes hashed build files superseded by a newer hash of the same logical file.

    Liveness is computed from the store and the manifest handed in, so callers must
    sweep only after the store was upserted with that manifest.
    """

    def __init__(self, build_dir: Path) -> None:
        self.build_dir = build_dir

    async def sweep(self, store_paths: Iterable[str], manifest: Mapping[str, str]) -> List[Path]:
        """Delete orphaned older versions and return the paths that were removed."""
        root = self.build_dir.resolve()
        live_by_identity = self.live_paths(root, store_paths, manifest)
        if not live_by_identity:
            return []

        try:
            candidates = await asyncio.to_thread(self._stale_files, root, live_by_identity)
        except OSError:
            return []

        results = await asyncio.gather(
            *(asyncio.to_thread(path.unlink) for path in candidates),
            return_exceptions=True,
        )
        return [path for path, result in zip(candidates, results) if not isinstance(result, BaseException)]

    @staticmethod
    def live_paths(root: Path, store_paths: Iterable[str], manifest: Mapping[str, str]) -> Dict[str, str]:
        """Map logical identity -> live absolute disk path."""
        live: Dict[str, str] = {}
        root_prefix = str(root).rstrip("/") + "/"

        for web_path in store_paths:
            disk_path = str(root / web_path.lstrip("/"))
            live[logical_identity(disk_path)] = disk_path

        for value in manifest.values():
            if not is_hashed_path(value):
                continue
            if value.startswith(root_prefix):
                disk_path = value
            elif is_web_path(value):
                disk_path = str(root / value.lstrip("/"))
            else:
                continue
            live[logical_identity(disk_path)] = disk_path

        return live

    @staticmethod
    def _stale_files(root: Path, live_by_identity: Dict[str, str]) -> List[Path]:
        if not root.is_dir():
            return []

        stale: List[Path] = []
        for path in root.rglob("*"):
            if not path.is_file() or not is_hashed_path(path.name):
                continue

            full_path = str(path)
            live_path = live_by_identity.get(logical_identity(full_path))
            if live_path is not None and live_path != full_path:
                stale.append(path)

        return stale
