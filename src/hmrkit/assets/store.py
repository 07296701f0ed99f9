from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from hmrkit.assets.identity import CHUNK_PREFIX, is_chunk_file, is_web_path, logical_identity


class AssetStore:
    """
    In-memory mapping from web path to built bytes, served by the dev server.

    Keys are either manifest values or code-split chunk files discovered on disk.
    A path is only ever inserted after its bytes were read completely.
    """

    def __init__(self, chunk_prefix: str = CHUNK_PREFIX) -> None:
        self.chunk_prefix = chunk_prefix
        self._entries: Dict[str, bytes] = {}

    async def upsert(self, manifest: Mapping[str, str], build_dir: Path) -> None:
        """Load every live manifest path, evicting superseded hashed versions first."""
        live_by_identity: Dict[str, str] = {}
        for web_path in manifest.values():
            if not is_web_path(web_path):
                continue
            live_by_identity[logical_identity(web_path)] = web_path

        self._evict_superseded(live_by_identity)

        await self._load_all(
            [(web_path, _disk_path(build_dir, web_path)) for web_path in live_by_identity.values()]
        )
        await self._discover_chunks(build_dir)

    def lookup(self, path: str) -> Optional[bytes]:
        """Return the bytes served at `path`, or None."""
        return self._entries.get(path)

    def set(self, path: str, content: bytes) -> None:
        self._entries[path] = content

    def discard(self, path: str) -> None:
        self._entries.pop(path, None)

    def paths(self) -> List[str]:
        return list(self._entries.keys())

    def _evict_superseded(self, live_by_identity: Dict[str, str]) -> None:
        for existing in list(self._entries.keys()):
            replacement = live_by_identity.get(logical_identity(existing))
            if replacement is not None and replacement != existing:
                del self._entries[existing]

    async def _load_all(self, targets: List[Tuple[str, Path]]) -> None:
        if not targets:
            return

        results = await asyncio.gather(
            *(asyncio.to_thread(disk_path.read_bytes) for _, disk_path in targets),
            return_exceptions=True,
        )
        for (web_path, _), result in zip(targets, results):
            # Missing files belong to server-only entries.
            if isinstance(result, BaseException):
                continue
            self._entries[web_path] = result

    async def _discover_chunks(self, build_dir: Path) -> None:
        try:
            candidates = await asyncio.to_thread(self._scan_chunks, build_dir)
        except OSError:
            return

        await self._load_all(
            [(web_path, disk_path) for web_path, disk_path in candidates if web_path not in self._entries]
        )

    def _scan_chunks(self, build_dir: Path) -> List[Tuple[str, Path]]:
        if not build_dir.is_dir():
            return []

        found: List[Tuple[str, Path]] = []
        for path in build_dir.rglob(f"{self.chunk_prefix}*"):
            if not path.is_file() or not is_chunk_file(path.name, self.chunk_prefix):
                continue
            found.append(("/" + path.relative_to(build_dir).as_posix(), path))
        return found

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries.keys()))


def _disk_path(build_dir: Path, web_path: str) -> Path:
    return build_dir / web_path.lstrip("/")
