from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional


@dataclass(frozen=True)
class StalenessReport:
    """Result of comparing a client's applied module versions with the server's."""

    needs_sync: bool
    stale: List[str] = field(default_factory=list)


def check_staleness(
    server_versions: Optional[Mapping[str, int]],
    client_versions: Optional[Mapping[str, int]],
) -> StalenessReport:
    """Return the modules the client holds at an older version than the server.

    A module is stale when the client has no entry for it or a lower number.
    Either side missing means there is nothing to reconcile.
    """
    if not isinstance(server_versions, Mapping) or not isinstance(client_versions, Mapping):
        return StalenessReport(needs_sync=False, stale=[])

    stale: List[str] = []
    for module, server_version in server_versions.items():
        client_version = client_versions.get(module)
        if client_version is None or client_version < server_version:
            stale.append(module)

    return StalenessReport(needs_sync=bool(stale), stale=stale)


def merge_versions(current: Optional[Mapping[str, int]], delta: Optional[Mapping[str, int]]) -> Dict[str, int]:
    """Last write wins per key. Deltas over disjoint keys commute."""
    merged: Dict[str, int] = dict(current or {})
    if delta:
        merged.update(delta)
    return merged


class ModuleVersionTracker:
    """
    Server-side source of truth for module versions.

    Every increment draws from one counter shared by all modules, so a version
    number is never reused for the lifetime of the tracker.
    """

    def __init__(self) -> None:
        self._counter = 0
        self._versions: Dict[str, int] = {}

    def increment(self, module: str) -> int:
        self._counter += 1
        self._versions[module] = self._counter
        return self._counter

    def increment_many(self, modules: Iterable[str]) -> Dict[str, int]:
        """Bump each module once and return the new versions."""
        updated: Dict[str, int] = {}
        for module in modules:
            if module in updated:
                continue
            updated[module] = self.increment(module)
        return updated

    def get(self, module: str) -> Optional[int]:
        return self._versions.get(module)

    def snapshot(self) -> Dict[str, int]:
        return dict(self._versions)

    def clear(self) -> None:
        self._versions.clear()

    def __len__(self) -> int:
        return len(self._versions)
