from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set, Tuple, runtime_checkable

from hmrkit.runtime.contracts import RebuildEvent, RebuildPhase, transition_rebuild_state
from hmrkit.runtime.dependency_graph import DependencyGraph
from hmrkit.runtime.hashing import FileHashTracker
from hmrkit.runtime.versions import ModuleVersionTracker, merge_versions


@runtime_checkable
class ClientHandle(Protocol):
    """One connected browser session as seen by the orchestrator."""

    @property
    def is_open(self) -> bool:
        ...

    async def send_text(self, data: str) -> None:
        ...


class RebuildState:
    """
    Mutable dev-server state shared by the orchestrator and the transport.

    Created when the server starts and discarded when it stops. `rebuild_queue`
    holds framework names; the files behind each queued framework are kept in
    `pending_files` and drained together with it.
    """

    def __init__(self) -> None:
        self.connected_clients: Set[ClientHandle] = set()
        self.rebuild_queue: Set[str] = set()
        self.pending_files: Dict[str, Set[Path]] = {}
        self.phase: RebuildPhase = RebuildPhase.IDLE
        self.manifest: Dict[str, str] = {}
        self.module_versions = ModuleVersionTracker()
        self.file_hashes = FileHashTracker()
        self.dependency_graph = DependencyGraph()
        self.client_versions: Dict[ClientHandle, Dict[str, int]] = {}
        self.client_frameworks: Dict[ClientHandle, Optional[str]] = {}
        self.last_rebuild_at: Optional[float] = None

    @property
    def is_rebuilding(self) -> bool:
        return self.phase == RebuildPhase.REBUILDING

    def enqueue(self, framework: str, files: Iterable[Path] = ()) -> None:
        """Add a framework (and the files that triggered it) to the pending set."""
        self.rebuild_queue.add(framework)
        self.pending_files.setdefault(framework, set()).update(Path(path) for path in files)

    def drain(self) -> Tuple[List[str], Dict[str, Set[Path]]]:
        """Take everything queued so far and leave the queue empty."""
        frameworks = sorted(self.rebuild_queue)
        files = {framework: self.pending_files.get(framework, set()) for framework in frameworks}
        self.rebuild_queue.clear()
        self.pending_files.clear()
        return frameworks, files

    def begin_cycle(self) -> None:
        self.phase = transition_rebuild_state(self.phase, RebuildEvent.CHANGES_ACCEPTED)

    def end_cycle(self, success: bool) -> None:
        event = RebuildEvent.REBUILD_SUCCEEDED if success else RebuildEvent.REBUILD_FAILED
        self.phase = transition_rebuild_state(self.phase, event)
        self.last_rebuild_at = time.time()

    def add_client(self, client: ClientHandle) -> None:
        self.connected_clients.add(client)
        self.client_versions.setdefault(client, {})

    def remove_client(self, client: ClientHandle) -> None:
        self.connected_clients.discard(client)
        self.client_versions.pop(client, None)
        self.client_frameworks.pop(client, None)

    def record_client_versions(self, client: ClientHandle, delta: Dict[str, int]) -> Dict[str, int]:
        """Merge versions a client has been sent into its running view."""
        merged = merge_versions(self.client_versions.get(client), delta)
        self.client_versions[client] = merged
        return merged

    def status_snapshot(self) -> Dict[str, Any]:
        """Diagnostic view served at the status endpoint."""
        return {
            "connectedClients": len(self.connected_clients),
            "isRebuilding": self.is_rebuilding,
            "manifestKeys": list(self.manifest.keys()),
            "rebuildQueue": sorted(self.rebuild_queue),
            "timestamp": int(time.time() * 1000),
        }
