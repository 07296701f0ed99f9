from __future__ import annotations

import asyncio
import json
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional

from fastapi import FastAPI

from hmrkit.assets.store import AssetStore
from hmrkit.cli.formatter import OutputFormatter
from hmrkit.core.context import DevContext
from hmrkit.core.registry import Registry
from hmrkit.patching.dispatcher import PageRenderer, default_dispatcher
from hmrkit.runtime.compiler import FrameworkCompiler
from hmrkit.runtime.contracts import RebuildResult, RebuildStatus
from hmrkit.runtime.orchestrator import RebuildOrchestrator
from hmrkit.runtime.state import RebuildState
from hmrkit.runtime.watcher import PollingWatcher
from hmrkit.server.app import create_app
from hmrkit.server.metadata import ServerMetadata, remove_server_metadata, utc_now_iso, write_server_metadata


class DevServer:
    """
    Owns one dev server run: the rebuild state, the asset store, the source
    watcher and the FastAPI app that exposes them.
    """

    def __init__(
        self,
        context: DevContext,
        compilers: Optional[Registry[FrameworkCompiler]] = None,
        renderer: Optional[PageRenderer] = None,
        write_metadata: bool = True,
    ):
        self.context = context
        self.write_metadata = write_metadata
        self.state = RebuildState()
        self.store = AssetStore(chunk_prefix=context.build.chunk_prefix)
        self.orchestrator = RebuildOrchestrator(
            state=self.state,
            store=self.store,
            build_dir=context.build_dir,
            compilers=compilers if compilers is not None else context.compilers(),
            dispatcher=default_dispatcher(renderer=renderer),
            framework_directories=context.framework_directories(),
        )
        self.watcher: Optional[PollingWatcher] = None
        self.app: FastAPI = create_app(self.orchestrator, context.server, lifespan=self.lifespan)

        self._watch_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @asynccontextmanager
    async def lifespan(self, app: FastAPI) -> AsyncIterator[None]:
        await self.start()
        try:
            yield
        finally:
            await self.stop()

    def source_directories(self) -> List[Path]:
        return [directory for directory in self.context.framework_directories().values() if directory.is_dir()]

    async def start(self) -> List[RebuildResult]:
        """Load any existing build, index sources, run the initial build and start watching."""
        await self.load_existing_manifest()

        indexed = self.state.dependency_graph.scan(self.source_directories())
        OutputFormatter.log(f"Indexed {indexed} source file(s)")

        if self.context.watch.enabled:
            self.watcher = PollingWatcher(
                roots=self.source_directories(),
                interval_ms=self.context.watch.interval_ms,
                debounce_ms=self.context.watch.debounce_ms,
                include_patterns=self.context.watch.include_patterns,
                exclude_patterns=self.context.watch.exclude_patterns,
            )
            self.watcher.start()
            for path in self.watcher.tracked_paths():
                self.state.file_hashes.record(path)

        results = await self.orchestrator.build_all()
        failures = [result for result in results if result.status == RebuildStatus.FAILURE]
        if failures:
            OutputFormatter.log("Initial build failed; serving the previous build output", severity="warning")

        if self.watcher is not None:
            self._stop_event.clear()
            self._watch_task = asyncio.get_running_loop().create_task(self._watch_loop())
            OutputFormatter.log("Watching for changes", severity="info")

        if self.write_metadata:
            write_server_metadata(
                self.context.root_dir,
                ServerMetadata(
                    pid=os.getpid(),
                    port=self.context.server.port,
                    host=self.context.server.host,
                    started_at=utc_now_iso(),
                ),
            )
        return results

    async def stop(self) -> None:
        self._stop_event.set()
        if self._watch_task is not None:
            await asyncio.gather(self._watch_task, return_exceptions=True)
            self._watch_task = None

        if self.watcher is not None:
            self.watcher.stop()
            self.watcher = None

        await self.orchestrator.wait_idle()
        if self.write_metadata:
            remove_server_metadata(self.context.root_dir)

    async def load_existing_manifest(self) -> Dict[str, str]:
        """Seed the manifest and the store from a build left on disk by an earlier run."""
        manifest_path = self.context.build_dir / self.context.build.manifest_file
        if not manifest_path.is_file():
            return {}

        try:
            payload = json.loads(await asyncio.to_thread(manifest_path.read_text, encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            OutputFormatter.log(f"Ignoring unreadable manifest {manifest_path}: {exc}", severity="warning")
            return {}

        if not isinstance(payload, dict):
            return {}

        manifest = {str(key): str(value) for key, value in payload.items()}
        await self.store.upsert(manifest, self.context.build_dir)
        self.state.manifest = manifest
        return manifest

    async def poll_once(self, now: float) -> List[RebuildResult]:
        """Run one watcher poll; a dispatched batch is handed to the orchestrator."""
        if self.watcher is None:
            return []

        poll_result = self.watcher.poll(now=now)
        if not poll_result.should_dispatch:
            return []

        try:
            return await self.orchestrator.submit(poll_result.changed_paths)
        finally:
            self.watcher.complete_batch()

    async def _watch_loop(self) -> None:
        interval_seconds = max(self.context.watch.interval_ms / 1000.0, 0.05)
        while not self._stop_event.is_set():
            await self.poll_once(now=time.monotonic())
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                continue
