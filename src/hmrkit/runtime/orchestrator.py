from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Set

from hmrkit.assets.store import AssetStore
from hmrkit.assets.sweeper import StaleAssetSweeper
from hmrkit.cli.formatter import OutputFormatter
from hmrkit.core.registry import Registry
from hmrkit.patching.dispatcher import FrameworkPatchDispatcher, PatchContext, default_dispatcher
from hmrkit.runtime.compiler import CompileResult, FrameworkCompiler
from hmrkit.runtime.contracts import RebuildResult, RebuildStatus
from hmrkit.runtime.frameworks import IGNORED, PATCHABLE_FRAMEWORKS, detect_framework
from hmrkit.runtime.module_mapper import build_module_updates, group_by_framework, manifest_keys_for
from hmrkit.runtime.protocol import (
    ClientMessage,
    ConnectedMessage,
    FrameworkUpdateMessage,
    FrameworkUpdatePayload,
    HydrationErrorMessage,
    ManifestMessage,
    ManifestPayload,
    ModuleUpdateEntry,
    ModuleUpdateMessage,
    ModuleUpdatePayload,
    PingMessage,
    PongMessage,
    ReadyMessage,
    RebuildCompleteMessage,
    RebuildCompletePayload,
    RebuildErrorMessage,
    RebuildErrorPayload,
    RebuildStartMessage,
    RebuildStartPayload,
    RequestRebuildMessage,
    ServerMessage,
    parse_client_message,
)
from hmrkit.runtime.state import ClientHandle, RebuildState
from hmrkit.utils.diagnostics import CompilationError


class RebuildOrchestrator:
    """
    Turns source changes into rebuild cycles and tells connected clients about them.

    Only one cycle runs at a time. Changes submitted while a cycle is running are
    queued and picked up by a single follow-up cycle once it finishes.
    """

    def __init__(
        self,
        state: RebuildState,
        store: AssetStore,
        build_dir: Path,
        compilers: Registry[FrameworkCompiler],
        dispatcher: Optional[FrameworkPatchDispatcher] = None,
        sweeper: Optional[StaleAssetSweeper] = None,
        framework_directories: Optional[Mapping[str, Path]] = None,
    ) -> None:
        self.state = state
        self.store = store
        self.build_dir = build_dir
        self.compilers = compilers
        self.dispatcher = dispatcher or default_dispatcher()
        self.sweeper = sweeper or StaleAssetSweeper(build_dir)
        self.framework_directories = dict(framework_directories or {})
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Client channel
    # ------------------------------------------------------------------

    async def connect(self, client: ClientHandle) -> None:
        """Register a client and send it the current manifest snapshot."""
        self.state.add_client(client)
        snapshot = ManifestMessage(
            data=ManifestPayload(
                manifest=dict(self.state.manifest),
                server_versions=self.state.module_versions.snapshot(),
            )
        )
        try:
            await client.send_text(snapshot.to_wire())
            await client.send_text(ConnectedMessage().to_wire())
        except Exception:
            self.state.remove_client(client)

    def disconnect(self, client: ClientHandle) -> None:
        self.state.remove_client(client)

    async def handle_message(self, client: ClientHandle, raw: object) -> Optional[ClientMessage]:
        """Act on one inbound frame. Invalid frames are dropped and return None."""
        message = parse_client_message(raw)
        if message is None:
            return None

        if isinstance(message, PingMessage):
            await self._send(client, PongMessage())
        elif isinstance(message, ReadyMessage):
            self.state.client_frameworks[client] = message.framework
        elif isinstance(message, RequestRebuildMessage):
            OutputFormatter.log("Client requested a full rebuild")
            for framework in self.compilers.names():
                self.state.enqueue(framework)
            self.schedule()
        elif isinstance(message, HydrationErrorMessage) and message.data is not None:
            details = message.data
            location = f" ({details.component_path})" if details.component_path else ""
            OutputFormatter.log(
                f"Hydration error in {details.component_name or 'unknown component'}{location}: "
                f"{details.error or 'no details'}",
                severity="warning",
            )

        return message

    async def broadcast(self, message: ServerMessage) -> int:
        """Send to every open client; closed or failing clients are dropped. Returns the delivery count."""
        wire = message.to_wire()
        targets: List[ClientHandle] = []
        for client in list(self.state.connected_clients):
            if client.is_open:
                targets.append(client)
            else:
                self.state.remove_client(client)

        if not targets:
            return 0

        results = await asyncio.gather(
            *(client.send_text(wire) for client in targets),
            return_exceptions=True,
        )
        delivered = 0
        for client, result in zip(targets, results):
            if isinstance(result, BaseException):
                self.state.remove_client(client)
            else:
                delivered += 1
        return delivered

    async def _send(self, client: ClientHandle, message: ServerMessage) -> None:
        try:
            await client.send_text(message.to_wire())
        except Exception:
            self.state.remove_client(client)

    # ------------------------------------------------------------------
    # Change intake
    # ------------------------------------------------------------------

    def accept_changes(self, paths: Iterable[Path]) -> List[str]:
        """Queue the frameworks affected by changed files. Unchanged content is ignored."""
        queued: List[str] = []
        graph = self.state.dependency_graph

        for raw_path in paths:
            path = Path(raw_path).resolve()
            if detect_framework(path, self.framework_directories) == IGNORED:
                continue

            if path.exists():
                if not self.state.file_hashes.record(path):
                    continue
                graph.add_file(path)
                affected = graph.affected_files(path)
            else:
                self.state.file_hashes.forget(path)
                affected = [candidate for candidate in graph.affected_files(path) if candidate != path]
                graph.remove_file(path)
                # A deleted file still has to rebuild its own framework.
                affected.insert(0, path)

            for candidate in affected:
                if candidate != path and not candidate.exists():
                    continue
                framework = detect_framework(candidate, self.framework_directories)
                if framework == IGNORED or framework not in self.compilers:
                    continue
                files = [candidate] if candidate.exists() else []
                self.state.enqueue(framework, files)
                if framework not in queued:
                    queued.append(framework)

        return queued

    async def submit(self, paths: Iterable[Path]) -> List[RebuildResult]:
        """Queue changes and run cycles until the queue is empty, unless a cycle is already running."""
        self.accept_changes(paths)
        return await self.run()

    async def run(self) -> List[RebuildResult]:
        """Drain the queue, one cycle per drain, until nothing is left."""
        results: List[RebuildResult] = []
        while self.state.rebuild_queue and not self.state.is_rebuilding:
            frameworks, files = self.state.drain()
            results.append(await self._run_cycle(frameworks, files))
        return results

    async def build_all(self) -> List[RebuildResult]:
        """Queue every registered framework and rebuild."""
        for framework in self.compilers.names():
            self.state.enqueue(framework)
        return await self.run()

    def schedule(self) -> None:
        """Start draining in the background if no cycle is running."""
        if self.state.is_rebuilding:
            return
        task = asyncio.get_running_loop().create_task(self.run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Rebuild cycle
    # ------------------------------------------------------------------

    async def _run_cycle(self, frameworks: List[str], files: Dict[str, Set[Path]]) -> RebuildResult:
        self.state.begin_cycle()
        started = time.perf_counter()
        success = False
        try:
            OutputFormatter.log(f"Rebuilding: {', '.join(frameworks)}")
            await self.broadcast(RebuildStartMessage(data=RebuildStartPayload(affected_frameworks=frameworks)))

            try:
                fragments = await self._compile(frameworks, files)
            except CompilationError as exc:
                return await self._report_failure(frameworks, exc)

            previous_manifest = dict(self.state.manifest)
            manifest = dict(previous_manifest)
            for fragment in fragments:
                manifest.update(fragment.manifest)

            await self.store.upsert(manifest, self.build_dir)
            self.state.manifest = manifest
            swept = await self.sweeper.sweep(self.store.paths(), manifest)

            versions = self._bump_versions(frameworks, files)

            await self.broadcast(
                RebuildCompleteMessage(
                    data=RebuildCompletePayload(affected_frameworks=frameworks, manifest=manifest)
                )
            )
            for framework in frameworks:
                await self.broadcast(
                    FrameworkUpdateMessage(
                        message=f"{framework} framework updated",
                        data=FrameworkUpdatePayload(framework=framework, manifest=manifest),
                    )
                )

            await self._send_module_updates(frameworks, files, manifest, versions)
            await self._send_patches(frameworks, files, manifest, previous_manifest)

            elapsed_ms = (time.perf_counter() - started) * 1000
            OutputFormatter.log(
                f"Rebuild complete in {elapsed_ms:.0f}ms ({len(swept)} stale file(s) removed)",
                severity="success",
            )
            success = True
            return RebuildResult(
                status=RebuildStatus.SUCCESS,
                affected_frameworks=frameworks,
                manifest=manifest,
                module_versions=versions,
                swept_files=len(swept),
            )
        finally:
            self.state.end_cycle(success)

    async def _compile(self, frameworks: List[str], files: Dict[str, Set[Path]]) -> List[CompileResult]:
        fragments: List[CompileResult] = []
        for framework in frameworks:
            if framework not in self.compilers:
                OutputFormatter.log(f"No compiler registered for '{framework}', skipping", severity="warning")
                continue

            compiler = self.compilers.get(framework)
            changed = sorted(files.get(framework, set()))
            try:
                fragments.append(await compiler.compile(changed, self.build_dir))
            except CompilationError as exc:
                if exc.framework is None:
                    exc.framework = framework
                raise
            except Exception as exc:
                raise CompilationError(str(exc) or exc.__class__.__name__, framework=framework) from exc
        return fragments

    async def _report_failure(self, frameworks: List[str], exc: CompilationError) -> RebuildResult:
        OutputFormatter.log(f"Rebuild failed: {exc}", severity="error")
        diagnostic = exc.to_diagnostic()
        OutputFormatter.print_diagnostics([diagnostic])

        await self.broadcast(
            RebuildErrorMessage(
                data=RebuildErrorPayload(affected_frameworks=frameworks, **exc.to_payload())
            )
        )
        return RebuildResult(
            status=RebuildStatus.FAILURE,
            affected_frameworks=frameworks,
            manifest=dict(self.state.manifest),
            diagnostics=[diagnostic],
            error=exc.message,
        )

    def _bump_versions(self, frameworks: List[str], files: Dict[str, Set[Path]]) -> Dict[str, int]:
        modules: List[str] = []
        for framework in frameworks:
            for source_file in sorted(files.get(framework, set())):
                modules.extend(manifest_keys_for(source_file, framework))
        return self.state.module_versions.increment_many(modules)

    async def _send_module_updates(
        self,
        frameworks: List[str],
        files: Dict[str, Set[Path]],
        manifest: Dict[str, str],
        versions: Dict[str, int],
    ) -> None:
        server_versions = self.state.module_versions.snapshot()
        updates: List[ModuleUpdateEntry] = []
        for framework in frameworks:
            if framework in PATCHABLE_FRAMEWORKS:
                updates.extend(build_module_updates(sorted(files.get(framework, set())), framework, manifest))

        for framework, entries in group_by_framework(updates).items():
            framework_versions = {
                key: versions[key] for entry in entries for key in entry.module_keys if key in versions
            }
            delivered_to = set(self.state.connected_clients)
            await self.broadcast(
                ModuleUpdateMessage(
                    data=ModuleUpdatePayload(
                        framework=framework,
                        modules=entries,
                        manifest={key: path for entry in entries for key, path in entry.module_paths.items()},
                        module_versions=framework_versions,
                        server_versions=server_versions,
                    )
                )
            )
            for client in delivered_to & self.state.connected_clients:
                self.state.record_client_versions(client, framework_versions)

    async def _send_patches(
        self,
        frameworks: List[str],
        files: Dict[str, Set[Path]],
        manifest: Dict[str, str],
        previous_manifest: Dict[str, str],
    ) -> None:
        versions = self.state.module_versions.snapshot()
        for framework in frameworks:
            if not self.dispatcher.supports(framework):
                continue

            for source_file in sorted(files.get(framework, set())):
                context = PatchContext(
                    framework=framework,
                    source_file=source_file,
                    manifest=manifest,
                    module_versions=versions,
                    build_dir=self.build_dir,
                    previous_manifest=previous_manifest,
                )
                outcome = await self.dispatcher.dispatch(context)
                message = self.dispatcher.to_message(outcome, context)
                if message is not None:
                    await self.broadcast(message)
