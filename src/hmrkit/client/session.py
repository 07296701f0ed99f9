from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from hmrkit.assets.identity import logical_identity
from hmrkit.patching.fragments import RegexFragmentExtractor
from hmrkit.preservation.dom import PageDocument
from hmrkit.preservation.extractors import StateExtractor, extract_all_state, state_to_props
from hmrkit.preservation.forms import (
    FrameScheduler,
    QueuedFrameScheduler,
    capture_forms,
    capture_scroll,
    restore_forms,
    restore_scroll,
)
from hmrkit.runtime.frameworks import PATCHABLE_FRAMEWORKS
from hmrkit.runtime.protocol import (
    PAGE_UPDATE_MESSAGES,
    HtmlFragmentPayload,
    ManifestMessage,
    ModuleUpdateMessage,
    PageUpdatePayload,
    ReadyMessage,
    RebuildCompleteMessage,
    RebuildErrorMessage,
    RebuildErrorPayload,
    RebuildStartMessage,
    ServerMessage,
    parse_server_message,
)
from hmrkit.runtime.versions import check_staleness, merge_versions

STALE_RELOAD_THRESHOLD = 10


@dataclass
class PendingImport:
    """A rebuilt page module waiting to be imported, with the props it re-mounts with."""

    module_id: str
    module_path: str
    props: Dict[str, Any] = field(default_factory=dict)


class HMRClientSession:
    """
    Message handling of one browser page, run against a PageDocument.

    Tracks the manifest and module versions the page has applied, patches the
    document in place for its own framework, and records a reload request when
    an update cannot be applied incrementally. Module versions are discarded on
    reload, like they are when a real page navigates.
    """

    def __init__(
        self,
        document: PageDocument,
        framework: Optional[str] = None,
        scheduler: Optional[FrameScheduler] = None,
        extractors: Optional[List[StateExtractor]] = None,
        stale_reload_threshold: int = STALE_RELOAD_THRESHOLD,
    ) -> None:
        self.document = document
        self.framework = framework
        self.scheduler: FrameScheduler = scheduler or QueuedFrameScheduler()
        self.extractors = extractors
        self.stale_reload_threshold = stale_reload_threshold
        self.fragment_extractor = RegexFragmentExtractor()

        self.manifest: Dict[str, str] = {}
        self.server_versions: Dict[str, int] = {}
        self.module_versions: Dict[str, int] = {}
        self.module_updates: List[Dict[str, Any]] = []
        self.pending_imports: List[PendingImport] = []
        self.last_error: Optional[RebuildErrorPayload] = None
        self.is_updating = False
        self.reload_requested = False
        self.reload_reason: Optional[str] = None

    def ready_message(self) -> str:
        return ReadyMessage(type="ready", framework=self.framework).model_dump_json()

    def receive(self, raw: Any) -> Optional[ServerMessage]:
        """Handle one frame from the server. Unrecognised frames are ignored."""
        message = parse_server_message(raw)
        if message is None:
            return None

        if isinstance(message, ManifestMessage):
            self.manifest = dict(message.data.manifest)
            if message.data.server_versions:
                # A freshly loaded page runs the versions current at connect time.
                self.server_versions = dict(message.data.server_versions)
                self.module_versions = dict(message.data.server_versions)
            self.module_updates = []
        elif isinstance(message, RebuildStartMessage):
            self.is_updating = True
        elif isinstance(message, RebuildCompleteMessage):
            self._on_rebuild_complete(message)
        elif isinstance(message, RebuildErrorMessage):
            self.last_error = message.data
            self.is_updating = False
        elif isinstance(message, ModuleUpdateMessage):
            self._on_module_update(message)
        elif _is_page_update(message):
            self._on_page_update(getattr(message, "data"))

        return message

    def request_reload(self, reason: str) -> None:
        self.reload_requested = True
        self.reload_reason = reason
        self.module_versions = {}
        self.module_updates = []

    def _on_rebuild_complete(self, message: RebuildCompleteMessage) -> None:
        self.last_error = None
        self.is_updating = False
        self.manifest = dict(message.data.manifest)

        affected = message.data.affected_frameworks
        if affected and not PATCHABLE_FRAMEWORKS.intersection(affected):
            self.request_reload(f"No incremental update for {', '.join(affected)}")

    def _on_module_update(self, message: ModuleUpdateMessage) -> None:
        data = message.data
        if data.framework not in PATCHABLE_FRAMEWORKS:
            self.request_reload(f"No incremental update for {data.framework}")
            return

        self.server_versions = merge_versions(self.server_versions, data.server_versions)
        self.module_versions = merge_versions(self.module_versions, data.module_versions)
        self.manifest = {**self.manifest, **data.manifest}
        self.module_updates.append(data.model_dump(by_alias=True))

        report = check_staleness(self.server_versions, self.module_versions)
        if len(report.stale) > self.stale_reload_threshold:
            self.request_reload(f"{len(report.stale)} modules out of date")

    def _on_page_update(self, payload: PageUpdatePayload) -> None:
        if self.framework is not None and payload.framework != self.framework:
            return

        if payload.manifest:
            self.manifest = {**self.manifest, **payload.manifest}

        if payload.html is not None:
            self.apply_html(payload.html)
        elif payload.module_id is not None:
            if payload.version is not None:
                self.module_versions = merge_versions(self.module_versions, {payload.module_id: payload.version})
            if payload.css_url and not self.swap_stylesheet(payload.css_url) and not payload.module_path:
                self.request_reload(f"No stylesheet link for {payload.css_url}")
            if payload.module_path:
                props = state_to_props(extract_all_state(self.document, self.extractors))
                self.pending_imports.append(PendingImport(payload.module_id, payload.module_path, props))

        self.is_updating = False

    def apply_html(self, html: HtmlFragmentPayload | str) -> None:
        """Swap head/body content, keeping form values and scroll offsets."""
        forms = capture_forms(self.document)
        scroll = capture_scroll(self.document)

        if isinstance(html, str):
            fragment = self.fragment_extractor.extract(html)
            head, body = (fragment.head, fragment.body) if fragment is not None else (None, html)
        else:
            head, body = html.head, html.body

        if head is not None:
            self.document.replace_head(head)
        self.document.replace_body(body)

        restore_forms(self.document, forms)
        restore_scroll(self.document, scroll, self.scheduler)

    def swap_stylesheet(self, css_url: str) -> bool:
        """Point the stylesheet link for `css_url` at the new hashed path. Returns False when no link matches."""
        identity = logical_identity(css_url)
        swapped = False
        for link in self.document.root.elements("link"):
            href = link.get_attribute("href")
            if link.get_attribute("rel") != "stylesheet" or not href:
                continue
            if logical_identity(href.split("?", 1)[0]) == identity:
                link.attributes["href"] = css_url
                swapped = True
        return swapped


def _is_page_update(message: ServerMessage) -> bool:
    return isinstance(message, tuple(PAGE_UPDATE_MESSAGES.values()))
