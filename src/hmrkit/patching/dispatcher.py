"""
Choosing how a rebuilt framework reaches running pages.

Each framework maps to one PatchStrategy. A strategy turns the rebuilt state of
one source file into a PatchOutcome; the dispatcher renders that outcome as the
matching `*-update` message. Frameworks without a strategy always get a full
page reload.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol, Union

from hmrkit.cli.formatter import OutputFormatter
from hmrkit.patching.fragments import (
    ExtractedFragment,
    FragmentExtractor,
    RegexFragmentExtractor,
    extract_or_document,
)
from hmrkit.runtime.frameworks import HTML, HTMX, REACT, SVELTE, VUE
from hmrkit.runtime.module_mapper import CSS_KEY_SUFFIX, manifest_keys_for
from hmrkit.runtime.protocol import (
    PAGE_UPDATE_MESSAGES,
    HtmlFragmentPayload,
    PageUpdatePayload,
    ServerMessage,
    page_update_message,
)


@dataclass(frozen=True)
class FullReloadRequired:
    reason: str = ""


@dataclass(frozen=True)
class HtmlFragment:
    body: str
    head: Optional[str] = None
    is_full_document: bool = False


@dataclass(frozen=True)
class TargetedModuleUpdate:
    module_id: str
    new_version: int
    payload: Dict[str, Any] = field(default_factory=dict)


PatchOutcome = Union[FullReloadRequired, HtmlFragment, TargetedModuleUpdate]


@dataclass(frozen=True)
class PatchContext:
    """Everything a strategy may look at for one rebuilt source file."""

    framework: str
    source_file: Optional[Path]
    manifest: Mapping[str, str]
    module_versions: Mapping[str, int]
    build_dir: Path
    previous_manifest: Mapping[str, str] = field(default_factory=dict)


class PatchStrategy(Protocol):
    async def build(self, context: PatchContext) -> PatchOutcome:
        ...


class PageRenderer(Protocol):
    """Server-side renderer for frameworks whose pages are produced by a bundle."""

    async def render(self, framework: str, source_file: Path, manifest: Mapping[str, str]) -> Optional[str]:
        ...


def _fragment_outcome(html: str, extractor: FragmentExtractor) -> HtmlFragment:
    extracted = extract_or_document(html, extractor)
    if isinstance(extracted, ExtractedFragment):
        return HtmlFragment(body=extracted.body, head=extracted.head)
    return HtmlFragment(body=extracted, is_full_document=True)


class FullReloadStrategy:
    async def build(self, context: PatchContext) -> PatchOutcome:
        return FullReloadRequired(reason=f"No incremental update for '{context.framework}'")


class StaticHtmlStrategy:
    """Sends the built HTML page for html/htmx sources."""

    def __init__(self, extractor: Optional[FragmentExtractor] = None) -> None:
        self.extractor = extractor or RegexFragmentExtractor()

    async def build(self, context: PatchContext) -> PatchOutcome:
        if context.source_file is None:
            return FullReloadRequired(reason="No source file for HTML update")

        for candidate in self._candidates(context.source_file, context):
            try:
                html = await asyncio.to_thread(candidate.read_text, encoding="utf-8")
            except OSError:
                continue
            return _fragment_outcome(html, self.extractor)

        return FullReloadRequired(reason=f"Built page for {context.source_file.name} not found")

    @staticmethod
    def _candidates(source: Path, context: PatchContext) -> list[Path]:
        if source.suffix != ".html":
            return []
        # Built copy has rewritten asset paths; the source is the fallback.
        return [context.build_dir / context.framework / "pages" / source.name, source]


class RenderedPageStrategy:
    """Re-renders an SSR page through the host's renderer and sends its HTML."""

    def __init__(self, renderer: PageRenderer, extractor: Optional[FragmentExtractor] = None) -> None:
        self.renderer = renderer
        self.extractor = extractor or RegexFragmentExtractor()

    async def build(self, context: PatchContext) -> PatchOutcome:
        if context.source_file is None:
            return FullReloadRequired(reason="No source file to render")

        html = await self.renderer.render(context.framework, context.source_file, context.manifest)
        if not html:
            return FullReloadRequired(reason=f"Renderer produced no HTML for {context.source_file.name}")
        return _fragment_outcome(html, self.extractor)


class ModuleSwapStrategy:
    """
    Points the client at the rebuilt client bundle for a page module.

    When the stylesheet is the only output whose hashed path moved, the update
    carries just `cssUrl` so the client swaps the `<link>` instead of importing
    the bundle again.
    """

    async def build(self, context: PatchContext) -> PatchOutcome:
        if context.source_file is None:
            return FullReloadRequired(reason="No source file for module update")

        keys = [key for key in manifest_keys_for(context.source_file, context.framework) if context.manifest.get(key)]
        if not keys:
            return FullReloadRequired(reason=f"No manifest entry for {context.source_file.name}")

        changed = {key for key in keys if context.manifest[key] != context.previous_manifest.get(key)}
        css_key = next((key for key in keys if key.endswith(CSS_KEY_SUFFIX)), None)
        script_key = next((key for key in keys if not key.endswith(CSS_KEY_SUFFIX)), None)

        if css_key is not None and (script_key is None or changed == {css_key}):
            return TargetedModuleUpdate(
                module_id=css_key,
                new_version=context.module_versions.get(css_key, 0),
                payload={"cssUrl": context.manifest[css_key]},
            )

        payload = {"modulePath": context.manifest[script_key]}
        if css_key in changed:
            payload["cssUrl"] = context.manifest[css_key]
        return TargetedModuleUpdate(
            module_id=script_key,
            new_version=context.module_versions.get(script_key, 0),
            payload=payload,
        )


class FrameworkPatchDispatcher:
    """Maps framework name to patch strategy."""

    def __init__(self, strategies: Optional[Dict[str, PatchStrategy]] = None) -> None:
        self._strategies: Dict[str, PatchStrategy] = dict(strategies or {})
        self._fallback: PatchStrategy = FullReloadStrategy()

    def register(self, framework: str, strategy: PatchStrategy) -> None:
        self._strategies[framework] = strategy

    def strategy_for(self, framework: str) -> PatchStrategy:
        return self._strategies.get(framework, self._fallback)

    def supports(self, framework: str) -> bool:
        return framework in self._strategies and framework in PAGE_UPDATE_MESSAGES

    async def dispatch(self, context: PatchContext) -> PatchOutcome:
        strategy = self.strategy_for(context.framework)
        try:
            return await strategy.build(context)
        except Exception as exc:
            OutputFormatter.log(
                f"Patch for {context.framework} failed, falling back to reload: {exc}",
                severity="warning",
            )
            return FullReloadRequired(reason=str(exc))

    def to_message(self, outcome: PatchOutcome, context: PatchContext) -> Optional[ServerMessage]:
        """Render an outcome as its `*-update` message. Full reloads produce no message."""
        if isinstance(outcome, FullReloadRequired) or context.framework not in PAGE_UPDATE_MESSAGES:
            return None

        payload = PageUpdatePayload(
            framework=context.framework,
            source_file=context.source_file.as_posix() if context.source_file else None,
            manifest=dict(context.manifest),
        )

        if isinstance(outcome, HtmlFragment):
            payload.html = outcome.body if outcome.is_full_document else HtmlFragmentPayload(
                head=outcome.head, body=outcome.body
            )
        else:
            payload.module_id = outcome.module_id
            payload.version = outcome.new_version
            payload.module_path = outcome.payload.get("modulePath")
            payload.css_url = outcome.payload.get("cssUrl")

        return page_update_message(context.framework, payload)


def default_dispatcher(
    renderer: Optional[PageRenderer] = None,
    extractor: Optional[FragmentExtractor] = None,
) -> FrameworkPatchDispatcher:
    """Dispatcher with the bundled strategies; SSR frameworks re-render only when a renderer is given."""
    html_strategy = StaticHtmlStrategy(extractor)
    module_strategy = ModuleSwapStrategy()
    dispatcher = FrameworkPatchDispatcher(
        {
            HTML: html_strategy,
            HTMX: html_strategy,
            REACT: module_strategy,
        }
    )

    ssr_strategy: PatchStrategy = (
        RenderedPageStrategy(renderer, extractor) if renderer is not None else module_strategy
    )
    dispatcher.register(VUE, ssr_strategy)
    dispatcher.register(SVELTE, ssr_strategy)
    return dispatcher
