from pathlib import Path

import pytest

from hmrkit.patching.dispatcher import (
    FrameworkPatchDispatcher,
    FullReloadRequired,
    HtmlFragment,
    ModuleSwapStrategy,
    PatchContext,
    RenderedPageStrategy,
    StaticHtmlStrategy,
    TargetedModuleUpdate,
    default_dispatcher,
)
from hmrkit.patching.fragments import ExtractedFragment, RegexFragmentExtractor, extract_or_document
from hmrkit.runtime.protocol import HtmlUpdateMessage, ReactUpdateMessage, SvelteUpdateMessage


def _context(framework, source_file, build_dir, manifest=None, versions=None, previous=None):
    return PatchContext(
        framework=framework,
        source_file=source_file,
        manifest=manifest or {},
        module_versions=versions or {},
        build_dir=build_dir,
        previous_manifest=previous or {},
    )


class StaticRenderer:
    def __init__(self, html):
        self.html = html
        self.calls = []

    async def render(self, framework, source_file, manifest):
        self.calls.append((framework, source_file))
        return self.html


class ExplodingStrategy:
    async def build(self, context):
        raise RuntimeError("renderer crashed")


class ExplodingExtractor:
    def extract(self, html):
        raise ValueError("cannot parse")


def test_regex_extractor_splits_head_and_body():
    fragment = RegexFragmentExtractor().extract(
        "<html><head><title>T</title></head><body class='x'>\n<p>hi</p>\n</body></html>"
    )

    assert fragment == ExtractedFragment(body="<p>hi</p>", head="<title>T</title>")


def test_regex_extractor_requires_non_empty_body():
    extractor = RegexFragmentExtractor()

    assert extractor.extract("<p>no body tag</p>") is None
    assert extractor.extract("<html><body>   </body></html>") is None


def test_extract_or_document_falls_back_to_whole_document():
    assert extract_or_document("<p>partial</p>", RegexFragmentExtractor()) == "<p>partial</p>"
    assert extract_or_document("<body><p>x</p></body>", ExplodingExtractor()) == "<body><p>x</p></body>"


@pytest.mark.anyio
async def test_static_html_prefers_built_page(tmp_path):
    source = tmp_path / "html" / "pages" / "index.html"
    source.parent.mkdir(parents=True)
    source.write_text("<html><body><p>source</p></body></html>")
    built = tmp_path / "build" / "html" / "pages" / "index.html"
    built.parent.mkdir(parents=True)
    built.write_text("<html><head><link href='/a.12345678.css'></head><body><p>built</p></body></html>")

    outcome = await StaticHtmlStrategy().build(_context("html", source, tmp_path / "build"))

    assert outcome == HtmlFragment(body="<p>built</p>", head="<link href='/a.12345678.css'>")


@pytest.mark.anyio
async def test_static_html_falls_back_to_source_then_reload(tmp_path):
    source = tmp_path / "index.html"
    source.write_text("<p>fragment only</p>")

    outcome = await StaticHtmlStrategy().build(_context("html", source, tmp_path / "build"))
    assert outcome == HtmlFragment(body="<p>fragment only</p>", is_full_document=True)

    missing = await StaticHtmlStrategy().build(_context("html", tmp_path / "gone.html", tmp_path / "build"))
    assert isinstance(missing, FullReloadRequired)

    script = await StaticHtmlStrategy().build(_context("html", tmp_path / "main.ts", tmp_path / "build"))
    assert isinstance(script, FullReloadRequired)


@pytest.mark.anyio
async def test_module_swap_points_at_the_rebuilt_bundle(tmp_path):
    source = tmp_path / "react" / "pages" / "Home.tsx"

    outcome = await ModuleSwapStrategy().build(
        _context(
            "react",
            source,
            tmp_path,
            manifest={"HomeCSS": "/Home.11111111.css", "HomeIndex": "/Home.22222222.js"},
            versions={"HomeIndex": 5},
            previous={"HomeCSS": "/Home.11111111.css", "HomeIndex": "/Home.00000000.js"},
        )
    )

    assert outcome == TargetedModuleUpdate(
        module_id="HomeIndex", new_version=5, payload={"modulePath": "/Home.22222222.js"}
    )


@pytest.mark.anyio
async def test_module_swap_sends_only_the_stylesheet_when_css_alone_changed(tmp_path):
    source = tmp_path / "react" / "pages" / "Home.tsx"

    outcome = await ModuleSwapStrategy().build(
        _context(
            "react",
            source,
            tmp_path,
            manifest={"HomeIndex": "/Home.22222222.js", "HomeCSS": "/Home.33333333.css"},
            versions={"HomeIndex": 5, "HomeCSS": 6},
            previous={"HomeIndex": "/Home.22222222.js", "HomeCSS": "/Home.11111111.css"},
        )
    )

    assert outcome == TargetedModuleUpdate(
        module_id="HomeCSS", new_version=6, payload={"cssUrl": "/Home.33333333.css"}
    )


@pytest.mark.anyio
async def test_module_swap_carries_both_when_bundle_and_css_changed(tmp_path):
    source = tmp_path / "svelte" / "pages" / "Counter.svelte"

    outcome = await ModuleSwapStrategy().build(
        _context(
            "svelte",
            source,
            tmp_path,
            manifest={"Counter": "/Counter.22222222.js", "CounterCSS": "/Counter.33333333.css"},
            versions={"Counter": 2},
        )
    )

    assert outcome == TargetedModuleUpdate(
        module_id="Counter",
        new_version=2,
        payload={"modulePath": "/Counter.22222222.js", "cssUrl": "/Counter.33333333.css"},
    )


@pytest.mark.anyio
async def test_module_swap_without_manifest_entry_requires_reload(tmp_path):
    outcome = await ModuleSwapStrategy().build(_context("react", tmp_path / "react" / "pages" / "Home.tsx", tmp_path))

    assert isinstance(outcome, FullReloadRequired)


@pytest.mark.anyio
async def test_rendered_page_strategy_uses_renderer(tmp_path):
    renderer = StaticRenderer("<html><body><main>rendered</main></body></html>")
    source = tmp_path / "svelte" / "pages" / "Counter.svelte"

    outcome = await RenderedPageStrategy(renderer).build(_context("svelte", source, tmp_path))

    assert outcome == HtmlFragment(body="<main>rendered</main>")
    assert renderer.calls == [("svelte", source)]

    empty = await RenderedPageStrategy(StaticRenderer(None)).build(_context("svelte", source, tmp_path))
    assert isinstance(empty, FullReloadRequired)


@pytest.mark.anyio
async def test_dispatch_degrades_strategy_errors_to_full_reload(tmp_path):
    dispatcher = FrameworkPatchDispatcher({"vue": ExplodingStrategy()})

    outcome = await dispatcher.dispatch(_context("vue", tmp_path / "Page.vue", tmp_path))

    assert outcome == FullReloadRequired(reason="renderer crashed")


@pytest.mark.anyio
async def test_unregistered_framework_gets_full_reload(tmp_path):
    dispatcher = default_dispatcher()

    outcome = await dispatcher.dispatch(_context("angular", tmp_path / "page.ts", tmp_path))

    assert isinstance(outcome, FullReloadRequired)
    assert dispatcher.supports("angular") is False
    assert dispatcher.supports("htmx") is True


def test_default_dispatcher_picks_ssr_strategy_when_renderer_given():
    with_renderer = default_dispatcher(renderer=StaticRenderer("<body>x</body>"))
    without_renderer = default_dispatcher()

    assert isinstance(with_renderer.strategy_for("svelte"), RenderedPageStrategy)
    assert isinstance(without_renderer.strategy_for("vue"), ModuleSwapStrategy)
    assert isinstance(without_renderer.strategy_for("react"), ModuleSwapStrategy)
    assert isinstance(without_renderer.strategy_for("html"), StaticHtmlStrategy)


def test_to_message_renders_outcomes(tmp_path):
    dispatcher = default_dispatcher()
    source = Path("/project/html/pages/index.html")

    fragment = dispatcher.to_message(
        HtmlFragment(body="<p>x</p>", head="<title>t</title>"), _context("html", source, tmp_path)
    )
    assert isinstance(fragment, HtmlUpdateMessage)
    assert fragment.to_dict()["data"]["html"] == {"head": "<title>t</title>", "body": "<p>x</p>"}
    assert fragment.to_dict()["data"]["sourceFile"] == "/project/html/pages/index.html"

    document = dispatcher.to_message(
        HtmlFragment(body="<p>whole</p>", is_full_document=True), _context("svelte", source, tmp_path)
    )
    assert isinstance(document, SvelteUpdateMessage)
    assert document.data.html == "<p>whole</p>"

    module = dispatcher.to_message(
        TargetedModuleUpdate(module_id="HomeIndex", new_version=2, payload={"modulePath": "/h.js"}),
        _context("react", source, tmp_path),
    )
    assert isinstance(module, ReactUpdateMessage)
    assert module.data.module_path == "/h.js"
    assert module.data.version == 2

    assert dispatcher.to_message(FullReloadRequired(), _context("react", source, tmp_path)) is None
    assert dispatcher.to_message(HtmlFragment(body="x"), _context("angular", source, tmp_path)) is None
