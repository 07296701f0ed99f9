from pathlib import Path

from hmrkit.core.context import DevContext
from hmrkit.runtime.compiler import CommandCompiler


def test_context_initialization_defaults(monkeypatch):
    monkeypatch.delenv("HMRKIT_ENV", raising=False)

    ctx = DevContext()

    assert ctx.settings.env == "development"
    assert ctx.server.port == 3000
    assert ctx.server.websocket_path == "/hmr"
    assert ctx.server.status_path == "/hmr-status"
    assert ctx.build.build_dir == "build"
    assert ctx.watch.enabled is True
    assert ctx.frameworks == {}


def test_context_settings_from_env(monkeypatch):
    monkeypatch.setenv("HMRKIT_ENV", "production")
    monkeypatch.setenv("HMRKIT_APP_NAME", "TestApp")

    ctx = DevContext()

    assert ctx.settings.env == "production"
    assert ctx.settings.app_name == "TestApp"


def test_context_seeds_sections_from_config_dict(tmp_path):
    ctx = DevContext(
        config_dict={
            "server": {"port": 4100, "host": "0.0.0.0"},
            "build": {"build_dir": "dist"},
            "watch": {"interval_ms": 250, "exclude_patterns": ["*.test.ts"]},
            "frameworks": {
                "react": {"command": "bun run build:react"},
                "html": {"directory": "src/html"},
                "svelte": None,
            },
        },
        root_dir=tmp_path,
    )

    assert ctx.server.port == 4100
    assert ctx.server.host == "0.0.0.0"
    assert ctx.build_dir == (tmp_path / "dist").resolve()
    assert ctx.watch.interval_ms == 250
    assert ctx.watch.exclude_patterns == ["*.test.ts"]
    assert ctx.frameworks["react"].directory == "react"
    assert ctx.frameworks["html"].directory == "src/html"
    assert ctx.frameworks["svelte"].command is None


def test_context_framework_directories_are_resolved_under_root(tmp_path):
    ctx = DevContext(config_dict={"frameworks": {"react": {}, "html": {"directory": "pages/html"}}}, root_dir=tmp_path)

    directories = ctx.framework_directories()

    assert directories["react"] == (tmp_path / "react").resolve()
    assert directories["html"] == (tmp_path / "pages" / "html").resolve()


def test_context_compilers_only_for_frameworks_with_commands(tmp_path):
    ctx = DevContext(
        config_dict={
            "build": {"manifest_file": "assets.json"},
            "frameworks": {"react": {"command": "make react"}, "html": {}},
        },
        root_dir=tmp_path,
    )

    compilers = ctx.compilers()

    assert compilers.names() == ["react"]
    compiler = compilers.get("react")
    assert isinstance(compiler, CommandCompiler)
    assert compiler.command == "make react"
    assert compiler.manifest_file == "assets.json"
    assert compiler.cwd == tmp_path


def test_context_from_root_reads_config_file(tmp_path):
    (tmp_path / "hmrkit.yaml").write_text("server:\n  port: 5123\nframeworks:\n  vue: {}\n")

    ctx = DevContext.from_root(tmp_path)

    assert ctx.root_dir == tmp_path.resolve()
    assert ctx.server.port == 5123
    assert "vue" in ctx.frameworks


def test_context_from_root_without_config_uses_defaults(tmp_path):
    ctx = DevContext.from_root(Path(tmp_path))

    assert ctx.server.port == 3000
    assert ctx.frameworks == {}
