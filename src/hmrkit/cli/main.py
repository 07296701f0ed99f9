import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import httpx
import typer
import uvicorn

from hmrkit.assets.sweeper import StaleAssetSweeper
from hmrkit.cli.formatter import OutputFormatter
from hmrkit.core.context import DevContext
from hmrkit.runtime.versions import check_staleness
from hmrkit.server.dev_server import DevServer
from hmrkit.server.metadata import ServerState, probe_server_state, remove_server_metadata

app = typer.Typer(name="hmrkit", help="hmrkit dev server and HMR tooling", rich_markup_mode=None)

_OPTION_SETTINGS = {"allow_extra_args": True, "ignore_unknown_options": True}


def _read_option_value(tokens: list[str], index: int, option_name: str) -> tuple[str, int]:
    if index + 1 >= len(tokens):
        raise typer.BadParameter(f"Option {option_name} requires a value.")
    return tokens[index + 1], index + 2


def _parse_port(value: str) -> int:
    try:
        port = int(value)
    except ValueError as exc:
        raise typer.BadParameter("Option --port must be an integer.") from exc
    if not (1 <= port <= 65535):
        raise typer.BadParameter("Option --port must be between 1 and 65535.")
    return port


def _parse_options(tokens: list[str], valued: dict[str, str], flags: dict[str, str]) -> dict[str, Any]:
    """
    Parse `--name value`, `--name=value` and bare flags from passthrough args.

    `valued` and `flags` map each accepted spelling to the key it is stored under.
    """
    options: dict[str, Any] = {}
    extras: list[str] = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if token in valued:
            options[valued[token]], index = _read_option_value(tokens, index, token)
            continue
        name, sep, value = token.partition("=")
        if sep and name in valued:
            options[valued[name]] = value
            index += 1
            continue
        if token in flags:
            options[flags[token]] = not token.startswith("--no-")
            index += 1
            continue
        if token.startswith("-"):
            raise typer.BadParameter(f"Unknown option: {token}")
        extras.append(token)
        index += 1

    if extras:
        raise typer.BadParameter(f"Unexpected arguments: {' '.join(extras)}")
    return options


def _load_json_object(path: Path, label: str) -> dict:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        OutputFormatter.log(f"Unable to read {label} '{path}': {exc}", severity="error")
        raise typer.Exit(code=1)

    if not isinstance(payload, dict):
        OutputFormatter.log(f"{label.capitalize()} '{path}' must contain a JSON object.", severity="error")
        raise typer.Exit(code=1)
    return payload


@app.command(context_settings=_OPTION_SETTINGS)
def dev(
    ctx: typer.Context,
):
    """Build every configured framework, then serve assets and HMR updates."""
    options = _parse_options(
        list(ctx.args),
        valued={"--root": "root", "-r": "root", "--host": "host", "--port": "port"},
        flags={"--watch": "watch", "--no-watch": "watch"},
    )

    root_dir = Path(options.get("root", "."))
    if not root_dir.exists():
        OutputFormatter.log(f"Root directory '{root_dir}' does not exist.", severity="error")
        raise typer.Exit(code=1)

    probe = probe_server_state(root_dir)
    if probe.state == ServerState.RUNNING and probe.metadata is not None:
        OutputFormatter.log(
            f"A dev server is already running for this root (pid={probe.metadata.pid}, port={probe.metadata.port}).",
            severity="error",
        )
        raise typer.Exit(code=1)
    if probe.state == ServerState.STALE:
        remove_server_metadata(root_dir)
        OutputFormatter.log("Removed stale server metadata.", severity="warning")

    context = DevContext.from_root(root_dir)
    if "host" in options:
        context.server.host = options["host"]
    if "port" in options:
        context.server.port = _parse_port(options["port"])
    if "watch" in options:
        context.watch.enabled = options["watch"]

    server = DevServer(context)
    OutputFormatter.log(
        f"Serving http://{context.server.host}:{context.server.port} (HMR at {context.server.websocket_path})",
        severity="success",
    )
    try:
        uvicorn.run(server.app, host=context.server.host, port=context.server.port, log_level="warning")
    except KeyboardInterrupt:
        OutputFormatter.log("Dev server interrupted. Shutting down.", severity="info")


@app.command(context_settings=_OPTION_SETTINGS)
def status(
    ctx: typer.Context,
):
    """Query the `/hmr-status` endpoint of a running dev server."""
    options = _parse_options(
        list(ctx.args),
        valued={"--root": "root", "-r": "root", "--host": "host", "--port": "port", "--format": "format"},
        flags={},
    )

    output_format = options.get("format", "text").lower()
    if output_format not in {"text", "json"}:
        raise typer.BadParameter("Option --format must be one of: text, json")

    root_dir = Path(options.get("root", "."))
    context = DevContext.from_root(root_dir)
    host = options.get("host", context.server.host)

    if "port" in options:
        base_url = f"http://{host}:{_parse_port(options['port'])}"
    else:
        probe = probe_server_state(root_dir)
        if probe.state != ServerState.RUNNING or probe.metadata is None:
            OutputFormatter.log(f"No running dev server: {probe.reason}", severity="error")
            raise typer.Exit(code=1)
        base_url = probe.metadata.base_url

    try:
        response = httpx.get(f"{base_url}{context.server.status_path}", timeout=5.0)
        response.raise_for_status()
        snapshot = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        OutputFormatter.log(f"Status request to {base_url} failed: {exc}", severity="error")
        raise typer.Exit(code=1)

    if output_format == "json":
        OutputFormatter.print_data(snapshot)
    else:
        OutputFormatter.print_status(snapshot)


@app.command(context_settings=_OPTION_SETTINGS)
def sweep(
    ctx: typer.Context,
):
    """Delete hashed build files superseded by the paths in a manifest."""
    options = _parse_options(
        list(ctx.args),
        valued={"--root": "root", "-r": "root", "--build-dir": "build_dir", "--manifest": "manifest"},
        flags={},
    )

    root_dir = Path(options.get("root", "."))
    context = DevContext.from_root(root_dir)
    build_dir = Path(options["build_dir"]) if "build_dir" in options else context.build_dir
    manifest_path = (
        Path(options["manifest"]) if "manifest" in options else build_dir / context.build.manifest_file
    )

    if not build_dir.is_dir():
        OutputFormatter.log(f"Build directory '{build_dir}' does not exist.", severity="error")
        raise typer.Exit(code=1)

    manifest = {str(key): str(value) for key, value in _load_json_object(manifest_path, "manifest").items()}
    removed = asyncio.run(StaleAssetSweeper(build_dir).sweep([], manifest))

    for path in removed:
        typer.echo(str(path))
    OutputFormatter.log(f"Removed {len(removed)} stale file(s) from {build_dir}", severity="success")


@app.command("check-versions", context_settings=_OPTION_SETTINGS)
def check_versions(
    ctx: typer.Context,
):
    """Compare a server version map with a client version map (two JSON files)."""
    options = _parse_options(
        list(ctx.args),
        valued={"--server": "server", "--client": "client"},
        flags={},
    )
    if "server" not in options:
        raise typer.BadParameter("Option --server is required.")
    if "client" not in options:
        raise typer.BadParameter("Option --client is required.")

    server_versions = _load_json_object(Path(options["server"]), "server versions")
    client_versions = _load_json_object(Path(options["client"]), "client versions")

    report = check_staleness(server_versions, client_versions)
    OutputFormatter.print_data({"needsSync": report.needs_sync, "stale": report.stale})
    if report.needs_sync:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
