"""
FastAPI surface of the dev server.

One WebSocket endpoint carries the HMR protocol; plain HTTP serves the status
snapshot, the client script and built assets. HTML responses get the client
bootstrap injected and are never cached.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse, JSONResponse, Response
from fastapi.websockets import WebSocketState

from hmrkit.assets.identity import mime_type_for
from hmrkit.cli.formatter import OutputFormatter
from hmrkit.core.models import ServerSettings
from hmrkit.runtime.frameworks import ASSETS, IGNORED, UNKNOWN, detect_framework
from hmrkit.runtime.orchestrator import RebuildOrchestrator
from hmrkit.server.inject import NO_STORE_CACHE_CONTROL, inject_hmr_client

CLIENT_SCRIPT = Path(__file__).parent / "static" / "hmr-client.js"
FRAMEWORK_HEADER = "x-hmr-framework"


class WebSocketClient:
    """Adapts a FastAPI WebSocket to the orchestrator's client handle."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_text(self, data: str) -> None:
        await self.websocket.send_text(data)


def _framework_for_path(path: str) -> Optional[str]:
    framework = detect_framework(path)
    if framework in (ASSETS, IGNORED, UNKNOWN):
        return None
    return framework


def create_app(
    orchestrator: RebuildOrchestrator,
    server: Optional[ServerSettings] = None,
    lifespan: Optional[Callable[[FastAPI], Any]] = None,
) -> FastAPI:
    settings = server or ServerSettings()
    app = FastAPI(title="hmrkit dev server", lifespan=lifespan)
    app.state.orchestrator = orchestrator

    @app.middleware("http")
    async def inject_client(request: Request, call_next):
        response = await call_next(request)
        content_type = response.headers.get("content-type", "")
        if not content_type.startswith("text/html"):
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        framework = response.headers.get(FRAMEWORK_HEADER) or _framework_for_path(request.url.path)
        html = inject_hmr_client(
            body.decode("utf-8", errors="replace"),
            script_path=settings.client_script_path,
            framework=framework,
            websocket_path=settings.websocket_path,
        )

        patched = Response(content=html, status_code=response.status_code)
        patched.raw_headers = [
            (key, value)
            for key, value in response.raw_headers
            if key.lower() not in (b"content-length", b"cache-control")
        ]
        patched.headers["Content-Length"] = str(len(patched.body))
        patched.headers["Cache-Control"] = NO_STORE_CACHE_CONTROL
        return patched

    @app.websocket(settings.websocket_path)
    async def hmr_socket(websocket: WebSocket):
        await websocket.accept()
        client = WebSocketClient(websocket)
        await orchestrator.connect(client)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes")
                await orchestrator.handle_message(client, raw)
        except WebSocketDisconnect:
            OutputFormatter.log("HMR client disconnected")
        finally:
            orchestrator.disconnect(client)

    @app.get(settings.status_path)
    async def hmr_status():
        return JSONResponse(orchestrator.state.status_snapshot())

    @app.get(settings.client_script_path)
    async def hmr_client_script():
        return FileResponse(
            CLIENT_SCRIPT,
            media_type="application/javascript",
            headers={"Cache-Control": NO_STORE_CACHE_CONTROL},
        )

    @app.get("/{asset_path:path}")
    async def serve_asset(asset_path: str):
        web_path = "/" + asset_path
        candidates = [web_path]
        if web_path.endswith("/"):
            candidates.append(web_path + "index.html")

        for candidate in candidates:
            content = orchestrator.store.lookup(candidate)
            if content is not None:
                return Response(
                    content=content,
                    media_type=mime_type_for(candidate),
                    headers={"Cache-Control": NO_STORE_CACHE_CONTROL},
                )

        raise HTTPException(status_code=404, detail=f"No built asset at {web_path}")

    return app
