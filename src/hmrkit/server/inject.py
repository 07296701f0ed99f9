import json
import re
from typing import Optional

NO_STORE_CACHE_CONTROL = "no-store, no-cache, must-revalidate, max-age=0"
CLIENT_MARKER = "data-hmr-client"

_BODY_CLOSE = re.compile(r"</body\s*>", re.IGNORECASE)


def client_bootstrap(
    script_path: str,
    framework: Optional[str] = None,
    websocket_path: Optional[str] = None,
) -> str:
    """
    The tags that load the HMR client.

    Page globals (socket path, framework) are set in an inline script ahead of
    the client so they are visible when it starts.
    """
    globals_js = ""
    if websocket_path:
        globals_js += f"window.__HMR_WS_PATH__={json.dumps(websocket_path)};"
    if framework:
        globals_js += f"window.__HMR_FRAMEWORK__={json.dumps(framework)};"

    tags = f'<script src="{script_path}" {CLIENT_MARKER}></script>'
    if globals_js:
        tags = f"<script>{globals_js}</script>" + tags
    return tags


def inject_hmr_client(
    html: str,
    script_path: str = "/__hmr-client.js",
    framework: Optional[str] = None,
    websocket_path: Optional[str] = None,
) -> str:
    """
    Insert the client bootstrap before the last `</body>`.

    Pages without a closing body tag get it appended. Pages that already load
    the client are returned unchanged.
    """
    if CLIENT_MARKER in html:
        return html

    bootstrap = client_bootstrap(script_path, framework, websocket_path)
    matches = list(_BODY_CLOSE.finditer(html))
    if not matches:
        return html + bootstrap

    position = matches[-1].start()
    return html[:position] + bootstrap + html[position:]
