"""
Message shapes exchanged over the `/hmr` channel.

Client messages form a closed tagged union on `type`; anything else arriving on
the channel is discarded. Server messages always carry a millisecond timestamp.
"""

from __future__ import annotations

import json
import time
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


def now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Client -> server
# ---------------------------------------------------------------------------


class _ClientMessageBase(BaseModel):
    model_config = ConfigDict(extra="ignore")


class PingMessage(_ClientMessageBase):
    type: Literal["ping"]


class ReadyMessage(_ClientMessageBase):
    type: Literal["ready"]
    framework: Optional[str] = None


class RequestRebuildMessage(_ClientMessageBase):
    type: Literal["request-rebuild"]


class HydrationErrorDetails(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    component_name: Optional[str] = Field(default=None, alias="componentName")
    component_path: Optional[str] = Field(default=None, alias="componentPath")
    error: Optional[str] = None


class HydrationErrorMessage(_ClientMessageBase):
    type: Literal["hydration-error"]
    data: Optional[HydrationErrorDetails] = None


ClientMessage = Annotated[
    Union[PingMessage, ReadyMessage, RequestRebuildMessage, HydrationErrorMessage],
    Field(discriminator="type"),
]

CLIENT_MESSAGE_TYPES = frozenset({"ping", "ready", "request-rebuild", "hydration-error"})

_client_message_adapter: TypeAdapter[Any] = TypeAdapter(ClientMessage)


def decode_frame(raw: Any) -> Any:
    """Best-effort decoding of a transport frame into a JSON value.

    Accepts text, binary buffers, or an already-decoded object. Returns None when
    the frame cannot be decoded.
    """
    if isinstance(raw, (bytes, bytearray, memoryview)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError:
            return None

    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError:
            return None

    if isinstance(raw, dict):
        return raw

    return None


def validate_client_message(data: Any) -> bool:
    """Return True when `data` is an object whose `type` is a known client tag."""
    return parse_client_message(data) is not None


def parse_client_message(raw: Any) -> Optional[ClientMessage]:
    """Decode and validate one inbound frame, or return None to discard it."""
    data = decode_frame(raw)
    if not isinstance(data, dict):
        return None

    if not isinstance(data.get("type"), str) or data["type"] not in CLIENT_MESSAGE_TYPES:
        return None

    try:
        return _client_message_adapter.validate_python(data)
    except ValidationError:
        return None


# ---------------------------------------------------------------------------
# Server -> client
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ServerMessage(BaseModel):
    """Base for every server message; `to_wire` renders the JSON frame."""

    model_config = ConfigDict(populate_by_name=True)

    type: str
    timestamp: int = Field(default_factory=now_ms)
    message: Optional[str] = None

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ManifestPayload(_Payload):
    manifest: Dict[str, str] = Field(default_factory=dict)
    server_versions: Dict[str, int] = Field(default_factory=dict, alias="serverVersions")


class ManifestMessage(ServerMessage):
    type: Literal["manifest"] = "manifest"
    data: ManifestPayload


class ConnectedMessage(ServerMessage):
    type: Literal["connected"] = "connected"
    message: Optional[str] = "HMR client connected successfully"


class PongMessage(ServerMessage):
    type: Literal["pong"] = "pong"


class RebuildStartPayload(_Payload):
    affected_frameworks: List[str] = Field(default_factory=list, alias="affectedFrameworks")


class RebuildStartMessage(ServerMessage):
    type: Literal["rebuild-start"] = "rebuild-start"
    message: Optional[str] = "Rebuild started..."
    data: RebuildStartPayload


class RebuildCompletePayload(_Payload):
    affected_frameworks: List[str] = Field(default_factory=list, alias="affectedFrameworks")
    manifest: Dict[str, str] = Field(default_factory=dict)


class RebuildCompleteMessage(ServerMessage):
    type: Literal["rebuild-complete"] = "rebuild-complete"
    message: Optional[str] = "Rebuild completed successfully"
    data: RebuildCompletePayload


class RebuildErrorPayload(_Payload):
    affected_frameworks: List[str] = Field(default_factory=list, alias="affectedFrameworks")
    error: str
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None


class RebuildErrorMessage(ServerMessage):
    type: Literal["rebuild-error"] = "rebuild-error"
    message: Optional[str] = "Rebuild failed"
    data: RebuildErrorPayload


class FrameworkUpdatePayload(_Payload):
    framework: str
    manifest: Dict[str, str] = Field(default_factory=dict)


class FrameworkUpdateMessage(ServerMessage):
    type: Literal["framework-update"] = "framework-update"
    data: FrameworkUpdatePayload


class ModuleUpdateEntry(_Payload):
    source_file: str = Field(alias="sourceFile")
    framework: str
    module_keys: List[str] = Field(default_factory=list, alias="moduleKeys")
    module_paths: Dict[str, str] = Field(default_factory=dict, alias="modulePaths")


class ModuleUpdatePayload(_Payload):
    framework: str
    modules: List[ModuleUpdateEntry] = Field(default_factory=list)
    manifest: Dict[str, str] = Field(default_factory=dict)
    module_versions: Dict[str, int] = Field(default_factory=dict, alias="moduleVersions")
    server_versions: Dict[str, int] = Field(default_factory=dict, alias="serverVersions")


class ModuleUpdateMessage(ServerMessage):
    type: Literal["module-update"] = "module-update"
    data: ModuleUpdatePayload


class HtmlFragmentPayload(_Payload):
    head: Optional[str] = None
    body: str


class PageUpdatePayload(_Payload):
    """Payload shared by the framework-specific `*-update` messages."""

    framework: str
    source_file: Optional[str] = Field(default=None, alias="sourceFile")
    html: Optional[Union[HtmlFragmentPayload, str]] = None
    manifest: Dict[str, str] = Field(default_factory=dict)
    module_id: Optional[str] = Field(default=None, alias="moduleId")
    version: Optional[int] = None
    module_path: Optional[str] = Field(default=None, alias="modulePath")
    css_url: Optional[str] = Field(default=None, alias="cssUrl")


class ReactUpdateMessage(ServerMessage):
    type: Literal["react-update"] = "react-update"
    data: PageUpdatePayload


class SvelteUpdateMessage(ServerMessage):
    type: Literal["svelte-update"] = "svelte-update"
    data: PageUpdatePayload


class VueUpdateMessage(ServerMessage):
    type: Literal["vue-update"] = "vue-update"
    data: PageUpdatePayload


class HtmlUpdateMessage(ServerMessage):
    type: Literal["html-update"] = "html-update"
    data: PageUpdatePayload


class HtmxUpdateMessage(ServerMessage):
    type: Literal["htmx-update"] = "htmx-update"
    data: PageUpdatePayload


PAGE_UPDATE_MESSAGES: Dict[str, type] = {
    "react": ReactUpdateMessage,
    "svelte": SvelteUpdateMessage,
    "vue": VueUpdateMessage,
    "html": HtmlUpdateMessage,
    "htmx": HtmxUpdateMessage,
}

AnyServerMessage = Annotated[
    Union[
        ManifestMessage,
        ConnectedMessage,
        PongMessage,
        RebuildStartMessage,
        RebuildCompleteMessage,
        RebuildErrorMessage,
        FrameworkUpdateMessage,
        ModuleUpdateMessage,
        ReactUpdateMessage,
        SvelteUpdateMessage,
        VueUpdateMessage,
        HtmlUpdateMessage,
        HtmxUpdateMessage,
    ],
    Field(discriminator="type"),
]

_server_message_adapter: TypeAdapter[Any] = TypeAdapter(AnyServerMessage)


def parse_server_message(raw: Any) -> Optional[ServerMessage]:
    """Decode one outbound frame on the receiving side, or None if unrecognised."""
    data = decode_frame(raw)
    if not isinstance(data, dict):
        return None

    try:
        return _server_message_adapter.validate_python(data)
    except ValidationError:
        return None


def page_update_message(framework: str, payload: PageUpdatePayload) -> ServerMessage:
    """Build the `<framework>-update` message for a framework with a patch handler."""
    message_cls = PAGE_UPDATE_MESSAGES.get(framework)
    if message_cls is None:
        raise KeyError(f"No update message for framework '{framework}'")
    return message_cls(data=payload)
