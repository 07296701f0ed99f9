from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError


class ServerState(str, Enum):
    """Classification of dev server metadata/liveness state."""

    ABSENT = "absent"
    RUNNING = "running"
    STALE = "stale"


class ServerMetadata(BaseModel):
    """Persisted dev server liveness metadata."""

    pid: int = Field(gt=0)
    port: int = Field(ge=1, le=65535)
    started_at: str
    host: str = "127.0.0.1"

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


class ServerProbeResult(BaseModel):
    """Result payload from probing dev server metadata/liveness."""

    state: ServerState
    metadata: ServerMetadata | None = None
    metadata_path: str
    reason: str


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def server_metadata_path(root_dir: Path) -> Path:
    """Return the dev server metadata file path for a project root."""
    return root_dir / ".hmrkit" / "server.json"


def write_server_metadata(root_dir: Path, metadata: ServerMetadata) -> Path:
    """Persist dev server metadata for a project root."""
    metadata_file = server_metadata_path(root_dir)
    metadata_file.parent.mkdir(parents=True, exist_ok=True)
    metadata_file.write_text(metadata.model_dump_json(indent=2), encoding="utf-8")
    return metadata_file


def remove_server_metadata(root_dir: Path) -> bool:
    """Delete the metadata file; returns whether one existed."""
    metadata_file = server_metadata_path(root_dir)
    if not metadata_file.exists():
        return False
    metadata_file.unlink()
    return True


def is_process_alive(pid: int) -> bool:
    """Return True when a process id appears to be alive on this host."""
    if pid <= 0:
        return False

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False

    return True


def probe_server_state(root_dir: Path) -> ServerProbeResult:
    """Classify the dev server for a root as absent, running, or stale."""
    metadata_file = server_metadata_path(root_dir)
    if not metadata_file.exists():
        return ServerProbeResult(
            state=ServerState.ABSENT,
            metadata_path=str(metadata_file),
            reason="Server metadata file not found.",
        )

    try:
        payload = json.loads(metadata_file.read_text(encoding="utf-8"))
        metadata = ServerMetadata.model_validate(payload)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        return ServerProbeResult(
            state=ServerState.STALE,
            metadata_path=str(metadata_file),
            reason=f"Invalid server metadata payload: {exc}",
        )

    if not is_process_alive(metadata.pid):
        return ServerProbeResult(
            state=ServerState.STALE,
            metadata=metadata,
            metadata_path=str(metadata_file),
            reason=f"Server process pid={metadata.pid} is not alive.",
        )

    return ServerProbeResult(
        state=ServerState.RUNNING,
        metadata=metadata,
        metadata_path=str(metadata_file),
        reason="Server process is alive.",
    )
