from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FrameworkSettings(BaseSettings):
    """
    Tool-level settings (the 'hmrkit' section in hmrkit.yaml).
    """
    model_config = SettingsConfigDict(env_prefix='HMRKIT_', extra='ignore')

    env: str = "development"
    app_name: str = "hmrkit dev server"
    log_level: str = "INFO"


class ServerSettings(BaseModel):
    """
    Dev server bind address and well-known routes (the 'server' section).
    """
    model_config = ConfigDict(extra='ignore')

    host: str = "127.0.0.1"
    port: int = Field(default=3000, ge=1, le=65535)
    websocket_path: str = "/hmr"
    status_path: str = "/hmr-status"
    client_script_path: str = "/__hmr-client.js"


class BuildSettings(BaseModel):
    """
    Build output layout (the 'build' section).
    """
    model_config = ConfigDict(extra='ignore')

    build_dir: str = "build"
    manifest_file: str = "manifest.json"
    chunk_prefix: str = "chunk-"


class WatchSettings(BaseModel):
    """
    Source watcher settings (the 'watch' section).
    """
    model_config = ConfigDict(extra='ignore')

    enabled: bool = True
    interval_ms: int = Field(default=500, ge=50)
    debounce_ms: int = Field(default=100, ge=0)
    include_patterns: List[str] = Field(
        default_factory=lambda: ["*.ts", "*.tsx", "*.js", "*.jsx", "*.vue", "*.svelte", "*.css", "*.html"]
    )
    exclude_patterns: List[str] = Field(default_factory=list)


class FrameworkBuildConfig(BaseModel):
    """
    One entry of the 'frameworks' section: where a framework's sources live and how to build them.
    """
    model_config = ConfigDict(extra='ignore')

    directory: str
    command: Optional[str] = None
    pages: str = "pages"
