from pathlib import Path
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field
from hmrkit.config.loader import CONFIG_FILENAME, load_config
from hmrkit.core.models import BuildSettings, FrameworkBuildConfig, FrameworkSettings, ServerSettings, WatchSettings
from hmrkit.core.registry import Registry
from hmrkit.runtime.compiler import CommandCompiler, FrameworkCompiler


class DevContext(BaseModel):
    """
    Resolved configuration for one dev server run.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    root_dir: Path = Field(default_factory=Path.cwd)

    # Tool Settings (Maps to 'hmrkit' section)
    settings: FrameworkSettings = Field(default_factory=FrameworkSettings)

    # Server Settings (Maps to 'server' section)
    server: ServerSettings = Field(default_factory=ServerSettings)

    # Build Layout (Maps to 'build' section)
    build: BuildSettings = Field(default_factory=BuildSettings)

    # Watcher Settings (Maps to 'watch' section)
    watch: WatchSettings = Field(default_factory=WatchSettings)

    # Per-framework sources and build commands (Maps to 'frameworks' section)
    frameworks: Dict[str, FrameworkBuildConfig] = Field(default_factory=dict)

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None, **data: Any):
        """
        Initialize the context, optionally with a configuration dictionary.
        """
        if config_dict:
            # Seed fields from config_dict if not explicitly provided in data
            if 'settings' not in data:
                data['settings'] = FrameworkSettings(**config_dict.get('hmrkit', {}))
            if 'server' not in data:
                data['server'] = ServerSettings(**config_dict.get('server', {}))
            if 'build' not in data:
                data['build'] = BuildSettings(**config_dict.get('build', {}))
            if 'watch' not in data:
                data['watch'] = WatchSettings(**config_dict.get('watch', {}))
            if 'frameworks' not in data:
                data['frameworks'] = {
                    name: FrameworkBuildConfig(**{"directory": name, **(entry or {})})
                    for name, entry in (config_dict.get('frameworks') or {}).items()
                }

        super().__init__(**data)

    @classmethod
    def from_root(cls, root_dir: Path) -> "DevContext":
        """Load `hmrkit.yaml` from a project root."""
        root = root_dir.expanduser().resolve()
        return cls(config_dict=load_config(root / CONFIG_FILENAME), root_dir=root)

    @property
    def build_dir(self) -> Path:
        return (self.root_dir / self.build.build_dir).resolve()

    def framework_directories(self) -> Dict[str, Path]:
        return {name: (self.root_dir / entry.directory).resolve() for name, entry in self.frameworks.items()}

    def compilers(self) -> Registry[FrameworkCompiler]:
        """A CommandCompiler for every framework that declares a build command."""
        registry: Registry[FrameworkCompiler] = Registry()
        for name, entry in self.frameworks.items():
            if not entry.command:
                continue
            registry.register(
                CommandCompiler(
                    name=name,
                    command=entry.command,
                    cwd=self.root_dir,
                    manifest_file=self.build.manifest_file,
                )
            )
        return registry
