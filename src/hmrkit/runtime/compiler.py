from __future__ import annotations

import asyncio
import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

from hmrkit.utils.diagnostics import CompilationError

_LOCATION_PATTERN = re.compile(r"(?P<file>[^\s:()]+\.[A-Za-z]+):(?P<line>\d+)(?::(?P<column>\d+))?")


@dataclass(frozen=True)
class CompileResult:
    """Manifest fragment and output files produced by one framework build."""

    manifest: Dict[str, str] = field(default_factory=dict)
    produced: List[Path] = field(default_factory=list)


@runtime_checkable
class FrameworkCompiler(Protocol):
    """Builds one framework's sources into the build directory."""

    name: str

    async def compile(self, changed_files: Sequence[Path], build_dir: Path) -> CompileResult:
        ...


class CommandCompiler:
    """
    Runs a configured shell command and reads the manifest it writes.

    The changed files are passed in `HMRKIT_CHANGED_FILES` (os.pathsep separated)
    and the framework name in `HMRKIT_FRAMEWORK`. A non-zero exit status raises
    CompilationError with the first source location found in the output.
    """

    def __init__(
        self,
        name: str,
        command: str,
        cwd: Optional[Path] = None,
        manifest_file: str = "manifest.json",
    ) -> None:
        self.name = name
        self.command = command
        self.cwd = cwd
        self.manifest_file = manifest_file

    async def compile(self, changed_files: Sequence[Path], build_dir: Path) -> CompileResult:
        env = dict(os.environ)
        env["HMRKIT_FRAMEWORK"] = self.name
        env["HMRKIT_BUILD_DIR"] = str(build_dir)
        env["HMRKIT_CHANGED_FILES"] = os.pathsep.join(str(path) for path in changed_files)

        process = await asyncio.create_subprocess_shell(
            self.command,
            cwd=str(self.cwd) if self.cwd else None,
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()

        if process.returncode != 0:
            output = (stderr or stdout).decode("utf-8", errors="replace").strip()
            raise _error_from_output(self.name, output, process.returncode)

        manifest = await asyncio.to_thread(self._read_manifest, build_dir)
        produced = [build_dir / value.lstrip("/") for value in manifest.values() if value.startswith("/")]
        return CompileResult(manifest=manifest, produced=produced)

    def _read_manifest(self, build_dir: Path) -> Dict[str, str]:
        manifest_path = build_dir / self.manifest_file
        try:
            raw = json.loads(manifest_path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise CompilationError(
                f"Build did not write {self.manifest_file}", framework=self.name
            ) from exc
        except ValueError as exc:
            raise CompilationError(
                f"Invalid manifest JSON: {exc}", file=str(manifest_path), framework=self.name
            ) from exc

        if not isinstance(raw, dict):
            raise CompilationError("Manifest must be a JSON object", file=str(manifest_path), framework=self.name)

        return {str(key): str(value) for key, value in raw.items()}


def _error_from_output(framework: str, output: str, returncode: Optional[int]) -> CompilationError:
    message = output.splitlines()[-1] if output else f"Build command exited with status {returncode}"
    match = _LOCATION_PATTERN.search(output)
    if match is None:
        return CompilationError(message, framework=framework)

    column = match.group("column")
    return CompilationError(
        message,
        file=match.group("file"),
        line=int(match.group("line")),
        column=int(column) if column else None,
        framework=framework,
    )
