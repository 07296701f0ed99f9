from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Iterable, List, Mapping

from hmrkit.runtime.frameworks import ANGULAR, ASSETS, REACT, SVELTE, VUE
from hmrkit.runtime.protocol import ModuleUpdateEntry

_SOURCE_SUFFIX_PATTERN = re.compile(r"\.(tsx?|jsx?|vue|svelte|css|html)$")
_SEGMENT_SPLIT_PATTERN = re.compile(r"[-_]")

CSS_KEY_SUFFIX = "CSS"


def to_pascal(name: str) -> str:
    """``my-page`` -> ``MyPage``; names without separators only get their first letter raised."""
    if "-" not in name and "_" not in name:
        return name[:1].upper() + name[1:]
    segments = [segment for segment in _SEGMENT_SPLIT_PATTERN.split(name) if segment]
    return "".join(segment[:1].upper() + segment[1:].lower() for segment in segments)


def _is_page(path: str, framework: str) -> bool:
    return f"/{framework}/pages/" in path


def manifest_keys_for(source_file: str | Path, framework: str) -> List[str]:
    """Manifest keys a rebuilt source file is expected to produce."""
    normalized = Path(source_file).resolve().as_posix()
    pascal = to_pascal(_SOURCE_SUFFIX_PATTERN.sub("", normalized.rsplit("/", 1)[-1]))

    if framework == REACT:
        # Components are bundled into the pages that import them.
        if _is_page(normalized, REACT):
            return [f"{pascal}Index", f"{pascal}{CSS_KEY_SUFFIX}"]
        return []
    if framework in (SVELTE, VUE):
        if _is_page(normalized, framework):
            return [pascal, f"{pascal}Index", f"{pascal}{CSS_KEY_SUFFIX}"]
        return []
    if framework == ANGULAR:
        if _is_page(normalized, ANGULAR):
            return [pascal, f"{pascal}Index"]
        return []
    if framework == ASSETS and normalized.endswith(".css"):
        return [f"{pascal}{CSS_KEY_SUFFIX}"]
    return []


def build_module_updates(
    changed_files: Iterable[str | Path],
    framework: str,
    manifest: Mapping[str, str],
) -> List[ModuleUpdateEntry]:
    """One entry per changed file that maps to at least one key present in the manifest."""
    updates: List[ModuleUpdateEntry] = []
    seen: set[str] = set()

    for source_file in changed_files:
        normalized = Path(source_file).resolve().as_posix()
        if normalized in seen:
            continue
        seen.add(normalized)

        module_paths = {
            key: manifest[key] for key in manifest_keys_for(normalized, framework) if manifest.get(key)
        }
        if not module_paths:
            continue

        updates.append(
            ModuleUpdateEntry(
                source_file=normalized,
                framework=framework,
                module_keys=list(module_paths.keys()),
                module_paths=module_paths,
            )
        )

    return updates


def group_by_framework(updates: Iterable[ModuleUpdateEntry]) -> Dict[str, List[ModuleUpdateEntry]]:
    grouped: Dict[str, List[ModuleUpdateEntry]] = {}
    for update in updates:
        grouped.setdefault(update.framework, []).append(update)
    return grouped
