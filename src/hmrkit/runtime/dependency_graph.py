from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from hmrkit.runtime.frameworks import should_ignore_path

_IMPORT_PATTERNS = (
    re.compile(r"""import\s+[^'";]*?\s+from\s+['"]([^'"]+)['"]"""),
    re.compile(r"""import\s+['"]([^'"]+)['"]"""),
    re.compile(r"""require\s*\(\s*['"]([^'"]+)['"]\s*\)"""),
    re.compile(r"""import\s*\(\s*['"]([^'"]+)['"]\s*\)"""),
)

RESOLVE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".vue", ".svelte", ".css")
SOURCE_EXTENSIONS = frozenset({".ts", ".tsx", ".js", ".jsx", ".vue", ".svelte"})


def extract_imports(source: str) -> List[str]:
    """Return every import specifier found in a module, in order of appearance."""
    found: List[str] = []
    for pattern in _IMPORT_PATTERNS:
        found.extend(match.group(1) for match in pattern.finditer(source))
    return found


def resolve_import(specifier: str, from_file: Path) -> Optional[Path]:
    """Resolve a relative import to an existing file. Bare package imports resolve to None."""
    if not specifier.startswith((".", "/")):
        return None

    base = (from_file.parent / specifier).resolve()
    for extension in RESOLVE_EXTENSIONS:
        candidate = base.with_name(base.name + extension)
        if candidate.is_file():
            return candidate
    if base.is_file():
        return base
    return None


class DependencyGraph:
    """
    Import graph between source files, with reverse edges.

    Used to widen a change to every module that transitively imports it.
    """

    def __init__(self) -> None:
        self.dependencies: Dict[Path, Set[Path]] = {}
        self.dependents: Dict[Path, Set[Path]] = {}

    def add_file(self, path: Path) -> Set[Path]:
        """(Re)scan one file and replace its outgoing edges. Returns its dependencies."""
        node = Path(path).resolve()
        if not node.is_file():
            return set()

        try:
            source = node.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return set()

        resolved: Set[Path] = set()
        for specifier in extract_imports(source):
            target = resolve_import(specifier, node)
            if target is not None:
                resolved.add(target)

        self._drop_outgoing(node)
        self.dependencies[node] = resolved
        for dependency in resolved:
            self.dependents.setdefault(dependency, set()).add(node)
        return resolved

    def remove_file(self, path: Path) -> None:
        node = Path(path).resolve()
        self._drop_outgoing(node)
        self.dependencies.pop(node, None)

        for dependent in self.dependents.pop(node, set()):
            edges = self.dependencies.get(dependent)
            if edges is not None:
                edges.discard(node)

    def affected_files(self, path: Path) -> List[Path]:
        """The file itself plus everything that transitively imports it."""
        start = Path(path).resolve()
        affected: Set[Path] = set()
        ordered: List[Path] = []
        pending = [start]

        while pending:
            current = pending.pop()
            if current in affected:
                continue
            affected.add(current)
            ordered.append(current)
            pending.extend(self.dependents.get(current, ()))

        return ordered

    def scan(self, directories: Iterable[Path]) -> int:
        """Add every source file under the directories. Returns the number of files added."""
        seen: Set[Path] = set()
        for directory in directories:
            root = Path(directory).resolve()
            if not root.is_dir():
                continue
            for candidate in sorted(root.rglob("*")):
                if candidate in seen or not candidate.is_file():
                    continue
                if candidate.suffix.lower() not in SOURCE_EXTENSIONS:
                    continue
                if should_ignore_path(candidate.as_posix()):
                    continue
                self.add_file(candidate)
                seen.add(candidate)
        return len(seen)

    def _drop_outgoing(self, node: Path) -> None:
        for dependency in self.dependencies.get(node, set()):
            edges = self.dependents.get(dependency)
            if edges is not None:
                edges.discard(node)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        return Path(path).resolve() in self.dependencies

    def __len__(self) -> int:
        return len(self.dependencies)
