from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Dict, Optional


def compute_file_hash(path: Path) -> Optional[str]:
    """SHA-256 of the file contents, or None when the file cannot be read."""
    try:
        content = path.read_bytes()
    except OSError:
        return None
    return hashlib.sha256(content).hexdigest()


class FileHashTracker:
    """Remembers the content hash each source file had at its last accepted change."""

    def __init__(self) -> None:
        self._hashes: Dict[str, str] = {}

    def record(self, path: Path) -> bool:
        """Store the current hash. Returns True when it differs from the previous one."""
        current = compute_file_hash(path)
        key = _key(path)
        if current is None:
            self._hashes.pop(key, None)
            return True
        previous = self._hashes.get(key)
        self._hashes[key] = current
        return previous != current

    def forget(self, path: Path) -> None:
        self._hashes.pop(_key(path), None)

    def get(self, path: Path) -> Optional[str]:
        return self._hashes.get(_key(path))

    def __len__(self) -> int:
        return len(self._hashes)


def _key(path: Path) -> str:
    return Path(path).resolve().as_posix()
