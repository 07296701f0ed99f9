import pytest
import sys
from pathlib import Path

# Ensure src/ is in the python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def root_dir(tmp_path):
    """
    Returns a temporary project root with react, html and svelte source folders.
    """
    for folder in ("react/pages", "react/components", "html/pages", "svelte/pages"):
        (tmp_path / folder).mkdir(parents=True)
    return tmp_path
