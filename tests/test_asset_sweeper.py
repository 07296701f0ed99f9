import random
import string

import pytest

from hmrkit.assets.sweeper import StaleAssetSweeper


def _hash(rng):
    return "".join(rng.choice(string.ascii_lowercase + string.digits) for _ in range(8))


def _touch(build_dir, relative):
    target = build_dir / relative
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(relative)
    return target


@pytest.mark.anyio
async def test_sweep_removes_older_hashes_and_keeps_live_ones(tmp_path):
    live = _touch(tmp_path, "react/indexes/Home.bbbb2222.js")
    stale = _touch(tmp_path, "react/indexes/Home.aaaa1111.js")
    unrelated = _touch(tmp_path, "react/indexes/Other.cccc3333.js")
    unhashed = _touch(tmp_path, "react/indexes/Home.js")

    sweeper = StaleAssetSweeper(tmp_path)
    removed = await sweeper.sweep([], {"HomeIndex": "/react/indexes/Home.bbbb2222.js"})

    assert removed == [stale.resolve()]
    assert live.exists()
    assert unrelated.exists()
    assert unhashed.exists()
    assert not stale.exists()


@pytest.mark.anyio
async def test_sweep_uses_store_paths_as_live_set(tmp_path):
    live = _touch(tmp_path, "chunk.dddd4444.js")
    stale = _touch(tmp_path, "chunk.eeee5555.js")

    removed = await StaleAssetSweeper(tmp_path).sweep(["/chunk.dddd4444.js"], {})

    # Both chunks share the logical identity /chunk.js
    assert [path.name for path in removed] == [stale.name]
    assert live.exists()


@pytest.mark.anyio
async def test_sweep_accepts_absolute_manifest_values(tmp_path):
    root = tmp_path.resolve()
    live = _touch(root, "svelte/compiled/Page.11111111.js")
    stale = _touch(root, "svelte/compiled/Page.22222222.js")

    removed = await StaleAssetSweeper(root).sweep([], {"Page": str(live)})

    assert removed == [stale]
    assert live.exists()


@pytest.mark.anyio
async def test_sweep_with_no_live_paths_or_missing_dir_is_a_no_op(tmp_path):
    _touch(tmp_path, "x.aaaa1111.js")

    assert await StaleAssetSweeper(tmp_path).sweep([], {}) == []
    assert await StaleAssetSweeper(tmp_path / "missing").sweep([], {"X": "/x.aaaa1111.js"}) == []
    assert (tmp_path / "x.aaaa1111.js").exists()


@pytest.mark.anyio
@pytest.mark.parametrize("seed", [1, 7, 42])
async def test_sweep_never_deletes_manifest_values(tmp_path, seed):
    rng = random.Random(seed)
    manifest = {}
    decoys = set()

    for index in range(12):
        folder = rng.choice(["react/indexes", "vue/compiled", "assets/css", ""])
        name = f"mod{index}"
        extension = rng.choice(["js", "css", "mjs"])
        live_hash = _hash(rng)
        live_rel = f"{folder}/{name}.{live_hash}.{extension}".lstrip("/")
        _touch(tmp_path, live_rel)
        manifest[f"Mod{index}"] = "/" + live_rel

        for _ in range(rng.randint(0, 3)):
            decoy_hash = _hash(rng)
            if decoy_hash == live_hash:
                continue
            decoys.add(_touch(tmp_path, f"{folder}/{name}.{decoy_hash}.{extension}".lstrip("/")))

    removed = await StaleAssetSweeper(tmp_path).sweep([], manifest)

    for web_path in manifest.values():
        assert (tmp_path / web_path.lstrip("/")).exists()
    assert sorted(removed) == sorted({path.resolve() for path in decoys})
    assert not any(path.exists() for path in decoys)
