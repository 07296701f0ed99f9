import pytest

from hmrkit.assets.store import AssetStore


def _write(build_dir, web_path, content):
    target = build_dir / web_path.lstrip("/")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content)
    return target


@pytest.mark.anyio
async def test_upsert_evicts_superseded_hash_of_same_logical_file(tmp_path):
    _write(tmp_path, "/p.aaaa1111.js", b"old")
    _write(tmp_path, "/p.bbbb2222.js", b"new")
    store = AssetStore()

    await store.upsert({"Page": "/p.aaaa1111.js"}, tmp_path)
    assert store.lookup("/p.aaaa1111.js") == b"old"

    await store.upsert({"Page": "/p.bbbb2222.js"}, tmp_path)

    assert "/p.aaaa1111.js" not in store
    assert store.lookup("/p.bbbb2222.js") == b"new"


@pytest.mark.anyio
async def test_upsert_skips_missing_files_and_non_web_paths(tmp_path):
    _write(tmp_path, "/react/indexes/Home.12345678.js", b"home")
    store = AssetStore()

    await store.upsert(
        {
            "HomeIndex": "/react/indexes/Home.12345678.js",
            "GoneIndex": "/react/indexes/Gone.87654321.js",
            "ServerBundle": "server/Home.js",
        },
        tmp_path,
    )

    assert store.paths() == ["/react/indexes/Home.12345678.js"]
    assert store.lookup("/react/indexes/Gone.87654321.js") is None


@pytest.mark.anyio
async def test_upsert_discovers_code_split_chunks_recursively(tmp_path):
    _write(tmp_path, "/react/indexes/Home.12345678.js", b"home")
    _write(tmp_path, "/react/chunk-abcd1234.js", b"shared")
    _write(tmp_path, "/vue/deep/chunk-ffff0000.js", b"vue shared")
    _write(tmp_path, "/react/other.js", b"not a chunk")
    store = AssetStore()

    await store.upsert({"HomeIndex": "/react/indexes/Home.12345678.js"}, tmp_path)

    assert store.lookup("/react/chunk-abcd1234.js") == b"shared"
    assert store.lookup("/vue/deep/chunk-ffff0000.js") == b"vue shared"
    assert "/react/other.js" not in store
    assert len(store) == 3


@pytest.mark.anyio
async def test_upsert_tolerates_missing_build_directory(tmp_path):
    store = AssetStore()

    await store.upsert({"Page": "/p.aaaa1111.js"}, tmp_path / "not-built-yet")

    assert len(store) == 0


@pytest.mark.anyio
async def test_upsert_leaves_unrelated_entries_alone(tmp_path):
    _write(tmp_path, "/a.11111111.js", b"a")
    _write(tmp_path, "/b.22222222.js", b"b")
    store = AssetStore()
    store.set("/manual.txt", b"kept")

    await store.upsert({"A": "/a.11111111.js", "B": "/b.22222222.js"}, tmp_path)

    assert set(store) == {"/manual.txt", "/a.11111111.js", "/b.22222222.js"}


def test_set_and_discard():
    store = AssetStore()
    store.set("/x.js", b"1")
    store.discard("/x.js")
    store.discard("/never-there.js")

    assert len(store) == 0
