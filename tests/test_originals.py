"""Tests for the working-copy index of uploaded originals."""

import pytest

from cdnservices.lib.originals import OriginalStore, image_id_for
from cdnservices.lib.storage.local import LocalStorageBackend


@pytest.fixture
def store(tmp_path):
    return OriginalStore(LocalStorageBackend(tmp_path / "uploads"))


def test_image_id_for():
    assert image_id_for("abc.png") == "abc"
    assert image_id_for("abc.tar.gz") == "abc"
    assert image_id_for("abc") == "abc"


class TestOriginalStore:
    @pytest.mark.asyncio
    async def test_load_builds_index(self, store):
        root = store.store.root
        root.mkdir(parents=True)
        (root / "one.png").write_bytes(b"1")
        (root / "two.jpg").write_bytes(b"2")

        assert await store.load() == 2
        assert store.locate("one") == "one.png"
        assert store.locate("two") == "two.jpg"
        assert "one" in store
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_exact_id_match_only(self, store):
        root = store.store.root
        root.mkdir(parents=True)
        (root / "abcd.png").write_bytes(b"1")
        await store.load()

        assert store.locate("abc") is None
        assert store.locate("abcd") == "abcd.png"

    @pytest.mark.asyncio
    async def test_first_duplicate_wins(self, store):
        root = store.store.root
        root.mkdir(parents=True)
        (root / "dup.webp").write_bytes(b"w")
        (root / "dup.gif").write_bytes(b"g")
        await store.load()

        assert store.locate("dup") == "dup.gif"

    @pytest.mark.asyncio
    async def test_load_ignores_subdirectories(self, store):
        root = store.store.root
        (root / "nested").mkdir(parents=True)
        (root / "nested" / "x.png").write_bytes(b"x")
        assert await store.load() == 0

    @pytest.mark.asyncio
    async def test_add_read_remove(self, store):
        await store.add("id1", "id1.png", b"data")
        assert store.locate("id1") == "id1.png"
        assert await store.read("id1.png") == b"data"

        assert await store.remove("id1") is True
        assert store.locate("id1") is None
        assert await store.store.exists("id1.png") is False
        assert await store.remove("id1") is False

    @pytest.mark.asyncio
    async def test_iteration_is_a_snapshot(self, store):
        await store.add("a", "a.png", b"1")
        await store.add("b", "b.png", b"2")
        for image_id, _ in store:
            await store.remove(image_id)
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_find_falls_back_to_directory(self, store):
        await store.load()
        root = store.store.root
        root.mkdir(parents=True)
        (root / "late.png").write_bytes(b"1")
        (root / "lately.png").write_bytes(b"2")

        assert store.locate("late") is None
        assert await store.find("late") == "late.png"
        assert store.locate("late") == "late.png"
        assert await store.find("lat") is None

    @pytest.mark.asyncio
    async def test_forget(self, store):
        await store.add("id1", "id1.png", b"data")
        store.forget("id1")
        assert store.locate("id1") is None
        assert await store.store.exists("id1.png") is True
