"""
tests/unit/test_store.py - Store backend tests.
"""

import json

import pytest

from core.exceptions import StoreError
from storage.store import JsonFileStore, MemoryStore, create_store


class TestMemoryStore:
    @pytest.mark.asyncio
    async def test_put_get(self):
        store = MemoryStore()
        await store.put("deposits", "a", {"amount": "10"})

        assert await store.get("deposits", "a") == {"amount": "10"}
        assert await store.get("deposits", "missing") is None
        assert await store.get("unknown", "a") is None

    @pytest.mark.asyncio
    async def test_documents_are_copied(self):
        store = MemoryStore()
        document = {"tags": ["x"]}
        await store.put("deals", "d", document)

        document["tags"].append("y")
        fetched = await store.get("deals", "d")
        fetched["tags"].append("z")

        assert await store.get("deals", "d") == {"tags": ["x"]}

    @pytest.mark.asyncio
    async def test_list_keeps_insertion_order(self):
        store = MemoryStore()
        for key in ("c", "a", "b"):
            await store.put("deposits", key, {"key": key})
        await store.put("deposits", "a", {"key": "a", "updated": True})

        documents = await store.list("deposits")

        assert [d["key"] for d in documents] == ["c", "a", "b"]
        assert documents[1]["updated"] is True

    @pytest.mark.asyncio
    async def test_delete_and_truncate(self):
        store = MemoryStore()
        await store.put("cache", "k", {})
        await store.put("cache", "j", {})

        assert await store.delete("cache", "k") is True
        assert await store.delete("cache", "k") is False

        await store.truncate("cache")
        assert await store.list("cache") == []


class TestJsonFileStore:
    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        store = JsonFileStore(tmp_path)
        await store.init()
        await store.put("deposits", "a", {"amount": "10"})
        await store.put("deposits", "b", {"amount": "20"})
        await store.close()

        reopened = JsonFileStore(tmp_path)
        await reopened.init()

        assert [d["amount"] for d in await reopened.list("deposits")] == ["10", "20"]
        assert json.loads((tmp_path / "deposits.json").read_text())["a"] == {"amount": "10"}

    @pytest.mark.asyncio
    async def test_creates_directory(self, tmp_path):
        directory = tmp_path / "nested" / "store"
        store = JsonFileStore(directory)

        await store.init()

        assert directory.is_dir()

    @pytest.mark.asyncio
    async def test_delete_is_flushed(self, tmp_path):
        store = JsonFileStore(tmp_path)
        await store.init()
        await store.put("deals", "d", {"status": "CREATED"})
        await store.delete("deals", "d")

        assert json.loads((tmp_path / "deals.json").read_text()) == {}

    @pytest.mark.asyncio
    async def test_failed_put_leaves_memory_unchanged(self, tmp_path):
        store = JsonFileStore(tmp_path)
        await store.init()
        # A directory in the way of the temporary file makes the write fail
        (tmp_path / "deposits.json.tmp").mkdir()

        with pytest.raises(StoreError):
            await store.put("deposits", "a", {"amount": "10"})

        assert await store.get("deposits", "a") is None
        assert await store.list("deposits") == []

    @pytest.mark.asyncio
    async def test_failed_delete_and_truncate_keep_documents(self, tmp_path):
        store = JsonFileStore(tmp_path)
        await store.init()
        await store.put("deals", "d", {"status": "CREATED"})
        (tmp_path / "deals.json.tmp").mkdir()

        with pytest.raises(StoreError):
            await store.delete("deals", "d")
        with pytest.raises(StoreError):
            await store.truncate("deals")

        assert await store.get("deals", "d") == {"status": "CREATED"}
        assert json.loads((tmp_path / "deals.json").read_text()) == {"d": {"status": "CREATED"}}

    @pytest.mark.asyncio
    async def test_corrupt_file_raises(self, tmp_path):
        (tmp_path / "deposits.json").write_text("{not json")
        store = JsonFileStore(tmp_path)

        with pytest.raises(StoreError):
            await store.init()


class TestCreateStore:
    def test_memory_by_default(self):
        assert type(create_store(None)) is MemoryStore

    def test_json_with_path(self, tmp_path):
        assert isinstance(create_store(str(tmp_path)), JsonFileStore)
