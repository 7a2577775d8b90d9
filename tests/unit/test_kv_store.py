"""
Unit tests for the key-value store adapter (SQLite in memory).
"""
import pytest
from sqlalchemy.dialects import postgresql, sqlite

from fleetlog.services.kv_store import (
    KVStore, oil_change_key, upsert_statement, user_trip_key, user_trip_prefix, vehicle_key,
)


@pytest.mark.asyncio
class TestKVStore:
    async def test_get_missing(self, store):
        assert await store.get("trip:nope") is None

    async def test_put_overwrites(self, store):
        await store.put("vehicle:ABC-1", {"plate": "ABC-1", "color": "red"})
        await store.put("vehicle:ABC-1", {"plate": "ABC-1", "color": "blue"})
        assert (await store.get("vehicle:ABC-1"))["color"] == "blue"

    async def test_scalar_values(self, store):
        await store.put(oil_change_key("ABC-1"), 50000)
        await store.put("settings:admin_registration_enabled", True)
        assert await store.get(oil_change_key("ABC-1")) == 50000
        assert await store.get("settings:admin_registration_enabled") is True

    async def test_scan_by_prefix(self, store):
        await store.put(user_trip_key("u1", "t1"), "t1")
        await store.put(user_trip_key("u1", "t2"), "t2")
        await store.put(user_trip_key("u10", "t3"), "t3")
        assert await store.scan(user_trip_prefix("u1")) == ["t1", "t2"]

    async def test_scan_treats_wildcards_literally(self, store):
        await store.put("user_trip:u1:t1", "t1")
        await store.put("userXtrip:u1:t2", "t2")
        assert await store.scan("user_trip:") == ["t1"]

    async def test_vehicle_scan_includes_watermarks(self, store):
        await store.put(vehicle_key("ABC-1"), {"plate": "ABC-1"})
        await store.put(oil_change_key("ABC-1"), 100)
        assert len(await store.scan("vehicle:")) == 2

    async def test_get_many_skips_missing(self, store):
        await store.put("trip:a", {"id": "a"})
        values = await store.get_many(["trip:a", "trip:missing"])
        assert values == [{"id": "a"}]

    async def test_get_many_empty(self, store):
        assert await store.get_many([]) == []

    async def test_delete(self, store):
        await store.put("trip:a", {"id": "a"})
        assert await store.delete("trip:a") is True
        assert await store.delete("trip:a") is False
        assert await store.get("trip:a") is None


@pytest.mark.asyncio
class TestUpsert:
    async def test_first_writes_from_two_sessions(self, session_factory):
        async with session_factory() as first, session_factory() as second:
            await KVStore(first).put("settings:admin_registration_enabled", True)
            await KVStore(second).put("settings:admin_registration_enabled", False)
            assert await KVStore(first).get("settings:admin_registration_enabled") is False

    async def test_interleaved_writers_keep_last_value(self, session_factory):
        async with session_factory() as first, session_factory() as second:
            await KVStore(first).put(oil_change_key("ABC-1"), 1000)
            await KVStore(second).put(oil_change_key("ABC-1"), 2000)
            await KVStore(first).put(oil_change_key("ABC-1"), 3000)
            assert await KVStore(second).get(oil_change_key("ABC-1")) == 3000


class TestUpsertStatement:
    @pytest.mark.parametrize("dialect", [postgresql.dialect(), sqlite.dialect()])
    def test_statement_is_an_upsert(self, dialect):
        sql = str(upsert_statement(dialect.name, "trip:a", {"id": "a"}).compile(dialect=dialect))
        assert "ON CONFLICT (key) DO UPDATE" in sql

    def test_unknown_dialect(self):
        with pytest.raises(ValueError):
            upsert_statement("mysql", "trip:a", {})
