"""Unit tests for ClientStorage"""
import pytest

from storage.client_storage import ClientStorage


@pytest.mark.unit
@pytest.mark.asyncio
class TestClientStorage:
    """Test the JSON key/value store"""

    async def test_missing_key(self, client_storage):
        """Test that an unknown key reads as None"""
        assert await client_storage.get_json("nothing") is None

    async def test_set_then_get(self, client_storage):
        """Test storing a JSON blob"""
        await client_storage.set_json("prefs", {"soundEnabled": False})
        assert await client_storage.get_json("prefs") == {"soundEnabled": False}

    async def test_overwrite(self, client_storage):
        """Test that set_json upserts"""
        await client_storage.set_json("prefs", {"a": 1})
        await client_storage.set_json("prefs", {"a": 2})
        assert await client_storage.get_json("prefs") == {"a": 2}

    async def test_delete(self, client_storage):
        """Test removing a key"""
        await client_storage.set_json("prefs", {"a": 1})
        await client_storage.delete("prefs")
        assert await client_storage.get_json("prefs") is None

    async def test_corrupt_value_reads_as_missing(self, client_storage):
        """Test that invalid JSON is treated as absent"""
        await client_storage.conn.execute("INSERT INTO preferences (key, value) VALUES (?, ?)", ("bad", "{not json"))
        assert await client_storage.get_json("bad") is None

    async def test_survives_reopen(self, tmp_path):
        """Test that values persist across sessions on disk"""
        path = str(tmp_path / "client.db")
        first = ClientStorage(path)
        await first.init()
        await first.set_json("prefs", {"soundEnabled": True})
        await first.close()

        second = ClientStorage(path)
        await second.init()
        assert await second.get_json("prefs") == {"soundEnabled": True}
        await second.close()
