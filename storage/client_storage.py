"""Durable client-side storage for small JSON blobs (notification preferences)"""
import json
import logging
from typing import Any

import aiosqlite

logger = logging.getLogger(__name__)

# Database path
DB_PATH = "chat_client.db"


class ClientStorage:
    """Key/value store on SQLite that survives across sessions"""

    def __init__(self, db_path: str = DB_PATH) -> None:
        self.db_path = db_path
        self.conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Open the database and create the preferences table"""
        self.conn = await aiosqlite.connect(self.db_path)
        assert self.conn is not None

        await self.conn.execute("""
            CREATE TABLE IF NOT EXISTS preferences (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        await self.conn.commit()
        logger.info("Client storage initialized at %s", self.db_path)

    async def close(self) -> None:
        """Close database connection"""
        if self.conn:
            await self.conn.close()
            self.conn = None

    async def get_json(self, key: str) -> Any | None:
        """Return the decoded value stored under key, or None

        A value that is not valid JSON is treated as missing.
        """
        assert self.conn is not None
        cursor = await self.conn.execute("SELECT value FROM preferences WHERE key = ?", (key,))
        row = await cursor.fetchone()
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.error("Error loading stored value for %s", key)
            return None

    async def set_json(self, key: str, value: Any) -> None:
        assert self.conn is not None
        await self.conn.execute(
            """
            INSERT INTO preferences (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
            """,
            (key, json.dumps(value)),
        )
        await self.conn.commit()

    async def delete(self, key: str) -> None:
        assert self.conn is not None
        await self.conn.execute("DELETE FROM preferences WHERE key = ?", (key,))
        await self.conn.commit()
