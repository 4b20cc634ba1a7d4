"""Key-value repository standing in for client-side local storage."""

import json
from datetime import datetime, timezone
from typing import Any

from point_art_hub.db.database import Database


class KeyValueRepository:
    """Repository for JSON values stored under string keys."""

    def __init__(self, db: Database) -> None:
        """Initialize repository.

        Args:
            db: Database instance
        """
        self.db = db

    async def get_raw(self, key: str) -> str | None:
        """Get the stored text for a key, or None if absent."""
        cursor = await self.db.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
        row = await cursor.fetchone()
        return row["value"] if row else None

    async def get(self, key: str, default: Any = None) -> Any:
        """Get a JSON-decoded value.

        Args:
            key: Storage key
            default: Returned when the key is absent

        Returns:
            Decoded value or default

        Raises:
            json.JSONDecodeError: If the stored text is not valid JSON
        """
        raw = await self.get_raw(key)
        if raw is None:
            return default
        return json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        """Store a value as JSON, replacing any previous value."""
        await self.db.execute(
            """
            INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, json.dumps(value), datetime.now(timezone.utc).isoformat()),
        )
        await self.db.commit()

    async def remove(self, key: str) -> bool:
        """Remove a key.

        Returns:
            True if the key existed
        """
        cursor = await self.db.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        await self.db.commit()
        return cursor.rowcount > 0
