"""Collection repository for record-level datastore access."""

import json
from typing import Any

from point_art_hub.db.database import Database
from point_art_hub.models.collection import Collection


class CollectionRepository:
    """Repository for whole-collection reads and writes.

    Every method takes a `Collection`; table names never come from
    free-form strings.
    """

    def __init__(self, db: Database) -> None:
        """Initialize repository.

        Args:
            db: Database instance
        """
        self.db = db

    async def select_all(self, collection: Collection) -> list[dict[str, Any]]:
        """Fetch every record of a collection in insertion order.

        Args:
            collection: Collection to read

        Returns:
            List of flat records
        """
        cursor = await self.db.execute(
            f"SELECT data FROM {Collection(collection).value} ORDER BY seq"
        )
        rows = await cursor.fetchall()
        return [json.loads(row["data"]) for row in rows]

    async def count(self, collection: Collection) -> int:
        """Count records in a collection."""
        cursor = await self.db.execute(
            f"SELECT COUNT(*) AS n FROM {Collection(collection).value}"
        )
        row = await cursor.fetchone()
        return row["n"] if row else 0

    async def delete_all(self, collection: Collection) -> int:
        """Delete every record of a collection.

        Args:
            collection: Collection to clear

        Returns:
            Number of deleted records
        """
        cursor = await self.db.execute(f"DELETE FROM {Collection(collection).value}")
        await self.db.commit()
        return cursor.rowcount

    async def insert_batch(
        self, collection: Collection, records: list[dict[str, Any]]
    ) -> int:
        """Insert records atomically: either the whole batch lands or none of it.

        Args:
            collection: Target collection
            records: Flat records; an `id` field, when present, must be unique

        Returns:
            Number of inserted records

        Raises:
            aiosqlite.IntegrityError: On duplicate ids (nothing is inserted)
            TypeError: If a record is not JSON serializable
        """
        if not records:
            return 0

        params = [
            (None if record.get("id") is None else str(record["id"]), json.dumps(record))
            for record in records
        ]
        async with self.db.transaction():
            await self.db.executemany(
                f"INSERT INTO {Collection(collection).value} (id, data) VALUES (?, ?)",
                params,
            )
        return len(records)
