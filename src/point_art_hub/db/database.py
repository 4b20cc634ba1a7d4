"""Database connection and migration management."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from point_art_hub.models.collection import Collection


class Database:
    """Database connection and operations manager."""

    def __init__(self, database_path: str) -> None:
        """Initialize database manager.

        Args:
            database_path: Path to SQLite database file (":memory:" for tests)
        """
        self.database_path = database_path
        self.conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()
        self._in_transaction = False

    async def connect(self) -> None:
        """Connect to database."""
        if self.database_path != ":memory:":
            Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)

        self.conn = await aiosqlite.connect(self.database_path)
        self.conn.row_factory = aiosqlite.Row

    async def close(self) -> None:
        """Close database connection."""
        if self.conn:
            await self.conn.close()
            self.conn = None

    async def execute(
        self, sql: str, parameters: tuple[Any, ...] | dict[str, Any] = ()
    ) -> aiosqlite.Cursor:
        """Execute a SQL statement.

        Args:
            sql: SQL statement
            parameters: Query parameters

        Returns:
            Database cursor
        """
        if not self.conn:
            raise RuntimeError("Database not connected")
        return await self.conn.execute(sql, parameters)

    async def executemany(self, sql: str, parameters: list[tuple[Any, ...]]) -> None:
        """Execute a SQL statement with multiple parameter sets.

        Args:
            sql: SQL statement
            parameters: List of parameter tuples
        """
        if not self.conn:
            raise RuntimeError("Database not connected")
        await self.conn.executemany(sql, parameters)

    async def commit(self) -> None:
        """Commit current transaction.

        Inside `transaction()` this is a no-op; the context manager commits.
        """
        if not self.conn:
            raise RuntimeError("Database not connected")
        if self._in_transaction:
            return
        await self.conn.commit()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Context manager for database transactions.

        Nested use joins the outer transaction instead of starting a new one.

        Example:
            async with db.transaction():
                await db.execute(...)
        """
        if not self.conn:
            raise RuntimeError("Database not connected")

        if self._in_transaction:
            yield
            return

        async with self._write_lock:
            # Flush any implicit transaction left open by a previous statement
            await self.conn.commit()
            self._in_transaction = True
            await self.conn.execute("BEGIN")
            try:
                yield
                await self.conn.commit()
            except Exception:
                await self.conn.rollback()
                raise
            finally:
                self._in_transaction = False

    async def migrate(self) -> None:
        """Run database migrations."""
        try:
            cursor = await self.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            row = await cursor.fetchone()
            current_version = row[0] if row else 0
        except aiosqlite.OperationalError:
            current_version = 0

        if current_version < 1:
            await self._migrate_v1()

    async def _migrate_v1(self) -> None:
        """Initial schema: one document table per collection plus key-value storage."""
        async with self.transaction():
            await self.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at DATETIME NOT NULL
                )
            """)

            # Records are stored whole; their schema belongs to the application
            for collection in Collection:
                await self.execute(f"""
                    CREATE TABLE IF NOT EXISTS {collection.value} (
                        seq INTEGER PRIMARY KEY AUTOINCREMENT,
                        id TEXT UNIQUE,
                        data TEXT NOT NULL
                    )
                """)

            await self.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at DATETIME NOT NULL
                )
            """)

            await self.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (1, datetime.now(timezone.utc).isoformat()),
            )
