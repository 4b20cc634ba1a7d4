"""Pytest configuration and fixtures for point-art-hub tests."""

from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from point_art_hub.config.settings import Settings
from point_art_hub.db.database import Database
from point_art_hub.db.repositories.collection_repository import CollectionRepository
from point_art_hub.db.repositories.kv_repository import KeyValueRepository
from point_art_hub.models.collection import Collection
from point_art_hub.models.session import UserRole
from point_art_hub.services.backup_service import BackupService
from point_art_hub.services.notification_service import NotificationService
from point_art_hub.services.session_service import SessionManager


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Test configuration settings."""
    return Settings(
        database_path=":memory:",
        backup_dir=str(tmp_path / "backups"),
        restore_batch_size=100,
        notification_retention=100,
        backup_reminder_days=7,
        timezone="UTC",
        log_level="DEBUG",
    )


@pytest_asyncio.fixture
async def memory_db() -> AsyncIterator[Database]:
    """In-memory database for fast tests."""
    db = Database(database_path=":memory:")
    await db.connect()
    await db.migrate()

    yield db

    await db.close()


@pytest_asyncio.fixture
async def collection_repository(memory_db: Database) -> CollectionRepository:
    """Collection repository."""
    return CollectionRepository(db=memory_db)


@pytest_asyncio.fixture
async def kv_repository(memory_db: Database) -> KeyValueRepository:
    """Key-value repository."""
    return KeyValueRepository(db=memory_db)


@pytest_asyncio.fixture
async def backup_service(
    collection_repository: CollectionRepository,
    kv_repository: KeyValueRepository,
    test_settings: Settings,
    tmp_path: Path,
) -> BackupService:
    """Backup service writing into the test's temporary directory."""
    return BackupService(
        collection_repository=collection_repository,
        kv_repository=kv_repository,
        backup_dir=test_settings.backup_dir,
        batch_size=test_settings.restore_batch_size,
        allowed_paths=[tmp_path],
    )


@pytest_asyncio.fixture
async def notification_service(
    collection_repository: CollectionRepository,
    kv_repository: KeyValueRepository,
    test_settings: Settings,
) -> NotificationService:
    """Notification service."""
    return NotificationService(
        collection_repository=collection_repository,
        kv_repository=kv_repository,
        settings=test_settings,
    )


@pytest.fixture
def session_manager() -> SessionManager:
    """Session manager with no active session."""
    return SessionManager()


@pytest.fixture
def admin_session(session_manager: SessionManager) -> SessionManager:
    """Session manager with an administrator logged in."""
    session_manager.login("admin-1", email="admin@pointarthub.test", role=UserRole.ADMIN)
    return session_manager


@pytest.fixture
def sample_records() -> dict[Collection, list[dict[str, Any]]]:
    """Representative records for several collections."""
    return {
        Collection.STATIONERY: [
            {"id": "s1", "item": "Ball pens (blue)", "category": "Pens", "stock": 40, "rate": 500},
            {"id": "s2", "item": "A4 exercise books", "category": "Books", "stock": 3, "rate": 1500},
            {"id": "s3", "item": "Crayons – 12 pack", "category": "Art", "stock": 0, "rate": 4000},
        ],
        Collection.GIFT_STORE: [
            {"id": "g1", "item": "Gift wrap", "category": "Wrapping", "quantity": 25},
            {"id": "g2", "item": "Teddy bear", "category": "Toys", "quantity": 7},
        ],
        Collection.STATIONERY_SALES: [
            {"id": "ss1", "item_id": "s1", "quantity": 10, "total_amount": 5000, "date": "2026-10-19"},
        ],
        Collection.CUSTOMERS: [
            {"id": "c1", "name": "Ssebunya Joseph", "phone": "+256700000000", "notes": None},
        ],
    }


@pytest_asyncio.fixture
async def populated_store(
    collection_repository: CollectionRepository,
    sample_records: dict[Collection, list[dict[str, Any]]],
) -> dict[Collection, list[dict[str, Any]]]:
    """Database populated with the sample records."""
    for collection, records in sample_records.items():
        await collection_repository.insert_batch(collection, records)
    return sample_records


@pytest.fixture
def mock_collection_repository() -> AsyncMock:
    """Mock collection store for failure injection.

    Holds records in a dict; tests override side effects to make
    individual calls fail.
    """
    store: dict[Collection, list[dict[str, Any]]] = {c: [] for c in Collection}
    mock = AsyncMock(spec=CollectionRepository)

    async def select_all(collection: Collection) -> list[dict[str, Any]]:
        return list(store[collection])

    async def delete_all(collection: Collection) -> int:
        removed = len(store[collection])
        store[collection] = []
        return removed

    async def insert_batch(collection: Collection, records: list[dict[str, Any]]) -> int:
        store[collection].extend(records)
        return len(records)

    mock.select_all.side_effect = select_all
    mock.delete_all.side_effect = delete_all
    mock.insert_batch.side_effect = insert_batch
    mock.store = store
    return mock


@pytest_asyncio.fixture
async def mock_backup_service(
    mock_collection_repository: AsyncMock,
    kv_repository: KeyValueRepository,
    test_settings: Settings,
    tmp_path: Path,
) -> BackupService:
    """Backup service over the mock collection store."""
    return BackupService(
        collection_repository=mock_collection_repository,
        kv_repository=kv_repository,
        backup_dir=test_settings.backup_dir,
        batch_size=2,
        allowed_paths=[tmp_path],
    )
