"""Tests for backup export and restore."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from point_art_hub.db.repositories.collection_repository import CollectionRepository
from point_art_hub.db.repositories.kv_repository import KeyValueRepository
from point_art_hub.exceptions import (
    BackupFormatError,
    BackupSerializationError,
    RestoreCancelledError,
    ValidationError,
)
from point_art_hub.models.backup import (
    RESTORE_CONFIRMATION_PHRASE,
    BackupFrequency,
    BackupSettings,
    BackupType,
)
from point_art_hub.models.collection import BACKUP_COLLECTIONS, Collection
from point_art_hub.services import backup_service as backup_service_module
from point_art_hub.services.backup_service import BackupService, format_size


def write_backup(path: Path, document: Any) -> str:
    """Write a backup document and return its path."""
    path.write_text(json.dumps(document), encoding="utf-8")
    return str(path)


def backup_document(data: dict[str, list[dict[str, Any]]]) -> dict[str, Any]:
    """Minimal well-formed backup document."""
    return {
        "metadata": {
            "created_at": "2026-10-19T10:00:00+00:00",
            "version": "1.0.0",
            "description": "test",
            "tables": list(data),
            "total_records": sum(len(r) for r in data.values()),
        },
        "data": data,
    }


class TestExport:
    """Test creating backup files."""

    @pytest.mark.asyncio
    async def test_export_writes_every_collection(
        self,
        backup_service: BackupService,
        populated_store: dict[Collection, list[dict[str, Any]]],
    ) -> None:
        """Export includes every known collection, empty ones included."""
        # When
        result = await backup_service.export_backup(description="Weekly backup")

        # Then
        path = Path(result.file_path)
        assert path.exists()
        document = json.loads(path.read_text(encoding="utf-8"))

        assert list(document["data"]) == [c.value for c in BACKUP_COLLECTIONS]
        assert document["metadata"]["tables"] == [c.value for c in BACKUP_COLLECTIONS]
        assert document["metadata"]["version"] == "1.0.0"
        assert document["metadata"]["description"] == "Weekly backup"
        assert document["metadata"]["total_records"] == 7
        assert result.total_records == 7
        assert result.counts["stationery"] == 3
        assert result.counts["invoices"] == 0
        assert result.file_size_bytes == path.stat().st_size
        assert result.failures == []

    @pytest.mark.asyncio
    async def test_export_preserves_non_ascii_text(
        self,
        backup_service: BackupService,
        populated_store: dict[Collection, list[dict[str, Any]]],
    ) -> None:
        """Text is written as UTF-8, not escaped."""
        result = await backup_service.export_backup()

        text = Path(result.file_path).read_text(encoding="utf-8")
        assert "Crayons – 12 pack" in text

    @pytest.mark.asyncio
    async def test_export_default_description(self, backup_service: BackupService) -> None:
        """A missing description gets a dated default."""
        result = await backup_service.export_backup()

        document = json.loads(Path(result.file_path).read_text(encoding="utf-8"))
        assert document["metadata"]["description"].startswith("Backup created on ")

    @pytest.mark.asyncio
    async def test_export_leaves_no_temporary_file(
        self, backup_service: BackupService, populated_store: dict
    ) -> None:
        """Only the final file remains in the output directory."""
        result = await backup_service.export_backup()

        files = list(Path(result.file_path).parent.iterdir())
        assert [f.name for f in files] == [result.file_name]

    @pytest.mark.asyncio
    async def test_export_progress_is_monotonic(self, backup_service: BackupService) -> None:
        """Progress rises once per collection and ends at 100."""
        progress: list[float] = []

        await backup_service.export_backup(progress=progress.append)

        assert len(progress) == len(BACKUP_COLLECTIONS)
        assert progress == sorted(progress)
        assert all(0 < p <= 100 for p in progress)
        assert progress[-1] == 100

    @pytest.mark.asyncio
    async def test_export_records_fetch_failures(
        self,
        mock_backup_service: BackupService,
        mock_collection_repository: AsyncMock,
    ) -> None:
        """An unreadable collection is exported empty and reported."""
        # Given: invoices cannot be read
        mock_collection_repository.store[Collection.STATIONERY] = [{"id": "s1", "stock": 1}]
        original = mock_collection_repository.select_all.side_effect

        async def failing_select(collection: Collection) -> list[dict[str, Any]]:
            if collection == Collection.INVOICES:
                raise RuntimeError("permission denied for table invoices")
            return await original(collection)

        mock_collection_repository.select_all.side_effect = failing_select

        # When
        result = await mock_backup_service.export_backup()

        # Then
        document = json.loads(Path(result.file_path).read_text(encoding="utf-8"))
        assert document["data"]["invoices"] == []
        assert document["data"]["stationery"] == [{"id": "s1", "stock": 1}]
        assert len(result.failures) == 1
        assert result.failures[0].collection == Collection.INVOICES
        assert result.failures[0].stage == "fetch"

    @pytest.mark.asyncio
    async def test_serialization_error_writes_nothing(
        self,
        mock_backup_service: BackupService,
        mock_collection_repository: AsyncMock,
        test_settings,
    ) -> None:
        """A record that cannot be encoded aborts the export before any file exists."""
        # Given: a value JSON cannot represent
        mock_collection_repository.store[Collection.STATIONERY] = [
            {"id": "s1", "rate": float("nan")}
        ]

        # When / Then
        with pytest.raises(BackupSerializationError):
            await mock_backup_service.export_backup()

        backup_dir = Path(test_settings.backup_dir)
        assert not backup_dir.exists() or list(backup_dir.iterdir()) == []
        assert await mock_backup_service.get_history() == []

    @pytest.mark.asyncio
    async def test_export_rejects_path_traversal(self, backup_service: BackupService) -> None:
        """Output directories outside the allowed bases are refused."""
        with pytest.raises(ValueError, match="traversal"):
            await backup_service.export_backup(output_dir="../../etc")

        with pytest.raises(ValueError, match="outside allowed"):
            await backup_service.export_backup(output_dir="/definitely/not/allowed")

    @pytest.mark.asyncio
    async def test_export_updates_history_and_last_backup(
        self, backup_service: BackupService, populated_store: dict
    ) -> None:
        """Each export is recorded with its checksum."""
        result = await backup_service.export_backup(description="Month end")

        history = await backup_service.get_history()
        assert len(history) == 1
        assert history[0].name == result.file_name
        assert history[0].checksum == result.checksum
        assert history[0].size_bytes == result.file_size_bytes
        assert history[0].description == "Month end"
        assert history[0].type == BackupType.MANUAL

        last = await backup_service.get_last_backup_date()
        assert last == result.exported_at

    @pytest.mark.asyncio
    async def test_exports_in_same_second_keep_both_files(
        self,
        backup_service: BackupService,
        collection_repository: CollectionRepository,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A second export within the same second gets its own file and history id."""

        class FrozenDatetime(datetime):
            @classmethod
            def now(cls, tz=None):
                frozen = datetime(2026, 10, 19, 12, 0, 0)
                return frozen.replace(tzinfo=tz) if tz else frozen

        monkeypatch.setattr(backup_service_module, "datetime", FrozenDatetime)

        # Given
        await collection_repository.insert_batch(Collection.STATIONERY, [{"id": "s1", "stock": 1}])
        first = await backup_service.export_backup()
        await collection_repository.insert_batch(Collection.STATIONERY, [{"id": "s2", "stock": 2}])

        # When
        second = await backup_service.export_backup()

        # Then
        assert first.file_name == "point-art-hub-backup-2026-10-19-12-00-00.json"
        assert second.file_name == "point-art-hub-backup-2026-10-19-12-00-00-1.json"
        first_doc = json.loads(Path(first.file_path).read_text(encoding="utf-8"))
        second_doc = json.loads(Path(second.file_path).read_text(encoding="utf-8"))
        assert len(first_doc["data"]["stationery"]) == 1
        assert len(second_doc["data"]["stationery"]) == 2

        history = await backup_service.get_history()
        assert {entry.id for entry in history} == {first.backup_id, second.backup_id}
        assert first.backup_id != second.backup_id

        assert await backup_service.remove_from_history(first.backup_id)
        remaining = await backup_service.get_history()
        assert [entry.id for entry in remaining] == [second.backup_id]


class TestFileNames:
    """Test backup file naming."""

    def test_manual_filename(self, backup_service: BackupService) -> None:
        """Manual backups are named by creation time."""
        name = backup_service.generate_backup_filename(
            BackupType.MANUAL, datetime(2026, 10, 19, 14, 30, 5)
        )
        assert name == "point-art-hub-backup-2026-10-19-14-30-05.json"

    def test_automatic_filename(self, backup_service: BackupService) -> None:
        """Automatic backups carry their own prefix."""
        name = backup_service.generate_backup_filename(
            BackupType.AUTOMATIC, datetime(2026, 1, 2, 3, 4, 5)
        )
        assert name == "point-art-hub-automatic-backup-2026-01-02-03-04-05.json"

    def test_format_size(self) -> None:
        """Sizes below one megabyte are shown in KB."""
        assert format_size(2048) == "2.0 KB"
        assert format_size(3 * 1024 * 1024) == "3.00 MB"


class TestRestore:
    """Test restoring backup files."""

    @pytest.mark.asyncio
    async def test_round_trip(
        self,
        backup_service: BackupService,
        collection_repository: CollectionRepository,
        populated_store: dict[Collection, list[dict[str, Any]]],
    ) -> None:
        """Export then restore into a changed store reproduces the original records."""
        # Given: a backup, then the data changes
        exported = await backup_service.export_backup()
        await collection_repository.delete_all(Collection.STATIONERY)
        await collection_repository.insert_batch(
            Collection.STATIONERY, [{"id": "new", "item": "Stapler", "stock": 9}]
        )
        await collection_repository.delete_all(Collection.CUSTOMERS)

        # When
        result = await backup_service.restore_from_file(
            exported.file_path, RESTORE_CONFIRMATION_PHRASE
        )

        # Then
        for collection, records in populated_store.items():
            assert await collection_repository.select_all(collection) == records
        assert result.restored_records == 7
        assert result.collections_touched == 4
        assert result.failures == []
        assert not result.partial

    @pytest.mark.asyncio
    async def test_empty_collection_is_left_untouched(
        self,
        backup_service: BackupService,
        collection_repository: CollectionRepository,
        populated_store: dict[Collection, list[dict[str, Any]]],
        tmp_path: Path,
    ) -> None:
        """An empty list in the backup does not clear the collection."""
        # Given
        path = write_backup(
            tmp_path / "partial.json",
            backup_document({"stationery": [], "gift_store": [{"id": "g9", "quantity": 1}]}),
        )

        # When
        result = await backup_service.restore_from_file(path, RESTORE_CONFIRMATION_PHRASE)

        # Then
        assert await collection_repository.select_all(Collection.STATIONERY) == (
            populated_store[Collection.STATIONERY]
        )
        assert await collection_repository.select_all(Collection.GIFT_STORE) == [
            {"id": "g9", "quantity": 1}
        ]
        assert result.collections_touched == 1

    @pytest.mark.asyncio
    async def test_wrong_confirmation_cancels(
        self,
        backup_service: BackupService,
        collection_repository: CollectionRepository,
        populated_store: dict,
        tmp_path: Path,
    ) -> None:
        """Anything but the exact phrase cancels without modifying data."""
        path = write_backup(
            tmp_path / "backup.json", backup_document({"stationery": [{"id": "x"}]})
        )

        for confirmation in [None, "", "restore backup", "RESTORE BACKUP ", "RESTORE"]:
            with pytest.raises(RestoreCancelledError):
                await backup_service.restore_from_file(path, confirmation)

        assert await collection_repository.count(Collection.STATIONERY) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content",
        [
            "{not json",
            json.dumps({"data": {"stationery": []}}),
            json.dumps({"metadata": {"version": "1.0.0"}}),
            json.dumps(backup_document({"stationery": [{"id": "1"}], "sales": [{"id": "2"}]})),
            json.dumps(backup_document({"stationery": {"id": "1"}})),
            json.dumps(backup_document({"stationery": ["not-a-record"]})),
            json.dumps([1, 2, 3]),
        ],
    )
    async def test_invalid_format_performs_no_writes(
        self,
        mock_backup_service: BackupService,
        mock_collection_repository: AsyncMock,
        tmp_path: Path,
        content: str,
    ) -> None:
        """Malformed documents are rejected before any delete or insert."""
        path = tmp_path / "bad.json"
        path.write_text(content, encoding="utf-8")

        with pytest.raises(BackupFormatError):
            await mock_backup_service.restore_from_file(str(path), RESTORE_CONFIRMATION_PHRASE)

        mock_collection_repository.delete_all.assert_not_called()
        mock_collection_repository.insert_batch.assert_not_called()

    @pytest.mark.asyncio
    async def test_partial_failure_is_not_rolled_back(
        self,
        mock_backup_service: BackupService,
        mock_collection_repository: AsyncMock,
        tmp_path: Path,
    ) -> None:
        """A failed delete skips that collection; others are still replaced."""
        # Given: gift_store cannot be cleared
        store = mock_collection_repository.store
        store[Collection.STATIONERY] = [{"id": "old-s"}]
        store[Collection.GIFT_STORE] = [{"id": "old-g"}]
        original_delete = mock_collection_repository.delete_all.side_effect

        async def failing_delete(collection: Collection) -> int:
            if collection == Collection.GIFT_STORE:
                raise RuntimeError("row level security violation")
            return await original_delete(collection)

        mock_collection_repository.delete_all.side_effect = failing_delete

        path = write_backup(
            tmp_path / "backup.json",
            backup_document(
                {
                    "gift_store": [{"id": "new-g"}],
                    "stationery": [{"id": "new-s"}],
                    "customers": [{"id": "new-c"}],
                }
            ),
        )

        # When
        result = await mock_backup_service.restore_from_file(path, RESTORE_CONFIRMATION_PHRASE)

        # Then
        assert store[Collection.STATIONERY] == [{"id": "new-s"}]
        assert store[Collection.CUSTOMERS] == [{"id": "new-c"}]
        assert store[Collection.GIFT_STORE] == [{"id": "old-g"}]
        assert result.partial
        assert result.collections_touched == 2
        assert result.restored_records == 2
        assert len(result.failures) == 1
        assert result.failures[0].collection == Collection.GIFT_STORE
        assert result.failures[0].stage == "delete"

    @pytest.mark.asyncio
    async def test_failed_batch_does_not_stop_later_batches(
        self,
        mock_backup_service: BackupService,
        mock_collection_repository: AsyncMock,
        tmp_path: Path,
    ) -> None:
        """Records are inserted in batches; a failing batch is skipped."""
        # Given: batch size 2, the second batch fails
        original_insert = mock_collection_repository.insert_batch.side_effect

        async def failing_insert(collection: Collection, records: list[dict]) -> int:
            if records[0]["id"] == "3":
                raise RuntimeError("duplicate key")
            return await original_insert(collection, records)

        mock_collection_repository.insert_batch.side_effect = failing_insert
        records = [{"id": str(i)} for i in range(1, 6)]
        path = write_backup(tmp_path / "backup.json", backup_document({"customers": records}))

        # When
        result = await mock_backup_service.restore_from_file(path, RESTORE_CONFIRMATION_PHRASE)

        # Then
        assert mock_collection_repository.store[Collection.CUSTOMERS] == [
            {"id": "1"},
            {"id": "2"},
            {"id": "5"},
        ]
        assert result.restored_records == 3
        assert result.counts == {"customers": 3}
        assert result.failures[0].stage == "insert"
        assert result.failures[0].batch_start == 2

    @pytest.mark.asyncio
    async def test_restore_uses_canonical_order(
        self,
        mock_backup_service: BackupService,
        mock_collection_repository: AsyncMock,
        tmp_path: Path,
    ) -> None:
        """Collections are restored in canonical order regardless of file order."""
        path = write_backup(
            tmp_path / "backup.json",
            backup_document(
                {
                    "profiles": [{"id": "p"}],
                    "customers": [{"id": "c"}],
                    "stationery": [{"id": "s"}],
                }
            ),
        )

        await mock_backup_service.restore_from_file(path, RESTORE_CONFIRMATION_PHRASE)

        deleted = [call.args[0] for call in mock_collection_repository.delete_all.call_args_list]
        assert deleted == [Collection.STATIONERY, Collection.CUSTOMERS, Collection.PROFILES]

    @pytest.mark.asyncio
    async def test_restore_progress_is_monotonic(
        self,
        mock_backup_service: BackupService,
        tmp_path: Path,
    ) -> None:
        """Progress rises once per collection in the file and ends at 100."""
        path = write_backup(
            tmp_path / "backup.json",
            backup_document(
                {"stationery": [{"id": "s"}], "gift_store": [], "invoices": [{"id": "i"}]}
            ),
        )
        progress: list[float] = []

        await mock_backup_service.restore_from_file(
            path, RESTORE_CONFIRMATION_PHRASE, progress=progress.append
        )

        assert len(progress) == 3
        assert progress == sorted(progress)
        assert progress[-1] == 100

    @pytest.mark.asyncio
    async def test_restore_invalidates_inventory_cache(
        self,
        backup_service: BackupService,
        kv_repository: KeyValueRepository,
        tmp_path: Path,
    ) -> None:
        """Cached inventory lists are dropped for restored collections."""
        await kv_repository.set("stationery_items", [{"id": "stale"}])
        await kv_repository.set("gift_store_items", [{"id": "stale"}])
        path = write_backup(
            tmp_path / "backup.json", backup_document({"stationery": [{"id": "s"}]})
        )

        await backup_service.restore_from_file(path, RESTORE_CONFIRMATION_PHRASE)

        assert await kv_repository.get("stationery_items") is None
        assert await kv_repository.get("gift_store_items") == [{"id": "stale"}]

    @pytest.mark.asyncio
    async def test_missing_file(self, backup_service: BackupService, tmp_path: Path) -> None:
        """A missing file is an I/O error."""
        with pytest.raises(OSError, match="not found"):
            await backup_service.restore_from_file(
                str(tmp_path / "missing.json"), RESTORE_CONFIRMATION_PHRASE
            )


class TestValidation:
    """Test backup document validation."""

    def test_valid_document(self, backup_service: BackupService) -> None:
        """A complete document has no errors or warnings."""
        validation = backup_service.validate_backup_document(
            backup_document({"stationery": [], "gift_store": [], "stationery_sales": []})
        )

        assert validation.is_valid
        assert validation.errors == []
        assert validation.warnings == []

    def test_missing_critical_collections_is_a_warning(self, backup_service: BackupService) -> None:
        """Absent critical collections warn without invalidating the file."""
        validation = backup_service.validate_backup_document(
            backup_document({"customers": [{"id": "c1"}]})
        )

        assert validation.is_valid
        assert any("stationery" in w and "gift_store" in w for w in validation.warnings)

    def test_unknown_version_is_a_warning(self, backup_service: BackupService) -> None:
        """A newer format version warns."""
        document = backup_document({"stationery": [], "gift_store": [], "stationery_sales": []})
        document["metadata"]["version"] = "2.0.0"

        validation = backup_service.validate_backup_document(document)

        assert validation.is_valid
        assert validation.warnings == ["Unknown backup version: 2.0.0"]

    @pytest.mark.asyncio
    async def test_validate_file(self, backup_service: BackupService, tmp_path: Path) -> None:
        """Unparseable files are reported invalid rather than raising."""
        path = tmp_path / "broken.json"
        path.write_text("{", encoding="utf-8")

        validation = await backup_service.validate_file(str(path))

        assert not validation.is_valid
        assert validation.errors == ["Failed to parse backup file"]

    def test_parse_snapshot_collects_errors(self, backup_service: BackupService) -> None:
        """Format errors carry every problem found."""
        raw = json.dumps({"data": {"sales": []}})

        with pytest.raises(BackupFormatError) as exc_info:
            backup_service.parse_snapshot(raw)

        assert "Missing backup metadata" in exc_info.value.errors
        assert "Unknown collection: sales" in exc_info.value.errors


class TestHistoryAndSettings:
    """Test backup history, settings and scheduling."""

    @pytest.mark.asyncio
    async def test_default_settings(self, backup_service: BackupService) -> None:
        """Defaults apply when nothing is stored."""
        settings = await backup_service.get_backup_settings()

        assert settings == BackupSettings()
        assert settings.auto_backup_enabled is False
        assert settings.backup_frequency == BackupFrequency.WEEKLY
        assert settings.max_backups == 10
        assert settings.backup_time == "02:00"

    @pytest.mark.asyncio
    async def test_update_settings_merges(self, backup_service: BackupService) -> None:
        """Partial updates keep the other fields."""
        await backup_service.update_backup_settings({"autoBackupEnabled": True})
        settings = await backup_service.update_backup_settings({"backup_frequency": "daily"})

        assert settings.auto_backup_enabled is True
        assert settings.backup_frequency == BackupFrequency.DAILY
        assert (await backup_service.get_backup_settings()) == settings

    @pytest.mark.asyncio
    async def test_update_settings_rejects_invalid(self, backup_service: BackupService) -> None:
        """Unknown keys and out-of-range values are rejected."""
        with pytest.raises(ValidationError, match="Unknown"):
            await backup_service.update_backup_settings({"cloudSync": True})
        with pytest.raises(ValidationError):
            await backup_service.update_backup_settings({"backupTime": "25:00"})
        with pytest.raises(ValidationError):
            await backup_service.update_backup_settings({"maxBackups": 0})

    @pytest.mark.asyncio
    async def test_history_is_capped(self, backup_service: BackupService) -> None:
        """History keeps at most max_backups entries, newest first."""
        await backup_service.update_backup_settings({"maxBackups": 2})

        for description in ["first", "second", "third"]:
            await backup_service.export_backup(description=description)

        history = await backup_service.get_history()
        assert [h.description for h in history] == ["third", "second"]

    @pytest.mark.asyncio
    async def test_lowering_limit_trims_history(self, backup_service: BackupService) -> None:
        """Saving a smaller limit trims existing history."""
        for description in ["a", "b", "c"]:
            await backup_service.export_backup(description=description)

        await backup_service.update_backup_settings({"maxBackups": 1})

        history = await backup_service.get_history()
        assert [h.description for h in history] == ["c"]

    @pytest.mark.asyncio
    async def test_remove_from_history(self, backup_service: BackupService) -> None:
        """Entries can be removed by id."""
        await backup_service.export_backup()
        entry = (await backup_service.get_history())[0]

        assert await backup_service.remove_from_history(entry.id) is True
        assert await backup_service.remove_from_history(entry.id) is False
        assert await backup_service.get_history() == []

    @pytest.mark.asyncio
    async def test_backup_due_schedule(self, backup_service: BackupService) -> None:
        """Automatic backups are due by frequency once enabled."""
        now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

        # Disabled: never due
        assert await backup_service.is_backup_due(now) is False

        # Enabled, never run: due
        await backup_service.update_backup_settings({"autoBackupEnabled": True})
        assert await backup_service.is_backup_due(now) is True

        # Weekly: 3 days since last is not due, 7 days is
        await backup_service.mark_auto_backup_completed(now - timedelta(days=3))
        assert await backup_service.is_backup_due(now) is False
        await backup_service.mark_auto_backup_completed(now - timedelta(days=7))
        assert await backup_service.is_backup_due(now) is True

        # Daily: one day is enough
        await backup_service.update_backup_settings({"backupFrequency": "daily"})
        await backup_service.mark_auto_backup_completed(now - timedelta(days=1))
        assert await backup_service.is_backup_due(now) is True

    @pytest.mark.asyncio
    async def test_automatic_export_marks_completion(self, backup_service: BackupService) -> None:
        """An automatic export resets the schedule."""
        await backup_service.update_backup_settings({"autoBackupEnabled": True})

        result = await backup_service.export_backup(backup_type=BackupType.AUTOMATIC)

        assert result.file_name.startswith("point-art-hub-automatic-backup-")
        assert await backup_service.is_backup_due() is False
