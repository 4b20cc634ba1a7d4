"""Service for full-system backup and restore."""

import asyncio
import hashlib
import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os
from pydantic import ValidationError as PydanticValidationError

from point_art_hub.db.repositories.collection_repository import CollectionRepository
from point_art_hub.db.repositories.kv_repository import KeyValueRepository
from point_art_hub.exceptions import (
    BackupFormatError,
    BackupSerializationError,
    RestoreCancelledError,
    ValidationError,
)
from point_art_hub.models.backup import (
    BACKUP_FORMAT_VERSION,
    RESTORE_CONFIRMATION_PHRASE,
    BackupFrequency,
    BackupHistoryEntry,
    BackupSettings,
    BackupSnapshot,
    BackupType,
    BackupValidation,
    CollectionFailure,
    ExportResult,
    RestorePayload,
    RestoreResult,
)
from point_art_hub.models.collection import (
    BACKUP_COLLECTIONS,
    CACHE_KEYS,
    CRITICAL_COLLECTIONS,
    Collection,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

FREQUENCY_DAYS = {
    BackupFrequency.DAILY: 1,
    BackupFrequency.WEEKLY: 7,
    BackupFrequency.MONTHLY: 30,
}


def format_size(size_bytes: int) -> str:
    """Human readable file size: KB below one megabyte, MB otherwise."""
    size_mb = size_bytes / (1024 * 1024)
    if size_mb < 1:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_mb:.2f} MB"


class BackupService:
    """Service for exporting collections to a snapshot file and restoring them."""

    BATCH_SIZE = 100
    FILE_PREFIX = "point-art-hub"

    SETTINGS_KEY = "backup_settings"
    HISTORY_KEY = "backup_history"
    LAST_BACKUP_KEY = "last_backup_date"
    LAST_AUTO_BACKUP_KEY = "last_auto_backup_date"

    def __init__(
        self,
        collection_repository: CollectionRepository,
        kv_repository: KeyValueRepository,
        backup_dir: str | None = None,
        batch_size: int | None = None,
        allowed_paths: list[Path] | None = None,
    ) -> None:
        """Initialize backup service.

        Args:
            collection_repository: Datastore access for the backed-up collections
            kv_repository: Local key-value storage for history and settings
            backup_dir: Default output directory for exported files
            batch_size: Records per insert during restore
            allowed_paths: Additional allowed base directories for path validation
        """
        self.collection_repository = collection_repository
        self.kv_repository = kv_repository
        self.backup_dir = Path(backup_dir) if backup_dir else Path.cwd() / "backups"
        self.batch_size = batch_size or self.BATCH_SIZE
        self.allowed_paths = [p.resolve() for p in (allowed_paths or [])]
        self._export_lock = asyncio.Lock()

    def _validate_safe_path(self, file_path: str | Path) -> Path:
        """Validate that a path stays inside the backup dir, cwd or an allowed path.

        Args:
            file_path: User-provided file or directory path

        Returns:
            Resolved absolute Path

        Raises:
            ValueError: If path is outside the allowed directories or uses traversal
        """
        if ".." in Path(file_path).parts:
            raise ValueError(f"Path traversal detected in {file_path}")

        path_resolved = Path(file_path).resolve()

        allowed_bases = [Path.cwd().resolve(), self.backup_dir.resolve(), *self.allowed_paths]
        for base in allowed_bases:
            if path_resolved.is_relative_to(base):
                return path_resolved

        raise ValueError(f"Path {file_path} is outside allowed directory")

    def generate_backup_filename(
        self, backup_type: BackupType = BackupType.MANUAL, now: datetime | None = None
    ) -> str:
        """Build the file name for a backup created at `now`."""
        timestamp = (now or datetime.now()).strftime("%Y-%m-%d-%H-%M-%S")
        if backup_type == BackupType.AUTOMATIC:
            return f"{self.FILE_PREFIX}-automatic-backup-{timestamp}.json"
        return f"{self.FILE_PREFIX}-backup-{timestamp}.json"

    async def _reserve_backup_name(
        self, target_dir: Path, backup_type: BackupType, now: datetime
    ) -> str:
        """File stem for a new backup that neither an existing file nor a history entry uses.

        Exports within the same second get a numeric suffix
        (`...-12-00-00-1.json`); the stem doubles as the history id.
        """
        stem = self.generate_backup_filename(backup_type, now).removesuffix(".json")
        taken = {entry.id for entry in await self.get_history()}

        candidate, counter = stem, 0
        while candidate in taken or await aiofiles.os.path.exists(target_dir / f"{candidate}.json"):
            counter += 1
            candidate = f"{stem}-{counter}"
        return candidate

    async def create_snapshot(
        self,
        description: str | None = None,
        progress: ProgressCallback | None = None,
    ) -> tuple[BackupSnapshot, list[CollectionFailure]]:
        """Read every backed-up collection into a snapshot.

        A collection that cannot be read is stored as an empty list and
        reported in the returned failures; the snapshot is still produced.

        Args:
            description: Human readable description
            progress: Called with the completed percentage after each collection

        Returns:
            Tuple of (snapshot, per-collection failures)
        """
        data: dict[Collection, list[dict[str, Any]]] = {}
        failures: list[CollectionFailure] = []
        total = len(BACKUP_COLLECTIONS)

        for index, collection in enumerate(BACKUP_COLLECTIONS, start=1):
            try:
                data[collection] = await self.collection_repository.select_all(collection)
            except Exception as e:
                logger.warning("Could not back up collection %s: %s", collection.value, e)
                data[collection] = []
                failures.append(
                    CollectionFailure(collection=collection, stage="fetch", error=str(e))
                )

            if progress:
                progress(index / total * 100)

        if not description:
            description = f"Backup created on {datetime.now():%b %d, %Y, %I:%M:%S %p}"

        return BackupSnapshot.build(description, data), failures

    def serialize_snapshot(self, snapshot: BackupSnapshot) -> bytes:
        """Serialize a snapshot to UTF-8 JSON.

        Raises:
            BackupSerializationError: If any record cannot be represented as JSON
        """
        try:
            text = json.dumps(snapshot.to_document(), indent=2, ensure_ascii=False, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise BackupSerializationError(f"Failed to serialize backup: {e}") from e
        return text.encode("utf-8")

    async def export_backup(
        self,
        output_dir: str | None = None,
        description: str | None = None,
        progress: ProgressCallback | None = None,
        backup_type: BackupType = BackupType.MANUAL,
    ) -> ExportResult:
        """Create a snapshot and write it to a timestamped JSON file.

        The document is fully serialized before anything touches the disk and
        is written through a temporary file, so a failed export leaves no file.

        Args:
            output_dir: Directory for the file (default: configured backup dir)
            description: Human readable description
            progress: Progress callback, see `create_snapshot`
            backup_type: Manual or automatic

        Returns:
            ExportResult with file details and per-collection counts

        Raises:
            BackupSerializationError: If the snapshot cannot be serialized
            ValueError: If the output directory is not allowed
            OSError: If the file cannot be written
        """
        target_dir = self._validate_safe_path(output_dir or self.backup_dir)

        snapshot, failures = await self.create_snapshot(description, progress)
        payload = self.serialize_snapshot(snapshot)

        checksum = hashlib.sha256(payload).hexdigest()

        # An exported file is never overwritten
        async with self._export_lock:
            tmp_path: Path | None = None
            try:
                await aiofiles.os.makedirs(target_dir, exist_ok=True)
                backup_id = await self._reserve_backup_name(target_dir, backup_type, datetime.now())
                file_name = f"{backup_id}.json"
                file_path = target_dir / file_name
                tmp_path = target_dir / f".{file_name}.part"

                async with aiofiles.open(tmp_path, "wb") as f:
                    await f.write(payload)
                await aiofiles.os.replace(tmp_path, file_path)
            except OSError as e:
                if tmp_path is not None and await aiofiles.os.path.exists(tmp_path):
                    await aiofiles.os.remove(tmp_path)
                raise OSError(f"Failed to write backup file: {e}") from e

            exported_at = datetime.now(timezone.utc)
            await self._save_to_history(
                BackupHistoryEntry(
                    id=backup_id,
                    name=file_name,
                    created_at=exported_at,
                    size=format_size(len(payload)),
                    size_bytes=len(payload),
                    tables=snapshot.metadata.tables,
                    version=snapshot.metadata.version,
                    description=snapshot.metadata.description,
                    type=backup_type,
                    checksum=checksum,
                )
            )

        await self.kv_repository.set(self.LAST_BACKUP_KEY, exported_at.isoformat())
        if backup_type == BackupType.AUTOMATIC:
            await self.mark_auto_backup_completed(exported_at)

        logger.info(
            "Backup written to %s (%d records across %d collections)",
            file_path,
            snapshot.metadata.total_records,
            len(snapshot.metadata.tables),
        )

        return ExportResult(
            backup_id=backup_id,
            exported_at=exported_at,
            file_path=str(file_path),
            file_name=file_name,
            file_size_bytes=len(payload),
            checksum=checksum,
            counts={c.value: len(records) for c, records in snapshot.data.items()},
            total_records=snapshot.metadata.total_records,
            failures=failures,
        )

    def validate_backup_document(self, document: Any) -> BackupValidation:
        """Check the structure of a decoded backup document.

        Missing critical collections are reported as warnings only.
        """
        errors: list[str] = []
        warnings: list[str] = []

        if not document or not isinstance(document, dict):
            return BackupValidation(is_valid=False, errors=["Backup file is empty or corrupted"])

        metadata = document.get("metadata")
        if not isinstance(metadata, dict):
            errors.append("Missing backup metadata")
        else:
            if not metadata.get("created_at"):
                warnings.append("Missing creation date")
            if not metadata.get("version"):
                warnings.append("Missing version information")
            elif metadata["version"] != BACKUP_FORMAT_VERSION:
                warnings.append(f"Unknown backup version: {metadata['version']}")
            if "tables" in metadata and not isinstance(metadata["tables"], list):
                warnings.append("Invalid tables list")

        data = document.get("data")
        if not isinstance(data, dict):
            errors.append("Missing or invalid backup data")
        else:
            known = {c.value for c in Collection}
            for name, records in data.items():
                if name not in known:
                    errors.append(f"Unknown collection: {name}")
                elif not isinstance(records, list):
                    errors.append(f"Invalid data format for collection: {name}")
                elif not all(isinstance(r, dict) for r in records):
                    errors.append(f"Non-object record in collection: {name}")
            missing = [c.value for c in CRITICAL_COLLECTIONS if c.value not in data]
            if missing:
                warnings.append(f"Missing critical collections: {', '.join(missing)}")

        return BackupValidation(is_valid=not errors, errors=errors, warnings=warnings)

    def parse_snapshot(self, raw: bytes | str) -> RestorePayload:
        """Decode and validate a backup document for restore.

        Raises:
            BackupFormatError: If the document is not valid JSON, lacks
                `metadata` or `data`, or names unknown collections
        """
        try:
            document = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise BackupFormatError(f"Failed to parse backup file: {e}") from e

        validation = self.validate_backup_document(document)
        if not validation.is_valid:
            raise BackupFormatError(
                f"Invalid backup file format: {'; '.join(validation.errors)}",
                errors=validation.errors,
            )

        try:
            return RestorePayload.model_validate(
                {"metadata": document["metadata"], "data": document["data"]}
            )
        except PydanticValidationError as e:
            raise BackupFormatError(f"Invalid backup file format: {e}") from e

    async def validate_file(self, input_path: str) -> BackupValidation:
        """Check a backup file without restoring it.

        Raises:
            ValueError: If the path is not allowed
            OSError: If the file cannot be read
        """
        raw = await self._read_file(input_path)
        try:
            document = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError):
            return BackupValidation(is_valid=False, errors=["Failed to parse backup file"])
        return self.validate_backup_document(document)

    async def _read_file(self, input_path: str) -> bytes:
        path = self._validate_safe_path(input_path)
        if not path.exists():
            raise OSError(f"Backup file not found: {input_path}")
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise OSError(f"Failed to read backup file: {e}") from e

    def check_confirmation(self, confirmation: str | None) -> None:
        """Enforce the typed confirmation gate for destructive restores.

        Raises:
            RestoreCancelledError: Unless `confirmation` is exactly the phrase
        """
        if confirmation != RESTORE_CONFIRMATION_PHRASE:
            raise RestoreCancelledError(
                f'Restore cancelled: type "{RESTORE_CONFIRMATION_PHRASE}" to confirm'
            )

    async def restore_snapshot(
        self,
        payload: RestorePayload,
        confirmation: str | None,
        progress: ProgressCallback | None = None,
    ) -> RestoreResult:
        """Replace collection contents with the snapshot's records.

        Collections are processed one at a time in canonical order. Empty
        record lists leave the collection untouched. A failed delete skips
        the collection; a failed batch is skipped while the remaining batches
        continue. Nothing is rolled back, so a partial failure can leave
        some collections replaced and others not; see `RestoreResult.failures`.

        Args:
            payload: Parsed backup document
            confirmation: Must equal the restore confirmation phrase
            progress: Called with the completed percentage after each collection

        Returns:
            RestoreResult with restored counts and failures

        Raises:
            RestoreCancelledError: If the confirmation phrase is wrong
        """
        self.check_confirmation(confirmation)

        collections = payload.ordered_collections()
        counts: dict[str, int] = {}
        failures: list[CollectionFailure] = []
        touched: list[Collection] = []
        restored = 0

        for index, collection in enumerate(collections, start=1):
            records = payload.data[collection]
            if records:
                try:
                    await self.collection_repository.delete_all(collection)
                except Exception as e:
                    logger.warning("Could not clear collection %s, skipping: %s", collection.value, e)
                    failures.append(
                        CollectionFailure(collection=collection, stage="delete", error=str(e))
                    )
                else:
                    touched.append(collection)
                    counts[collection.value] = 0
                    for start in range(0, len(records), self.batch_size):
                        batch = records[start : start + self.batch_size]
                        try:
                            inserted = await self.collection_repository.insert_batch(collection, batch)
                        except Exception as e:
                            logger.error(
                                "Error restoring %s batch at %d: %s", collection.value, start, e
                            )
                            failures.append(
                                CollectionFailure(
                                    collection=collection,
                                    stage="insert",
                                    error=str(e),
                                    batch_start=start,
                                )
                            )
                            continue
                        counts[collection.value] += inserted
                        restored += inserted

            if progress:
                progress(index / len(collections) * 100)

        if progress and not collections:
            progress(100.0)

        await self._invalidate_caches(touched)

        logger.info(
            "Restored %d records across %d collections (%d failures)",
            restored,
            len(touched),
            len(failures),
        )

        return RestoreResult(
            restored_at=datetime.now(timezone.utc),
            restored_records=restored,
            collections_touched=len(touched),
            counts=counts,
            failures=failures,
        )

    async def restore_from_file(
        self,
        input_path: str,
        confirmation: str | None,
        progress: ProgressCallback | None = None,
    ) -> RestoreResult:
        """Read a backup file and restore it.

        The confirmation gate and format validation both run before any
        collection is modified.

        Raises:
            RestoreCancelledError: If the confirmation phrase is wrong
            BackupFormatError: If the file is not a valid backup
            ValueError: If the path is not allowed
            OSError: If the file cannot be read
        """
        self.check_confirmation(confirmation)
        payload = self.parse_snapshot(await self._read_file(input_path))
        return await self.restore_snapshot(payload, confirmation, progress)

    async def _invalidate_caches(self, collections: list[Collection]) -> None:
        """Drop cached copies of restored collections."""
        for collection in collections:
            key = CACHE_KEYS.get(collection)
            if key is None:
                continue
            try:
                await self.kv_repository.remove(key)
            except Exception as e:
                logger.warning("Could not invalidate cache %s: %s", key, e)

    async def get_backup_settings(self) -> BackupSettings:
        """Load backup settings, falling back to defaults for absent fields."""
        try:
            stored = await self.kv_repository.get(self.SETTINGS_KEY, {})
            return BackupSettings.model_validate(stored or {})
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.warning("Ignoring unreadable backup settings: %s", e)
            return BackupSettings()

    async def save_backup_settings(self, settings: BackupSettings) -> BackupSettings:
        """Persist backup settings and trim history to the new limit."""
        await self.kv_repository.set(
            self.SETTINGS_KEY, settings.model_dump(mode="json", by_alias=True)
        )
        await self.cleanup_history()
        return settings

    async def update_backup_settings(self, changes: dict[str, Any]) -> BackupSettings:
        """Merge `changes` (camelCase or snake_case keys) into the stored settings.

        Raises:
            ValidationError: If a key is unknown or a value is invalid
        """
        merged = (await self.get_backup_settings()).model_dump(by_alias=True)
        aliases = {name: field.alias for name, field in BackupSettings.model_fields.items()}
        for key, value in changes.items():
            name = aliases.get(key, key)
            if name not in merged:
                raise ValidationError(f"Unknown backup setting: {key}")
            merged[name] = value
        try:
            updated = BackupSettings.model_validate(merged)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid backup settings: {e}") from e
        return await self.save_backup_settings(updated)

    async def get_history(self) -> list[BackupHistoryEntry]:
        """Backup history, newest first."""
        try:
            stored = await self.kv_repository.get(self.HISTORY_KEY, [])
            return [BackupHistoryEntry.model_validate(entry) for entry in stored or []]
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.warning("Ignoring unreadable backup history: %s", e)
            return []

    async def _write_history(self, history: list[BackupHistoryEntry]) -> None:
        await self.kv_repository.set(
            self.HISTORY_KEY, [entry.model_dump(mode="json") for entry in history]
        )

    async def _save_to_history(self, entry: BackupHistoryEntry) -> None:
        settings = await self.get_backup_settings()
        history = [entry, *await self.get_history()][: settings.max_backups]
        await self._write_history(history)

    async def remove_from_history(self, backup_id: str) -> bool:
        """Remove a history entry by id.

        Returns:
            True if an entry was removed
        """
        history = await self.get_history()
        remaining = [entry for entry in history if entry.id != backup_id]
        if len(remaining) == len(history):
            return False
        await self._write_history(remaining)
        return True

    async def cleanup_history(self) -> int:
        """Trim history to `max_backups` entries.

        Returns:
            Number of removed entries
        """
        settings = await self.get_backup_settings()
        history = await self.get_history()
        if len(history) <= settings.max_backups:
            return 0
        await self._write_history(history[: settings.max_backups])
        return len(history) - settings.max_backups

    async def get_last_backup_date(self) -> datetime | None:
        """When the last backup file was written, if ever."""
        value = await self.kv_repository.get(self.LAST_BACKUP_KEY)
        return datetime.fromisoformat(value) if value else None

    async def is_backup_due(self, now: datetime | None = None) -> bool:
        """Whether an automatic backup should run now."""
        settings = await self.get_backup_settings()
        if not settings.auto_backup_enabled:
            return False

        last = await self.kv_repository.get(self.LAST_AUTO_BACKUP_KEY)
        if not last:
            return True

        now = now or datetime.now(timezone.utc)
        elapsed_days = (now - datetime.fromisoformat(last)).days
        return elapsed_days >= FREQUENCY_DAYS[settings.backup_frequency]

    async def mark_auto_backup_completed(self, when: datetime | None = None) -> None:
        """Record the completion time of an automatic backup."""
        when = when or datetime.now(timezone.utc)
        await self.kv_repository.set(self.LAST_AUTO_BACKUP_KEY, when.isoformat())
