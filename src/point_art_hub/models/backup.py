"""Backup and restore models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from point_art_hub.models.collection import Collection, canonical_order

BACKUP_FORMAT_VERSION = "1.0.0"
RESTORE_CONFIRMATION_PHRASE = "RESTORE BACKUP"


class BackupType(str, Enum):
    """How a backup was triggered."""

    MANUAL = "manual"
    AUTOMATIC = "automatic"


class BackupFrequency(str, Enum):
    """Automatic backup cadence."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class BackupMetadata(BaseModel):
    """Snapshot header."""

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = BACKUP_FORMAT_VERSION
    description: str = ""
    tables: list[Collection] = Field(default_factory=list)
    total_records: int = Field(default=0, ge=0)


class BackupSnapshot(BaseModel):
    """A complete, immutable backup document.

    `metadata.total_records` always equals the number of records in `data`
    and `metadata.tables` lists every key of `data`.
    """

    model_config = ConfigDict(frozen=True)

    metadata: BackupMetadata
    data: dict[Collection, list[dict[str, Any]]]

    @model_validator(mode="after")
    def validate_invariants(self) -> Self:
        """Check header counts and table list against the payload."""
        total = sum(len(records) for records in self.data.values())
        if self.metadata.total_records != total:
            raise ValueError(
                f"metadata.total_records ({self.metadata.total_records}) "
                f"does not match record count ({total})"
            )
        missing = [c.value for c in self.data if c not in self.metadata.tables]
        if missing:
            raise ValueError(f"metadata.tables is missing: {', '.join(missing)}")
        return self

    @classmethod
    def build(cls, description: str, data: dict[Collection, list[dict[str, Any]]]) -> "BackupSnapshot":
        """Build a snapshot whose header is derived from `data`."""
        tables = canonical_order(data.keys())
        metadata = BackupMetadata(
            description=description,
            tables=tables,
            total_records=sum(len(records) for records in data.values()),
        )
        return cls(metadata=metadata, data={c: data[c] for c in tables})

    def to_document(self) -> dict[str, Any]:
        """Render as the on-disk JSON document."""
        return {
            "metadata": {
                "created_at": self.metadata.created_at.isoformat(),
                "version": self.metadata.version,
                "description": self.metadata.description,
                "tables": [c.value for c in self.metadata.tables],
                "total_records": self.metadata.total_records,
            },
            "data": {c.value: records for c, records in self.data.items()},
        }


class RestorePayload(BaseModel):
    """A parsed backup document accepted for restore.

    Only the presence of `metadata` and `data` is required; the header is
    informational and is not checked against the payload.
    """

    metadata: dict[str, Any]
    data: dict[Collection, list[dict[str, Any]]]

    def ordered_collections(self) -> list[Collection]:
        """Collections to restore, in canonical order."""
        return canonical_order(self.data.keys())

    @property
    def total_records(self) -> int:
        return sum(len(records) for records in self.data.values())


class BackupValidation(BaseModel):
    """Structural check of a backup document."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class CollectionFailure(BaseModel):
    """A per-collection error that did not abort the operation."""

    collection: Collection
    stage: Literal["fetch", "delete", "insert"]
    error: str
    batch_start: int | None = None


class ExportResult(BaseModel):
    """Result of export operation."""

    backup_id: str
    exported_at: datetime
    file_path: str
    file_name: str
    file_size_bytes: int
    checksum: str
    counts: dict[str, int]
    total_records: int
    failures: list[CollectionFailure] = Field(default_factory=list)


class RestoreResult(BaseModel):
    """Result of restore operation."""

    restored_at: datetime
    restored_records: int
    collections_touched: int
    counts: dict[str, int] = Field(default_factory=dict)
    failures: list[CollectionFailure] = Field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failures)


class BackupHistoryEntry(BaseModel):
    """Record of a previously exported backup file."""

    id: str
    name: str
    created_at: datetime
    size: str
    size_bytes: int = 0
    tables: list[Collection] = Field(default_factory=list)
    version: str = BACKUP_FORMAT_VERSION
    description: str = ""
    type: BackupType = BackupType.MANUAL
    checksum: str | None = None


class BackupSettings(BaseModel):
    """Automatic backup preferences (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    auto_backup_enabled: bool = Field(default=False, alias="autoBackupEnabled")
    backup_frequency: BackupFrequency = Field(default=BackupFrequency.WEEKLY, alias="backupFrequency")
    max_backups: int = Field(default=10, ge=1, le=100, alias="maxBackups")
    backup_time: str = Field(default="02:00", pattern=r"^([01]\d|2[0-3]):[0-5]\d$", alias="backupTime")
    include_user_data: bool = Field(default=True, alias="includeUserData")
    compression_enabled: bool = Field(default=True, alias="compressionEnabled")
