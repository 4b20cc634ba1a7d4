"""Collection identifiers and typed record shapes."""

import datetime as dt
from abc import abstractmethod
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class Collection(str, Enum):
    """Known collections in the datastore.

    Declaration order is the canonical backup and restore order.
    """

    STATIONERY = "stationery"
    GIFT_STORE = "gift_store"
    EMBROIDERY = "embroidery"
    MACHINES = "machines"
    ART_SERVICES = "art_services"
    STATIONERY_SALES = "stationery_sales"
    GIFT_DAILY_SALES = "gift_daily_sales"
    CUSTOMERS = "customers"
    INVOICES = "invoices"
    PROFILES = "profiles"


BACKUP_COLLECTIONS: tuple[Collection, ...] = tuple(Collection)

CRITICAL_COLLECTIONS: tuple[Collection, ...] = (
    Collection.STATIONERY,
    Collection.GIFT_STORE,
    Collection.STATIONERY_SALES,
)

SALES_COLLECTIONS: tuple[Collection, ...] = (
    Collection.STATIONERY_SALES,
    Collection.GIFT_DAILY_SALES,
)

# Client-side cache entries invalidated when a collection is restored
CACHE_KEYS: dict[Collection, str] = {
    Collection.STATIONERY: "stationery_items",
    Collection.GIFT_STORE: "gift_store_items",
}


def canonical_order(names: Any) -> list[Collection]:
    """Sort collection identifiers into canonical order, dropping duplicates."""
    present = {Collection(n) for n in names}
    return [c for c in BACKUP_COLLECTIONS if c in present]


class InventoryItem(BaseModel):
    """Inventory record fields read by stock evaluation."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    item_name: str = Field(default="", validation_alias=AliasChoices("item", "item_name"))
    category: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return value if isinstance(value, str) else str(value)

    @property
    @abstractmethod
    def current_stock(self) -> float:
        """Units on hand."""


class StationeryItem(InventoryItem):
    """Stationery record; `stock` holds units on hand."""

    stock: float = Field(default=0, validation_alias=AliasChoices("stock", "stock_quantity"))

    @field_validator("stock", mode="before")
    @classmethod
    def _null_stock(cls, value: Any) -> Any:
        return 0 if value is None else value

    @property
    def current_stock(self) -> float:
        return self.stock


class GiftStoreItem(InventoryItem):
    """Gift store record; `quantity` holds units on hand."""

    quantity: float = Field(default=0, validation_alias=AliasChoices("quantity", "stock_quantity"))

    @field_validator("quantity", mode="before")
    @classmethod
    def _null_quantity(cls, value: Any) -> Any:
        return 0 if value is None else value

    @property
    def current_stock(self) -> float:
        return self.quantity


INVENTORY_RECORD_TYPES: dict[Collection, type[InventoryItem]] = {
    Collection.STATIONERY: StationeryItem,
    Collection.GIFT_STORE: GiftStoreItem,
}


class SaleRecord(BaseModel):
    """Sales record fields read by milestone evaluation."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str | None = None
    sale_date: dt.date = Field(validation_alias=AliasChoices("date", "created_at"))
    total_amount: float = 0

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return None if value is None else str(value)

    @field_validator("sale_date", mode="before")
    @classmethod
    def _date_part(cls, value: Any, info: ValidationInfo) -> Any:
        # Timestamps are shifted into the shop timezone before taking the day
        tz = (info.context or {}).get("tz")
        if isinstance(value, str):
            if len(value) <= 10:
                return value
            value = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
        if isinstance(value, dt.datetime):
            if tz is not None and value.tzinfo is not None:
                value = value.astimezone(tz)
            return value.date()
        return value

    @field_validator("total_amount", mode="before")
    @classmethod
    def _null_amount(cls, value: Any) -> Any:
        return 0 if value is None else value
