import uuid
from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from audit_api.rules.status import AuditStatus, derive_status
from audit_api.rules.status import variance as compute_variance

ItemKey = Tuple[str, str]


def _strip_required(value: str) -> str:
    text = value.strip()
    if not text:
        raise ValueError("must not be blank")
    return text


class AuditItem(BaseModel):
    """
    Reconciled item record: one row per (SKU, location).

    The status is derived from the quantities. A record handed a status that
    disagrees with derive_status() fails validation, so the only way to move
    a record between states is to change its quantities.
    """

    sku: str
    location: str  # partition key in Cosmos DB
    name: str
    category: str
    system_quantity: int = Field(default=0, ge=0)
    physical_quantity: Optional[int] = Field(default=None, ge=0)
    status: AuditStatus = AuditStatus.PENDING
    last_audited: Optional[datetime] = None
    notes: Optional[str] = None
    company_id: Optional[str] = None
    id: Optional[str] = None  # identity code, derived from the composite key
    etag: Optional[str] = Field(default=None, alias="_etag")

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="forbid")

    @field_validator("sku", "location", "name", "category")
    @classmethod
    def check_required_text(cls, value: str) -> str:
        return _strip_required(value)

    @model_validator(mode="before")
    @classmethod
    def fill_status(cls, data):
        if isinstance(data, dict) and data.get("status") is None:
            data = dict(data)
            data["status"] = derive_status(
                data.get("system_quantity") or 0, data.get("physical_quantity")
            )
        return data

    @model_validator(mode="after")
    def check_status_agrees(self):
        expected = derive_status(self.system_quantity, self.physical_quantity)
        if self.status != expected:
            raise ValueError(
                f"status '{self.status.value}' does not agree with quantities "
                f"(system={self.system_quantity}, physical={self.physical_quantity})"
            )
        return self

    @property
    def key(self) -> ItemKey:
        return (self.sku, self.location)

    @property
    def variance(self) -> Optional[int]:
        return compute_variance(self.system_quantity, self.physical_quantity)

    @property
    def is_audited(self) -> bool:
        return self.physical_quantity is not None

    def _rebuild(self, **changes) -> "AuditItem":
        data = self.model_dump()
        data.update(changes)
        data["status"] = derive_status(data["system_quantity"], data["physical_quantity"])
        return AuditItem(**data)

    def with_system_quantity(self, system_quantity: int) -> "AuditItem":
        return self._rebuild(system_quantity=system_quantity)

    def with_physical_quantity(
        self, physical_quantity: int, audited_at: datetime, notes: Optional[str] = None
    ) -> "AuditItem":
        return self._rebuild(
            physical_quantity=physical_quantity,
            last_audited=audited_at,
            notes=notes if notes is not None else self.notes,
        )

    def with_etag(self, etag: Optional[str]) -> "AuditItem":
        return self._rebuild(etag=etag)


class CatalogRow(BaseModel):
    """
    One item-master import row: identity and descriptive data only.
    Quantities are never taken from the catalog.
    """

    sku: str
    location: str
    name: str
    category: str
    notes: Optional[str] = None
    company_id: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("sku", "location", "name", "category")
    @classmethod
    def check_required_text(cls, value: str) -> str:
        return _strip_required(value)


class ClosingStockRow(BaseModel):
    """
    One closing-stock import row. Name and category are optional here; they
    are required only when the row introduces a new (SKU, location).
    """

    sku: str
    location: str
    system_quantity: int = Field(..., ge=0)
    name: Optional[str] = None
    category: Optional[str] = None
    notes: Optional[str] = None
    company_id: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("sku", "location")
    @classmethod
    def check_required_text(cls, value: str) -> str:
        return _strip_required(value)

    @field_validator("name", "category", "notes", "company_id")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        text = value.strip()
        return text or None


class ManualCount(BaseModel):
    """Request body for setting a counted quantity directly."""

    sku: str
    location: str
    quantity: int
    notes: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class AuditItemResponse(BaseModel):
    """Item as returned to clients, with the signed variance."""

    id: Optional[str] = None
    sku: str
    location: str
    name: str
    category: str
    system_quantity: int
    physical_quantity: Optional[int] = None
    variance: Optional[int] = None
    status: AuditStatus
    last_audited: Optional[datetime] = None
    notes: Optional[str] = None

    @classmethod
    def from_item(cls, item: AuditItem) -> "AuditItemResponse":
        return cls(
            id=item.id,
            sku=item.sku,
            location=item.location,
            name=item.name,
            category=item.category,
            system_quantity=item.system_quantity,
            physical_quantity=item.physical_quantity,
            variance=item.variance,
            status=item.status,
            last_audited=item.last_audited,
            notes=item.notes,
        )


class DiscrepancyRow(BaseModel):
    """
    Report row for an item whose count does not match. Pending items report
    a variance of minus the system quantity, as if nothing had been found.
    """

    sku: str
    name: str
    category: str
    location: str
    system_quantity: int
    physical_quantity: int
    variance: int
    last_audited: Optional[datetime] = None


class ImportResult(BaseModel):
    """Outcome of a catalog or closing-stock import."""

    imported: int
    created: int
    updated: int
    items: List[AuditItemResponse]


ITEM_ID_NAMESPACE = uuid.UUID("6f1c2a4e-8d4b-5b7e-9a37-3c1e0f2d9b10")


def make_item_id(sku: str, location: str) -> str:
    """Deterministic document id for a (SKU, location) key."""
    return str(uuid.uuid5(ITEM_ID_NAMESPACE, f"{sku}\x1f{location}"))
