"""
Catalog and closing-stock merge rules.

Both merges are computed in full before anything is written, so a rejected
import never leaves a partial write behind. The result of either merge is a
list of complete AuditItem records ready for a keyed upsert.
"""
from typing import Dict, Iterable, List, Mapping, Optional, TypeVar

from audit_api.exceptions import ValidationError
from audit_api.models.item import (
    AuditItem,
    CatalogRow,
    ClosingStockRow,
    ItemKey,
    make_item_id,
)

RowT = TypeVar("RowT", CatalogRow, ClosingStockRow)


def _collapse_duplicates(rows: Iterable[RowT]) -> Dict[ItemKey, RowT]:
    # Last occurrence of a key wins; first-seen order is kept.
    collapsed: Dict[ItemKey, RowT] = {}
    for row in rows:
        collapsed[(row.sku, row.location)] = row
    return collapsed


def merge_catalog(
    rows: List[CatalogRow], current: Mapping[ItemKey, AuditItem]
) -> List[AuditItem]:
    """
    Merge item-master rows into reconciled records.

    The catalog establishes identity and descriptive data only, so the system
    quantity is always reset to zero. Counting state already recorded for the
    same key (physical quantity, last audit time, notes) is kept.

    Raises:
        ValidationError: If no rows were supplied
    """
    if not rows:
        raise ValidationError("Catalog import contains no rows.")

    merged: List[AuditItem] = []
    for key, row in _collapse_duplicates(rows).items():
        existing = current.get(key)
        merged.append(
            AuditItem(
                id=make_item_id(*key),
                sku=row.sku,
                location=row.location,
                name=row.name,
                category=row.category,
                system_quantity=0,
                physical_quantity=existing.physical_quantity if existing else None,
                last_audited=existing.last_audited if existing else None,
                notes=row.notes if row.notes is not None else (existing.notes if existing else None),
                company_id=row.company_id or (existing.company_id if existing else None),
                etag=existing.etag if existing else None,
            )
        )
    return merged


def merge_closing_stock(
    rows: List[ClosingStockRow],
    current: Mapping[ItemKey, AuditItem],
    location_override: Optional[str] = None,
) -> List[AuditItem]:
    """
    Merge closing-stock rows into reconciled records.

    For a key that already exists only the system quantity changes; name,
    category and counting state come from the existing record. A row for a
    new key has to bring its own name and category.

    Args:
        rows: Parsed closing-stock rows
        current: Existing records keyed by (sku, location)
        location_override: Pin every row to this location name (auditor uploads)

    Raises:
        ValidationError: If no rows were supplied, or new keys lack descriptive fields
    """
    if not rows:
        raise ValidationError("Closing stock import contains no rows.")

    if location_override is not None:
        rows = [row.model_copy(update={"location": location_override}) for row in rows]

    problems: List[str] = []
    merged: List[AuditItem] = []
    for key, row in _collapse_duplicates(rows).items():
        existing = current.get(key)
        if existing is not None:
            merged.append(existing.with_system_quantity(row.system_quantity))
            continue

        missing = [field for field in ("name", "category") if getattr(row, field) is None]
        if missing:
            problems.append(
                f"sku '{row.sku}' at '{row.location}' is a new item "
                f"and is missing {', '.join(missing)}"
            )
            continue

        merged.append(
            AuditItem(
                id=make_item_id(*key),
                sku=row.sku,
                location=row.location,
                name=row.name,
                category=row.category,
                system_quantity=row.system_quantity,
                notes=row.notes,
                company_id=row.company_id,
            )
        )

    if problems:
        raise ValidationError("Closing stock rejected: " + "; ".join(problems))
    return merged
