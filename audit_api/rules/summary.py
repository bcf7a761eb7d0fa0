from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional

from audit_api.models.item import AuditItem, DiscrepancyRow
from audit_api.models.summary import AuditSummary
from audit_api.rules.status import AuditStatus


def completion_percentage(audited_items: int, total_items: int) -> int:
    if total_items <= 0:
        return 0
    ratio = Decimal(audited_items) * 100 / Decimal(total_items)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _summarize(records: Iterable[AuditItem], location: Optional[str]) -> AuditSummary:
    total_items = 0
    audited_keys = set()
    matched = 0
    discrepancies = 0
    for record in records:
        total_items += 1
        if not record.is_audited:
            continue
        audited_keys.add(record.key)
        if record.status == AuditStatus.MATCHED:
            matched += 1
        elif record.status == AuditStatus.DISCREPANCY:
            discrepancies += 1

    audited_items = len(audited_keys)
    return AuditSummary(
        location=location,
        total_items=total_items,
        audited_items=audited_items,
        pending_items=total_items - audited_items,
        matched=matched,
        discrepancies=discrepancies,
        completion_percentage=completion_percentage(audited_items, total_items),
    )


def global_summary(records: Iterable[AuditItem]) -> AuditSummary:
    """Audit progress over every record. Always computed from the records given."""
    return _summarize(records, None)


def location_summary(records: Iterable[AuditItem], location_name: str) -> AuditSummary:
    """Audit progress over the records stored under one location name."""
    return _summarize(
        (record for record in records if record.location == location_name), location_name
    )


def summaries_by_location(records: Iterable[AuditItem]) -> List[AuditSummary]:
    grouped: Dict[str, List[AuditItem]] = {}
    for record in records:
        grouped.setdefault(record.location, []).append(record)
    return [_summarize(grouped[name], name) for name in sorted(grouped)]


def discrepancy_rows(records: Iterable[AuditItem]) -> List[DiscrepancyRow]:
    """
    Rows with a non-zero variance. An uncounted record is reported as if
    nothing was found (physical 0), so uncounted stock shows up as missing.
    """
    rows = []
    for record in records:
        physical = record.physical_quantity if record.is_audited else 0
        delta = physical - record.system_quantity
        if delta == 0:
            continue
        rows.append(
            DiscrepancyRow(
                sku=record.sku,
                name=record.name,
                category=record.category,
                location=record.location,
                system_quantity=record.system_quantity,
                physical_quantity=physical,
                variance=delta,
                last_audited=record.last_audited,
            )
        )
    return rows
