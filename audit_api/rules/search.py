from typing import Iterable, List

from audit_api.models.item import AuditItem

MIN_QUERY_LENGTH = 2


def search_items(records: Iterable[AuditItem], query: str) -> List[AuditItem]:
    """Case-insensitive substring match on id, SKU, name and category."""
    if not query or len(query.strip()) < MIN_QUERY_LENGTH:
        return []
    needle = query.strip().lower()
    matches = []
    for record in records:
        haystack = (record.id or "", record.sku, record.name, record.category)
        if any(needle in value.lower() for value in haystack):
            matches.append(record)
    return matches
