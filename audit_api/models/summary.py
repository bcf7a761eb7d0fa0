from typing import Optional

from pydantic import BaseModel


class AuditSummary(BaseModel):
    """
    Audit progress over a set of records. location is None for the
    all-locations summary.
    """

    location: Optional[str] = None
    total_items: int
    audited_items: int
    pending_items: int
    matched: int
    discrepancies: int
    completion_percentage: int


class ResetResult(BaseModel):
    """Counts removed by a bulk reset of audit data."""

    items_deleted: int
    answers_deleted: int
