from enum import Enum
from typing import Optional


class AuditStatus(str, Enum):
    """
    Reconciliation status of one (SKU, location) record.
    PENDING: no physical count recorded yet
    MATCHED: physical count equals the system quantity
    DISCREPANCY: physical count differs from the system quantity
    """

    PENDING = "pending"
    MATCHED = "matched"
    DISCREPANCY = "discrepancy"


def derive_status(system_quantity: int, physical_quantity: Optional[int]) -> AuditStatus:
    """
    Derive the audit status from expected and counted quantities.

    Every write path (catalog merge, closing stock, scans, manual counts)
    must call this instead of comparing quantities itself.
    """
    if physical_quantity is None:
        return AuditStatus.PENDING
    if physical_quantity == system_quantity:
        return AuditStatus.MATCHED
    return AuditStatus.DISCREPANCY


def variance(system_quantity: int, physical_quantity: Optional[int]) -> Optional[int]:
    """Signed over/under count, or None when nothing was counted."""
    if physical_quantity is None:
        return None
    return physical_quantity - system_quantity
