from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from audit_api.rules.status import AuditStatus


class ScanState(str, Enum):
    AWAITING_LOCATION = "awaiting_location"
    READY = "ready"
    RESOLVING = "resolving"
    COMMITTING = "committing"
    SUCCESS = "success"
    REJECTED = "rejected"


class ScanWarning(str, Enum):
    """
    Non-fatal notices attached to a successful scan.
    LOCATION_MISMATCH: an admin scanned an item that lives elsewhere
    LOCATION_CORRECTED: an auditor's scan was moved to the item's location
    """

    LOCATION_MISMATCH = "location_mismatch"
    LOCATION_CORRECTED = "location_corrected"


class ScanRequest(BaseModel):
    """
    A raw code plus the selected location id. Camera, hardware scanner and
    manual entry all submit this same shape.
    """

    code: str
    location_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ScanOutcome(BaseModel):
    sku: str
    name: str
    location: str
    previous_quantity: int
    physical_quantity: int
    system_quantity: int
    status: AuditStatus
    variance: int
    warning: Optional[ScanWarning] = None
    message: str
