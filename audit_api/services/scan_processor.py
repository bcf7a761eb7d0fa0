"""
Scan processing: one scanned code becomes one persisted quantity increment.

States run AWAITING_LOCATION -> READY -> RESOLVING -> COMMITTING and end in
SUCCESS or REJECTED. Only the snapshot outlives a scan; it is updated after
the database confirms the write and left alone otherwise.

The increment is a read-modify-write against one (SKU, location) document.
The commit is conditional on the document's ETag, so two stations scanning
the same item at once cannot silently lose a count: the later write fails
with PreconditionFailedError and the caller refreshes and retries.
"""
from datetime import datetime, timezone
from typing import Callable, Optional

from azure.cosmos.aio import ContainerProxy

from audit_api.crud import item_crud
from audit_api.exceptions import (
    AccessDeniedError,
    ApplicationError,
    ItemNotFoundError,
    LocationNotFoundError,
    LocationRequiredError,
    PersistenceError,
    ValidationError,
)
from audit_api.logging_config import get_child_logger, mark_span_error, tracer
from audit_api.models.item import AuditItem
from audit_api.models.scan import ScanOutcome, ScanState, ScanWarning
from audit_api.models.user import Permission, UserContext
from audit_api.rules.access import has_permission
from audit_api.rules.status import AuditStatus
from audit_api.services.snapshot import AuditSnapshot

logger = get_child_logger("services.scan")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScanProcessor:
    """
    Drives scans for one caller at one selected location.

    Callers serialize scans per processor; the processor holds no lock.
    """

    def __init__(
        self,
        snapshot: AuditSnapshot,
        container: ContainerProxy,
        user: UserContext,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.snapshot = snapshot
        self.container = container
        self.user = user
        self.clock = clock
        self.location_id: Optional[str] = None
        self.state = ScanState.AWAITING_LOCATION

    def select_location(self, location_id: Optional[str]) -> None:
        self.location_id = location_id or None
        self.state = ScanState.READY if self.location_id else ScanState.AWAITING_LOCATION

    def clear_location(self) -> None:
        self.select_location(None)

    def _reject(self, error: ApplicationError) -> ApplicationError:
        self.state = ScanState.REJECTED
        logger.warning(
            f"Scan rejected: {error}",
            extra={"error_type": type(error).__name__, "location_id": self.location_id},
        )
        return error

    async def scan(self, code: str) -> ScanOutcome:
        """
        Record one unit of the scanned item.

        Returns:
            The outcome with before/after quantities and resulting status

        Raises:
            LocationRequiredError: If no location is selected
            ValidationError: If the code is blank
            LocationNotFoundError: If the selected location id is unknown
            ItemNotFoundError: If no catalog record matches the code
            AccessDeniedError: If the caller may not count at the item's location
            PersistenceError: If the write fails (PreconditionFailedError on a lost race)
        """
        with tracer.start_as_current_span("process_scan") as span:
            span.set_attribute("scan.location_id", self.location_id or "")
            try:
                if not self.location_id:
                    raise self._reject(LocationRequiredError())

                code = (code or "").strip()
                if not code:
                    raise self._reject(ValidationError("Scanned code is empty."))

                if not has_permission(self.user.role, Permission.CONDUCT_AUDITS):
                    raise self._reject(
                        AccessDeniedError(f"Role '{self.user.role.value}' cannot conduct audits.")
                    )

                self.state = ScanState.RESOLVING
                item, warning, location_name = self._resolve(code)

                self.state = ScanState.COMMITTING
                outcome = await self._commit(item, warning, location_name)
            except PersistenceError as e:
                mark_span_error(span, e)
                raise self._reject(e)
            except ApplicationError as e:
                mark_span_error(span, e)
                if self.state != ScanState.REJECTED:
                    self._reject(e)
                raise

            self.state = ScanState.SUCCESS
            span.set_attribute("scan.sku", outcome.sku)
            span.set_attribute("scan.status", outcome.status.value)
            return outcome

    def _resolve(self, code: str):
        location = self.snapshot.get_location(self.location_id)
        if location is None:
            raise self._reject(
                LocationNotFoundError(
                    f"The selected location ID '{self.location_id}' could not be matched to a location name."
                )
            )
        selected_name = location.name

        item = self.snapshot.find_by_code(code, preferred_location=selected_name)
        if item is None:
            raise self._reject(ItemNotFoundError(f"No item found with barcode {code} in master data."))

        warning = None
        if item.location != selected_name:
            if self.user.is_admin:
                warning = ScanWarning.LOCATION_MISMATCH
            elif item.location not in self.snapshot.visible_location_names_for(self.user):
                raise self._reject(
                    AccessDeniedError(
                        f"Item belongs to {item.location} which you don't have access to."
                    )
                )
            else:
                warning = ScanWarning.LOCATION_CORRECTED
            logger.info(
                "Scan location corrected to the item's location",
                extra={"sku": item.sku, "selected": selected_name, "actual": item.location},
            )
        return item, warning, item.location

    async def _commit(self, item: AuditItem, warning: Optional[ScanWarning], location_name: str) -> ScanOutcome:
        current = self.snapshot.get_item(item.sku, location_name) or item
        previous = current.physical_quantity or 0
        updated = current.with_physical_quantity(previous + 1, audited_at=self.clock())

        stored = await item_crud.upsert_item(self.container, updated)
        self.snapshot.apply_items([stored])

        return ScanOutcome(
            sku=stored.sku,
            name=stored.name,
            location=stored.location,
            previous_quantity=previous,
            physical_quantity=stored.physical_quantity,
            system_quantity=stored.system_quantity,
            status=stored.status,
            variance=stored.variance,
            warning=warning,
            message=_describe_outcome(stored, previous, warning),
        )


def _describe_outcome(item: AuditItem, previous: int, warning: Optional[ScanWarning]) -> str:
    if previous > 0:
        quantity_info = f"({previous} → {item.physical_quantity})"
    else:
        quantity_info = f"(Physical: {item.physical_quantity}, System: {item.system_quantity})"
    headline = (
        "Item scanned - Matched!"
        if item.status == AuditStatus.MATCHED
        else "Item scanned - Discrepancy detected!"
    )
    message = f"{headline} {item.name} {quantity_info} at {item.location}"
    if warning == ScanWarning.LOCATION_MISMATCH:
        message += f". Item belongs to {item.location}; proceeded with item's actual location."
    elif warning == ScanWarning.LOCATION_CORRECTED:
        message += f". Item belongs to {item.location}; location corrected."
    return message
