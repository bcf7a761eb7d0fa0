"""
Write paths for reconciled records other than scanning: manual counts,
catalog and closing-stock imports, and the bulk reset.

Every path computes its full result first, writes it, and only then applies
the stored records to the snapshot.
"""
from datetime import datetime, timezone
from typing import Callable, List, Optional

from azure.cosmos.aio import ContainerProxy

from audit_api.crud import item_crud, questionnaire_crud
from audit_api.exceptions import (
    AccessDeniedError,
    ItemNotFoundError,
    LocationNotFoundError,
    LocationRequiredError,
    ValidationError,
)
from audit_api.logging_config import get_child_logger, tracer
from audit_api.models.item import AuditItem, AuditItemResponse, ImportResult
from audit_api.models.summary import ResetResult
from audit_api.models.user import Permission, UserContext
from audit_api.rules.access import has_permission
from audit_api.rules.merge import merge_catalog, merge_closing_stock
from audit_api.services.csv_import import catalog_rows_from_csv, closing_stock_rows_from_csv
from audit_api.services.snapshot import AuditSnapshot

logger = get_child_logger("services.audit")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def require_permission(user: UserContext, permission: Permission) -> None:
    if not has_permission(user.role, permission):
        raise AccessDeniedError(
            f"Role '{user.role.value}' is not allowed to {permission.value.replace('_', ' ')}."
        )


def _ensure_location_visible(snapshot: AuditSnapshot, user: UserContext, location_name: str) -> None:
    if user.is_admin:
        return
    if location_name not in snapshot.visible_location_names_for(user):
        raise AccessDeniedError(f"You don't have access to location {location_name}.")


async def record_count(
    snapshot: AuditSnapshot,
    container: ContainerProxy,
    user: UserContext,
    sku: str,
    location: str,
    quantity: int,
    notes: Optional[str] = None,
    clock: Callable[[], datetime] = _utcnow,
) -> AuditItem:
    """
    Set the counted quantity of one record directly (manual entry).

    Unlike a scan this overwrites the physical quantity instead of
    incrementing it. The write is ETag-guarded like a scan commit.

    Raises:
        AccessDeniedError: If the caller may not count, or not at this location
        ValidationError: If the quantity is negative
        ItemNotFoundError: If no record exists for (sku, location)
        PersistenceError: If the write fails
    """
    with tracer.start_as_current_span("record_count") as span:
        span.set_attribute("item.sku", sku)
        span.set_attribute("item.location", location)
        require_permission(user, Permission.CONDUCT_AUDITS)
        if quantity < 0:
            raise ValidationError(f"Counted quantity must not be negative (got {quantity}).")

        existing = snapshot.get_item(sku, location)
        if existing is None:
            raise ItemNotFoundError(f"No item with SKU '{sku}' at location '{location}'.")
        _ensure_location_visible(snapshot, user, existing.location)

        updated = existing.with_physical_quantity(quantity, audited_at=clock(), notes=notes)
        stored = await item_crud.upsert_item(container, updated)
        snapshot.apply_items([stored])
        logger.info(
            "Manual count recorded",
            extra={"sku": sku, "location": location, "quantity": quantity, "status": stored.status.value},
        )
        return stored


async def _store_merged(
    snapshot: AuditSnapshot, container: ContainerProxy, merged: List[AuditItem]
) -> ImportResult:
    created = sum(1 for item in merged if snapshot.get_item(*item.key) is None)
    stored = await item_crud.upsert_items(container, merged)
    snapshot.apply_items(stored)
    return ImportResult(
        imported=len(stored),
        created=created,
        updated=len(merged) - created,
        items=[AuditItemResponse.from_item(item) for item in stored],
    )


async def import_catalog(
    snapshot: AuditSnapshot, container: ContainerProxy, user: UserContext, text: str
) -> ImportResult:
    """
    Import an item-master file. Establishes identity and descriptive data;
    system quantities are reset to zero.

    Raises:
        AccessDeniedError: If the caller may not manage the catalog
        ValidationError: If the file is empty, lacks columns or has invalid rows
        PersistenceError: If any batch fails
    """
    with tracer.start_as_current_span("import_catalog") as span:
        require_permission(user, Permission.MANAGE_CATALOG)
        rows = catalog_rows_from_csv(text)
        merged = merge_catalog(rows, snapshot.items)
        span.set_attribute("batch.size", len(merged))

        result = await _store_merged(snapshot, container, merged)
        logger.info(
            f"Catalog imported: {result.created} created, {result.updated} updated",
            extra={"items_created": result.created, "items_updated": result.updated},
        )
        return result


async def import_closing_stock(
    snapshot: AuditSnapshot,
    container: ContainerProxy,
    user: UserContext,
    text: str,
    location_id: Optional[str] = None,
) -> ImportResult:
    """
    Import expected (system) quantities.

    Admins may upload a multi-location file or pin it to one location.
    Everybody else must pin the upload to a location they can see; every row
    then lands at that location regardless of what the file says.

    Raises:
        AccessDeniedError: If the caller may not upload, or not for this location
        LocationRequiredError: If a non-admin did not pick a location
        LocationNotFoundError: If the location id is unknown
        ValidationError: If the file is invalid or a new row lacks name/category
        PersistenceError: If any batch fails
    """
    with tracer.start_as_current_span("import_closing_stock") as span:
        require_permission(user, Permission.UPLOAD_CLOSING_STOCK)

        location_override = None
        if location_id:
            location = snapshot.get_location(location_id)
            if location is None:
                raise LocationNotFoundError(f"Location with ID '{location_id}' not found")
            if not snapshot.can_see_location(user, location_id):
                raise AccessDeniedError(f"You don't have access to location {location.name}.")
            location_override = location.name
            span.set_attribute("item.location", location_override)
        elif not user.is_admin:
            raise LocationRequiredError("Location required: select a location before uploading closing stock.")

        rows = closing_stock_rows_from_csv(text, location_override=location_override)
        merged = merge_closing_stock(rows, snapshot.items, location_override=location_override)
        span.set_attribute("batch.size", len(merged))

        result = await _store_merged(snapshot, container, merged)
        logger.info(
            f"Closing stock imported: {result.created} created, {result.updated} updated",
            extra={"items_created": result.created, "items_updated": result.updated, "location": location_override},
        )
        return result


async def clear_audit_data(
    snapshot: AuditSnapshot,
    items_container: ContainerProxy,
    answers_container: ContainerProxy,
    user: UserContext,
) -> ResetResult:
    """
    Remove every reconciled record and questionnaire answer. Locations and
    questions are kept.

    Raises:
        AccessDeniedError: If the caller is not an admin
        PersistenceError: If a delete fails; reload the snapshot afterwards
    """
    with tracer.start_as_current_span("clear_audit_data") as span:
        if not user.is_admin:
            raise AccessDeniedError("Only administrators can clear audit data.")

        items_deleted = await item_crud.delete_all_items(items_container)
        snapshot.clear_items()
        answers_deleted = await questionnaire_crud.delete_all_answers(answers_container)
        snapshot.clear_answers()

        span.set_attribute("items.deleted", items_deleted)
        span.set_attribute("answers.deleted", answers_deleted)
        logger.warning(
            "Audit data cleared",
            extra={"user_id": user.user_id, "items_deleted": items_deleted, "answers_deleted": answers_deleted},
        )
        return ResetResult(items_deleted=items_deleted, answers_deleted=answers_deleted)
