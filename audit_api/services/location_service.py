from typing import List

from azure.cosmos.aio import ContainerProxy

from audit_api.crud import location_crud
from audit_api.exceptions import AccessDeniedError, LocationNameTakenError, LocationNotFoundError
from audit_api.logging_config import get_child_logger, tracer
from audit_api.models.location import LocationCreate, LocationRead, LocationUpdate
from audit_api.models.user import UserContext
from audit_api.rules.access import ensure_location_deletable
from audit_api.services.snapshot import AuditSnapshot

logger = get_child_logger("services.location")


def _require_admin(user: UserContext, action: str) -> None:
    if not user.is_admin:
        raise AccessDeniedError(f"Only administrators can {action} locations.")


def _ensure_name_free(snapshot: AuditSnapshot, name: str, location_id: str = None) -> None:
    holder = snapshot.location_by_name(name)
    if holder is not None and holder.id != location_id:
        raise LocationNameTakenError(f"A location named '{name}' already exists.")


def list_locations(snapshot: AuditSnapshot, user: UserContext) -> List[LocationRead]:
    return snapshot.visible_locations_for(user)


async def create_location(
    snapshot: AuditSnapshot, container: ContainerProxy, user: UserContext, location: LocationCreate
) -> LocationRead:
    """
    Raises:
        AccessDeniedError: If the caller is not an admin
        LocationNameTakenError: If the name is already used
        PersistenceError: If the write fails
    """
    _require_admin(user, "create")
    _ensure_name_free(snapshot, location.name)
    created = await location_crud.create_location(container, location)
    snapshot.apply_location(created)
    return created


async def update_location(
    snapshot: AuditSnapshot,
    container: ContainerProxy,
    user: UserContext,
    location_id: str,
    updates: LocationUpdate,
) -> LocationRead:
    """
    Apply the fields set on `updates` to an existing location.

    Records reference locations by name, so a rename is refused while any
    record still carries the old name.

    Raises:
        AccessDeniedError: If the caller is not an admin
        LocationNotFoundError: If the id is unknown
        LocationNameTakenError: If the new name belongs to another location
        LocationInUseError: If a referenced location would be renamed
        PreconditionFailedError: If the location changed since it was loaded
        PersistenceError: If the write fails
    """
    with tracer.start_as_current_span("update_location") as span:
        span.set_attribute("location.id", location_id)
        _require_admin(user, "update")
        existing = snapshot.get_location(location_id)
        if existing is None:
            raise LocationNotFoundError(f"Location with ID '{location_id}' not found")

        changes = updates.model_dump(exclude_unset=True, exclude_none=True)
        new_name = changes.get("name")
        if new_name is not None and new_name != existing.name:
            _ensure_name_free(snapshot, new_name, location_id)
            ensure_location_deletable(existing, snapshot.item_list(), action="rename")

        updated = await location_crud.replace_location(container, existing.model_copy(update=changes))
        snapshot.apply_location(updated)
        logger.info("Location updated", extra={"location_id": location_id, "fields": sorted(changes)})
        return updated


async def delete_location(
    snapshot: AuditSnapshot, container: ContainerProxy, user: UserContext, location_id: str
) -> bool:
    """
    Delete a location no record refers to. An unknown id is a no-op.

    Returns:
        Whether a stored location was removed

    Raises:
        AccessDeniedError: If the caller is not an admin
        LocationInUseError: If any record references the location's name
        PersistenceError: If the delete fails
    """
    with tracer.start_as_current_span("delete_location_guarded") as span:
        span.set_attribute("location.id", location_id)
        _require_admin(user, "delete")
        existing = snapshot.get_location(location_id)
        if existing is None:
            logger.info("Delete requested for unknown location", extra={"location_id": location_id})
            return False

        ensure_location_deletable(existing, snapshot.item_list())
        removed = await location_crud.delete_location(container, location_id)
        snapshot.drop_location(location_id)
        return removed
