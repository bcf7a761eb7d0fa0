from typing import AbstractSet, Dict, FrozenSet, Iterable, List

from audit_api.exceptions import LocationInUseError
from audit_api.models.item import AuditItem
from audit_api.models.location import LocationRead
from audit_api.models.user import Permission, Role

_ROLE_PERMISSIONS: Dict[Permission, FrozenSet[Role]] = {
    Permission.VIEW_ALL_LOCATIONS: frozenset({Role.ADMIN}),
    Permission.MANAGE_USERS: frozenset({Role.ADMIN}),
    Permission.VIEW_REPORTS: frozenset({Role.ADMIN, Role.CLIENT}),
    Permission.CONDUCT_AUDITS: frozenset({Role.ADMIN, Role.AUDITOR}),
    Permission.MANAGE_CATALOG: frozenset({Role.ADMIN}),
    Permission.UPLOAD_CLOSING_STOCK: frozenset({Role.ADMIN, Role.AUDITOR}),
    Permission.MANAGE_QUESTIONS: frozenset({Role.ADMIN}),
}


def has_permission(role: Role, permission: Permission) -> bool:
    return role in _ROLE_PERMISSIONS.get(permission, frozenset())


def visible_locations(
    role: Role, assigned_location_ids: AbstractSet[str], all_locations: Iterable[LocationRead]
) -> List[LocationRead]:
    """
    Locations the caller may see. Admins see everything; everybody else sees
    the assigned ids that still exist (stale assignments drop out silently).
    """
    if role == Role.ADMIN:
        return list(all_locations)
    return [location for location in all_locations if location.id in assigned_location_ids]


def visible_records(
    role: Role, assigned_location_names: AbstractSet[str], all_records: Iterable[AuditItem]
) -> List[AuditItem]:
    """Records the caller may see, matched on location name."""
    if role == Role.ADMIN:
        return list(all_records)
    return [record for record in all_records if record.location in assigned_location_names]


def ensure_location_deletable(location: LocationRead, records: Iterable[AuditItem], action: str = "delete"):
    """
    Refuse to orphan audit data. Records point at locations by name, so the
    check compares names as they are at the time of the call.

    Raises:
        LocationInUseError: If any record references the location's name
    """
    referenced = sum(1 for record in records if record.location == location.name)
    if referenced:
        raise LocationInUseError(
            f"Cannot {action} location '{location.name}': "
            f"{referenced} inventory item(s) still reference it."
        )
