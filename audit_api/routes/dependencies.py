from typing import Optional

from azure.cosmos.aio import ContainerProxy
from fastapi import Depends, Header, HTTPException, status

from audit_api.db import ContainerType, get_container
from audit_api.logging_config import get_child_logger
from audit_api.models.user import Role, UserContext
from audit_api.services.snapshot import AuditSnapshot

logger = get_child_logger("routes.dependencies")

# One snapshot per worker process, loaded on first use
_snapshot: Optional[AuditSnapshot] = None


async def get_items_container() -> ContainerProxy:
    return await get_container(ContainerType.ITEMS)


async def get_locations_container() -> ContainerProxy:
    return await get_container(ContainerType.LOCATIONS)


async def get_questions_container() -> ContainerProxy:
    return await get_container(ContainerType.QUESTIONS)


async def get_answers_container() -> ContainerProxy:
    return await get_container(ContainerType.ANSWERS)


async def load_snapshot(
    items_container: ContainerProxy = Depends(get_items_container),
    locations_container: ContainerProxy = Depends(get_locations_container),
    questions_container: ContainerProxy = Depends(get_questions_container),
    answers_container: ContainerProxy = Depends(get_answers_container),
) -> AuditSnapshot:
    """Read everything again and make the result the process snapshot."""
    global _snapshot
    _snapshot = await AuditSnapshot.load(
        items_container, locations_container, questions_container, answers_container
    )
    return _snapshot


async def get_snapshot(
    items_container: ContainerProxy = Depends(get_items_container),
    locations_container: ContainerProxy = Depends(get_locations_container),
    questions_container: ContainerProxy = Depends(get_questions_container),
    answers_container: ContainerProxy = Depends(get_answers_container),
) -> AuditSnapshot:
    if _snapshot is None:
        logger.info("No snapshot loaded yet, reading all containers")
        return await load_snapshot(
            items_container, locations_container, questions_container, answers_container
        )
    return _snapshot


def reset_snapshot() -> None:
    global _snapshot
    _snapshot = None


async def get_user(
    x_audit_user: Optional[str] = Header(None, description="Caller id from the identity provider"),
    x_audit_role: Optional[str] = Header(None, description="admin, auditor or client"),
    x_audit_locations: Optional[str] = Header(
        None, description="Comma-separated ids of the caller's assigned locations"
    ),
) -> UserContext:
    """Build the caller context from headers set by the trusted identity proxy."""
    if not x_audit_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Audit-Role header required.",
        )
    try:
        role = Role(x_audit_role.strip().lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown role '{x_audit_role}'.",
        )
    assigned = frozenset(
        location_id.strip() for location_id in (x_audit_locations or "").split(",") if location_id.strip()
    )
    return UserContext(user_id=x_audit_user, role=role, assigned_locations=assigned)
