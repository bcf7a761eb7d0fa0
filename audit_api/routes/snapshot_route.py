from fastapi import APIRouter, Depends

from audit_api.logging_config import get_child_logger
from audit_api.models.user import UserContext
from audit_api.routes.dependencies import get_user, load_snapshot
from audit_api.services.snapshot import AuditSnapshot

logger = get_child_logger("routes.snapshot")

router = APIRouter(prefix="/snapshot", tags=["snapshot"])


@router.post("/refresh")
async def refresh_snapshot(
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(load_snapshot),
):
    """Reload the in-memory state from the database, e.g. after a 412 or a failed import."""
    logger.info("Snapshot refreshed on request", extra={"user_id": user.user_id})
    return {
        "items": len(snapshot.items),
        "locations": len(snapshot.location_list()),
        "questions": len(snapshot.question_list()),
        "answers": len(snapshot.answer_list()),
    }
