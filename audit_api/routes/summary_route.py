from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from audit_api.exceptions import AccessDeniedError
from audit_api.models.summary import AuditSummary
from audit_api.models.user import UserContext
from audit_api.routes.dependencies import get_snapshot, get_user
from audit_api.rules.summary import global_summary, location_summary, summaries_by_location
from audit_api.services.snapshot import AuditSnapshot

router = APIRouter(prefix="/summary", tags=["summary"])


@router.get("/", response_model=AuditSummary)
async def get_summary(
    location: Optional[str] = Query(None, title="Restrict the summary to one location name"),
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
):
    """Audit progress over everything the caller can see, or one location of it."""
    records = snapshot.visible_items_for(user)
    if location is None:
        return global_summary(records)
    if not user.is_admin and location not in snapshot.visible_location_names_for(user):
        raise AccessDeniedError(f"You don't have access to location {location}.")
    return location_summary(records, location)


@router.get("/locations", response_model=List[AuditSummary])
async def get_location_summaries(
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
):
    summaries = {summary.location: summary for summary in summaries_by_location(snapshot.visible_items_for(user))}
    # Visible locations without records still get a (zero) row
    for location in snapshot.visible_locations_for(user):
        if location.name not in summaries:
            summaries[location.name] = location_summary([], location.name)
    return [summaries[name] for name in sorted(summaries)]
