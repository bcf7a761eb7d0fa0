from typing import List, Optional

from azure.cosmos.aio import ContainerProxy
from fastapi import APIRouter, Body, Depends, Query, Request

from audit_api.exceptions import ValidationError
from audit_api.logging_config import get_child_logger, tracer
from audit_api.models.item import AuditItemResponse, DiscrepancyRow, ImportResult, ManualCount
from audit_api.models.summary import ResetResult
from audit_api.models.user import Permission, UserContext
from audit_api.routes.dependencies import (
    get_answers_container,
    get_items_container,
    get_snapshot,
    get_user,
)
from audit_api.rules.search import search_items
from audit_api.rules.status import AuditStatus
from audit_api.rules.summary import discrepancy_rows
from audit_api.services import audit_service
from audit_api.services.snapshot import AuditSnapshot

# Create a child logger for this module
logger = get_child_logger("routes.items")

router = APIRouter(prefix="/items", tags=["items"])


async def _read_csv_body(request: Request) -> str:
    raw = await request.body()
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ValidationError(f"Import file must be UTF-8 text: {e}") from e


@router.get("/", response_model=List[AuditItemResponse])
async def get_items(
    location: Optional[str] = Query(None, title="Only items stored under this location name"),
    status: Optional[AuditStatus] = Query(None, title="Only items with this audit status"),
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
):
    with tracer.start_as_current_span("api_get_items") as span:
        records = snapshot.visible_items_for(user)
        if location is not None:
            records = [record for record in records if record.location == location]
        if status is not None:
            records = [record for record in records if record.status == status]
        records.sort(key=lambda record: (record.location, record.sku))
        span.set_attribute("items.count", len(records))
        return [AuditItemResponse.from_item(record) for record in records]


@router.get("/search", response_model=List[AuditItemResponse])
async def search(
    q: str = Query("", title="Text to match against id, SKU, name and category"),
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
):
    matches = search_items(snapshot.visible_items_for(user), q)
    return [AuditItemResponse.from_item(record) for record in matches]


@router.get("/discrepancies", response_model=List[DiscrepancyRow])
async def get_discrepancies(
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
):
    audit_service.require_permission(user, Permission.VIEW_REPORTS)
    return discrepancy_rows(snapshot.visible_items_for(user))


@router.post("/catalog", response_model=ImportResult)
async def upload_catalog(
    request: Request,
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
    container: ContainerProxy = Depends(get_items_container),
):
    with tracer.start_as_current_span("api_upload_catalog"):
        logger.info("Handling POST /items/catalog request", extra={"user_id": user.user_id})
        text = await _read_csv_body(request)
        return await audit_service.import_catalog(snapshot, container, user, text)


@router.post("/closing-stock", response_model=ImportResult)
async def upload_closing_stock(
    request: Request,
    location_id: Optional[str] = Query(None, title="Pin every row to this location"),
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
    container: ContainerProxy = Depends(get_items_container),
):
    with tracer.start_as_current_span("api_upload_closing_stock") as span:
        span.set_attribute("location_id", location_id or "")
        logger.info(
            "Handling POST /items/closing-stock request",
            extra={"user_id": user.user_id, "location_id": location_id},
        )
        text = await _read_csv_body(request)
        return await audit_service.import_closing_stock(
            snapshot, container, user, text, location_id=location_id
        )


@router.put("/count", response_model=AuditItemResponse)
async def put_count(
    count: ManualCount = Body(..., description="Counted quantity for one item"),
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
    container: ContainerProxy = Depends(get_items_container),
):
    stored = await audit_service.record_count(
        snapshot,
        container,
        user,
        sku=count.sku,
        location=count.location,
        quantity=count.quantity,
        notes=count.notes,
    )
    return AuditItemResponse.from_item(stored)


@router.delete("/", response_model=ResetResult)
async def delete_all(
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
    items_container: ContainerProxy = Depends(get_items_container),
    answers_container: ContainerProxy = Depends(get_answers_container),
):
    return await audit_service.clear_audit_data(snapshot, items_container, answers_container, user)
