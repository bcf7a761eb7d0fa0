import asyncio

from azure.cosmos.aio import ContainerProxy
from fastapi import APIRouter, Body, Depends

from audit_api.logging_config import get_child_logger, tracer
from audit_api.models.scan import ScanOutcome, ScanRequest
from audit_api.models.user import UserContext
from audit_api.routes.dependencies import get_items_container, get_snapshot, get_user
from audit_api.services.scan_processor import ScanProcessor
from audit_api.services.snapshot import AuditSnapshot

# Create a child logger for this module
logger = get_child_logger("routes.scan")

router = APIRouter(prefix="/scans", tags=["scans"])

# Scans are read-modify-write; one at a time per worker process
_scan_lock = asyncio.Lock()


@router.post("/", response_model=ScanOutcome)
async def post_scan(
    scan: ScanRequest = Body(..., description="Scanned code and the selected location"),
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
    container: ContainerProxy = Depends(get_items_container),
):
    with tracer.start_as_current_span("api_post_scan") as span:
        span.set_attribute("scan.location_id", scan.location_id or "")
        logger.info(
            "Handling POST /scans request",
            extra={"user_id": user.user_id, "location_id": scan.location_id},
        )
        processor = ScanProcessor(snapshot, container, user)
        processor.select_location(scan.location_id)
        async with _scan_lock:
            return await processor.scan(scan.code)
