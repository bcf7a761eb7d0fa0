from typing import List

from azure.cosmos.aio import ContainerProxy
from fastapi import APIRouter, Body, Depends, Path, status

from audit_api.logging_config import get_child_logger, tracer
from audit_api.models.location import LocationCreate, LocationRead, LocationUpdate
from audit_api.models.questionnaire import AnswerSubmit, QuestionnaireAnswer
from audit_api.models.user import UserContext
from audit_api.routes.dependencies import (
    get_answers_container,
    get_locations_container,
    get_snapshot,
    get_user,
)
from audit_api.services import location_service, questionnaire_service
from audit_api.services.snapshot import AuditSnapshot

# Create a child logger for this module
logger = get_child_logger("routes.location")

router = APIRouter(prefix="/locations", tags=["locations"])


@router.get("/", response_model=List[LocationRead])
async def get_locations(
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
):
    return location_service.list_locations(snapshot, user)


@router.post("/", response_model=LocationRead, status_code=status.HTTP_201_CREATED)
async def add_location(
    location: LocationCreate = Body(..., description="Location to create"),
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
    container: ContainerProxy = Depends(get_locations_container),
):
    with tracer.start_as_current_span("api_add_location") as span:
        span.set_attribute("location.name", location.name)
        return await location_service.create_location(snapshot, container, user, location)


@router.put("/{location_id}", response_model=LocationRead)
async def update_existing_location(
    updates: LocationUpdate,
    location_id: str = Path(..., title="The ID of the location to update"),
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
    container: ContainerProxy = Depends(get_locations_container),
):
    return await location_service.update_location(snapshot, container, user, location_id, updates)


@router.delete("/{location_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_existing_location(
    location_id: str = Path(..., title="The ID of the location to delete"),
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
    container: ContainerProxy = Depends(get_locations_container),
):
    removed = await location_service.delete_location(snapshot, container, user, location_id)
    logger.info("Handled DELETE /locations", extra={"location_id": location_id, "removed": removed})


@router.put("/{location_id}/answers", response_model=QuestionnaireAnswer)
async def put_answer(
    answer: AnswerSubmit,
    location_id: str = Path(..., title="The location the answer is for"),
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
    container: ContainerProxy = Depends(get_answers_container),
):
    return await questionnaire_service.save_answer(snapshot, container, user, location_id, answer)


@router.get("/{location_id}/answers", response_model=List[QuestionnaireAnswer])
async def get_answers(
    location_id: str = Path(..., title="The location whose answers to list"),
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
):
    return questionnaire_service.answers_for_location(snapshot, user, location_id)
