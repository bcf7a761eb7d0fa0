from typing import List

from azure.cosmos.aio import ContainerProxy
from fastapi import APIRouter, Body, Depends, Path, status

from audit_api.logging_config import get_child_logger
from audit_api.models.questionnaire import Question, QuestionCreate
from audit_api.models.user import UserContext
from audit_api.routes.dependencies import (
    get_answers_container,
    get_questions_container,
    get_snapshot,
    get_user,
)
from audit_api.services import questionnaire_service
from audit_api.services.snapshot import AuditSnapshot

# Create a child logger for this module
logger = get_child_logger("routes.questionnaire")

router = APIRouter(prefix="/questions", tags=["questions"])


@router.get("/", response_model=List[Question])
async def get_questions(
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
):
    return questionnaire_service.list_questions(snapshot)


@router.post("/", response_model=Question, status_code=status.HTTP_201_CREATED)
async def add_question(
    question: QuestionCreate = Body(..., description="Question to create"),
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
    container: ContainerProxy = Depends(get_questions_container),
):
    return await questionnaire_service.create_question(snapshot, container, user, question)


@router.put("/{question_id}", response_model=Question)
async def update_existing_question(
    question: QuestionCreate,
    question_id: str = Path(..., title="The ID of the question to replace"),
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
    container: ContainerProxy = Depends(get_questions_container),
):
    return await questionnaire_service.update_question(snapshot, container, user, question_id, question)


@router.delete("/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_existing_question(
    question_id: str = Path(..., title="The ID of the question to delete"),
    user: UserContext = Depends(get_user),
    snapshot: AuditSnapshot = Depends(get_snapshot),
    questions_container: ContainerProxy = Depends(get_questions_container),
    answers_container: ContainerProxy = Depends(get_answers_container),
):
    removed = await questionnaire_service.delete_question(
        snapshot, questions_container, answers_container, user, question_id
    )
    logger.info(
        "Handled DELETE /questions",
        extra={"question_id": question_id, "answers_deleted": removed},
    )
