"""
Location questionnaires: question management, one answer per
(question, location), and the question delete cascade.
"""
from datetime import datetime, timezone
from typing import Callable, List

from azure.cosmos.aio import ContainerProxy

from audit_api.crud import questionnaire_crud
from audit_api.exceptions import (
    AccessDeniedError,
    LocationNotFoundError,
    PartialFailureError,
    PersistenceError,
    QuestionNotFoundError,
    ValidationError,
)
from audit_api.logging_config import get_child_logger, mark_span_error, tracer
from audit_api.models.questionnaire import (
    YES_NO_VALUES,
    AnswerSubmit,
    AnswerValue,
    Question,
    QuestionCreate,
    QuestionnaireAnswer,
    QuestionType,
)
from audit_api.models.user import Permission, UserContext
from audit_api.services.audit_service import require_permission
from audit_api.services.snapshot import AuditSnapshot

logger = get_child_logger("services.questionnaire")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_answer(question: Question, answer: AnswerValue) -> AnswerValue:
    """
    Check an answer against its question and return it normalized.

    Multi-select answers keep the caller's order with repeats removed;
    yes/no answers are lowercased.

    Raises:
        ValidationError: If the answer does not fit the question type
    """
    if question.type in (QuestionType.TEXT, QuestionType.YES_NO, QuestionType.SINGLE_SELECT):
        if not isinstance(answer, str):
            raise ValidationError(f"Question '{question.text}' expects a single value.")
        value = answer.strip()
        if not value:
            if question.required:
                raise ValidationError(f"Question '{question.text}' is required.")
            return value
        if question.type == QuestionType.YES_NO:
            value = value.lower()
            if value not in YES_NO_VALUES:
                raise ValidationError(f"Question '{question.text}' expects 'yes' or 'no'.")
        elif question.type == QuestionType.SINGLE_SELECT and value not in question.option_ids():
            raise ValidationError(f"'{value}' is not an option of question '{question.text}'.")
        return value

    # multiSelect
    if not isinstance(answer, list):
        raise ValidationError(f"Question '{question.text}' expects a list of option ids.")
    allowed = set(question.option_ids())
    selected = []
    for option_id in answer:
        if option_id not in allowed:
            raise ValidationError(f"'{option_id}' is not an option of question '{question.text}'.")
        if option_id not in selected:
            selected.append(option_id)
    if question.required and not selected:
        raise ValidationError(f"Question '{question.text}' is required.")
    return selected


def list_questions(snapshot: AuditSnapshot) -> List[Question]:
    return snapshot.question_list()


async def create_question(
    snapshot: AuditSnapshot, container: ContainerProxy, user: UserContext, question: QuestionCreate
) -> Question:
    require_permission(user, Permission.MANAGE_QUESTIONS)
    created = await questionnaire_crud.create_question(container, question)
    snapshot.apply_question(created)
    return created


async def update_question(
    snapshot: AuditSnapshot,
    container: ContainerProxy,
    user: UserContext,
    question_id: str,
    question: QuestionCreate,
) -> Question:
    """
    Replace a question's text, type, flag and options. Existing answers are
    left as they are.

    Raises:
        AccessDeniedError: If the caller may not manage questions
        QuestionNotFoundError: If the id is unknown
        PersistenceError: If the write fails
    """
    require_permission(user, Permission.MANAGE_QUESTIONS)
    existing = snapshot.get_question(question_id)
    if existing is None:
        raise QuestionNotFoundError(f"Question with ID '{question_id}' not found")
    replacement = Question(id=question_id, etag=existing.etag, **question.model_dump())
    updated = await questionnaire_crud.replace_question(container, replacement)
    snapshot.apply_question(updated)
    return updated


def _ensure_location_access(snapshot: AuditSnapshot, user: UserContext, location_id: str) -> None:
    location = snapshot.get_location(location_id)
    if location is None:
        raise LocationNotFoundError(f"Location with ID '{location_id}' not found")
    if not snapshot.can_see_location(user, location_id):
        raise AccessDeniedError(f"You don't have access to location {location.name}.")


async def save_answer(
    snapshot: AuditSnapshot,
    container: ContainerProxy,
    user: UserContext,
    location_id: str,
    submitted: AnswerSubmit,
    clock: Callable[[], datetime] = _utcnow,
) -> QuestionnaireAnswer:
    """
    Store the answer for (question, location), replacing any earlier one.

    Raises:
        AccessDeniedError: If the caller may not audit, or not at this location
        LocationNotFoundError: If the location id is unknown
        QuestionNotFoundError: If the question id is unknown
        ValidationError: If the answer does not fit the question
        PersistenceError: If the write fails
    """
    with tracer.start_as_current_span("save_answer") as span:
        span.set_attribute("answer.question_id", submitted.question_id)
        span.set_attribute("answer.location_id", location_id)
        require_permission(user, Permission.CONDUCT_AUDITS)
        _ensure_location_access(snapshot, user, location_id)

        question = snapshot.get_question(submitted.question_id)
        if question is None:
            raise QuestionNotFoundError(f"Question with ID '{submitted.question_id}' not found")

        answer = QuestionnaireAnswer(
            question_id=question.id,
            location_id=location_id,
            answer=validate_answer(question, submitted.answer),
            answered_by=user.user_id,
            answered_on=clock(),
        )
        stored = await questionnaire_crud.upsert_answer(container, answer)
        snapshot.apply_answer(stored)
        return stored


def answers_for_location(snapshot: AuditSnapshot, user: UserContext, location_id: str) -> List[QuestionnaireAnswer]:
    _ensure_location_access(snapshot, user, location_id)
    return snapshot.answers_for_location(location_id)


async def delete_question(
    snapshot: AuditSnapshot,
    questions_container: ContainerProxy,
    answers_container: ContainerProxy,
    user: UserContext,
    question_id: str,
) -> int:
    """
    Delete a question and every answer given to it.

    Returns:
        The number of answers removed

    Raises:
        AccessDeniedError: If the caller may not manage questions
        QuestionNotFoundError: If the question is neither loaded nor stored
        PartialFailureError: If the question went but some answers did not
        PersistenceError: If the question itself could not be deleted
    """
    with tracer.start_as_current_span("delete_question_cascade") as span:
        span.set_attribute("question.id", question_id)
        require_permission(user, Permission.MANAGE_QUESTIONS)

        known = snapshot.get_question(question_id) is not None
        removed = await questionnaire_crud.delete_question(questions_container, question_id)
        if not known and not removed:
            raise QuestionNotFoundError(f"Question with ID '{question_id}' not found")
        snapshot.drop_question(question_id)

        try:
            pending = await questionnaire_crud.list_answers_for_question(answers_container, question_id)
        except PersistenceError as e:
            mark_span_error(span, e)
            raise PartialFailureError(
                f"Question '{question_id}' was deleted, but its answers could not be looked up: {e}",
                completed=["question"],
                original_exception=e,
            ) from e
        deleted = 0
        for answer in pending:
            try:
                await questionnaire_crud.delete_answers(answers_container, [answer])
            except PersistenceError as e:
                mark_span_error(span, e)
                remaining = len(pending) - deleted
                logger.error(
                    "Question deleted but its answers were not all removed",
                    extra={"question_id": question_id, "answers_deleted": deleted, "answers_remaining": remaining},
                )
                raise PartialFailureError(
                    f"Question '{question_id}' was deleted, but {remaining} of {len(pending)} "
                    f"answer(s) could not be removed: {e}",
                    completed=["question"] + [f"answer:{a.location_id}" for a in pending[:deleted]],
                    original_exception=e,
                ) from e
            snapshot.drop_answers([answer])
            deleted += 1
        snapshot.drop_answers(snapshot.answers_for_question(question_id))

        span.set_attribute("answers.deleted", deleted)
        logger.info("Question deleted", extra={"question_id": question_id, "answers_deleted": deleted})
        return deleted
