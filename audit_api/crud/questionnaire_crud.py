import uuid
from typing import List

from azure.cosmos.aio import ContainerProxy
from azure.cosmos.exceptions import CosmosHttpResponseError
from pydantic import ValidationError as PydanticValidationError

from audit_api.crud.common import Document, select_all, to_persistence_error
from audit_api.exceptions import QuestionNotFoundError
from audit_api.logging_config import get_child_logger, mark_span_error, tracer
from audit_api.models.questionnaire import Question, QuestionCreate, QuestionnaireAnswer

# Create a child logger for this module
logger = get_child_logger("crud.questionnaire")

ANSWER_ID_NAMESPACE = uuid.UUID("0c7d3e58-2b91-5f44-8e0a-5d6b7a1f4c22")


def make_answer_id(question_id: str, location_id: str) -> str:
    """Deterministic document id for a (question_id, location_id) key."""
    return str(uuid.uuid5(ANSWER_ID_NAMESPACE, f"{question_id}\x1f{location_id}"))


def answer_to_document(answer: QuestionnaireAnswer) -> Document:
    return {
        "id": make_answer_id(answer.question_id, answer.location_id),
        "question_id": answer.question_id,
        "location_id": answer.location_id,
        "answer": answer.answer,
        "answered_by": answer.answered_by,
        "answered_on": answer.answered_on.isoformat(),
    }


async def list_questions(container: ContainerProxy) -> List[Question]:
    """Retrieve every question, ordered by text."""
    with tracer.start_as_current_span("list_questions") as span:
        try:
            documents = await select_all(container)
        except CosmosHttpResponseError as e:
            mark_span_error(span, e, e.status_code)
            raise to_persistence_error(e, "question listing") from e
        questions = [Question.model_validate(document) for document in documents]
        questions.sort(key=lambda question: question.text)
        return questions


async def create_question(container: ContainerProxy, question: QuestionCreate) -> Question:
    with tracer.start_as_current_span("create_question") as span:
        data = question.model_dump(mode="json")
        data["id"] = str(uuid.uuid4())
        span.set_attribute("question.id", data["id"])
        try:
            result = await container.create_item(body=data)
        except CosmosHttpResponseError as e:
            mark_span_error(span, e, e.status_code)
            logger.error(
                "Cosmos DB error during question creation",
                extra={"status_code": e.status_code, "error_message": e.message},
                exc_info=True,
            )
            raise to_persistence_error(e, "question creation") from e
        logger.info("Question created", extra={"question_id": data["id"]})
        return Question.model_validate(result)


async def replace_question(container: ContainerProxy, question: Question) -> Question:
    with tracer.start_as_current_span("replace_question") as span:
        span.set_attribute("question.id", question.id)
        body = question.model_dump(mode="json", exclude={"etag"})
        try:
            result = await container.replace_item(item=question.id, body=body)
        except CosmosHttpResponseError as e:
            mark_span_error(span, e, e.status_code)
            if e.status_code == 404:
                raise QuestionNotFoundError(f"Question with ID '{question.id}' not found") from e
            raise to_persistence_error(e, "question update") from e
        return Question.model_validate(result)


async def delete_question(container: ContainerProxy, question_id: str) -> bool:
    """Returns False when the question was already gone."""
    with tracer.start_as_current_span("delete_question") as span:
        span.set_attribute("question.id", question_id)
        try:
            await container.delete_item(item=question_id, partition_key=question_id)
            return True
        except CosmosHttpResponseError as e:
            if e.status_code == 404:
                return False
            mark_span_error(span, e, e.status_code)
            logger.error(
                f"Cosmos DB error during question deletion: Status Code {e.status_code}, Message: {e.message}",
                exc_info=True,
            )
            raise to_persistence_error(e, "question deletion") from e


async def list_answers(container: ContainerProxy) -> List[QuestionnaireAnswer]:
    with tracer.start_as_current_span("list_answers") as span:
        try:
            documents = await select_all(container)
        except CosmosHttpResponseError as e:
            mark_span_error(span, e, e.status_code)
            raise to_persistence_error(e, "answer listing") from e

        answers = []
        for document in documents:
            try:
                answers.append(QuestionnaireAnswer.model_validate(document))
            except PydanticValidationError as e:
                logger.debug(f"Pydantic validation errors: {e.errors()}")
                continue
        span.set_attribute("answers.count", len(answers))
        return answers


async def list_answers_for_question(container: ContainerProxy, question_id: str) -> List[QuestionnaireAnswer]:
    """Stored answers given to one question, across every location."""
    with tracer.start_as_current_span("list_answers_for_question") as span:
        span.set_attribute("question.id", question_id)
        try:
            documents = await select_all(
                container, lambda document: document.get("question_id") == question_id
            )
        except CosmosHttpResponseError as e:
            mark_span_error(span, e, e.status_code)
            raise to_persistence_error(e, "answer lookup") from e
        answers = [QuestionnaireAnswer.model_validate(document) for document in documents]
        span.set_attribute("answers.count", len(answers))
        return answers


async def upsert_answer(container: ContainerProxy, answer: QuestionnaireAnswer) -> QuestionnaireAnswer:
    """Insert or replace the single answer stored for (question_id, location_id)."""
    with tracer.start_as_current_span("upsert_answer") as span:
        span.set_attribute("answer.question_id", answer.question_id)
        span.set_attribute("answer.location_id", answer.location_id)
        try:
            result = await container.upsert_item(body=answer_to_document(answer))
        except CosmosHttpResponseError as e:
            mark_span_error(span, e, e.status_code)
            logger.error(
                "Cosmos DB error during answer upsert",
                extra={
                    "status_code": e.status_code,
                    "error_message": e.message,
                    "question_id": answer.question_id,
                    "location_id": answer.location_id,
                },
                exc_info=True,
            )
            raise to_persistence_error(e, "answer save") from e
        return QuestionnaireAnswer.model_validate(result)


async def delete_answers(container: ContainerProxy, answers: List[QuestionnaireAnswer]) -> List[QuestionnaireAnswer]:
    """
    Delete the given answers one by one.

    Returns:
        The answers actually deleted (already-missing ones are skipped)

    Raises:
        PersistenceError: On the first failing delete
    """
    with tracer.start_as_current_span("delete_answers") as span:
        span.set_attribute("batch.size", len(answers))
        deleted = []
        for answer in answers:
            try:
                await container.delete_item(
                    item=make_answer_id(answer.question_id, answer.location_id),
                    partition_key=answer.location_id,
                )
                deleted.append(answer)
            except CosmosHttpResponseError as e:
                if e.status_code == 404:
                    continue
                mark_span_error(span, e, e.status_code)
                logger.error(
                    "Cosmos DB error during answer deletion",
                    extra={"status_code": e.status_code, "deleted": len(deleted)},
                    exc_info=True,
                )
                raise to_persistence_error(e, "answer deletion") from e
        return deleted


async def delete_all_answers(container: ContainerProxy) -> int:
    """Bulk reset: remove every stored answer, including unreadable ones."""
    with tracer.start_as_current_span("delete_all_answers") as span:
        deleted = 0
        try:
            for document in await select_all(container):
                await container.delete_item(item=document["id"], partition_key=document.get("location_id"))
                deleted += 1
        except CosmosHttpResponseError as e:
            mark_span_error(span, e, e.status_code)
            raise to_persistence_error(e, f"answer reset after {deleted} deletions") from e
        span.set_attribute("answers.deleted", deleted)
        logger.info(f"Deleted {deleted} answers", extra={"count": deleted})
        return deleted
