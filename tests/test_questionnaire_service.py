import asyncio
from datetime import datetime, timezone

import pytest

from audit_api.exceptions import (
    AccessDeniedError,
    PartialFailureError,
    QuestionNotFoundError,
    ValidationError,
)
from audit_api.models.questionnaire import AnswerSubmit, QuestionCreate
from audit_api.services import questionnaire_service
from tests.builders import ADMIN, AUDITOR, CLIENT, TWO_STORE_AUDITOR, make_question

ANSWER_TIME = datetime(2026, 3, 3, 8, 0, tzinfo=timezone.utc)


class TestValidateAnswer:
    def test_text(self):
        assert questionnaire_service.validate_answer(make_question("q"), "  fine  ") == "fine"
        with pytest.raises(ValidationError):
            questionnaire_service.validate_answer(make_question("q"), ["fine"])

    def test_required_text(self):
        with pytest.raises(ValidationError, match="required"):
            questionnaire_service.validate_answer(make_question("q", required=True), " ")

    def test_yes_no(self):
        question = make_question("q", "yesNo")
        assert questionnaire_service.validate_answer(question, "YES") == "yes"
        with pytest.raises(ValidationError):
            questionnaire_service.validate_answer(question, "maybe")

    def test_single_select(self):
        question = make_question("q", "singleSelect", options=("red", "blue"))
        assert questionnaire_service.validate_answer(question, "blue") == "blue"
        with pytest.raises(ValidationError):
            questionnaire_service.validate_answer(question, "green")

    def test_multi_select_keeps_order_and_drops_repeats(self):
        question = make_question("q", "multiSelect", options=("a", "b", "c"))
        assert questionnaire_service.validate_answer(question, ["c", "a", "c"]) == ["c", "a"]
        with pytest.raises(ValidationError):
            questionnaire_service.validate_answer(question, "a")
        with pytest.raises(ValidationError):
            questionnaire_service.validate_answer(question, ["a", "z"])


class TestQuestions:
    def test_create_and_update(self, seed, questions_container):
        snapshot = seed()
        created = asyncio.run(
            questionnaire_service.create_question(
                snapshot, questions_container, ADMIN, QuestionCreate(text="Fire exits clear?", type="yesNo")
            )
        )
        updated = asyncio.run(
            questionnaire_service.update_question(
                snapshot,
                questions_container,
                ADMIN,
                created.id,
                QuestionCreate(text="Fire exits clear and marked?", type="yesNo", required=True),
            )
        )
        assert updated.id == created.id
        assert snapshot.get_question(created.id).required is True
        assert [q.text for q in questionnaire_service.list_questions(snapshot)] == ["Fire exits clear and marked?"]

    def test_select_question_needs_options(self):
        with pytest.raises(ValueError):
            QuestionCreate(text="Colour?", type="singleSelect")

    def test_auditor_cannot_manage_questions(self, seed, questions_container):
        with pytest.raises(AccessDeniedError):
            asyncio.run(
                questionnaire_service.create_question(
                    seed(), questions_container, AUDITOR, QuestionCreate(text="Q", type="text")
                )
            )

    def test_update_unknown_question(self, seed, questions_container):
        with pytest.raises(QuestionNotFoundError):
            asyncio.run(
                questionnaire_service.update_question(
                    seed(), questions_container, ADMIN, "nope", QuestionCreate(text="Q", type="text")
                )
            )


def _save(snapshot, container, user, location_id, question_id, answer):
    return asyncio.run(
        questionnaire_service.save_answer(
            snapshot,
            container,
            user,
            location_id,
            AnswerSubmit(question_id=question_id, answer=answer),
            clock=lambda: ANSWER_TIME,
        )
    )


class TestAnswers:
    def test_second_save_replaces_the_first(self, seed, answers_container):
        snapshot = seed()
        snapshot.apply_question(make_question("q1", "yesNo"))
        _save(snapshot, answers_container, AUDITOR, "loc-a", "q1", "yes")
        saved = _save(snapshot, answers_container, AUDITOR, "loc-a", "q1", "no")

        assert saved.answer == "no"
        assert saved.answered_by == AUDITOR.user_id
        assert saved.answered_on == ANSWER_TIME
        assert len(answers_container.all()) == 1
        assert [a.answer for a in questionnaire_service.answers_for_location(snapshot, AUDITOR, "loc-a")] == ["no"]

    def test_unknown_question(self, seed, answers_container):
        with pytest.raises(QuestionNotFoundError):
            _save(seed(), answers_container, AUDITOR, "loc-a", "q-missing", "yes")

    def test_unassigned_location(self, seed, answers_container):
        snapshot = seed()
        snapshot.apply_question(make_question("q1"))
        with pytest.raises(AccessDeniedError):
            _save(snapshot, answers_container, AUDITOR, "loc-b", "q1", "text")
        with pytest.raises(AccessDeniedError):
            questionnaire_service.answers_for_location(snapshot, AUDITOR, "loc-b")

    def test_client_cannot_answer(self, seed, answers_container):
        snapshot = seed()
        snapshot.apply_question(make_question("q1"))
        with pytest.raises(AccessDeniedError):
            _save(snapshot, answers_container, CLIENT, "loc-a", "q1", "text")


class TestDeleteQuestion:
    def _prepare(self, seed, questions_container, answers_container):
        snapshot = seed()
        question = asyncio.run(
            questionnaire_service.create_question(
                snapshot,
                questions_container,
                ADMIN,
                QuestionCreate(text="Stock room tidy?", type="yesNo"),
            )
        )
        _save(snapshot, answers_container, TWO_STORE_AUDITOR, "loc-a", question.id, "yes")
        _save(snapshot, answers_container, TWO_STORE_AUDITOR, "loc-b", question.id, "no")
        return snapshot, question

    def test_cascade(self, seed, questions_container, answers_container):
        snapshot, question = self._prepare(seed, questions_container, answers_container)
        removed = asyncio.run(
            questionnaire_service.delete_question(snapshot, questions_container, answers_container, ADMIN, question.id)
        )
        assert removed == 2
        assert questions_container.all() == []
        assert answers_container.all() == []
        assert snapshot.get_question(question.id) is None
        assert snapshot.answer_list() == []

    def test_cascade_removes_answers_saved_by_another_worker(self, seed, questions_container, answers_container):
        snapshot = seed()
        question = asyncio.run(
            questionnaire_service.create_question(
                snapshot,
                questions_container,
                ADMIN,
                QuestionCreate(text="Fire exits clear?", type="yesNo"),
            )
        )
        other_worker = seed()
        _save(other_worker, answers_container, AUDITOR, "loc-a", question.id, "yes")
        assert snapshot.answers_for_question(question.id) == []

        removed = asyncio.run(
            questionnaire_service.delete_question(snapshot, questions_container, answers_container, ADMIN, question.id)
        )

        assert removed == 1
        assert answers_container.all() == []

    def test_partial_failure_is_reported(self, seed, questions_container, answers_container):
        snapshot, question = self._prepare(seed, questions_container, answers_container)
        answers_container.fail("delete_item", 503, after=1)

        with pytest.raises(PartialFailureError) as excinfo:
            asyncio.run(
                questionnaire_service.delete_question(
                    snapshot, questions_container, answers_container, ADMIN, question.id
                )
            )

        assert "1 of 2" in str(excinfo.value)
        assert excinfo.value.completed[0] == "question"
        assert snapshot.get_question(question.id) is None
        assert len(snapshot.answer_list()) == 1
        assert len(answers_container.all()) == 1

    def test_unknown_question(self, seed, questions_container, answers_container):
        with pytest.raises(QuestionNotFoundError):
            asyncio.run(
                questionnaire_service.delete_question(seed(), questions_container, answers_container, ADMIN, "nope")
            )
