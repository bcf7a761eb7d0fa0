"""
In-memory mirror of persisted audit state.

The snapshot is owned by its caller and only changes when a write has been
confirmed by the database, so readers (summaries, access filtering, search)
never see a record that was not stored. Nothing here survives a restart.
"""
from typing import Dict, Iterable, List, Optional, Tuple

from azure.cosmos.aio import ContainerProxy

from audit_api.crud import item_crud, location_crud, questionnaire_crud
from audit_api.logging_config import get_child_logger, tracer
from audit_api.models.item import AuditItem, ItemKey
from audit_api.models.location import LocationRead
from audit_api.models.questionnaire import Question, QuestionnaireAnswer
from audit_api.models.user import UserContext
from audit_api.rules.access import visible_locations, visible_records

logger = get_child_logger("services.snapshot")

AnswerKey = Tuple[str, str]


class AuditSnapshot:
    def __init__(
        self,
        items: Iterable[AuditItem] = (),
        locations: Iterable[LocationRead] = (),
        questions: Iterable[Question] = (),
        answers: Iterable[QuestionnaireAnswer] = (),
    ):
        self._items: Dict[ItemKey, AuditItem] = {}
        self._locations: Dict[str, LocationRead] = {}
        self._questions: Dict[str, Question] = {}
        self._answers: Dict[AnswerKey, QuestionnaireAnswer] = {}
        self.apply_items(items)
        for location in locations:
            self.apply_location(location)
        for question in questions:
            self.apply_question(question)
        for answer in answers:
            self.apply_answer(answer)

    @classmethod
    async def load(
        cls,
        items_container: ContainerProxy,
        locations_container: ContainerProxy,
        questions_container: ContainerProxy,
        answers_container: ContainerProxy,
    ) -> "AuditSnapshot":
        with tracer.start_as_current_span("load_snapshot") as span:
            snapshot = cls(
                items=await item_crud.list_items(items_container),
                locations=await location_crud.list_locations(locations_container),
                questions=await questionnaire_crud.list_questions(questions_container),
                answers=await questionnaire_crud.list_answers(answers_container),
            )
            span.set_attribute("items.count", len(snapshot._items))
            logger.info(
                "Snapshot loaded",
                extra={
                    "items": len(snapshot._items),
                    "locations": len(snapshot._locations),
                    "questions": len(snapshot._questions),
                    "answers": len(snapshot._answers),
                },
            )
            return snapshot

    # Items

    @property
    def items(self) -> Dict[ItemKey, AuditItem]:
        """Read-only view keyed by (sku, location). Copy before mutating."""
        return self._items

    def item_list(self) -> List[AuditItem]:
        return list(self._items.values())

    def get_item(self, sku: str, location: str) -> Optional[AuditItem]:
        return self._items.get((sku, location))

    def find_by_code(self, code: str, preferred_location: Optional[str] = None) -> Optional[AuditItem]:
        """
        Resolve a scanned code against SKU or identity code. When several
        locations stock the same SKU, the preferred location wins, then the
        first location by name.
        """
        matches = [item for item in self._items.values() if item.sku == code or item.id == code]
        if not matches:
            return None
        for item in matches:
            if item.location == preferred_location:
                return item
        return min(matches, key=lambda item: item.location)

    def apply_items(self, items: Iterable[AuditItem]) -> None:
        for item in items:
            self._items[item.key] = item

    def clear_items(self) -> None:
        self._items.clear()

    # Locations

    def location_list(self) -> List[LocationRead]:
        return sorted(self._locations.values(), key=lambda location: location.name)

    def get_location(self, location_id: str) -> Optional[LocationRead]:
        return self._locations.get(location_id)

    def location_by_name(self, name: str) -> Optional[LocationRead]:
        for location in self._locations.values():
            if location.name == name:
                return location
        return None

    def apply_location(self, location: LocationRead) -> None:
        self._locations[location.id] = location

    def drop_location(self, location_id: str) -> None:
        self._locations.pop(location_id, None)

    # Questionnaire

    def question_list(self) -> List[Question]:
        return sorted(self._questions.values(), key=lambda question: question.text)

    def get_question(self, question_id: str) -> Optional[Question]:
        return self._questions.get(question_id)

    def apply_question(self, question: Question) -> None:
        self._questions[question.id] = question

    def drop_question(self, question_id: str) -> None:
        self._questions.pop(question_id, None)

    def answer_list(self) -> List[QuestionnaireAnswer]:
        return list(self._answers.values())

    def answers_for_location(self, location_id: str) -> List[QuestionnaireAnswer]:
        return [answer for answer in self._answers.values() if answer.location_id == location_id]

    def answers_for_question(self, question_id: str) -> List[QuestionnaireAnswer]:
        return [answer for answer in self._answers.values() if answer.question_id == question_id]

    def apply_answer(self, answer: QuestionnaireAnswer) -> None:
        self._answers[answer.key] = answer

    def drop_answers(self, answers: Iterable[QuestionnaireAnswer]) -> None:
        for answer in answers:
            self._answers.pop(answer.key, None)

    def clear_answers(self) -> None:
        self._answers.clear()

    # Visibility

    def visible_locations_for(self, user: UserContext) -> List[LocationRead]:
        return visible_locations(user.role, user.assigned_locations, self.location_list())

    def visible_location_names_for(self, user: UserContext) -> set:
        return {location.name for location in self.visible_locations_for(user)}

    def visible_items_for(self, user: UserContext) -> List[AuditItem]:
        return visible_records(user.role, self.visible_location_names_for(user), self.item_list())

    def can_see_location(self, user: UserContext, location_id: str) -> bool:
        return any(location.id == location_id for location in self.visible_locations_for(user))
