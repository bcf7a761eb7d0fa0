from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class QuestionType(str, Enum):
    """
    Supported questionnaire question kinds.
    TEXT: free text answer
    SINGLE_SELECT: exactly one option id
    MULTI_SELECT: ordered list of distinct option ids
    YES_NO: "yes" or "no"
    """

    TEXT = "text"
    SINGLE_SELECT = "singleSelect"
    MULTI_SELECT = "multiSelect"
    YES_NO = "yesNo"


SELECT_TYPES = (QuestionType.SINGLE_SELECT, QuestionType.MULTI_SELECT)
YES_NO_VALUES = ("yes", "no")

AnswerValue = Union[str, List[str]]


class QuestionOption(BaseModel):
    id: str
    text: str

    model_config = ConfigDict(extra="forbid")


class QuestionBase(BaseModel):
    """
    Shared question fields. Select questions need at least one option;
    other kinds must not carry any.
    """

    text: str
    type: QuestionType
    required: bool = False
    options: List[QuestionOption] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @field_validator("text")
    @classmethod
    def check_text(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("question text must not be blank")
        return text

    @model_validator(mode="after")
    def check_options(self):
        if self.type in SELECT_TYPES:
            if not self.options:
                raise ValueError(f"{self.type.value} questions need at least one option")
            option_ids = [option.id for option in self.options]
            if len(set(option_ids)) != len(option_ids):
                raise ValueError("option ids must be unique within a question")
        elif self.options:
            raise ValueError(f"{self.type.value} questions do not take options")
        return self

    def option_ids(self) -> List[str]:
        return [option.id for option in self.options]


class QuestionCreate(QuestionBase):
    pass


class Question(QuestionBase):
    id: str
    etag: Optional[str] = Field(default=None, alias="_etag")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AnswerSubmit(BaseModel):
    """Answer as submitted by a caller; location comes from the route."""

    question_id: str
    answer: AnswerValue

    model_config = ConfigDict(extra="forbid")


class QuestionnaireAnswer(BaseModel):
    """At most one answer exists per (question_id, location_id)."""

    question_id: str
    location_id: str  # partition key in Cosmos DB
    answer: AnswerValue
    answered_by: Optional[str] = None
    answered_on: datetime
    id: Optional[str] = None
    etag: Optional[str] = Field(default=None, alias="_etag")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def key(self):
        return (self.question_id, self.location_id)
