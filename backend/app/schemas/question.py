"""
PROCTO - Question Bank Schemas
"""
import uuid
from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.question import QuestionType

CHOICE_TYPES = (QuestionType.MULTIPLE_CHOICE, QuestionType.MULTIPLE_SELECT)

# Content keys hidden from students while they sit an exam
ANSWER_KEY_FIELDS = ("correct_answer", "accepted_answers", "explanation")


class QuestionContent(BaseModel):
    """Type-dependent question body."""
    question: Annotated[str, Field(min_length=1)]
    options: list[str] | None = None
    correct_answer: str | list[str] | None = None
    explanation: str | None = None
    case_insensitive: bool | None = None
    accepted_answers: list[str] | None = None


class QuestionCreate(BaseModel):
    course_id: uuid.UUID
    type: QuestionType
    content: QuestionContent
    points: Annotated[float, Field(gt=0)]
    difficulty: str | None = None
    topic_tags: list[str] = []

    @model_validator(mode="after")
    def check_type_requirements(self) -> "QuestionCreate":
        validate_content(self.type, self.content)
        return self


class QuestionUpdate(BaseModel):
    type: QuestionType | None = None
    content: QuestionContent | None = None
    points: Annotated[float, Field(gt=0)] | None = None
    difficulty: str | None = None
    topic_tags: list[str] | None = None


class QuestionImportItem(BaseModel):
    """One question of a bulk import; the course comes from the envelope."""
    type: QuestionType
    content: QuestionContent
    points: Annotated[float, Field(gt=0)]
    difficulty: str | None = None
    topic_tags: list[str] = []

    @model_validator(mode="after")
    def check_type_requirements(self) -> "QuestionImportItem":
        validate_content(self.type, self.content)
        return self


class QuestionImportRequest(BaseModel):
    course_id: uuid.UUID
    questions: list[QuestionImportItem] = Field(..., min_length=1)


class QuestionImportResponse(BaseModel):
    message: str
    count: int


class QuestionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    course_id: uuid.UUID
    type: QuestionType
    content: dict
    points: float
    difficulty: str | None = None
    topic_tags: list[str] = []
    created_at: datetime


def validate_content(question_type: QuestionType, content: QuestionContent) -> None:
    """Type-specific requirements; raises ValueError so it surfaces as a request validation error."""
    if question_type in CHOICE_TYPES:
        if not content.options or len(content.options) < 2:
            raise ValueError("Multiple choice questions need at least 2 options")
        if not content.correct_answer:
            raise ValueError("Correct answer is required")

    if question_type == QuestionType.TRUE_FALSE:
        if content.correct_answer not in ("true", "false"):
            raise ValueError('True/False questions need correct_answer as "true" or "false"')


def strip_answer_key(content: dict) -> dict:
    """Copy of ``content`` safe to show a student."""
    return {k: v for k, v in content.items() if k not in ANSWER_KEY_FIELDS}
