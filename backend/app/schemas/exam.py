"""
PROCTO - Exam Schemas
Pydantic schemas for exam authoring requests and responses
"""
import uuid
from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.clock import as_utc
from app.models.exam import ExamStatus
from app.schemas.question import QuestionResponse


class ExamRulesSchema(BaseModel):
    """Attempt and presentation policy of an exam."""
    model_config = ConfigDict(from_attributes=True)

    shuffle_questions: bool = True
    shuffle_choices: bool = True
    max_attempts: Annotated[int, Field(ge=1)] = 1
    negative_marking_factor: Annotated[float, Field(ge=0)] = 0
    pass_threshold: Annotated[float, Field(ge=0, le=100)] = 60
    allow_calculator: bool = False
    allow_formula_sheet: bool = False


class ExamCreate(BaseModel):
    """Request to create an exam (always created as an unpublished draft)."""
    course_id: uuid.UUID
    title: Annotated[str, Field(min_length=1, max_length=255)]
    instructions: str | None = None
    duration_minutes: Annotated[int, Field(gt=0)]
    start_at: datetime
    end_at: datetime
    proctoring_level: str = "STANDARD"
    rules: ExamRulesSchema | None = None

    @field_validator("start_at", "end_at")
    @classmethod
    def normalize_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class ExamUpdate(BaseModel):
    """Partial exam update; omitted fields are left unchanged."""
    title: Annotated[str, Field(min_length=1, max_length=255)] | None = None
    instructions: str | None = None
    duration_minutes: Annotated[int, Field(gt=0)] | None = None
    start_at: datetime | None = None
    end_at: datetime | None = None
    proctoring_level: str | None = None
    rules: ExamRulesSchema | None = None

    @field_validator("start_at", "end_at")
    @classmethod
    def normalize_utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v) if v is not None else None


class AddQuestionsRequest(BaseModel):
    question_ids: list[uuid.UUID] = Field(..., min_length=1)


class ExamResponse(BaseModel):
    """Exam metadata with its rules."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    course_id: uuid.UUID
    title: str
    instructions: str | None = None
    duration_minutes: int
    start_at: datetime
    end_at: datetime
    proctoring_level: str
    status: ExamStatus
    is_published: bool
    rules: ExamRulesSchema | None = None


class ExamQuestionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_index: int
    question: QuestionResponse


class ExamDetailResponse(ExamResponse):
    """Exam with its ordered questions (faculty view includes answer keys)."""
    questions: list[ExamQuestionResponse] = []
