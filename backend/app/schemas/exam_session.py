"""
PROCTO - Exam Session Schemas
Request bodies accept the camelCase keys sent by the exam-taking client.
"""
import uuid
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.core.clock import as_utc
from app.models.exam_session import SessionStatus
from app.models.question import QuestionType
from app.schemas.exam import ExamRulesSchema


# ============================================================================
# Requests
# ============================================================================

class StartSessionRequest(BaseModel):
    exam_id: uuid.UUID = Field(validation_alias=AliasChoices("examId", "exam_id"))


class AnswerItem(BaseModel):
    question_id: uuid.UUID = Field(validation_alias=AliasChoices("questionId", "question_id"))
    # Option string, list of options, or free text
    response: Any


class SaveAnswersRequest(BaseModel):
    answers: list[AnswerItem]


# ============================================================================
# Responses
# ============================================================================

class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    exam_id: uuid.UUID
    student_id: uuid.UUID
    status: SessionStatus
    started_at: datetime
    submitted_at: datetime | None = None
    auto_submitted: bool = False
    ip_address: str | None = None
    expires_at: datetime | None = None

    @field_validator("started_at", "submitted_at", "expires_at")
    @classmethod
    def normalize_utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v) if v is not None else None


class StartSessionResponse(BaseModel):
    message: str
    session: SessionResponse


class AnswerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    question_id: uuid.UUID
    response: Any = None
    updated_at: datetime

    @field_validator("updated_at")
    @classmethod
    def normalize_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class SessionExam(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    instructions: str | None = None
    duration_minutes: int
    start_at: datetime
    end_at: datetime
    rules: ExamRulesSchema | None = None


class SessionQuestion(BaseModel):
    """A question as presented inside a session."""
    id: uuid.UUID
    type: QuestionType
    points: float
    content: dict


class SessionDetailResponse(SessionResponse):
    exam: SessionExam
    questions: list[SessionQuestion] = []
    answers: list[AnswerResponse] = []


class SaveAnswersResponse(BaseModel):
    message: str
    saved: int


class SubmitSessionResponse(BaseModel):
    message: str
    session: SessionResponse
