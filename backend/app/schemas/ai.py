"""
PROCTO - AI Question Generation Schemas
"""
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, Field, field_validator


class DraftQuestionType(str, Enum):
    MCQ = "MCQ"
    TRUE_FALSE = "TRUE_FALSE"
    SUBJECTIVE = "SUBJECTIVE"
    ANY = "ANY"


class DraftDifficulty(str, Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"
    ANY = "ANY"


class GenerateQuestionsRequest(BaseModel):
    """Prompt plus shape of the wanted drafts. Unknown type/difficulty fall back to ANY."""
    prompt: Annotated[str, Field(min_length=3)]
    count: Annotated[int, Field(ge=1, le=50)] = 3
    type: DraftQuestionType = DraftQuestionType.ANY
    difficulty: DraftDifficulty = DraftDifficulty.ANY

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v):
        valid = {t.value for t in DraftQuestionType}
        return v if isinstance(v, str) and v in valid else DraftQuestionType.ANY

    @field_validator("difficulty", mode="before")
    @classmethod
    def coerce_difficulty(cls, v):
        valid = {d.value for d in DraftDifficulty}
        return v if isinstance(v, str) and v in valid else DraftDifficulty.ANY


class GeneratedQuestion(BaseModel):
    """A candidate question drafted by the model, not yet in any bank."""
    text: str
    type: DraftQuestionType
    options: list[str] | None = None
    correct_answer: str
    marks: float = 1
    difficulty: DraftDifficulty


class GenerateQuestionsResponse(BaseModel):
    questions: list[GeneratedQuestion]
