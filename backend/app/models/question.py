"""
PROCTO - Question Bank Models
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Float, ForeignKey, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, JSONVariant

if TYPE_CHECKING:
    from app.models.course import Course


class QuestionType(str, Enum):
    """Supported question formats."""
    MULTIPLE_CHOICE = "multiple_choice"
    MULTIPLE_SELECT = "multiple_select"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    ESSAY = "essay"
    FILL_BLANK = "fill_blank"
    NUMERICAL = "numerical"
    CODE = "code"


class Question(Base):
    """A question in a course's bank, reusable across that course's exams."""

    __tablename__ = "questions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("courses.id", ondelete="CASCADE"),
        index=True
    )
    type: Mapped[QuestionType] = mapped_column(String(30))

    # { question, options, correct_answer, explanation, case_insensitive, accepted_answers }
    content: Mapped[dict] = mapped_column(JSONVariant)
    points: Mapped[float] = mapped_column(Float, default=1.0)
    difficulty: Mapped[str | None] = mapped_column(String(20), nullable=True)
    topic_tags: Mapped[list] = mapped_column(JSONVariant, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    course: Mapped["Course"] = relationship("Course")
