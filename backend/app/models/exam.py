"""
PROCTO - Exam Models
SQLAlchemy models for exams, their policy rules and question ordering
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

if TYPE_CHECKING:
    from app.models.course import Course
    from app.models.question import Question


class ExamStatus(str, Enum):
    """Authoring status of an exam."""
    DRAFT = "draft"
    SCHEDULED = "scheduled"


class Exam(Base):
    """A timed exam offered to a course inside a fixed window."""

    __tablename__ = "exams"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("courses.id", ondelete="CASCADE"),
        index=True
    )
    title: Mapped[str] = mapped_column(String(255))
    instructions: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timing
    duration_minutes: Mapped[int] = mapped_column(Integer)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    proctoring_level: Mapped[str] = mapped_column(String(20), default="STANDARD")
    status: Mapped[ExamStatus] = mapped_column(String(20), default=ExamStatus.DRAFT)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False)

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

    # Relationships
    course: Mapped["Course"] = relationship("Course")
    rules: Mapped["ExamRules | None"] = relationship(
        "ExamRules",
        back_populates="exam",
        uselist=False,
        cascade="all, delete-orphan"
    )
    exam_questions: Mapped[list["ExamQuestion"]] = relationship(
        "ExamQuestion",
        back_populates="exam",
        order_by="ExamQuestion.order_index",
        cascade="all, delete-orphan"
    )

    @property
    def max_attempts(self) -> int:
        if self.rules is None or not self.rules.max_attempts:
            return 1
        return self.rules.max_attempts


class ExamRules(Base):
    """Per-exam attempt and presentation policy."""

    __tablename__ = "exam_rules"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    exam_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("exams.id", ondelete="CASCADE"),
        unique=True
    )
    shuffle_questions: Mapped[bool] = mapped_column(Boolean, default=True)
    shuffle_choices: Mapped[bool] = mapped_column(Boolean, default=True)
    max_attempts: Mapped[int] = mapped_column(Integer, default=1)
    negative_marking_factor: Mapped[float] = mapped_column(Float, default=0.0)
    pass_threshold: Mapped[float] = mapped_column(Float, default=60.0)  # percent
    allow_calculator: Mapped[bool] = mapped_column(Boolean, default=False)
    allow_formula_sheet: Mapped[bool] = mapped_column(Boolean, default=False)

    exam: Mapped["Exam"] = relationship("Exam", back_populates="rules")


class ExamQuestion(Base):
    """Placement of a bank question inside an exam."""

    __tablename__ = "exam_questions"
    __table_args__ = (
        UniqueConstraint("exam_id", "question_id", name="uq_exam_questions_exam_question"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    exam_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("exams.id", ondelete="CASCADE"),
        index=True
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("questions.id", ondelete="CASCADE"),
        index=True
    )
    order_index: Mapped[int] = mapped_column(Integer, default=0)

    exam: Mapped["Exam"] = relationship("Exam", back_populates="exam_questions")
    question: Mapped["Question"] = relationship("Question")
