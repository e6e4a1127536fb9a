"""
PROCTO - Exam Session Models
One student's attempt at one exam, and the answers saved during it
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, JSONVariant

if TYPE_CHECKING:
    from app.models.exam import Exam


class SessionStatus(str, Enum):
    """
    Session lifecycle.

    ACTIVE is the only non-terminal state. TERMINATED is set by proctoring
    outside this service; both terminal states count as a used attempt.
    """
    ACTIVE = "active"
    SUBMITTED = "submitted"
    TERMINATED = "terminated"


TERMINAL_STATUSES = (SessionStatus.SUBMITTED, SessionStatus.TERMINATED)

# Predicate of the partial unique index; also the ON CONFLICT target predicate
ACTIVE_SESSION_PREDICATE = text("status = 'active'")


class ExamSession(Base):
    """A student's attempt at an exam."""

    __tablename__ = "exam_sessions"
    __table_args__ = (
        # At most one ACTIVE session per (exam, student)
        Index(
            "uq_exam_sessions_one_active",
            "exam_id",
            "student_id",
            unique=True,
            postgresql_where=ACTIVE_SESSION_PREDICATE,
            sqlite_where=ACTIVE_SESSION_PREDICATE,
        ),
        Index("ix_exam_sessions_exam_student", "exam_id", "student_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    exam_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("exams.id", ondelete="CASCADE")
    )
    student_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE")
    )
    status: Mapped[SessionStatus] = mapped_column(String(20), default=SessionStatus.ACTIVE)

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    auto_submitted: Mapped[bool] = mapped_column(Boolean, default=False)

    # Diagnostics only
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Relationships
    exam: Mapped["Exam"] = relationship("Exam")
    answers: Mapped[list["Answer"]] = relationship(
        "Answer",
        back_populates="session",
        order_by="Answer.created_at"
    )

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE


class Answer(Base):
    """The latest saved response to one question within one session."""

    __tablename__ = "answers"
    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_answers_session_question"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("exam_sessions.id", ondelete="CASCADE"),
        index=True
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("questions.id", ondelete="CASCADE")
    )

    # Selected option, list of options, or free text depending on question type
    response: Mapped[Any] = mapped_column(JSONVariant, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    session: Mapped["ExamSession"] = relationship("ExamSession", back_populates="answers")
