"""
PROCTO - Exam Session Service
Session lifecycle: eligibility-gated start/resume, answer autosave, submission
and lazy server-side deadline enforcement.
"""
import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.clock import as_utc, utc_now
from app.core.config import settings
from app.core.database import dialect_insert
from app.models.course import Course, Enrollment
from app.models.exam import Exam, ExamQuestion
from app.models.exam_session import (
    ACTIVE_SESSION_PREDICATE,
    TERMINAL_STATUSES,
    Answer,
    ExamSession,
    SessionStatus,
)
from app.models.user import User, UserRole
from app.services.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationFailedError,
)
from app.services.grading import GradingHook, PendingGrading
from app.services.policy import (
    Access,
    SessionAction,
    authorize_session,
    session_access,
)

logger = logging.getLogger(__name__)


class ExamSessionService:
    """
    Exam session manager.

    Every operation re-reads the session from the database before acting on
    it; nothing is cached between requests. Uniqueness of the active session
    and of each (session, question) answer is left to database constraints.
    """

    def __init__(
        self,
        db: AsyncSession,
        grader: GradingHook | None = None,
        clock: Callable[[], datetime] = utc_now,
        grace_seconds: int | None = None,
    ):
        self.db = db
        self.grader = grader or PendingGrading()
        self.clock = clock
        if grace_seconds is None:
            grace_seconds = settings.SESSION_GRACE_SECONDS
        self.grace = timedelta(seconds=grace_seconds)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def start_session(
        self,
        exam_id: uuid.UUID,
        student: User,
        ip_address: str | None = None,
    ) -> tuple[ExamSession, bool]:
        """
        Start a session for ``student`` or resume their active one.

        Returns:
            (session, created) where ``created`` is False on resumption

        Raises:
            NotFoundError: Exam does not exist
            ForbiddenError: Unpublished, outside the window, not enrolled,
                or out of attempts
        """
        session_access(SessionAction.START, student)

        exam = await self._get_exam(exam_id)
        if exam is None:
            raise NotFoundError("Exam not found")

        if not exam.is_published:
            raise ForbiddenError("Exam not available")

        now = self.clock()
        if now < as_utc(exam.start_at):
            raise ForbiddenError("Exam has not started yet")
        if now > as_utc(exam.end_at):
            raise ForbiddenError("Exam window has ended")

        enrollment = await self._get_enrollment(exam.course_id, student.id)
        if enrollment is None or enrollment.is_dropped:
            raise ForbiddenError("Not enrolled in this course")

        # An abandoned session whose time ran out becomes a used attempt
        active = await self._find_active(exam.id, student.id)
        if active is not None and self._is_expired(active, exam, now):
            await self._auto_submit(active, exam)
            active = None

        attempts = await self._count_attempts(exam.id, student.id)
        if attempts >= exam.max_attempts:
            raise ForbiddenError("Maximum attempts reached")

        if active is not None:
            logger.info("Resuming session %s for student %s", active.id, student.id)
            return active, False

        new_id = uuid.uuid4()
        insert = dialect_insert(self.db)
        stmt = (
            insert(ExamSession)
            .values(
                id=new_id,
                exam_id=exam.id,
                student_id=student.id,
                status=SessionStatus.ACTIVE.value,
                started_at=now,
                auto_submitted=False,
                ip_address=ip_address,
            )
            .on_conflict_do_nothing(
                index_elements=["exam_id", "student_id"],
                index_where=ACTIVE_SESSION_PREDICATE,
            )
        )
        await self.db.execute(stmt)

        # A concurrent start may have won the insert; either way one row exists
        session = await self._find_active(exam.id, student.id)
        if session is None:
            raise InvalidStateError("Session could not be started")

        created = session.id == new_id
        if created:
            logger.info(
                "Started session %s for student %s on exam %s (attempt %d/%d)",
                session.id,
                student.id,
                exam.id,
                attempts + 1,
                exam.max_attempts,
            )
        return session, created

    async def get_session(self, session_id: uuid.UUID, user: User) -> ExamSession:
        """
        Read a session with its exam, questions and answers.

        Students only ever see their own sessions; an unknown id is reported
        to them as Forbidden so session ids cannot be probed. Staff have
        read-only access to any session.
        """
        access = session_access(SessionAction.READ, user)
        session = await self._load_session(session_id, with_answers=True)

        if access == Access.OWNER:
            if session is None or session.student_id != user.id:
                raise ForbiddenError("Not authorized")
        elif session is None:
            raise NotFoundError("Session not found")

        if session.is_active and self._is_expired(session, session.exam, self.clock()):
            await self._auto_submit(session, session.exam)
            session = await self._load_session(session_id, with_answers=True)

        return session

    async def save_answers(
        self,
        session_id: uuid.UUID,
        student: User,
        answers: Iterable[tuple[uuid.UUID, Any]],
    ) -> int:
        """
        Create or overwrite answers of an active session.

        Duplicate question ids collapse to the last response given. All rows
        are written by a single upsert statement, so a batch is applied
        entirely or not at all.

        Returns:
            Number of distinct questions written
        """
        session = await self._load_session(session_id, for_update=True)
        if session is None:
            raise NotFoundError("Session not found")

        authorize_session(SessionAction.SAVE_ANSWERS, student, session)

        if not session.is_active:
            raise InvalidStateError("Session is not active")

        if self._is_expired(session, session.exam, self.clock()):
            await self._auto_submit(session, session.exam)
            raise InvalidStateError("Exam time has expired")

        latest: dict[uuid.UUID, Any] = {}
        for question_id, response in answers:
            latest[question_id] = response

        if not latest:
            return 0

        result = await self.db.execute(
            select(ExamQuestion.question_id).where(ExamQuestion.exam_id == session.exam_id)
        )
        exam_question_ids = set(result.scalars().all())
        unknown = [qid for qid in latest if qid not in exam_question_ids]
        if unknown:
            raise ValidationFailedError(
                "Questions are not part of this exam",
                details=[
                    {"loc": ["answers", "questionId"], "msg": "Unknown question", "input": str(qid)}
                    for qid in unknown
                ],
            )

        now = self.clock()
        insert = dialect_insert(self.db)
        stmt = insert(Answer).values([
            {
                "id": uuid.uuid4(),
                "session_id": session.id,
                "question_id": question_id,
                "response": response,
                "created_at": now,
                "updated_at": now,
            }
            for question_id, response in latest.items()
        ])
        stmt = stmt.on_conflict_do_update(
            index_elements=["session_id", "question_id"],
            set_={
                "response": stmt.excluded.response,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.db.execute(stmt)

        logger.debug("Saved %d answer(s) for session %s", len(latest), session.id)
        return len(latest)

    async def submit(self, session_id: uuid.UUID, student: User) -> ExamSession:
        """
        Move an active session to SUBMITTED.

        A submission that arrives after the deadline is still accepted (the
        client countdown usually fires right at zero) but is flagged as
        auto-submitted. Past the grace period the session is closed at its
        deadline, the same way a read would close it.
        """
        session = await self._load_session(session_id, for_update=True)
        if session is None:
            raise NotFoundError("Session not found")

        authorize_session(SessionAction.SUBMIT, student, session)

        if not session.is_active:
            raise InvalidStateError("Session already submitted")

        now = self.clock()
        if self._is_expired(session, session.exam, now):
            await self._auto_submit(session, session.exam)
            return session

        session.status = SessionStatus.SUBMITTED.value
        session.submitted_at = now
        session.auto_submitted = now > self.deadline_for(session, session.exam)
        await self.db.flush()

        logger.info("Session %s submitted by student %s", session.id, student.id)
        await self._run_grading(session)
        return session

    async def list_exam_sessions(self, exam_id: uuid.UUID, user: User) -> list[ExamSession]:
        """All sessions of an exam, for the owning faculty member or an admin."""
        if not user.is_staff:
            raise ForbiddenError("Not authorized")

        exam = await self.db.scalar(
            select(Exam)
            .where(Exam.id == exam_id, Exam.deleted_at.is_(None))
            .options(selectinload(Exam.course))
        )
        if exam is None:
            raise NotFoundError("Exam not found")

        if user.role == UserRole.FACULTY and exam.course.faculty_id != user.id:
            raise ForbiddenError("Not authorized")

        result = await self.db.execute(
            select(ExamSession)
            .where(ExamSession.exam_id == exam_id)
            .order_by(ExamSession.started_at.desc())
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------

    def deadline_for(self, session: ExamSession, exam: Exam) -> datetime:
        """The earlier of the exam window end and the session's own time limit."""
        by_duration = as_utc(session.started_at) + timedelta(minutes=exam.duration_minutes)
        return min(as_utc(exam.end_at), by_duration)

    def _is_expired(self, session: ExamSession, exam: Exam, now: datetime) -> bool:
        return now > self.deadline_for(session, exam) + self.grace

    async def _auto_submit(self, session: ExamSession, exam: Exam) -> None:
        """
        Close a session whose time has run out.

        Committed immediately: callers usually go on to reject the request,
        and the rollback of that rejection must not reopen the session.
        """
        session.status = SessionStatus.SUBMITTED.value
        session.submitted_at = self.deadline_for(session, exam)
        session.auto_submitted = True
        await self.db.flush()

        logger.info("Session %s auto-submitted at deadline %s", session.id, session.submitted_at)
        await self._run_grading(session)
        await self.db.commit()

    async def _run_grading(self, session: ExamSession) -> None:
        try:
            await self.grader.on_submitted(self.db, session)
        except Exception:
            # The submission stands even when grading fails
            logger.exception("Grading hook failed for session %s", session.id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def _get_exam(self, exam_id: uuid.UUID) -> Exam | None:
        return await self.db.scalar(
            select(Exam)
            .where(Exam.id == exam_id, Exam.deleted_at.is_(None))
            .options(selectinload(Exam.rules))
            .execution_options(populate_existing=True)
        )

    async def _get_enrollment(
        self, course_id: uuid.UUID, student_id: uuid.UUID
    ) -> Enrollment | None:
        return await self.db.scalar(
            select(Enrollment)
            .join(Course, Course.id == Enrollment.course_id)
            .where(
                Enrollment.course_id == course_id,
                Enrollment.student_id == student_id,
                Course.deleted_at.is_(None),
            )
            .execution_options(populate_existing=True)
        )

    async def _find_active(
        self, exam_id: uuid.UUID, student_id: uuid.UUID
    ) -> ExamSession | None:
        return await self.db.scalar(
            select(ExamSession)
            .where(
                ExamSession.exam_id == exam_id,
                ExamSession.student_id == student_id,
                ExamSession.status == SessionStatus.ACTIVE.value,
            )
            .options(selectinload(ExamSession.exam).selectinload(Exam.rules))
            .execution_options(populate_existing=True)
        )

    async def _count_attempts(self, exam_id: uuid.UUID, student_id: uuid.UUID) -> int:
        count = await self.db.scalar(
            select(func.count(ExamSession.id)).where(
                ExamSession.exam_id == exam_id,
                ExamSession.student_id == student_id,
                ExamSession.status.in_([s.value for s in TERMINAL_STATUSES]),
            )
        )
        return count or 0

    async def _load_session(
        self,
        session_id: uuid.UUID,
        with_answers: bool = False,
        for_update: bool = False,
    ) -> ExamSession | None:
        options = [selectinload(ExamSession.exam).selectinload(Exam.rules)]
        if with_answers:
            options.append(
                selectinload(ExamSession.exam)
                .selectinload(Exam.exam_questions)
                .selectinload(ExamQuestion.question)
            )
            options.append(selectinload(ExamSession.answers))

        stmt = (
            select(ExamSession)
            .where(ExamSession.id == session_id)
            .options(*options)
            .execution_options(populate_existing=True)
        )
        if for_update:
            # Serializes autosave against submit on the same session row
            stmt = stmt.with_for_update(of=ExamSession)
        return await self.db.scalar(stmt)
