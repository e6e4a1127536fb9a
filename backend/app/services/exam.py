"""
PROCTO - Exam Service
Exam authoring: scheduling, rules, question assembly and publication
"""
import logging
import uuid
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.clock import as_utc, utc_now
from app.models.exam import Exam, ExamQuestion, ExamRules, ExamStatus
from app.models.exam_session import ExamSession
from app.models.question import Question
from app.models.user import User, UserRole
from app.schemas.exam import ExamCreate, ExamRulesSchema, ExamUpdate
from app.services.course import (
    CourseService,
    ensure_course_access,
    ensure_course_staff,
    get_active_enrollment,
)
from app.services.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)


class ExamService:
    """Service for exam authoring and lookup."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.courses = CourseService(db)

    async def get_exam(self, exam_id: uuid.UUID, with_questions: bool = False) -> Exam:
        options = [selectinload(Exam.rules), selectinload(Exam.course)]
        if with_questions:
            options.append(
                selectinload(Exam.exam_questions).selectinload(ExamQuestion.question)
            )

        exam = await self.db.scalar(
            select(Exam)
            .where(Exam.id == exam_id, Exam.deleted_at.is_(None))
            .options(*options)
            .execution_options(populate_existing=True)
        )
        if exam is None:
            raise NotFoundError("Exam not found")
        return exam

    async def create_exam(self, user: User, data: ExamCreate) -> Exam:
        course = await self.courses.get_course(data.course_id)
        ensure_course_staff(course, user)

        if data.end_at <= data.start_at:
            raise ValidationFailedError("End time must be after start time")

        exam = Exam(
            course_id=course.id,
            title=data.title,
            instructions=data.instructions,
            duration_minutes=data.duration_minutes,
            start_at=data.start_at,
            end_at=data.end_at,
            proctoring_level=data.proctoring_level,
            status=ExamStatus.DRAFT,
            is_published=False,
        )
        self.db.add(exam)
        await self.db.flush()

        if data.rules is not None:
            self.db.add(ExamRules(exam_id=exam.id, **data.rules.model_dump()))
            await self.db.flush()

        logger.info("Exam %s created in course %s", exam.id, course.id)
        return await self.get_exam(exam.id)

    async def list_exams(self, course_id: uuid.UUID, user: User) -> list[Exam]:
        course = await self.courses.get_course(course_id)
        await ensure_course_access(self.db, course, user)

        stmt = (
            select(Exam)
            .where(Exam.course_id == course_id, Exam.deleted_at.is_(None))
            .options(selectinload(Exam.rules))
            .order_by(Exam.start_at.desc())
        )
        if user.role == UserRole.STUDENT:
            stmt = stmt.where(Exam.is_published.is_(True))

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_exam_for_user(self, exam_id: uuid.UUID, user: User) -> Exam:
        exam = await self.get_exam(exam_id, with_questions=True)

        if user.role == UserRole.STUDENT:
            if not exam.is_published:
                raise ForbiddenError("Exam not available")
            if await get_active_enrollment(self.db, exam.course_id, user.id) is None:
                raise ForbiddenError("Not enrolled in this course")
        else:
            ensure_course_staff(exam.course, user, "Not authorized")

        return exam

    async def update_exam(self, exam_id: uuid.UUID, user: User, data: ExamUpdate) -> Exam:
        exam = await self.get_exam(exam_id)
        ensure_course_staff(exam.course, user, "Not authorized")

        if exam.is_published and utc_now() >= as_utc(exam.start_at):
            raise InvalidStateError("Cannot edit exam that has already started")

        changes: dict[str, Any] = data.model_dump(exclude_unset=True, exclude={"rules", "course_id"})
        for field, value in changes.items():
            if value is not None:
                setattr(exam, field, value)

        if as_utc(exam.end_at) <= as_utc(exam.start_at):
            raise ValidationFailedError("End time must be after start time")

        if data.rules is not None:
            await self._upsert_rules(exam, data.rules)

        await self.db.flush()
        return await self.get_exam(exam.id)

    async def _upsert_rules(self, exam: Exam, rules: ExamRulesSchema) -> None:
        values = rules.model_dump()
        if exam.rules is None:
            self.db.add(ExamRules(exam_id=exam.id, **values))
        else:
            for field, value in values.items():
                setattr(exam.rules, field, value)

    async def delete_exam(self, exam_id: uuid.UUID, user: User) -> None:
        """Soft delete, refused once any student has opened a session."""
        exam = await self.get_exam(exam_id)
        ensure_course_staff(exam.course, user, "Not authorized")

        session_count = await self.db.scalar(
            select(func.count(ExamSession.id)).where(ExamSession.exam_id == exam_id)
        )
        if session_count:
            raise InvalidStateError("Cannot delete exam with existing submissions")

        exam.deleted_at = utc_now()
        await self.db.flush()
        logger.info("Exam %s deleted", exam_id)

    async def publish_exam(self, exam_id: uuid.UUID, user: User) -> Exam:
        exam = await self.get_exam(exam_id)
        ensure_course_staff(exam.course, user, "Not authorized")

        if await self.count_questions(exam_id) == 0:
            raise InvalidStateError("Cannot publish exam without questions")

        exam.is_published = True
        exam.status = ExamStatus.SCHEDULED
        await self.db.flush()

        logger.info("Exam %s published", exam_id)
        return exam

    async def count_questions(self, exam_id: uuid.UUID) -> int:
        count = await self.db.scalar(
            select(func.count(ExamQuestion.id)).where(ExamQuestion.exam_id == exam_id)
        )
        return count or 0

    async def add_questions(
        self, exam_id: uuid.UUID, user: User, question_ids: list[uuid.UUID]
    ) -> int:
        """
        Append bank questions to the end of the exam.

        Questions already in the exam are skipped; every id must be a live
        question of the exam's course.

        Returns:
            Number of questions actually added
        """
        exam = await self.get_exam(exam_id)
        ensure_course_staff(exam.course, user, "Not authorized")

        wanted = list(dict.fromkeys(question_ids))
        result = await self.db.execute(
            select(Question.id).where(
                Question.id.in_(wanted),
                Question.course_id == exam.course_id,
                Question.deleted_at.is_(None),
            )
        )
        valid = set(result.scalars().all())
        invalid = [qid for qid in wanted if qid not in valid]
        if invalid:
            raise ValidationFailedError(
                "Questions do not belong to this course",
                details=[
                    {"loc": ["question_ids"], "msg": "Unknown question", "input": str(qid)}
                    for qid in invalid
                ],
            )

        result = await self.db.execute(
            select(ExamQuestion.question_id).where(ExamQuestion.exam_id == exam_id)
        )
        present = set(result.scalars().all())

        max_order = await self.db.scalar(
            select(func.max(ExamQuestion.order_index)).where(ExamQuestion.exam_id == exam_id)
        )
        order_index = -1 if max_order is None else max_order

        added = 0
        for question_id in wanted:
            if question_id in present:
                continue
            order_index += 1
            self.db.add(ExamQuestion(
                exam_id=exam_id,
                question_id=question_id,
                order_index=order_index,
            ))
            added += 1

        await self.db.flush()
        return added

    async def remove_question(
        self, exam_id: uuid.UUID, question_id: uuid.UUID, user: User
    ) -> None:
        exam = await self.get_exam(exam_id)
        ensure_course_staff(exam.course, user, "Not authorized")

        link = await self.db.scalar(
            select(ExamQuestion).where(
                ExamQuestion.exam_id == exam_id,
                ExamQuestion.question_id == question_id,
            )
        )
        if link is not None:
            await self.db.delete(link)
            await self.db.flush()
