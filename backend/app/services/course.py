"""
PROCTO - Course Service
Course creation with join codes, enrollment and roster management
"""
import logging
import secrets
import string
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.clock import utc_now
from app.models.course import Course, Enrollment
from app.models.exam import Exam
from app.models.user import User, UserRole
from app.services.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ServiceError,
)

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_lowercase + string.digits
CODE_GROUPS = (3, 4, 3)
MAX_CODE_ATTEMPTS = 10


class CourseCodeError(ServiceError):
    """No unused join code could be generated."""
    status_code = 500


def generate_course_code() -> str:
    """Classroom-style join code such as ``abc-defg-hij``."""
    return "-".join(
        "".join(secrets.choice(CODE_ALPHABET) for _ in range(size))
        for size in CODE_GROUPS
    )


def normalize_course_code(code: str) -> str:
    return code.strip().lower()


def ensure_course_staff(course: Course, user: User, detail: str = "Not authorized for this course") -> None:
    """Faculty may only manage their own courses; admins manage all."""
    if user.role == UserRole.ADMIN:
        return
    if user.role != UserRole.FACULTY or course.faculty_id != user.id:
        raise ForbiddenError(detail)


async def get_active_enrollment(
    db: AsyncSession, course_id: uuid.UUID, student_id: uuid.UUID
) -> Enrollment | None:
    """The student's enrollment in the course, ignoring dropped ones."""
    return await db.scalar(
        select(Enrollment).where(
            Enrollment.course_id == course_id,
            Enrollment.student_id == student_id,
            Enrollment.dropped_at.is_(None),
        )
    )


async def ensure_course_access(db: AsyncSession, course: Course, user: User) -> None:
    """Read access: enrolled students, the owning faculty member, admins."""
    if user.role == UserRole.STUDENT:
        if await get_active_enrollment(db, course.id, user.id) is None:
            raise ForbiddenError("Not enrolled in this course")
    else:
        ensure_course_staff(course, user)


class CourseService:
    """Service for courses and enrollments."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_course(self, course_id: uuid.UUID) -> Course:
        course = await self.db.scalar(
            select(Course)
            .where(Course.id == course_id, Course.deleted_at.is_(None))
            .options(selectinload(Course.faculty))
            .execution_options(populate_existing=True)
        )
        if course is None:
            raise NotFoundError("Course not found")
        return course

    async def create_course(self, faculty: User, name: str, description: str | None) -> Course:
        """Create a course with a freshly generated, unused join code."""
        code = None
        for _ in range(MAX_CODE_ATTEMPTS):
            candidate = generate_course_code()
            taken = await self.db.scalar(select(Course.id).where(Course.code == candidate))
            if taken is None:
                code = candidate
                break

        if code is None:
            raise CourseCodeError("Failed to generate unique course code")

        course = Course(
            name=name,
            description=description,
            code=code,
            faculty_id=faculty.id,
        )
        self.db.add(course)
        await self.db.flush()

        logger.info("Course %s created by %s with code %s", course.id, faculty.id, code)
        return await self.get_course(course.id)

    async def list_courses(self, user: User) -> list[Course]:
        """Faculty: own courses. Admin: all courses. Student: enrolled courses."""
        stmt = (
            select(Course)
            .where(Course.deleted_at.is_(None))
            .options(selectinload(Course.faculty))
        )

        if user.role == UserRole.STUDENT:
            stmt = (
                stmt.join(Enrollment, Enrollment.course_id == Course.id)
                .where(Enrollment.student_id == user.id, Enrollment.dropped_at.is_(None))
                .order_by(Enrollment.enrolled_at.desc())
            )
        else:
            if user.role == UserRole.FACULTY:
                stmt = stmt.where(Course.faculty_id == user.id)
            stmt = stmt.order_by(Course.created_at.desc())

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count_enrollments(self, course_id: uuid.UUID) -> int:
        count = await self.db.scalar(
            select(func.count(Enrollment.id)).where(
                Enrollment.course_id == course_id,
                Enrollment.dropped_at.is_(None),
            )
        )
        return count or 0

    async def count_exams(self, course_id: uuid.UUID) -> int:
        count = await self.db.scalar(
            select(func.count(Exam.id)).where(
                Exam.course_id == course_id,
                Exam.deleted_at.is_(None),
            )
        )
        return count or 0

    async def enroll_by_code(self, student: User, code: str) -> Course:
        course = await self.db.scalar(
            select(Course)
            .where(Course.code == normalize_course_code(code), Course.deleted_at.is_(None))
            .options(selectinload(Course.faculty))
            .execution_options(populate_existing=True)
        )
        if course is None:
            raise NotFoundError("Invalid course code. Please check and try again.")

        if not course.is_active:
            raise InvalidStateError("This course is not accepting enrollments")

        await self._enroll(course, student, "You are already enrolled in this course")
        return course

    async def enroll_by_id(self, student: User, course_id: uuid.UUID) -> Course:
        course = await self.get_course(course_id)
        if not course.is_active:
            raise InvalidStateError("Course is not active")

        await self._enroll(course, student, "Already enrolled in this course")
        return course

    async def _enroll(self, course: Course, student: User, already_detail: str) -> None:
        """Create an enrollment, or reactivate a dropped one."""
        existing = await self.db.scalar(
            select(Enrollment).where(
                Enrollment.course_id == course.id,
                Enrollment.student_id == student.id,
            )
        )

        if existing is not None and not existing.is_dropped:
            raise InvalidStateError(already_detail)

        if existing is not None:
            existing.dropped_at = None
            existing.enrolled_at = utc_now()
        else:
            self.db.add(Enrollment(course_id=course.id, student_id=student.id))

        await self.db.flush()
        logger.info("Student %s enrolled in course %s", student.id, course.id)

    async def get_roster(self, course_id: uuid.UUID, user: User) -> list[Enrollment]:
        course = await self.get_course(course_id)
        ensure_course_staff(course, user)

        result = await self.db.execute(
            select(Enrollment)
            .where(Enrollment.course_id == course_id, Enrollment.dropped_at.is_(None))
            .options(selectinload(Enrollment.student))
            .order_by(Enrollment.enrolled_at.desc())
        )
        return list(result.scalars().all())

    async def unenroll(self, course_id: uuid.UUID, student_id: uuid.UUID, user: User) -> None:
        """Drop a student; the row stays so past sessions keep their context."""
        course = await self.get_course(course_id)
        ensure_course_staff(course, user, "Not authorized")

        enrollment = await get_active_enrollment(self.db, course_id, student_id)
        if enrollment is None:
            raise NotFoundError("Enrollment not found")

        enrollment.dropped_at = utc_now()
        await self.db.flush()
        logger.info("Student %s dropped from course %s", student_id, course_id)
