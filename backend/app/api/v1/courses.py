"""
PROCTO - Course API Routes
Course creation, join-code enrollment and roster management
"""
import uuid

from fastapi import APIRouter, status

from app.api.deps import CurrentUser, DbSession, StaffUser, StudentUser
from app.schemas.course import (
    CourseCreate,
    CourseDetailResponse,
    CourseResponse,
    EnrollByCodeRequest,
    RosterEntry,
)
from app.services.course import CourseService, ensure_course_access

router = APIRouter(prefix="/courses", tags=["Courses"])


@router.post(
    "",
    response_model=CourseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a course",
)
async def create_course(
    data: CourseCreate,
    current_user: StaffUser,
    db: DbSession,
) -> CourseResponse:
    """Create a course owned by the caller, with a generated join code."""
    course = await CourseService(db).create_course(current_user, data.name, data.description)
    return CourseResponse.model_validate(course)


@router.get("", response_model=list[CourseResponse], summary="List visible courses")
async def list_courses(
    current_user: CurrentUser,
    db: DbSession,
) -> list[CourseResponse]:
    courses = await CourseService(db).list_courses(current_user)
    return [CourseResponse.model_validate(c) for c in courses]


@router.post(
    "/enroll",
    response_model=CourseResponse,
    summary="Join a course by code",
)
async def enroll_by_code(
    data: EnrollByCodeRequest,
    current_user: StudentUser,
    db: DbSession,
) -> CourseResponse:
    course = await CourseService(db).enroll_by_code(current_user, data.course_code)
    return CourseResponse.model_validate(course)


@router.get("/{course_id}", response_model=CourseDetailResponse, summary="Get course")
async def get_course(
    course_id: uuid.UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> CourseDetailResponse:
    service = CourseService(db)
    course = await service.get_course(course_id)
    await ensure_course_access(db, course, current_user)

    response = CourseDetailResponse.model_validate(course)
    response.enrollment_count = await service.count_enrollments(course_id)
    response.exam_count = await service.count_exams(course_id)
    return response


@router.post(
    "/{course_id}/enroll",
    response_model=CourseResponse,
    summary="Join a course by id",
)
async def enroll_by_id(
    course_id: uuid.UUID,
    current_user: StudentUser,
    db: DbSession,
) -> CourseResponse:
    course = await CourseService(db).enroll_by_id(current_user, course_id)
    return CourseResponse.model_validate(course)


@router.get(
    "/{course_id}/roster",
    response_model=list[RosterEntry],
    summary="List enrolled students",
)
async def get_roster(
    course_id: uuid.UUID,
    current_user: StaffUser,
    db: DbSession,
) -> list[RosterEntry]:
    enrollments = await CourseService(db).get_roster(course_id, current_user)
    return [RosterEntry.model_validate(e) for e in enrollments]


@router.delete(
    "/{course_id}/students/{student_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a student from a course",
)
async def unenroll_student(
    course_id: uuid.UUID,
    student_id: uuid.UUID,
    current_user: StaffUser,
    db: DbSession,
) -> None:
    await CourseService(db).unenroll(course_id, student_id, current_user)
