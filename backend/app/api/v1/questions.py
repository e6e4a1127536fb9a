"""
PROCTO - Question Bank API Routes
Per-course question banks: authoring, filtering and bulk import
"""
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import CurrentUser, DbSession, StaffUser
from app.core.clock import utc_now
from app.models.question import Question, QuestionType
from app.models.user import User
from app.schemas.question import (
    QuestionContent,
    QuestionCreate,
    QuestionImportRequest,
    QuestionImportResponse,
    QuestionResponse,
    QuestionUpdate,
    validate_content,
)
from app.services.course import CourseService, ensure_course_access, ensure_course_staff
from app.services.exceptions import NotFoundError, ValidationFailedError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/questions", tags=["Question Bank"])


async def _get_owned_question(db: AsyncSession, question_id: uuid.UUID, user: User) -> Question:
    question = await db.scalar(
        select(Question).where(Question.id == question_id, Question.deleted_at.is_(None))
    )
    if question is None:
        raise NotFoundError("Question not found")

    course = await CourseService(db).get_course(question.course_id)
    ensure_course_staff(course, user)
    return question


def _content_dict(content: QuestionContent) -> dict:
    return content.model_dump(exclude_none=True)


@router.post(
    "",
    response_model=QuestionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a question",
)
async def create_question(
    data: QuestionCreate,
    current_user: StaffUser,
    db: DbSession,
) -> QuestionResponse:
    course = await CourseService(db).get_course(data.course_id)
    ensure_course_staff(course, current_user)

    question = Question(
        course_id=course.id,
        type=data.type.value,
        content=_content_dict(data.content),
        points=data.points,
        difficulty=data.difficulty,
        topic_tags=data.topic_tags,
    )
    db.add(question)
    await db.flush()
    await db.refresh(question)

    return QuestionResponse.model_validate(question)


@router.get("", response_model=list[QuestionResponse], summary="List a course's questions")
async def list_questions(
    current_user: CurrentUser,
    db: DbSession,
    course_id: uuid.UUID,
    type: QuestionType | None = None,
    difficulty: str | None = None,
    tags: Annotated[list[str] | None, Query()] = None,
) -> list[QuestionResponse]:
    """
    Questions of a course, newest first.

    ``tags`` matches questions carrying any of the given tags.
    """
    course = await CourseService(db).get_course(course_id)
    await ensure_course_access(db, course, current_user)

    stmt = (
        select(Question)
        .where(Question.course_id == course_id, Question.deleted_at.is_(None))
        .order_by(Question.created_at.desc())
    )
    if type is not None:
        stmt = stmt.where(Question.type == type.value)
    if difficulty:
        stmt = stmt.where(Question.difficulty == difficulty)

    result = await db.execute(stmt)
    questions = list(result.scalars().all())

    # JSON containment differs per backend, so tags are matched here
    if tags:
        wanted = set(tags)
        questions = [q for q in questions if wanted.intersection(q.topic_tags or [])]

    return [QuestionResponse.model_validate(q) for q in questions]


@router.post(
    "/import",
    response_model=QuestionImportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Bulk import questions",
)
async def import_questions(
    data: QuestionImportRequest,
    current_user: StaffUser,
    db: DbSession,
) -> QuestionImportResponse:
    """Insert a batch of questions; the request is validated as a whole first."""
    course = await CourseService(db).get_course(data.course_id)
    ensure_course_staff(course, current_user)

    db.add_all([
        Question(
            course_id=course.id,
            type=item.type.value,
            content=_content_dict(item.content),
            points=item.points,
            difficulty=item.difficulty,
            topic_tags=item.topic_tags,
        )
        for item in data.questions
    ])
    await db.flush()

    logger.info("Imported %d question(s) into course %s", len(data.questions), course.id)
    return QuestionImportResponse(
        message=f"Successfully imported {len(data.questions)} questions",
        count=len(data.questions),
    )


@router.get("/{question_id}", response_model=QuestionResponse, summary="Get a question")
async def get_question(
    question_id: uuid.UUID,
    current_user: StaffUser,
    db: DbSession,
) -> QuestionResponse:
    question = await _get_owned_question(db, question_id, current_user)
    return QuestionResponse.model_validate(question)


@router.put("/{question_id}", response_model=QuestionResponse, summary="Update a question")
async def update_question(
    question_id: uuid.UUID,
    data: QuestionUpdate,
    current_user: StaffUser,
    db: DbSession,
) -> QuestionResponse:
    question = await _get_owned_question(db, question_id, current_user)

    new_type = data.type or QuestionType(question.type)
    new_content = data.content or QuestionContent.model_validate(question.content)
    if data.type is not None or data.content is not None:
        try:
            validate_content(new_type, new_content)
        except ValueError as e:
            raise ValidationFailedError(str(e))
        question.type = new_type.value
        question.content = _content_dict(new_content)

    if data.points is not None:
        question.points = data.points
    if data.difficulty is not None:
        question.difficulty = data.difficulty
    if data.topic_tags is not None:
        question.topic_tags = data.topic_tags

    question.updated_at = utc_now()
    await db.flush()
    await db.refresh(question)
    return QuestionResponse.model_validate(question)


@router.delete(
    "/{question_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a question",
)
async def delete_question(
    question_id: uuid.UUID,
    current_user: StaffUser,
    db: DbSession,
) -> None:
    """Soft delete; exams that already use the question keep it."""
    question = await _get_owned_question(db, question_id, current_user)
    question.deleted_at = utc_now()
    await db.flush()
