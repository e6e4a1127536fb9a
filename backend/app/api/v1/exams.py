"""
PROCTO - Exam API Routes
Exam authoring, publication and question assembly
"""
import uuid

from fastapi import APIRouter, status

from app.api.deps import Clock, CurrentUser, DbSession, StaffUser
from app.models.exam import Exam
from app.models.user import User, UserRole
from app.schemas.exam import (
    AddQuestionsRequest,
    ExamCreate,
    ExamDetailResponse,
    ExamQuestionResponse,
    ExamResponse,
    ExamUpdate,
)
from app.schemas.exam_session import SessionResponse
from app.schemas.question import QuestionResponse, strip_answer_key
from app.services.exam import ExamService
from app.services.exam_session import ExamSessionService

router = APIRouter(prefix="/exams", tags=["Exams"])


def _exam_detail(exam: Exam, user: User) -> ExamDetailResponse:
    """Exam with ordered questions; answer keys are hidden from students."""
    questions = []
    for link in exam.exam_questions:
        question = QuestionResponse.model_validate(link.question)
        if user.role == UserRole.STUDENT:
            question.content = strip_answer_key(question.content)
        questions.append(ExamQuestionResponse(order_index=link.order_index, question=question))

    response = ExamDetailResponse.model_validate(exam)
    response.questions = questions
    return response


@router.post(
    "",
    response_model=ExamResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an exam",
)
async def create_exam(
    data: ExamCreate,
    current_user: StaffUser,
    db: DbSession,
) -> ExamResponse:
    """Create an unpublished draft exam in one of the caller's courses."""
    exam = await ExamService(db).create_exam(current_user, data)
    return ExamResponse.model_validate(exam)


@router.get("", response_model=list[ExamResponse], summary="List a course's exams")
async def list_exams(
    course_id: uuid.UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> list[ExamResponse]:
    exams = await ExamService(db).list_exams(course_id, current_user)
    return [ExamResponse.model_validate(e) for e in exams]


@router.get("/{exam_id}", response_model=ExamDetailResponse, summary="Get an exam")
async def get_exam(
    exam_id: uuid.UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> ExamDetailResponse:
    exam = await ExamService(db).get_exam_for_user(exam_id, current_user)
    return _exam_detail(exam, current_user)


@router.put("/{exam_id}", response_model=ExamResponse, summary="Update an exam")
async def update_exam(
    exam_id: uuid.UUID,
    data: ExamUpdate,
    current_user: StaffUser,
    db: DbSession,
) -> ExamResponse:
    exam = await ExamService(db).update_exam(exam_id, current_user, data)
    return ExamResponse.model_validate(exam)


@router.delete(
    "/{exam_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an exam",
)
async def delete_exam(
    exam_id: uuid.UUID,
    current_user: StaffUser,
    db: DbSession,
) -> None:
    await ExamService(db).delete_exam(exam_id, current_user)


@router.post("/{exam_id}/publish", response_model=ExamResponse, summary="Publish an exam")
async def publish_exam(
    exam_id: uuid.UUID,
    current_user: StaffUser,
    db: DbSession,
) -> ExamResponse:
    exam = await ExamService(db).publish_exam(exam_id, current_user)
    return ExamResponse.model_validate(exam)


@router.post(
    "/{exam_id}/questions",
    response_model=ExamDetailResponse,
    summary="Add bank questions to an exam",
)
async def add_questions(
    exam_id: uuid.UUID,
    data: AddQuestionsRequest,
    current_user: StaffUser,
    db: DbSession,
) -> ExamDetailResponse:
    service = ExamService(db)
    await service.add_questions(exam_id, current_user, data.question_ids)
    exam = await service.get_exam(exam_id, with_questions=True)
    return _exam_detail(exam, current_user)


@router.delete(
    "/{exam_id}/questions/{question_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a question from an exam",
)
async def remove_question(
    exam_id: uuid.UUID,
    question_id: uuid.UUID,
    current_user: StaffUser,
    db: DbSession,
) -> None:
    await ExamService(db).remove_question(exam_id, question_id, current_user)


@router.get(
    "/{exam_id}/sessions",
    response_model=list[SessionResponse],
    summary="List sessions of an exam",
)
async def list_exam_sessions(
    exam_id: uuid.UUID,
    current_user: StaffUser,
    db: DbSession,
    clock: Clock,
) -> list[SessionResponse]:
    service = ExamSessionService(db, clock=clock)
    sessions = await service.list_exam_sessions(exam_id, current_user)
    return [SessionResponse.model_validate(s) for s in sessions]
