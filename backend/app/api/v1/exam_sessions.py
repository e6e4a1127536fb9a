"""
PROCTO - Exam Session API Routes
Start/resume, autosave, submit and read of a student's exam attempt
"""
import random
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status

from app.api.deps import Clock, CurrentUser, DbSession
from app.models.exam_session import ExamSession
from app.models.user import User, UserRole
from app.schemas.exam_session import (
    AnswerResponse,
    SaveAnswersRequest,
    SaveAnswersResponse,
    SessionDetailResponse,
    SessionExam,
    SessionQuestion,
    SessionResponse,
    StartSessionRequest,
    StartSessionResponse,
    SubmitSessionResponse,
)
from app.schemas.question import strip_answer_key
from app.services.exam_session import ExamSessionService
from app.services.grading import GradingHook, get_grading_hook

router = APIRouter(prefix="/exam-sessions", tags=["Exam Sessions"])

Grader = Annotated[GradingHook, Depends(get_grading_hook)]


def _session_summary(service: ExamSessionService, session: ExamSession) -> SessionResponse:
    response = SessionResponse.model_validate(session)
    response.expires_at = service.deadline_for(session, session.exam)
    return response


def _session_detail(
    service: ExamSessionService, session: ExamSession, user: User
) -> SessionDetailResponse:
    """
    Session with exam, questions and saved answers.

    Students get the exam as they sit it: answer keys removed and, when the
    rules ask for it, questions and choices shuffled. The shuffle is seeded
    by the session id so a reload shows the same order.
    """
    exam = session.exam
    links = list(exam.exam_questions)
    rules = exam.rules
    as_student = user.role == UserRole.STUDENT
    rng = random.Random(str(session.id))

    if as_student and rules is not None and rules.shuffle_questions:
        rng.shuffle(links)

    questions = []
    for link in links:
        question = link.question
        content = dict(question.content or {})
        if as_student:
            content = strip_answer_key(content)
            options = content.get("options")
            if rules is not None and rules.shuffle_choices and isinstance(options, list):
                options = list(options)
                rng.shuffle(options)
                content["options"] = options
        questions.append(SessionQuestion(
            id=question.id,
            type=question.type,
            points=question.points,
            content=content,
        ))

    summary = _session_summary(service, session)
    return SessionDetailResponse(
        **summary.model_dump(),
        exam=SessionExam.model_validate(exam),
        questions=questions,
        answers=[AnswerResponse.model_validate(a) for a in session.answers],
    )


@router.post(
    "",
    response_model=StartSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start or resume an exam session",
    responses={200: {"description": "An active session already existed and is resumed"}},
)
async def start_session(
    data: StartSessionRequest,
    request: Request,
    response: Response,
    current_user: CurrentUser,
    db: DbSession,
    grader: Grader,
    clock: Clock,
) -> StartSessionResponse:
    """
    Start an attempt at an exam.

    Calling this again while an attempt is active returns that attempt with
    HTTP 200 instead of creating a second one.
    """
    service = ExamSessionService(db, grader=grader, clock=clock)
    ip_address = request.client.host if request.client else None

    session, created = await service.start_session(data.exam_id, current_user, ip_address)
    if not created:
        response.status_code = status.HTTP_200_OK

    return StartSessionResponse(
        message="Session started" if created else "Resuming existing session",
        session=_session_summary(service, session),
    )


@router.get(
    "/{session_id}",
    response_model=SessionDetailResponse,
    summary="Get an exam session",
)
async def get_session(
    session_id: uuid.UUID,
    current_user: CurrentUser,
    db: DbSession,
    grader: Grader,
    clock: Clock,
) -> SessionDetailResponse:
    service = ExamSessionService(db, grader=grader, clock=clock)
    session = await service.get_session(session_id, current_user)
    return _session_detail(service, session, current_user)


@router.post(
    "/{session_id}/answers",
    response_model=SaveAnswersResponse,
    summary="Autosave answers",
)
async def save_answers(
    session_id: uuid.UUID,
    data: SaveAnswersRequest,
    current_user: CurrentUser,
    db: DbSession,
    grader: Grader,
    clock: Clock,
) -> SaveAnswersResponse:
    """Create or overwrite answers; safe to retry."""
    service = ExamSessionService(db, grader=grader, clock=clock)
    saved = await service.save_answers(
        session_id,
        current_user,
        [(item.question_id, item.response) for item in data.answers],
    )
    return SaveAnswersResponse(message="Answers saved", saved=saved)


@router.post(
    "/{session_id}/submit",
    response_model=SubmitSessionResponse,
    summary="Submit an exam session",
)
async def submit_session(
    session_id: uuid.UUID,
    current_user: CurrentUser,
    db: DbSession,
    grader: Grader,
    clock: Clock,
) -> SubmitSessionResponse:
    service = ExamSessionService(db, grader=grader, clock=clock)
    session = await service.submit(session_id, current_user)
    return SubmitSessionResponse(
        message="Exam submitted successfully",
        session=_session_summary(service, session),
    )
