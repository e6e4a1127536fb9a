"""
PROCTO - Exam Session API Tests
Start/resume, autosave, submit, read access and deadline enforcement
"""
import uuid
from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_clock
from app.core.clock import utc_now
from app.main import app
from app.models import Answer, Enrollment, ExamSession, SessionStatus, UserRole
from app.services.grading import get_grading_hook

from tests.factories import auth_headers, enroll, make_exam, make_user

SESSIONS_URL = "/api/v1/exam-sessions"


async def start(client: AsyncClient, exam, user, key: str = "examId"):
    return await client.post(SESSIONS_URL, json={key: str(exam.id)}, headers=auth_headers(user))


async def save(client: AsyncClient, session_id: str, user, answers: list[tuple]):
    return await client.post(
        f"{SESSIONS_URL}/{session_id}/answers",
        json={"answers": [
            {"questionId": str(qid), "response": response} for qid, response in answers
        ]},
        headers=auth_headers(user),
    )


async def submit(client: AsyncClient, session_id: str, user):
    return await client.post(f"{SESSIONS_URL}/{session_id}/submit", headers=auth_headers(user))


async def stored_answers(db: AsyncSession, session_id: str) -> dict[str, object]:
    result = await db.execute(
        select(Answer.question_id, Answer.response)
        .where(Answer.session_id == uuid.UUID(session_id))
    )
    return {str(qid): response for qid, response in result.all()}


def freeze_clock(at):
    app.dependency_overrides[get_clock] = lambda: (lambda: at)


# ============================================================================
# Start / resume
# ============================================================================

@pytest.mark.asyncio
async def test_start_creates_active_session(client: AsyncClient, exam, student):
    response = await start(client, exam, student)

    assert response.status_code == 201
    data = response.json()
    assert data["message"] == "Session started"
    session = data["session"]
    assert session["status"] == "active"
    assert session["exam_id"] == str(exam.id)
    assert session["student_id"] == str(student.id)
    assert session["submitted_at"] is None
    assert session["auto_submitted"] is False
    assert session["ip_address"]
    assert session["expires_at"] is not None


@pytest.mark.asyncio
async def test_start_accepts_snake_case_body(client: AsyncClient, exam, student):
    response = await start(client, exam, student, key="exam_id")
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_start_requires_exam_id(client: AsyncClient, exam, student):
    response = await client.post(SESSIONS_URL, json={}, headers=auth_headers(student))
    assert response.status_code == 400
    assert response.json()["detail"] == "Validation failed"


@pytest.mark.asyncio
async def test_start_rejects_malformed_exam_id(client: AsyncClient, exam, student):
    response = await client.post(
        SESSIONS_URL, json={"examId": "not-a-uuid"}, headers=auth_headers(student)
    )

    assert response.status_code == 400
    body = response.json()
    assert body["detail"] == "Validation failed"
    assert body["details"][0]["loc"][-1] == "examId"


@pytest.mark.asyncio
async def test_start_twice_resumes_same_session(
    client: AsyncClient, db_session: AsyncSession, exam, student
):
    first = await start(client, exam, student)
    second = await start(client, exam, student)

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["message"] == "Resuming existing session"
    assert second.json()["session"]["id"] == first.json()["session"]["id"]

    active = await db_session.scalar(
        select(func.count(ExamSession.id)).where(
            ExamSession.exam_id == exam.id,
            ExamSession.student_id == student.id,
            ExamSession.status == SessionStatus.ACTIVE.value,
        )
    )
    assert active == 1


@pytest.mark.asyncio
async def test_start_unknown_exam(client: AsyncClient, exam, student):
    response = await client.post(
        SESSIONS_URL,
        json={"examId": "00000000-0000-0000-0000-000000000000"},
        headers=auth_headers(student),
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Exam not found"


@pytest.mark.asyncio
async def test_start_unpublished_exam(
    client: AsyncClient, db_session: AsyncSession, course, questions, student
):
    await enroll(db_session, course, student)
    draft = await make_exam(db_session, course, questions, published=False)

    response = await start(client, draft, student)
    assert response.status_code == 403
    assert response.json()["detail"] == "Exam not available"


@pytest.mark.asyncio
async def test_start_before_window(
    client: AsyncClient, db_session: AsyncSession, course, questions, student
):
    await enroll(db_session, course, student)
    upcoming = await make_exam(db_session, course, questions, starts_in=timedelta(hours=1))

    response = await start(client, upcoming, student)
    assert response.status_code == 403
    assert response.json()["detail"] == "Exam has not started yet"


@pytest.mark.asyncio
async def test_start_after_window(
    client: AsyncClient, db_session: AsyncSession, course, questions, student
):
    await enroll(db_session, course, student)
    past = await make_exam(
        db_session, course, questions,
        starts_in=timedelta(hours=-3), window=timedelta(hours=2),
    )

    response = await start(client, past, student)
    assert response.status_code == 403
    assert response.json()["detail"] == "Exam window has ended"


@pytest.mark.asyncio
async def test_start_without_enrollment(client: AsyncClient, exam, other_student):
    response = await start(client, exam, other_student)
    assert response.status_code == 403
    assert response.json()["detail"] == "Not enrolled in this course"


@pytest.mark.asyncio
async def test_start_with_dropped_enrollment(
    client: AsyncClient, db_session: AsyncSession, exam, student
):
    enrollment = await db_session.scalar(
        select(Enrollment).where(Enrollment.student_id == student.id)
    )
    enrollment.dropped_at = utc_now()
    await db_session.commit()

    response = await start(client, exam, student)
    assert response.status_code == 403
    assert response.json()["detail"] == "Not enrolled in this course"


@pytest.mark.asyncio
async def test_faculty_cannot_start_session(client: AsyncClient, exam, faculty):
    response = await start(client, exam, faculty)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_start_requires_authentication(client: AsyncClient, exam):
    response = await client.post(SESSIONS_URL, json={"examId": str(exam.id)})
    assert response.status_code == 401


# ============================================================================
# Attempts
# ============================================================================

@pytest.mark.asyncio
async def test_full_attempt_scenario(
    client: AsyncClient, db_session: AsyncSession, exam, questions, student
):
    q1 = questions[0].id

    response = await start(client, exam, student)
    assert response.status_code == 201
    session_id = response.json()["session"]["id"]

    response = await save(client, session_id, student, [(q1, "A")])
    assert response.status_code == 200
    response = await save(client, session_id, student, [(q1, "B")])
    assert response.status_code == 200
    assert await stored_answers(db_session, session_id) == {str(q1): "B"}

    response = await submit(client, session_id, student)
    assert response.status_code == 200
    session = response.json()["session"]
    assert session["status"] == "submitted"
    assert session["submitted_at"] is not None
    assert session["auto_submitted"] is False

    response = await start(client, exam, student)
    assert response.status_code == 403
    assert response.json()["detail"] == "Maximum attempts reached"


@pytest.mark.asyncio
async def test_second_attempt_allowed_when_rules_permit(
    client: AsyncClient, db_session: AsyncSession, course, questions, student
):
    await enroll(db_session, course, student)
    exam = await make_exam(db_session, course, questions, max_attempts=2)

    first = await start(client, exam, student)
    await submit(client, first.json()["session"]["id"], student)

    second = await start(client, exam, student)
    assert second.status_code == 201
    assert second.json()["session"]["id"] != first.json()["session"]["id"]

    await submit(client, second.json()["session"]["id"], student)
    third = await start(client, exam, student)
    assert third.status_code == 403


@pytest.mark.asyncio
async def test_terminated_session_counts_as_attempt(
    client: AsyncClient, db_session: AsyncSession, exam, student
):
    response = await start(client, exam, student)
    session = await db_session.get(ExamSession, uuid.UUID(response.json()["session"]["id"]))
    session.status = SessionStatus.TERMINATED.value
    await db_session.commit()

    response = await start(client, exam, student)
    assert response.status_code == 403
    assert response.json()["detail"] == "Maximum attempts reached"


# ============================================================================
# Autosave
# ============================================================================

@pytest.mark.asyncio
async def test_repeated_saves_keep_last_response(
    client: AsyncClient, db_session: AsyncSession, exam, questions, student
):
    session_id = (await start(client, exam, student)).json()["session"]["id"]
    q1 = questions[0].id

    for response in ["A", "C", ["A", "B"], "final"]:
        result = await save(client, session_id, student, [(q1, response)])
        assert result.status_code == 200

    rows = await db_session.scalar(
        select(func.count(Answer.id)).where(Answer.session_id == uuid.UUID(session_id))
    )
    assert rows == 1
    assert await stored_answers(db_session, session_id) == {str(q1): "final"}


@pytest.mark.asyncio
async def test_duplicate_questions_in_batch_collapse_last_wins(
    client: AsyncClient, db_session: AsyncSession, exam, questions, student
):
    session_id = (await start(client, exam, student)).json()["session"]["id"]
    q1, q2 = questions[0].id, questions[1].id

    response = await save(client, session_id, student, [(q1, "A"), (q2, "free text"), (q1, "B")])
    assert response.status_code == 200
    assert response.json()["saved"] == 2

    assert await stored_answers(db_session, session_id) == {str(q1): "B", str(q2): "free text"}


@pytest.mark.asyncio
async def test_save_accepts_snake_case_items(
    client: AsyncClient, db_session: AsyncSession, exam, questions, student
):
    session_id = (await start(client, exam, student)).json()["session"]["id"]

    response = await client.post(
        f"{SESSIONS_URL}/{session_id}/answers",
        json={"answers": [{"question_id": str(questions[0].id), "response": "A"}]},
        headers=auth_headers(student),
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_save_rejects_question_outside_exam(
    client: AsyncClient, db_session: AsyncSession, exam, questions, student
):
    session_id = (await start(client, exam, student)).json()["session"]["id"]
    stranger = "11111111-1111-1111-1111-111111111111"

    response = await save(client, session_id, student, [(questions[0].id, "A"), (stranger, "B")])

    assert response.status_code == 400
    body = response.json()
    assert body["detail"] == "Questions are not part of this exam"
    assert [d["input"] for d in body["details"]] == [stranger]
    # Nothing from the rejected batch was written
    assert await stored_answers(db_session, session_id) == {}


@pytest.mark.asyncio
async def test_save_malformed_body(client: AsyncClient, exam, student):
    session_id = (await start(client, exam, student)).json()["session"]["id"]

    response = await client.post(
        f"{SESSIONS_URL}/{session_id}/answers",
        json={"answers": [{"questionId": "not-a-uuid", "response": "A"}]},
        headers=auth_headers(student),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Validation failed"
    assert response.json()["details"]


@pytest.mark.asyncio
async def test_save_unknown_session(client: AsyncClient, exam, questions, student):
    response = await save(
        client, "00000000-0000-0000-0000-000000000000", student, [(questions[0].id, "A")]
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Session not found"


@pytest.mark.asyncio
async def test_no_writes_after_submit(
    client: AsyncClient, db_session: AsyncSession, exam, questions, student
):
    session_id = (await start(client, exam, student)).json()["session"]["id"]
    await save(client, session_id, student, [(questions[0].id, "A")])
    await submit(client, session_id, student)

    response = await save(client, session_id, student, [(questions[0].id, "B")])
    assert response.status_code == 400
    assert response.json()["detail"] == "Session is not active"

    response = await submit(client, session_id, student)
    assert response.status_code == 400
    assert response.json()["detail"] == "Session already submitted"

    assert await stored_answers(db_session, session_id) == {str(questions[0].id): "A"}


# ============================================================================
# Ownership and read access
# ============================================================================

@pytest.mark.asyncio
async def test_other_student_cannot_touch_session(
    client: AsyncClient, exam, questions, student, other_student
):
    session_id = (await start(client, exam, student)).json()["session"]["id"]

    response = await save(client, session_id, other_student, [(questions[0].id, "A")])
    assert response.status_code == 403
    assert response.json()["detail"] == "Not authorized"

    response = await submit(client, session_id, other_student)
    assert response.status_code == 403

    response = await client.get(f"{SESSIONS_URL}/{session_id}", headers=auth_headers(other_student))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_student_get_unknown_session_is_forbidden(client: AsyncClient, student):
    response = await client.get(
        f"{SESSIONS_URL}/00000000-0000-0000-0000-000000000000",
        headers=auth_headers(student),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_staff_get_unknown_session_is_not_found(client: AsyncClient, faculty):
    response = await client.get(
        f"{SESSIONS_URL}/00000000-0000-0000-0000-000000000000",
        headers=auth_headers(faculty),
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_owner_reads_session_without_answer_keys(
    client: AsyncClient, exam, questions, student
):
    session_id = (await start(client, exam, student)).json()["session"]["id"]
    await save(client, session_id, student, [(questions[1].id, "2PC")])

    response = await client.get(f"{SESSIONS_URL}/{session_id}", headers=auth_headers(student))

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == session_id
    assert data["exam"]["id"] == str(exam.id)
    assert data["exam"]["rules"]["max_attempts"] == 1
    assert [q["id"] for q in data["questions"]] == [str(q.id) for q in questions]
    for question in data["questions"]:
        assert "correct_answer" not in question["content"]
        assert "explanation" not in question["content"]
        assert question["content"]["options"] == ["Raft", "2PC", "Gossip", "NTP"]
    assert [(a["question_id"], a["response"]) for a in data["answers"]] == [
        (str(questions[1].id), "2PC")
    ]


@pytest.mark.asyncio
async def test_faculty_reads_session_with_answer_keys(
    client: AsyncClient, exam, student, faculty
):
    session_id = (await start(client, exam, student)).json()["session"]["id"]

    response = await client.get(f"{SESSIONS_URL}/{session_id}", headers=auth_headers(faculty))

    assert response.status_code == 200
    assert response.json()["questions"][0]["content"]["correct_answer"] == "Raft"


@pytest.mark.asyncio
async def test_faculty_cannot_save_or_submit(client: AsyncClient, exam, questions, student, faculty):
    session_id = (await start(client, exam, student)).json()["session"]["id"]

    response = await save(client, session_id, faculty, [(questions[0].id, "A")])
    assert response.status_code == 403

    response = await submit(client, session_id, faculty)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_list_exam_sessions_for_owner_only(
    client: AsyncClient, db_session: AsyncSession, exam, student, faculty
):
    await start(client, exam, student)

    response = await client.get(f"/api/v1/exams/{exam.id}/sessions", headers=auth_headers(faculty))
    assert response.status_code == 200
    assert [s["student_id"] for s in response.json()] == [str(student.id)]

    stranger = await make_user(db_session, UserRole.FACULTY)
    response = await client.get(f"/api/v1/exams/{exam.id}/sessions", headers=auth_headers(stranger))
    assert response.status_code == 403


# ============================================================================
# Deadline enforcement
# ============================================================================

@pytest.mark.asyncio
async def test_get_after_deadline_auto_submits(client: AsyncClient, exam, student):
    session_id = (await start(client, exam, student)).json()["session"]["id"]

    freeze_clock(utc_now() + timedelta(minutes=61))
    response = await client.get(f"{SESSIONS_URL}/{session_id}", headers=auth_headers(student))

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "submitted"
    assert data["auto_submitted"] is True
    assert data["submitted_at"] == data["expires_at"]


@pytest.mark.asyncio
async def test_save_after_deadline_is_rejected_and_closes_session(
    client: AsyncClient, db_session: AsyncSession, exam, questions, student
):
    session_id = (await start(client, exam, student)).json()["session"]["id"]

    freeze_clock(utc_now() + timedelta(minutes=61))
    response = await save(client, session_id, student, [(questions[0].id, "late")])

    assert response.status_code == 400
    assert response.json()["detail"] == "Exam time has expired"
    assert await stored_answers(db_session, session_id) == {}

    status = await db_session.scalar(
        select(ExamSession.status).where(ExamSession.id == uuid.UUID(session_id))
    )
    assert status == SessionStatus.SUBMITTED.value


@pytest.mark.asyncio
async def test_save_within_grace_period_is_accepted(client: AsyncClient, exam, questions, student):
    session_id = (await start(client, exam, student)).json()["session"]["id"]

    freeze_clock(utc_now() + timedelta(minutes=60, seconds=10))
    response = await save(client, session_id, student, [(questions[0].id, "just in time")])
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_late_submit_is_accepted_as_auto_submitted(client: AsyncClient, exam, student):
    session_id = (await start(client, exam, student)).json()["session"]["id"]

    freeze_clock(utc_now() + timedelta(minutes=60, seconds=10))
    response = await submit(client, session_id, student)

    assert response.status_code == 200
    assert response.json()["session"]["status"] == "submitted"
    assert response.json()["session"]["auto_submitted"] is True


@pytest.mark.asyncio
async def test_submit_past_grace_is_recorded_at_deadline(client: AsyncClient, exam, student):
    session_id = (await start(client, exam, student)).json()["session"]["id"]

    freeze_clock(utc_now() + timedelta(days=3))
    response = await submit(client, session_id, student)

    assert response.status_code == 200
    session = response.json()["session"]
    assert session["status"] == "submitted"
    assert session["auto_submitted"] is True
    assert session["submitted_at"] == session["expires_at"]


@pytest.mark.asyncio
async def test_expired_session_is_closed_before_restart(
    client: AsyncClient, db_session: AsyncSession, course, questions, student
):
    await enroll(db_session, course, student)
    exam = await make_exam(
        db_session, course, questions, duration_minutes=30, window=timedelta(hours=3)
    )
    await start(client, exam, student)

    freeze_clock(utc_now() + timedelta(minutes=45))
    response = await start(client, exam, student)

    assert response.status_code == 403
    assert response.json()["detail"] == "Maximum attempts reached"


# ============================================================================
# Grading hook
# ============================================================================

class RecordingGrader:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.graded: list[str] = []

    async def on_submitted(self, db, session):
        self.graded.append(str(session.id))
        if self.fail:
            raise RuntimeError("grader offline")


@pytest.mark.asyncio
async def test_submit_invokes_grading_hook(client: AsyncClient, exam, student):
    grader = RecordingGrader()
    app.dependency_overrides[get_grading_hook] = lambda: grader

    session_id = (await start(client, exam, student)).json()["session"]["id"]
    response = await submit(client, session_id, student)

    assert response.status_code == 200
    assert grader.graded == [session_id]


@pytest.mark.asyncio
async def test_failing_grading_hook_does_not_undo_submission(
    client: AsyncClient, db_session: AsyncSession, exam, student
):
    grader = RecordingGrader(fail=True)
    app.dependency_overrides[get_grading_hook] = lambda: grader

    session_id = (await start(client, exam, student)).json()["session"]["id"]
    response = await submit(client, session_id, student)

    assert response.status_code == 200
    assert response.json()["session"]["status"] == "submitted"
    status = await db_session.scalar(
        select(ExamSession.status).where(ExamSession.id == uuid.UUID(session_id))
    )
    assert status == SessionStatus.SUBMITTED.value
