"""
PROCTO - Exam Session Access Policy
Capability table keyed by (action, role), consulted once per session operation
"""
from enum import Enum

from app.models.exam_session import ExamSession
from app.models.user import User, UserRole
from app.services.exceptions import ForbiddenError


class SessionAction(str, Enum):
    START = "start"
    READ = "read"
    SAVE_ANSWERS = "save_answers"
    SUBMIT = "submit"


class Access(str, Enum):
    SELF = "self"              # acts on the caller's own identity, no session yet
    OWNER = "owner"            # caller must own the session
    STAFF_READ = "staff_read"  # any session, read-only


SESSION_POLICY: dict[tuple[SessionAction, UserRole], Access] = {
    (SessionAction.START, UserRole.STUDENT): Access.SELF,
    (SessionAction.READ, UserRole.STUDENT): Access.OWNER,
    (SessionAction.READ, UserRole.FACULTY): Access.STAFF_READ,
    (SessionAction.READ, UserRole.ADMIN): Access.STAFF_READ,
    (SessionAction.SAVE_ANSWERS, UserRole.STUDENT): Access.OWNER,
    (SessionAction.SUBMIT, UserRole.STUDENT): Access.OWNER,
}


def session_access(action: SessionAction, user: User) -> Access:
    """Return the caller's access level for ``action``; unlisted pairs are denied."""
    access = SESSION_POLICY.get((action, UserRole(user.role)))
    if access is None:
        raise ForbiddenError("Not authorized")
    return access


def authorize_session(action: SessionAction, user: User, session: ExamSession) -> Access:
    """Check ``user`` may perform ``action`` on an existing ``session``."""
    access = session_access(action, user)
    if access in (Access.OWNER, Access.SELF) and session.student_id != user.id:
        raise ForbiddenError("Not authorized")
    return access
