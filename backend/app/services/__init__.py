"""PROCTO - Services initialization."""
from app.services.auth import (
    AuthService,
    AuthenticationError,
    InvalidCredentialsError,
    AccountLockedError,
    TokenError,
)
from app.services.course import CourseService
from app.services.exam import ExamService
from app.services.exam_session import ExamSessionService
from app.services.exceptions import (
    ServiceError,
    NotFoundError,
    ForbiddenError,
    InvalidStateError,
    ValidationFailedError,
)

__all__ = [
    "AuthService",
    "AuthenticationError",
    "InvalidCredentialsError",
    "AccountLockedError",
    "TokenError",
    "CourseService",
    "ExamService",
    "ExamSessionService",
    "ServiceError",
    "NotFoundError",
    "ForbiddenError",
    "InvalidStateError",
    "ValidationFailedError",
]
