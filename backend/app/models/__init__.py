"""PROCTO - Models initialization."""
from app.models.user import User, RefreshToken, UserRole
from app.models.course import Course, Enrollment
from app.models.question import Question, QuestionType
from app.models.exam import Exam, ExamRules, ExamQuestion, ExamStatus
from app.models.exam_session import ExamSession, Answer, SessionStatus


__all__ = [
    # User models
    "User",
    "RefreshToken",
    "UserRole",
    # Course models
    "Course",
    "Enrollment",
    # Question bank
    "Question",
    "QuestionType",
    # Exam models
    "Exam",
    "ExamRules",
    "ExamQuestion",
    "ExamStatus",
    # Exam session models
    "ExamSession",
    "Answer",
    "SessionStatus",
]
