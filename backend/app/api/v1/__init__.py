"""PROCTO - API v1 Router."""
from fastapi import APIRouter

from app.api.v1.ai import router as ai_router
from app.api.v1.auth import router as auth_router
from app.api.v1.courses import router as courses_router
from app.api.v1.exam_sessions import router as exam_sessions_router
from app.api.v1.exams import router as exams_router
from app.api.v1.questions import router as questions_router

api_router = APIRouter()

api_router.include_router(auth_router)
api_router.include_router(courses_router)
api_router.include_router(questions_router)
api_router.include_router(exams_router)
api_router.include_router(exam_sessions_router)
api_router.include_router(ai_router)
