"""
PROCTO - Grading Hook
Extension point invoked after a session reaches SUBMITTED.

No scoring rules are defined yet; the default hook only records that the
session is ready to be graded. A grader is any object with an async
``on_submitted(db, session)`` method.
"""
import logging
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.exam_session import ExamSession

logger = logging.getLogger(__name__)


class GradingHook(Protocol):
    async def on_submitted(self, db: AsyncSession, session: ExamSession) -> None:
        ...


class PendingGrading:
    """Default hook: logs the submission and leaves grading to a later pass."""

    async def on_submitted(self, db: AsyncSession, session: ExamSession) -> None:
        logger.info(
            "Session %s submitted for exam %s (auto=%s), awaiting grading",
            session.id,
            session.exam_id,
            session.auto_submitted,
        )


_default_hook = PendingGrading()


def get_grading_hook() -> GradingHook:
    """FastAPI dependency returning the configured grading hook."""
    return _default_hook
