"""
PROCTO - Test Configuration
Pytest fixtures and configuration for testing
"""
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.database import Base, get_db
from app.main import app
from app.models import Course, Exam, Question, User, UserRole

from tests.factories import enroll, make_course, make_exam, make_question, make_user


# Test database URL (use SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

# Create test engine
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    poolclass=NullPool,
)

test_session_maker = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with test_session_maker() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        # One session per request, like the real dependency; a rollback here
        # must not expire the fixtures held by ``db_session``
        async with test_session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def session_factory(db_session: AsyncSession) -> async_sessionmaker[AsyncSession]:
    """Factory for extra, independent sessions on the same test database."""
    return test_session_maker


@pytest_asyncio.fixture
async def faculty(db_session: AsyncSession) -> User:
    return await make_user(db_session, UserRole.FACULTY)


@pytest_asyncio.fixture
async def student(db_session: AsyncSession) -> User:
    return await make_user(db_session, UserRole.STUDENT)


@pytest_asyncio.fixture
async def other_student(db_session: AsyncSession) -> User:
    return await make_user(db_session, UserRole.STUDENT)


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await make_user(db_session, UserRole.ADMIN)


@pytest_asyncio.fixture
async def course(db_session: AsyncSession, faculty: User) -> Course:
    return await make_course(db_session, faculty)


@pytest_asyncio.fixture
async def questions(db_session: AsyncSession, course: Course) -> list[Question]:
    return [
        await make_question(db_session, course, "Which protocol tolerates crash faults?"),
        await make_question(db_session, course, "Which protocol blocks on coordinator failure?"),
    ]


@pytest_asyncio.fixture
async def exam(
    db_session: AsyncSession,
    course: Course,
    questions: list[Question],
    student: User,
) -> Exam:
    """Published exam whose window is open, with ``student`` enrolled."""
    await enroll(db_session, course, student)
    return await make_exam(db_session, course, questions)


@pytest.fixture
def sample_user_data() -> dict[str, Any]:
    """Sample user registration data."""
    return {
        "email": "test@example.edu",
        "password": "TestPass123!",
        "first_name": "Test",
        "last_name": "User",
    }
