"""
PROCTO - AI Question Generation Tests
The LLM is never called: without an API key the generator returns mock drafts.
"""
import pytest
from httpx import AsyncClient

from app.ai.question_generator import (
    QuestionGenerationError,
    QuestionGenerator,
    get_question_generator,
)
from app.main import app
from app.schemas.ai import DraftDifficulty, DraftQuestionType, GenerateQuestionsRequest

from tests.factories import auth_headers


@pytest.fixture(autouse=True)
def no_llm_key(monkeypatch):
    from app.core.config import settings
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "")
    monkeypatch.setattr(settings, "ANTHROPIC_API_KEY", "")


def test_unknown_type_and_difficulty_fall_back_to_any():
    request = GenerateQuestionsRequest(prompt="binary trees", type="ESSAY", difficulty=7)
    assert request.type == DraftQuestionType.ANY
    assert request.difficulty == DraftDifficulty.ANY
    assert request.count == 3


def test_parse_response_strips_code_fences():
    raw = """```json
{"questions": [{"text": "2+2?", "type": "MCQ", "options": ["3", "4"],
  "correctAnswer": "4", "marks": 1, "difficulty": "EASY"}]}
```"""
    drafts = QuestionGenerator.parse_response(raw)
    assert len(drafts) == 1
    assert drafts[0].correct_answer == "4"
    assert drafts[0].type == DraftQuestionType.MCQ


@pytest.mark.parametrize("raw", [
    "not json at all",
    '{"items": []}',
    '{"questions": [{"text": "missing fields"}]}',
])
def test_parse_response_rejects_malformed_output(raw):
    with pytest.raises(QuestionGenerationError):
        QuestionGenerator.parse_response(raw)


@pytest.mark.asyncio
async def test_generate_returns_mock_drafts(client: AsyncClient, faculty):
    response = await client.post(
        "/api/v1/ai/generate",
        json={"prompt": "graph algorithms", "count": 2, "type": "MCQ", "difficulty": "HARD"},
        headers=auth_headers(faculty),
    )

    assert response.status_code == 200
    questions = response.json()["questions"]
    assert len(questions) == 2
    assert questions[0]["options"] == ["Option A", "Option B", "Option C", "Option D"]
    assert questions[0]["correct_answer"] == "Option A"
    assert questions[0]["difficulty"] == "HARD"
    assert "graph algorithms" in questions[0]["text"]


@pytest.mark.asyncio
async def test_generate_subjective_mock_has_answer_key(client: AsyncClient, faculty):
    response = await client.post(
        "/api/v1/ai/generate",
        json={"prompt": "graph algorithms", "count": 1, "type": "SUBJECTIVE"},
        headers=auth_headers(faculty),
    )

    question = response.json()["questions"][0]
    assert question["options"] is None
    assert question["correct_answer"] == "Mock Answer key"


@pytest.mark.asyncio
async def test_generate_validates_request(client: AsyncClient, faculty):
    response = await client.post(
        "/api/v1/ai/generate",
        json={"prompt": "ab", "count": 51},
        headers=auth_headers(faculty),
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_generate_requires_authentication(client: AsyncClient):
    response = await client.post("/api/v1/ai/generate", json={"prompt": "sorting"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_generation_failure_is_service_unavailable(client: AsyncClient, faculty):
    class BrokenGenerator:
        async def generate(self, **kwargs):
            raise QuestionGenerationError("provider down")

    app.dependency_overrides[get_question_generator] = BrokenGenerator

    response = await client.post(
        "/api/v1/ai/generate",
        json={"prompt": "sorting"},
        headers=auth_headers(faculty),
    )
    assert response.status_code == 503
    assert response.json()["detail"].startswith("Failed to generate questions")
