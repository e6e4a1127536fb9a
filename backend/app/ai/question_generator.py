"""
PROCTO - AI Question Generator
LangChain-based drafting of exam questions from a free-text prompt
"""
import json
import logging

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from pydantic import ValidationError

from app.core.config import settings
from app.schemas.ai import DraftDifficulty, DraftQuestionType, GeneratedQuestion

logger = logging.getLogger(__name__)


class QuestionGenerationError(Exception):
    """The model could not produce a usable batch of questions."""
    pass


class QuestionGenerator:
    """Draft university exam questions with the configured LLM provider."""

    PROMPT_TEMPLATE = """You are an expert exam question generator for a university platform.
Generate exactly {count} question(s) based on the following topic/prompt: "{prompt}"

Requirements:
- Difficulty level: {difficulty}
- Question type: {question_type}
- You MUST return a JSON object with a single "questions" array property. Do not include markdown formatting like ```json or ```.
- Do not include any conversational text.

The JSON object must strictly follow this exact structure:
{{
  "questions": [
    {{
      "text": "The actual question text",
      "type": "{type_hint}",
      "options": ["Option A", "Option B", "Option C", "Option D"],
      "correct_answer": "The exact text of the correct option (for MCQ/TRUE_FALSE) or a detailed rubric/key points (for SUBJECTIVE)",
      "marks": 1,
      "difficulty": "{difficulty_hint}"
    }}
  ]
}}

Only include "options" when the type is MCQ, with at most 4 options.
"""

    def __init__(self):
        self.prompt = ChatPromptTemplate.from_template(self.PROMPT_TEMPLATE)
        self._llm = None

    @property
    def llm(self):
        """Lazy load the LLM based on configuration."""
        if self._llm is None:
            if settings.LLM_PROVIDER == "openai":
                from langchain_openai import ChatOpenAI
                self._llm = ChatOpenAI(
                    model=settings.OPENAI_MODEL,
                    api_key=settings.OPENAI_API_KEY,
                    temperature=0.7,
                    timeout=settings.LLM_TIMEOUT_SECONDS,
                    max_retries=settings.LLM_MAX_RETRIES,
                )
            else:
                from langchain_anthropic import ChatAnthropic
                self._llm = ChatAnthropic(
                    model=settings.ANTHROPIC_MODEL,
                    api_key=settings.ANTHROPIC_API_KEY,
                    temperature=0.7,
                    timeout=settings.LLM_TIMEOUT_SECONDS,
                    max_retries=settings.LLM_MAX_RETRIES,
                )
        return self._llm

    @property
    def is_configured(self) -> bool:
        return bool(settings.LLM_API_KEY)

    async def generate(
        self,
        prompt: str,
        count: int = 3,
        question_type: DraftQuestionType = DraftQuestionType.ANY,
        difficulty: DraftDifficulty = DraftDifficulty.ANY,
    ) -> list[GeneratedQuestion]:
        """
        Generate ``count`` question drafts for ``prompt``.

        Without a configured API key, deterministic placeholder drafts are
        returned so the exam builder stays usable in development.

        Raises:
            QuestionGenerationError: Provider call or response parsing failed
        """
        if not self.is_configured:
            logger.warning("No LLM API key configured, returning mock questions")
            return self.mock_questions(prompt, count, question_type, difficulty)

        chain = self.prompt | self.llm | StrOutputParser()

        try:
            raw = await chain.ainvoke({
                "prompt": prompt,
                "count": count,
                "question_type": question_type.value,
                "difficulty": difficulty.value,
                "type_hint": (
                    "MCQ or TRUE_FALSE or SUBJECTIVE"
                    if question_type == DraftQuestionType.ANY else question_type.value
                ),
                "difficulty_hint": (
                    "EASY or MEDIUM or HARD"
                    if difficulty == DraftDifficulty.ANY else difficulty.value
                ),
            })
            return self.parse_response(raw)
        except QuestionGenerationError:
            raise
        except Exception as e:
            logger.exception("Error generating questions from AI")
            raise QuestionGenerationError(
                "Failed to generate questions. Please try again or refine your prompt."
            ) from e

    @staticmethod
    def parse_response(raw: str) -> list[GeneratedQuestion]:
        """Parse the model's JSON reply, tolerating markdown code fences."""
        cleaned = raw.replace("```json", "").replace("```", "").strip()

        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise QuestionGenerationError("AI returned malformed JSON") from e

        questions = parsed.get("questions") if isinstance(parsed, dict) else None
        if not isinstance(questions, list):
            raise QuestionGenerationError("AI did not return an array inside the questions property")

        drafts = []
        for item in questions:
            if isinstance(item, dict) and "correct_answer" not in item and "correctAnswer" in item:
                item = {**item, "correct_answer": item["correctAnswer"]}
            try:
                drafts.append(GeneratedQuestion.model_validate(item))
            except ValidationError as e:
                raise QuestionGenerationError("AI returned a malformed question") from e
        return drafts

    @staticmethod
    def mock_questions(
        prompt: str,
        count: int,
        question_type: DraftQuestionType,
        difficulty: DraftDifficulty,
    ) -> list[GeneratedQuestion]:
        kind = DraftQuestionType.MCQ if question_type == DraftQuestionType.ANY else question_type
        level = DraftDifficulty.EASY if difficulty == DraftDifficulty.ANY else difficulty
        is_mcq = kind == DraftQuestionType.MCQ

        return [
            GeneratedQuestion(
                text=f"Mock Generated Question {i + 1} for topic: {prompt}",
                type=kind,
                options=["Option A", "Option B", "Option C", "Option D"] if is_mcq else None,
                correct_answer="Option A" if is_mcq else "Mock Answer key",
                marks=1,
                difficulty=level,
            )
            for i in range(count)
        ]


# Singleton instance
question_generator = QuestionGenerator()


def get_question_generator() -> QuestionGenerator:
    """FastAPI dependency returning the shared generator."""
    return question_generator
