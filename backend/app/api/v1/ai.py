"""
PROCTO - AI API Routes
Question drafting for the exam builder
"""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from app.ai.question_generator import (
    QuestionGenerationError,
    QuestionGenerator,
    get_question_generator,
)
from app.api.deps import CurrentUser
from app.schemas.ai import GenerateQuestionsRequest, GenerateQuestionsResponse

router = APIRouter(prefix="/ai", tags=["AI"])


@router.post(
    "/generate",
    response_model=GenerateQuestionsResponse,
    summary="Generate question drafts",
    description="Draft questions from a topic prompt. Drafts are not saved to any question bank.",
)
async def generate_questions(
    data: GenerateQuestionsRequest,
    current_user: CurrentUser,
    generator: Annotated[QuestionGenerator, Depends(get_question_generator)],
) -> GenerateQuestionsResponse:
    try:
        questions = await generator.generate(
            prompt=data.prompt,
            count=data.count,
            question_type=data.type,
            difficulty=data.difficulty,
        )
    except QuestionGenerationError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to generate questions. Please try again or refine your prompt.",
        )
    return GenerateQuestionsResponse(questions=questions)
