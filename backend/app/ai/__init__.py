"""
PROCTO - AI Module
LLM-backed helpers for exam authoring.
"""
from app.ai.question_generator import (
    QuestionGenerationError,
    QuestionGenerator,
    get_question_generator,
    question_generator,
)

__all__ = [
    "QuestionGenerationError",
    "QuestionGenerator",
    "get_question_generator",
    "question_generator",
]
