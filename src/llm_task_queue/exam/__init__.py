"""Exam digitizing: question models and scheduler-backed model calls."""

from .models import (
    ExtractedQuestion,
    Question,
    QuestionType,
    SolutionItem,
    SubQuestion,
    normalize_question,
    strict_schema_for,
)
from .service import ExamSolver

__all__ = [
    "ExamSolver",
    "ExtractedQuestion",
    "Question",
    "QuestionType",
    "SolutionItem",
    "SubQuestion",
    "normalize_question",
    "strict_schema_for",
]
