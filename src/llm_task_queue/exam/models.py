"""Exam question models and the response shapes requested from the model."""

import uuid
from typing import Any, Literal

from pydantic import BaseModel, Field

QuestionType = Literal["multiple_choice", "true_false_group", "short_answer", "essay"]
OptionLetter = Literal["A", "B", "C", "D"]

CONTENT_PLACEHOLDER = "Question content..."
SOLUTION_PLACEHOLDER = "(No solution generated yet)"
OPTION_PLACEHOLDER = "(No option yet)"


def new_id() -> str:
    return str(uuid.uuid4())


class SubQuestion(BaseModel):
    """One statement of a true/false group."""

    id: str = Field(default_factory=new_id)
    content: str = ""
    is_correct: bool = False


class Question(BaseModel):
    """
    An extracted exam question as edited by the user.

    Type-specific fields are optional; which ones are meaningful depends on
    ``type``:

    - multiple_choice: ``options`` (four strings) and ``correct_option``
    - true_false_group: ``sub_questions``
    - short_answer: ``correct_answer``
    - essay: ``reference_solution``
    """

    id: str = Field(default_factory=new_id)
    type: QuestionType
    content: str
    solution_guide: str = ""
    topic: str | None = None
    difficulty: str | None = None
    figure_image: str | None = None
    options: list[str] | None = None
    correct_option: OptionLetter | None = None
    sub_questions: list[SubQuestion] | None = None
    correct_answer: str | None = None
    reference_solution: str | None = None

    def prompt_payload(self, *, include_id: bool = True) -> dict[str, Any]:
        """JSON-ready dict to embed in a prompt (figure image never included)."""
        exclude = {"figure_image"} if include_id else {"figure_image", "id"}
        return self.model_dump(exclude=exclude, exclude_none=True)


# Response shapes requested from the model --------------------------------


class ExtractedSubQuestion(BaseModel):
    content: str
    is_correct: bool


class ExtractedQuestion(BaseModel):
    """Shape of one item in the OCR + solve response."""

    type: QuestionType
    content: str
    solution_guide: str
    options: list[str] | None = None
    correct_option: OptionLetter | None = None
    sub_questions: list[ExtractedSubQuestion] | None = None
    correct_answer: str | None = None
    reference_solution: str | None = None
    topic: str | None = None
    difficulty: str | None = None


class SubQuestionStatus(BaseModel):
    index: int
    is_correct: bool


class SolutionItem(BaseModel):
    """Shape of one item in a batch-solve response."""

    id: str
    solution_guide: str
    correct_option: OptionLetter | None = None
    correct_answer: str | None = None
    reference_solution: str | None = None
    sub_questions_status: list[SubQuestionStatus] | None = None


class _AnswerBase(BaseModel):
    content: str
    solution_guide: str
    topic: str | None = None
    difficulty: str | None = None


class MultipleChoiceAnswer(_AnswerBase):
    type: Literal["multiple_choice"]
    options: list[str]
    correct_option: OptionLetter


class TrueFalseGroupAnswer(_AnswerBase):
    type: Literal["true_false_group"]
    sub_questions: list[ExtractedSubQuestion]


class ShortAnswerAnswer(_AnswerBase):
    type: Literal["short_answer"]
    correct_answer: str


class EssayAnswer(_AnswerBase):
    type: Literal["essay"]
    reference_solution: str


STRICT_SCHEMAS: dict[str, type[BaseModel]] = {
    "multiple_choice": MultipleChoiceAnswer,
    "true_false_group": TrueFalseGroupAnswer,
    "short_answer": ShortAnswerAnswer,
    "essay": EssayAnswer,
}


def strict_schema_for(question_type: str) -> type[BaseModel]:
    """Schema forcing the model to fill the fields ``question_type`` needs."""
    return STRICT_SCHEMAS.get(question_type, ExtractedQuestion)


def normalize_question(data: Any, question_type: str | None) -> dict[str, Any]:
    """
    Make a model answer safe to turn into a :class:`Question`.

    A list is reduced to its first element. Missing mandatory fields get
    placeholders, and type-specific fields are coerced to the shapes the
    editor expects.

    Args:
        data: Decoded JSON from the model
        question_type: The type the question must end up with

    Returns:
        A new dict (the input is not modified)
    """
    if isinstance(data, list):
        data = data[0] if data else {}
    if not isinstance(data, dict):
        data = {}
    fixed = dict(data)

    fixed["content"] = fixed.get("content") or CONTENT_PLACEHOLDER
    fixed["solution_guide"] = fixed.get("solution_guide") or SOLUTION_PLACEHOLDER

    if question_type == "multiple_choice":
        options = fixed.get("options")
        if not isinstance(options, list) or not options:
            fixed["options"] = [OPTION_PLACEHOLDER] * 4
        if not fixed.get("correct_option"):
            fixed["correct_option"] = "A"
    elif question_type == "true_false_group":
        sub_questions = fixed.get("sub_questions")
        if not isinstance(sub_questions, list):
            sub_questions = []
        fixed["sub_questions"] = [
            {
                **sq,
                "id": new_id(),
                "content": sq.get("content") or "",
                "is_correct": bool(sq.get("is_correct")),
            }
            for sq in sub_questions
            if isinstance(sq, dict)
        ]
    elif question_type == "short_answer":
        answer = fixed.get("correct_answer")
        if not isinstance(answer, str):
            fixed["correct_answer"] = str(answer) if answer else ""
    elif question_type == "essay":
        if not fixed.get("reference_solution"):
            fixed["reference_solution"] = ""

    return fixed
