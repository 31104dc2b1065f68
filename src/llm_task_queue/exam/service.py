"""Exam digitizing operations routed through the shared task scheduler.

Interactive actions (extracting a freshly uploaded page, regenerating a
question the user is looking at) are submitted with high priority; bulk
solving runs at normal priority behind them.
"""

import base64
import binascii
import json
import logging
from typing import Any

from google.genai import types
from pydantic import BaseModel, ValidationError

from ..base import TaskHandle
from ..completion import CompletionClient, CompletionRequest
from ..core import SchedulerConfig
from ..scheduler import TaskScheduler
from ..strategies.errors import MalformedResponseError
from .models import (
    ExtractedQuestion,
    Question,
    SolutionItem,
    new_id,
    normalize_question,
    strict_schema_for,
)

logger = logging.getLogger(__name__)

# Image extraction is the most expensive call; back off a little longer
EXTRACT_BASE_DELAY = 3.0

EXTRACT_SYSTEM_INSTRUCTION = """You are an assistant for teachers.
1. Extract every question from the image (keep LaTeX as-is).
2. Solve each question right away.
3. Fill in 'solution_guide' and 'correct_option' / 'correct_answer'.
4. Return a flat JSON array."""

EXTRACT_PROMPT = "OCR and SOLVE. Extract the questions and find the correct answer and solution immediately."

SOLVE_BATCH_PROMPT = """You are a MATH TEACHER. Solve the following list of questions.
INPUT: {payload}
REQUIREMENT: Return a JSON array with the solution ('solution_guide') and the correct answer for each id."""

SOLVE_ONE_PROMPT = "Solve this question: {payload}"

REGENERATE_PROMPT = """Act as a math teacher. CREATE A NEW QUESTION based on the original:
{payload}

REQUIREMENTS:
1. Same question type, same topic: {topic}.
2. Difficulty: {difficulty}.
3. {instruction}
4. IMPORTANT: SOLVE THE QUESTION YOU CREATED.
   - Put the correct answer in 'correct_option' / 'correct_answer'.
   - Put the worked solution in 'solution_guide'.
5. Return a complete JSON object."""

DEFAULT_VARIATION = "Equivalent"
DEFAULT_INSTRUCTION = "Keep the context, change the numbers."


def decode_image(image_base64: str) -> bytes:
    """Decode a base64 image, accepting ``data:<mime>;base64,`` URLs."""
    payload = image_base64.split(",", 1)[1] if "," in image_base64 else image_base64
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"image_base64 is not valid base64 data: {e}") from e


def _validate(model: type[BaseModel], data: Any) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedResponseError(
            f"Response does not match {model.__name__}: {e.error_count()} validation error(s)",
            raw_text=json.dumps(data, default=str)[:500],
        ) from e


class ExamSolver:
    """
    Extracts, solves and regenerates exam questions via a completion client.

    Every operation returns a :class:`TaskHandle` immediately; await it (or
    block on ``handle.result()`` from another thread) for the outcome.
    """

    def __init__(self, client: CompletionClient, scheduler: TaskScheduler | None = None):
        """
        Args:
            client: Completion client used for every call
            scheduler: Shared scheduler (default: one task at a time, default retries)
        """
        self.client = client
        self.scheduler = scheduler or TaskScheduler(SchedulerConfig(max_concurrency=1))

    def extract_questions(
        self, image_base64: str, mime_type: str = "image/jpeg"
    ) -> TaskHandle[list[Question]]:
        """OCR one exam page and solve its questions in a single call (high priority)."""
        image_bytes = decode_image(image_base64)

        async def work() -> list[Question]:
            data = await self.client.complete(
                CompletionRequest(
                    contents=[
                        types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
                        EXTRACT_PROMPT,
                    ],
                    response_schema=list[ExtractedQuestion],
                    system_instruction=EXTRACT_SYSTEM_INSTRUCTION,
                    temperature=0.1,
                )
            )
            if not isinstance(data, list):
                raise MalformedResponseError("No question list returned from the model")
            questions = [
                _validate(Question, {**normalize_question(item, item.get("type")), "id": new_id()})
                for item in data
                if isinstance(item, dict)
            ]
            logger.info(f"[OK]Extracted {len(questions)} question(s) from image")
            return questions

        return self.scheduler.submit(
            work, priority=True, name="extract_questions", base_delay=EXTRACT_BASE_DELAY
        )

    def solve_batch(self, questions: list[Question]) -> TaskHandle[list[SolutionItem]]:
        """Solve many questions in one call (normal priority)."""
        simplified = [
            {
                "id": q.id,
                "type": q.type,
                "content": q.content,
                "options": q.options,
                "sub_questions": (
                    [{"index": i, "content": sq.content} for i, sq in enumerate(q.sub_questions)]
                    if q.sub_questions is not None
                    else None
                ),
            }
            for q in questions
        ]
        prompt = SOLVE_BATCH_PROMPT.format(payload=json.dumps(simplified, ensure_ascii=False))

        async def work() -> list[SolutionItem]:
            data = await self.client.complete(
                CompletionRequest(
                    contents=prompt, response_schema=list[SolutionItem], temperature=0.2
                )
            )
            if not isinstance(data, list):
                raise MalformedResponseError("Batch solve returned no list")
            return [_validate(SolutionItem, item) for item in data]

        return self.scheduler.submit(work, priority=False, name="solve_batch")

    def solve_question(self, question: Question) -> TaskHandle[Question]:
        """Fill in the solution of one question (normal priority)."""
        prompt = SOLVE_ONE_PROMPT.format(
            payload=json.dumps(question.prompt_payload(), ensure_ascii=False)
        )

        async def work() -> Question:
            data = await self.client.complete(
                CompletionRequest(
                    contents=prompt, response_schema=strict_schema_for(question.type)
                )
            )
            answer = normalize_question(data, question.type)
            return _validate(
                Question, {**question.model_dump(), **answer, "id": question.id, "type": question.type}
            )

        return self.scheduler.submit(work, priority=False, name=f"solve_question:{question.id}")

    def regenerate_question(
        self,
        question: Question,
        *,
        difficulty: str | None = None,
        topic: str | None = None,
        instruction: str | None = None,
    ) -> TaskHandle[Question]:
        """
        Create a new variant of a question (high priority, user triggered).

        The result keeps the original id, type and figure image.
        """
        prompt = REGENERATE_PROMPT.format(
            payload=json.dumps(question.prompt_payload(include_id=False), ensure_ascii=False),
            topic=topic or question.topic or DEFAULT_VARIATION,
            difficulty=difficulty or question.difficulty or DEFAULT_VARIATION,
            instruction=instruction or DEFAULT_INSTRUCTION,
        )

        async def work() -> Question:
            data = await self.client.complete(
                CompletionRequest(
                    contents=prompt,
                    response_schema=strict_schema_for(question.type),
                    temperature=0.9,
                )
            )
            fresh = normalize_question(data, question.type)
            return _validate(
                Question,
                {
                    **fresh,
                    "id": question.id,
                    "type": question.type,
                    "figure_image": question.figure_image,
                },
            )

        return self.scheduler.submit(
            work, priority=True, name=f"regenerate_question:{question.id}"
        )
