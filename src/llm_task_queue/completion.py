"""Completion clients: the external service the scheduler protects.

A client takes a structured request (payload plus expected response shape)
and returns either a fully parsed structured response or raises an error the
classifier can sort into rate-limited, transient or fatal.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from google import genai
from google.genai import types

from .strategies.errors import MalformedResponseError

# Module-level logger
logger = logging.getLogger(__name__)

_FENCE_START = re.compile(r"^```(?:json)?\s*")
_FENCE_END = re.compile(r"\s*```$")


def parse_json_lenient(text: str) -> Any:
    """
    Parse a JSON response that may be fenced or truncated.

    Markdown code fences are stripped first. If the payload is a JSON array
    that was cut off mid-stream, everything after the last complete object is
    dropped and the array is closed before giving up.

    Args:
        text: Raw response text

    Returns:
        The decoded JSON value

    Raises:
        MalformedResponseError: If the text cannot be decoded even after repair
    """
    clean = _FENCE_END.sub("", _FENCE_START.sub("", text.strip()))
    try:
        return json.loads(clean)
    except json.JSONDecodeError as e:
        trimmed = clean.strip()
        if trimmed.startswith("["):
            last_object_end = trimmed.rfind("}")
            if last_object_end != -1:
                repaired = trimmed[: last_object_end + 1] + "]"
                try:
                    data = json.loads(repaired)
                except json.JSONDecodeError:
                    pass
                else:
                    logger.warning(
                        f"[WARN]Repaired truncated JSON array ({len(data)} complete items kept)"
                    )
                    return data
        raise MalformedResponseError(
            f"Response is not valid JSON: {e.msg} (line {e.lineno}, column {e.colno})",
            raw_text=text,
        ) from e


@dataclass
class CompletionRequest:
    """
    A structured request for the completion service.

    Attributes:
        contents: Prompt text, or a list of parts (text and inline images)
        response_schema: Expected response shape (pydantic model, ``list[Model]``,
            or a schema dict); None for free-form JSON
        system_instruction: Optional system prompt
        temperature: Sampling temperature (None for the model default)
    """

    contents: Any
    response_schema: Any = None
    system_instruction: str | None = None
    temperature: float | None = None


class CompletionClient(ABC):
    """Abstract base class for completion service clients."""

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> Any:
        """
        Execute one call against the service.

        Args:
            request: What to ask and the expected response shape

        Returns:
            The parsed structured response (decoded JSON)

        Raises:
            MalformedResponseError: If the response is empty or cannot be parsed
            Any provider error, to be classified by the retry policy
        """
        pass


class GeminiCompletionClient(CompletionClient):
    """
    Completion client for the Google Gemini API.

    Uses the google-genai SDK's async interface with a JSON response mime type
    and, when given, a response schema.
    """

    def __init__(self, model: str, client: "genai.Client"):
        """
        Initialize the Gemini client wrapper.

        Args:
            model: Model name (e.g., "gemini-2.5-flash")
            client: Initialized Gemini client
        """
        if not model:
            raise ValueError("model must be a non-empty model name")
        self.model = model
        self.client = client

    def _build_config(self, request: CompletionRequest) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            response_mime_type="application/json",
            response_schema=request.response_schema,
            system_instruction=request.system_instruction,
            temperature=request.temperature,
        )

    async def complete(self, request: CompletionRequest) -> Any:
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=request.contents,
            config=self._build_config(request),
        )

        text = response.text
        if not text:
            finish_reason = None
            if getattr(response, "candidates", None):
                finish_reason = getattr(response.candidates[0], "finish_reason", None)
            raise MalformedResponseError(
                f"Empty response from {self.model} (finish_reason={finish_reason})"
            )

        usage = getattr(response, "usage_metadata", None)
        if usage is not None:
            logger.debug(
                f"Gemini call used {usage.total_token_count or 0} tokens "
                f"({usage.prompt_token_count or 0} in, {usage.candidates_token_count or 0} out)"
            )
        return parse_json_lenient(text)
