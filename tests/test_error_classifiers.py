"""Tests for error classification."""

import pytest

from llm_task_queue.strategies.errors import (
    DefaultErrorClassifier,
    ErrorKind,
    MalformedResponseError,
    TaskFailedError,
    classify_error,
)
from llm_task_queue.testing import FakeAPIError


class StatusError(Exception):
    """Exception carrying only a status attribute."""

    def __init__(self, message: str, status):
        super().__init__(message)
        self.status = status


def test_rate_limit_by_numeric_code():
    assert classify_error(FakeAPIError(429, None, "Too many requests")) is ErrorKind.RATE_LIMITED


def test_rate_limit_by_numeric_status():
    assert classify_error(StatusError("slow down", 429)) is ErrorKind.RATE_LIMITED


def test_rate_limit_by_status_token():
    """RESOURCE_EXHAUSTED status token is a rate limit even without a code."""
    error = StatusError("try later", "RESOURCE_EXHAUSTED")
    assert classify_error(error) is ErrorKind.RATE_LIMITED


@pytest.mark.parametrize(
    "message",
    [
        "429 Too Many Requests",
        "Quota exceeded for metric generate_content_requests",
        "Resource has been EXHAUSTED (e.g. check quota).",
    ],
)
def test_rate_limit_by_message(message):
    assert classify_error(Exception(message)) is ErrorKind.RATE_LIMITED


@pytest.mark.parametrize("code", [500, 503])
def test_server_errors_are_transient(code):
    assert classify_error(FakeAPIError(code, None, "server error")) is ErrorKind.TRANSIENT


def test_string_status_code_is_transient():
    assert classify_error(StatusError("oops", "503")) is ErrorKind.TRANSIENT


class GrpcStyleError(Exception):
    """gRPC code on ``code``, HTTP status on ``status_code``."""

    def __init__(self, message: str, code: int, status_code: int):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


def test_every_status_attribute_is_checked():
    """A 429 is found even when an earlier attribute holds another number."""
    error = GrpcStyleError("Too Many Requests", code=8, status_code=429)
    assert classify_error(error) is ErrorKind.RATE_LIMITED

    error = GrpcStyleError("Service down", code=14, status_code=503)
    assert classify_error(error) is ErrorKind.TRANSIENT

    info = DefaultErrorClassifier().classify(error)
    assert info.status_code == 503
    assert info.error_category == "server_error"


@pytest.mark.parametrize(
    "message",
    [
        "Failed to fetch",
        "xhr poll error",
        "Network request failed",
        "Internal error encountered (error code: 6)",
    ],
)
def test_transient_by_message(message):
    assert classify_error(Exception(message)) is ErrorKind.TRANSIENT


def test_connection_and_timeout_errors_are_transient():
    assert classify_error(ConnectionResetError("peer reset")) is ErrorKind.TRANSIENT
    assert classify_error(TimeoutError("read timed out")) is ErrorKind.TRANSIENT


@pytest.mark.parametrize(
    "error",
    [
        FakeAPIError(400, "INVALID_ARGUMENT", "Invalid JSON payload: unknown field"),
        FakeAPIError(401, "UNAUTHENTICATED", "API key not valid"),
        ValueError("response_schema is malformed"),
        Exception("No data returned from AI"),
    ],
)
def test_everything_else_is_fatal(error):
    assert classify_error(error) is ErrorKind.FATAL


def test_malformed_response_is_fatal_even_with_retryable_words():
    """Parsed content can mention anything; a parse failure is never retried."""
    error = MalformedResponseError("Bad JSON near 'network quota 429'")
    assert classify_error(error) is ErrorKind.FATAL


def test_rate_limit_checked_before_server_error():
    error = FakeAPIError(503, None, "quota exhausted")
    assert classify_error(error) is ErrorKind.RATE_LIMITED


def test_default_classifier_info():
    classifier = DefaultErrorClassifier()

    info = classifier.classify(FakeAPIError(429, "RESOURCE_EXHAUSTED", "Quota exceeded"))
    assert info.kind is ErrorKind.RATE_LIMITED
    assert info.is_rate_limit is True
    assert info.is_retryable is True
    assert info.error_category == "rate_limit"
    assert info.status_code == 429

    info = classifier.classify(FakeAPIError(503, "UNAVAILABLE", "The model is overloaded"))
    assert info.kind is ErrorKind.TRANSIENT
    assert info.is_rate_limit is False
    assert info.error_category == "server_error"

    info = classifier.classify(TimeoutError())
    assert info.error_category == "timeout"

    info = classifier.classify(FakeAPIError(403, "PERMISSION_DENIED", "denied"))
    assert info.kind is ErrorKind.FATAL
    assert info.is_retryable is False
    assert info.error_category == "authentication"

    info = classifier.classify(MalformedResponseError("truncated"))
    assert info.error_category == "malformed_response"


def test_error_kind_retryable():
    assert ErrorKind.RATE_LIMITED.is_retryable
    assert ErrorKind.TRANSIENT.is_retryable
    assert not ErrorKind.FATAL.is_retryable


def test_task_failed_error_keeps_classification_and_message():
    original = FakeAPIError(500, "INTERNAL", "backend exploded")
    error = TaskFailedError(7, ErrorKind.TRANSIENT, 3, original)

    assert error.task_id == 7
    assert error.kind is ErrorKind.TRANSIENT
    assert error.attempts == 3
    assert error.error is original
    assert "transient" in str(error)
    assert "backend exploded" in str(error)
