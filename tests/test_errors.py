"""Tests for the error taxonomy and model error classification."""

import anthropic
import httpx
import pytest

from discover_chat.utils.errors import (
    AuthError,
    ConversationBusyError,
    InternalError,
    ModelUnavailableError,
    NotFoundError,
    RateLimitedError,
    StreamCancelled,
    StreamTimeoutError,
    ToolExecutionError,
    ValidationError,
    classify_model_error,
)

REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def api_status_error(error_class, status_code: int):
    response = httpx.Response(status_code, request=REQUEST)
    return error_class(f"Error code: {status_code} - secret provider detail", response=response, body=None)


class TestClassifyByType:
    """Tests for classification of anthropic SDK exceptions."""

    def test_authentication(self):
        error = classify_model_error(api_status_error(anthropic.AuthenticationError, 401))
        assert isinstance(error, AuthError)
        assert error.retryable is False

    def test_permission_denied(self):
        assert isinstance(classify_model_error(api_status_error(anthropic.PermissionDeniedError, 403)), AuthError)

    def test_rate_limit(self):
        error = classify_model_error(api_status_error(anthropic.RateLimitError, 429))
        assert isinstance(error, RateLimitedError)
        assert error.code == "RATE_LIMITED"

    def test_server_error(self):
        error = classify_model_error(api_status_error(anthropic.InternalServerError, 529))
        assert isinstance(error, ModelUnavailableError)
        assert error.code == "AI_SERVICE_UNAVAILABLE"

    def test_timeout(self):
        assert isinstance(classify_model_error(anthropic.APITimeoutError(request=REQUEST)), StreamTimeoutError)

    def test_connection(self):
        error = classify_model_error(anthropic.APIConnectionError(request=REQUEST))
        assert isinstance(error, ModelUnavailableError)

    def test_original_error_is_chained(self):
        original = api_status_error(anthropic.RateLimitError, 429)
        assert classify_model_error(original).__cause__ is original

    def test_taxonomy_error_passes_through(self):
        error = NotFoundError("gone")
        assert classify_model_error(error) is error


class TestClassifyByMessage:
    """Tests for signature matching on error text."""

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("Invalid API key provided", AuthError),
            ("429 Too Many Requests", RateLimitedError),
            ("rate_limit_error", RateLimitedError),
            ("ETIMEDOUT", StreamTimeoutError),
            ("request timed out", StreamTimeoutError),
            ("Overloaded", ModelUnavailableError),
            ("service unavailable", ModelUnavailableError),
            ("ECONNREFUSED 127.0.0.1", ModelUnavailableError),
            ("something odd", InternalError),
        ],
    )
    def test_signatures(self, message, expected):
        assert isinstance(classify_model_error(RuntimeError(message)), expected)


class TestUserMessages:
    """Tests for the user-visible side of errors."""

    def test_raw_detail_never_in_wire_form(self):
        error = classify_model_error(api_status_error(anthropic.RateLimitError, 429))
        wire = error.as_dict()
        assert wire == {
            "code": "RATE_LIMITED",
            "message": "Too many requests. Please wait a moment and try again.",
            "retryable": True,
        }
        assert "secret" not in wire["message"]

    def test_status_codes(self):
        assert ValidationError().status_code == 400
        assert NotFoundError().status_code == 404
        assert ConversationBusyError().status_code == 409

    def test_validation_detail_is_user_message(self):
        assert ValidationError("Message is too long").as_dict()["message"] == "Message is too long"

    def test_cancellation_outside_taxonomy(self):
        assert not issubclass(StreamCancelled, ValidationError.__mro__[1])

    def test_tool_error_retry_flag_copy(self):
        error = ToolExecutionError("Album not found: X", retryable=False, code="NOT_FOUND")
        copied = error.with_retry_flag(True)
        assert copied.was_retried is True
        assert copied.message == error.message
        assert copied.code == "NOT_FOUND"
        assert error.was_retried is False
