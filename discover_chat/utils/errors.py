"""Error taxonomy for chat streaming and tool execution."""

from anthropic import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AuthenticationError,
    PermissionDeniedError,
    RateLimitError,
)


class DiscoverChatError(Exception):
    """Base class for errors that terminate a chat request.

    Every subclass carries one fixed, user-safe message. The underlying
    provider error is kept as ``__cause__`` for logging only.
    """

    code: str = "INTERNAL_ERROR"
    user_message: str = "An unexpected error occurred. Please try again."
    retryable: bool = True
    status_code: int = 500

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.user_message)
        self.detail = detail

    def as_dict(self) -> dict[str, object]:
        """Return the wire representation used by HTTP error bodies."""
        return {"code": self.code, "message": self.user_message, "retryable": self.retryable}


class ValidationError(DiscoverChatError):
    """Request rejected before any state was created."""

    code = "VALIDATION_ERROR"
    user_message = "Message cannot be empty."
    retryable = False
    status_code = 400

    def __init__(self, detail: str | None = None):
        super().__init__(detail)
        if detail:
            self.user_message = detail


class NotFoundError(DiscoverChatError):
    """The requested conversation does not exist."""

    code = "NOT_FOUND"
    user_message = "Conversation not found"
    retryable = False
    status_code = 404


class ConversationBusyError(DiscoverChatError):
    """Another generation is already streaming into this conversation."""

    code = "CONVERSATION_BUSY"
    user_message = "A response is already being generated for this conversation."
    retryable = True
    status_code = 409


class ModelUnavailableError(DiscoverChatError):
    code = "AI_SERVICE_UNAVAILABLE"
    user_message = "The AI service is temporarily unavailable. Please try again later."
    status_code = 503


class AuthError(DiscoverChatError):
    code = "AUTH_ERROR"
    user_message = "The AI service is temporarily unavailable. Please try again later."
    retryable = False
    status_code = 502


class RateLimitedError(DiscoverChatError):
    code = "RATE_LIMITED"
    user_message = "Too many requests. Please wait a moment and try again."
    status_code = 429


class StreamTimeoutError(DiscoverChatError):
    code = "TIMEOUT"
    user_message = "The request timed out. Please try again."
    status_code = 504


class InternalError(DiscoverChatError):
    pass


class StreamCancelled(Exception):
    """Raised inside the generation loop when the client cancelled.

    Not part of the error taxonomy: cancellation never reaches the user as an error.
    """


class ToolExecutionError(Exception):
    """Failure of a single tool call. Never aborts the stream."""

    def __init__(self, message: str, retryable: bool, was_retried: bool = False, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.was_retried = was_retried
        self.code = code

    def with_retry_flag(self, was_retried: bool) -> "ToolExecutionError":
        """Copy of this error with an updated was_retried flag."""
        return ToolExecutionError(self.message, self.retryable, was_retried, self.code)


# Checked in order; first match wins
_SIGNATURES: list[tuple[tuple[str, ...], type[DiscoverChatError]]] = [
    (("api key", "apikey", "authentication", "unauthorized", "permission"), AuthError),
    (("rate limit", "rate_limit", "429", "too many requests"), RateLimitedError),
    (("timeout", "timed out", "etimedout"), StreamTimeoutError),
    (("overloaded", "unavailable", "econnrefused", "connection", "503", "529"), ModelUnavailableError),
]


def classify_model_error(error: BaseException) -> DiscoverChatError:
    """Map a model or infrastructure fault onto the fixed taxonomy.

    Args:
        error: The exception raised by the model client or a collaborator

    Returns:
        A taxonomy error chained to the original exception
    """
    if isinstance(error, DiscoverChatError):
        return error

    classified: DiscoverChatError
    if isinstance(error, (AuthenticationError, PermissionDeniedError)):
        classified = AuthError(str(error))
    elif isinstance(error, RateLimitError):
        classified = RateLimitedError(str(error))
    elif isinstance(error, APITimeoutError):
        classified = StreamTimeoutError(str(error))
    elif isinstance(error, APIConnectionError):
        classified = ModelUnavailableError(str(error))
    elif isinstance(error, APIStatusError) and error.status_code >= 500:
        classified = ModelUnavailableError(str(error))
    elif isinstance(error, TimeoutError):
        classified = StreamTimeoutError(str(error))
    else:
        classified = _classify_by_message(str(error))

    classified.__cause__ = error
    return classified


def _classify_by_message(message: str) -> DiscoverChatError:
    lowered = message.lower()
    for patterns, error_class in _SIGNATURES:
        if any(pattern in lowered for pattern in patterns):
            return error_class(message)
    return InternalError(message)
