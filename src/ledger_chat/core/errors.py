"""Specific error types for the Ledger Chat application."""

from enum import Enum
from typing import Any

from .base import ApplicationError, ErrorCode, ErrorDetails, ErrorLevel, ServiceErrorDetails


class ServiceError(ApplicationError):
    """Error from external service calls."""

    def __init__(self, message: str, details: ServiceErrorDetails | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.SERVICE_UNAVAILABLE,
            level=ErrorLevel.ERROR,
            details=details or ServiceErrorDetails(
                source="service",
                operation="external_call",
                service_name="unknown"
            )
        )


class AuthenticationError(ApplicationError):
    """Authentication-related errors."""

    def __init__(self, message: str, details: ErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.AUTHENTICATION_FAILED,
            level=ErrorLevel.ERROR,
            details=details
        )


class ProcessingError(ApplicationError):
    """General processing errors."""

    def __init__(self, message: str, details: ErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.PROCESSING_FAILED,
            level=ErrorLevel.ERROR,
            details=details
        )


class InvalidInputError(ApplicationError):
    """Caller supplied input that cannot be processed."""

    def __init__(self, message: str, details: ErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.INVALID_INPUT,
            level=ErrorLevel.WARNING,
            details=details
        )


class RateLimitError(ApplicationError):
    """Rate limiting errors."""

    def __init__(self, message: str, details: ServiceErrorDetails | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.RATE_LIMITED,
            level=ErrorLevel.WARNING,
            details=details
        )


class RequestTimeoutError(ApplicationError):
    """Timeout errors."""

    def __init__(self, message: str, details: ErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.TIMEOUT,
            level=ErrorLevel.ERROR,
            details=details
        )


class RecordFetchError(ApplicationError):
    """The record source could not provide a user's records."""

    def __init__(
        self,
        message: str,
        details: ErrorDetails | dict | None = None,
        code: ErrorCode = ErrorCode.RECORD_FETCH_FAILED,
    ):
        super().__init__(
            message=message,
            code=code,
            level=ErrorLevel.ERROR,
            details=details
        )


class EmbeddingError(ApplicationError):
    """The embedding provider failed or returned unusable vectors."""

    def __init__(self, message: str, details: ErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.EMBEDDING_FAILED,
            level=ErrorLevel.ERROR,
            details=details
        )


class GenerationError(ApplicationError):
    """The text generation provider failed."""

    def __init__(self, message: str, details: ErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.GENERATION_FAILED,
            level=ErrorLevel.ERROR,
            details=details
        )


class RetrievalUnavailableError(ApplicationError):
    """A user's vector index could not be built, so no grounding is available."""

    def __init__(self, user_id: str, cause: BaseException, details: ErrorDetails | dict | None = None):
        self.user_id = user_id
        self.cause = cause
        super().__init__(
            message=f"Retrieval unavailable for user {user_id}: {cause}",
            code=ErrorCode.RETRIEVAL_UNAVAILABLE,
            level=ErrorLevel.ERROR,
            details=details or {
                "source": "vector_index_manager",
                "operation": "build_index",
                "user_id": user_id,
                "cause_type": type(cause).__name__,
            },
        )


class ChatFailure(str, Enum):
    """Which part of a chat turn failed."""

    RETRIEVAL_UNAVAILABLE = "retrieval_unavailable"
    IMAGE_ANALYSIS_FAILED = "image_analysis_failed"
    GENERATION_FAILED = "generation_failed"
    TIMEOUT = "timeout"


_FAILURE_CODES = {
    ChatFailure.RETRIEVAL_UNAVAILABLE: ErrorCode.RETRIEVAL_UNAVAILABLE,
    ChatFailure.IMAGE_ANALYSIS_FAILED: ErrorCode.IMAGE_ANALYSIS_FAILED,
    ChatFailure.GENERATION_FAILED: ErrorCode.GENERATION_FAILED,
    ChatFailure.TIMEOUT: ErrorCode.TIMEOUT,
}


class ChatTurnError(ApplicationError):
    """A chat turn was aborted.

    ``user_message_recorded`` tells the caller whether the incoming message was
    already appended to the conversation before the failure. When it is, the
    conversation ends with a user message that has no assistant reply.
    """

    def __init__(
        self,
        failure: ChatFailure,
        conversation_id: str,
        user_message_recorded: bool,
        cause: BaseException | None = None,
    ):
        self.failure = failure
        self.conversation_id = conversation_id
        self.user_message_recorded = user_message_recorded
        self.cause = cause
        context: dict[str, Any] = {
            "source": "chat_orchestrator",
            "operation": "handle_turn",
            "failure": failure.value,
            "conversation_id": conversation_id,
            "user_message_recorded": user_message_recorded,
        }
        if cause is not None:
            context["cause_type"] = type(cause).__name__
            context["cause"] = str(cause)
        super().__init__(
            message=f"Chat turn failed ({failure.value})" + (f": {cause}" if cause else ""),
            code=_FAILURE_CODES[failure],
            level=ErrorLevel.ERROR,
            details=context,
        )
