"""Error handlers for different types of errors"""

from typing import Any

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ledger_chat.core.logging import get_logger

from .base import ApplicationError, ErrorCode, ErrorLevel
from .error_context import ErrorContext, ErrorContextManager
from .errors import ChatFailure, ChatTurnError, InvalidInputError

logger = get_logger(__name__)

_FAILURE_STATUS = {
    ChatFailure.RETRIEVAL_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ChatFailure.IMAGE_ANALYSIS_FAILED: status.HTTP_502_BAD_GATEWAY,
    ChatFailure.GENERATION_FAILED: status.HTTP_502_BAD_GATEWAY,
    ChatFailure.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
}

_CODE_STATUS = {
    ErrorCode.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.AUTHENTICATION_FAILED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.RETRIEVAL_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.SERVICE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.CIRCUIT_OPEN: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
}


def status_code_for(error: Exception) -> int:
    """HTTP status code reported for an error raised while serving a request."""
    if isinstance(error, ChatTurnError):
        return _FAILURE_STATUS[error.failure]
    if isinstance(error, ApplicationError):
        return _CODE_STATUS.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return status.HTTP_500_INTERNAL_SERVER_ERROR


class ErrorHandler:
    """Base class for error handlers"""

    def __init__(
        self,
        context_manager: ErrorContextManager,
    ):
        self.context_manager = context_manager

    def _format_response(
        self,
        error_context: ErrorContext,
        level: ErrorLevel,
        additional_context: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Format error response"""
        response: dict[str, Any] = {
            "error": str(error_context.error),
            "error_code": (additional_context or {}).get("error_code", ErrorCode.PROCESSING_FAILED.value),
            "level": level.value,
            "trace_id": error_context.trace_id,
            "timestamp": error_context.timestamp.isoformat(),
        }

        # Include rich structured data if it's an ApplicationError
        if isinstance(error_context.error, ApplicationError):
            response["error_code"] = error_context.error.code.value
            response["details"] = error_context.error.details.model_dump(mode="json")

        if isinstance(error_context.error, ChatTurnError):
            response["failure"] = error_context.error.failure.value
            response["conversation_id"] = error_context.error.conversation_id
            response["user_message_recorded"] = error_context.error.user_message_recorded

        return response


class GlobalErrorHandler(ErrorHandler):
    """Global error handler for FastAPI application"""

    def handle_application_error(self, error: ApplicationError, path: str) -> tuple[int, dict[str, Any]]:
        """Build the status code and body for an application error"""
        status_code = status_code_for(error)
        error_context = self.context_manager.capture_context(error, status_code=status_code, path=path)
        logger.log(
            error.level.to_logging_level(),
            f"Request failed: {error.message}",
            error_code=error.code.value,
            status_code=status_code,
            trace_id=error_context.trace_id,
        )
        return status_code, self._format_response(error_context=error_context, level=error.level)

    def handle_unexpected(self, error: Exception, path: str) -> dict[str, Any]:
        error_context = self.context_manager.capture_context(error, path=path)
        logger.error(f"Unhandled error: {error!s}", trace_id=error_context.trace_id, exc_info=error)
        return self._format_response(
            error_context=error_context,
            level=ErrorLevel.CRITICAL,
            additional_context={"error_code": ErrorCode.UNKNOWN.value},
        )


global_error_handler = GlobalErrorHandler(ErrorContextManager())


async def application_error_handler(request: Request, exc: ApplicationError) -> JSONResponse:
    """FastAPI exception handler for :class:`ApplicationError`."""
    status_code, body = global_error_handler.handle_application_error(exc, request.url.path)
    return JSONResponse(status_code=status_code, content=body)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler of last resort."""
    body = global_error_handler.handle_unexpected(exc, request.url.path)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as invalid input."""
    error = InvalidInputError(
        message="Invalid request",
        details={
            "source": "api",
            "operation": request.url.path,
            "errors": jsonable_encoder(exc.errors()),
        },
    )
    status_code, body = global_error_handler.handle_application_error(error, request.url.path)
    return JSONResponse(status_code=status_code, content=body)
