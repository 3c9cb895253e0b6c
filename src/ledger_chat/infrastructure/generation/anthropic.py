"""Anthropic text and vision generation service."""

import base64
import binascii
from typing import Any

import anthropic

from ledger_chat.core.base import AIServiceErrorDetails, ApplicationError, ErrorLevel
from ledger_chat.core.circuit_breaker import CircuitBreaker, RetryWithCircuitBreaker
from ledger_chat.core.config import settings
from ledger_chat.core.decorators import with_error_handling
from ledger_chat.core.errors import (
    AuthenticationError,
    GenerationError,
    InvalidInputError,
    RateLimitError,
    RequestTimeoutError,
    ServiceError,
)
from ledger_chat.core.logging import get_logger
from ledger_chat.domain.models.chat import sniff_image_media_type

logger = get_logger(__name__)


def detect_media_type(image_base64: str) -> str:
    """Sniff the media type of a base64 encoded image from its magic bytes.

    Raises:
        InvalidInputError: If the data is not base64 or not a supported format
    """
    try:
        head = base64.b64decode(image_base64[:64], validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidInputError(
            message="Image is not valid base64",
            details={"source": "anthropic_generation", "operation": "detect_media_type"},
        ) from e

    media_type = sniff_image_media_type(head)
    if media_type is not None:
        return media_type

    raise InvalidInputError(
        message="Unsupported image format; use JPEG, PNG, GIF or WebP",
        details={"source": "anthropic_generation", "operation": "detect_media_type"},
    )


class AnthropicGenerationService:
    """Generate answers and image descriptions with Claude models."""

    @with_error_handling(error_level=ErrorLevel.ERROR)
    def __init__(
        self,
        model: str | None = None,
        vision_model: str | None = None,
        api_key: str | None = None,
        client: Any | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        api_key = api_key or settings.anthropic_api_key.get_secret_value()
        if client is None and not api_key:
            raise AuthenticationError(
                message="Anthropic API key not found in settings",
                details=AIServiceErrorDetails(
                    source="AnthropicGenerationService",
                    operation="initialization",
                    service_name="Anthropic",
                ),
            )

        self.model = model or settings.anthropic_model
        self.vision_model = vision_model or settings.anthropic_vision_model
        self.temperature = settings.generation_temperature if temperature is None else temperature
        self.max_tokens = max_tokens or settings.generation_max_tokens
        self.client: Any = client or anthropic.AsyncAnthropic(api_key=api_key)

        self._circuit_breaker = CircuitBreaker(
            name="anthropic_api",
            failure_threshold=3,
            recovery_timeout=30.0,
            expected_exception_types=(RateLimitError, RequestTimeoutError, ServiceError),
            success_threshold=2,
        )
        self._retry_handler = RetryWithCircuitBreaker(
            circuit_breaker=self._circuit_breaker,
            max_retries=2,
            initial_delay=1.0,
            backoff_factor=2.0,
            max_delay=10.0,
            retryable_exceptions=(RateLimitError,),
        )

    def _details(self, operation: str, model: str, status_code: int | None, prompt_chars: int) -> AIServiceErrorDetails:
        return AIServiceErrorDetails(
            source="AnthropicGenerationService",
            operation=operation,
            service_name="Anthropic",
            endpoint="/v1/messages",
            status_code=status_code,
            model_name=model,
            prompt_chars=prompt_chars,
        )

    def _handle_error(self, e: Exception, operation: str, model: str, prompt_chars: int) -> ApplicationError:
        """Map SDK errors to our exception types."""
        if isinstance(e, anthropic.RateLimitError):
            return RateLimitError(
                message="Rate limit exceeded for generation API",
                details=self._details(operation, model, 429, prompt_chars),
            )
        if isinstance(e, anthropic.APITimeoutError):
            return RequestTimeoutError(
                message="Generation API request timed out",
                details=self._details(operation, model, 408, prompt_chars),
            )
        if isinstance(e, anthropic.AuthenticationError | anthropic.PermissionDeniedError):
            return AuthenticationError(
                message="Authentication failed for generation API",
                details=self._details(operation, model, e.status_code, prompt_chars),
            )
        if isinstance(e, anthropic.APIConnectionError):
            return ServiceError(
                message=f"Generation API unreachable: {e!s}",
                details=self._details(operation, model, None, prompt_chars),
            )
        if isinstance(e, anthropic.InternalServerError):
            return ServiceError(
                message=f"Generation API unavailable: {e!s}",
                details=self._details(operation, model, e.status_code, prompt_chars),
            )
        status_code = getattr(e, "status_code", None)
        return GenerationError(
            message=f"Failed to generate text: {e!s}",
            details=self._details(operation, model, status_code, prompt_chars),
        )

    async def _create_message(self, operation: str, model: str, content: str | list[dict[str, Any]], prompt_chars: int) -> str:
        try:
            response = await self.client.messages.create(
                model=model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": content}],
            )
        except anthropic.AnthropicError as e:
            raise self._handle_error(e, operation, model, prompt_chars) from e

        text = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
        if not text.strip():
            raise GenerationError(
                message="Generation API returned an empty answer",
                details=self._details(operation, model, 200, prompt_chars),
            )
        return text.strip()

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def generate_text(self, prompt: str) -> str:
        """Generate a completion for ``prompt``."""
        return await self._retry_handler.call_async(
            self._create_message, "generate_text", self.model, prompt, len(prompt)
        )

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def generate_from_image(self, instruction: str, image_base64: str) -> str:
        """Describe an image following ``instruction``."""
        content = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": detect_media_type(image_base64),
                    "data": image_base64,
                },
            },
            {"type": "text", "text": instruction},
        ]
        return await self._retry_handler.call_async(
            self._create_message, "generate_from_image", self.vision_model, content, len(instruction)
        )

    def get_circuit_state(self) -> dict[str, Any]:
        return self._circuit_breaker.get_state()
