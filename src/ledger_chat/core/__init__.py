from .base import (
    ApplicationError,
    ErrorCode,
    ErrorLevel,
    ServiceErrorDetails,
)
from .cache import KeyedCache
from .circuit_breaker import CircuitBreaker, CircuitState, RetryWithCircuitBreaker
