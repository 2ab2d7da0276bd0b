"""
Resilience service for retry logic and provider error classification.
Used for idempotent provider reads only; runs and tool calls are never retried.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

import openai

from config.app_config import RetryConfig
from services.errors import AssistantError
from utils.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Define which errors should trigger retries (transient errors)
RETRIABLE_ERRORS = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.InternalServerError,  # Server-side issues
)

# Define which errors should NOT be retried (permanent errors)
NON_RETRIABLE_ERRORS = (
    openai.AuthenticationError,  # API key issues
    openai.PermissionDeniedError,
    openai.BadRequestError,      # Includes "run is active" conflicts
    openai.NotFoundError,
    openai.ContentFilterFinishReasonError,
)

AUTHENTICATION_ERRORS = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
)

_USER_MESSAGES = (
    (openai.RateLimitError, "The assistant is receiving too many requests. Please wait a moment and try again."),
    (openai.APITimeoutError, "The assistant took too long to respond. Please try again."),
    (openai.APIConnectionError, "Could not reach the assistant service. Check your connection and try again."),
    (openai.AuthenticationError, "The assistant service rejected its credentials. Please contact the administrator."),
    (openai.PermissionDeniedError, "The assistant service rejected its credentials. Please contact the administrator."),
    (openai.BadRequestError, "The assistant could not process this request. Try rephrasing it."),
    (openai.NotFoundError, "This conversation could not be found. Start a new conversation."),
    (openai.InternalServerError, "The assistant service is having trouble. Please try again in a few minutes."),
    (openai.ContentFilterFinishReasonError, "The request or the response was blocked by the content filter."),
)

GENERIC_ERROR_MESSAGE = "Something went wrong while processing your request. Please try again."


def exponential_backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay with jitter

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (2 ** attempt), max_delay)

    # Jitter avoids a thundering herd when many sessions retry together
    jitter = random.uniform(0, 0.1 * delay)

    return delay + jitter


def user_facing_error(error: BaseException) -> str:
    """
    Map an exception to a human-readable message, hiding internal detail

    Args:
        error: Exception raised by the provider or the services

    Returns:
        Message safe to show in the chat UI
    """
    if isinstance(error, AssistantError):
        return error.message

    for error_type, message in _USER_MESSAGES:
        if isinstance(error, error_type):
            return message

    return GENERIC_ERROR_MESSAGE


def is_authentication_error(error: BaseException) -> bool:
    """True when the provider rejected our credentials"""
    return isinstance(error, AUTHENTICATION_ERRORS)


class RetryService:
    """
    Service for handling retry logic around idempotent provider calls.
    """

    def __init__(self, config: Optional[RetryConfig] = None):
        self.logger = get_logger(__name__)
        self.config = config or RetryConfig()

    async def retry_with_backoff(
        self,
        func: Callable[[], Awaitable[T]],
        operation: str = "provider call",
        on_retry: Optional[Callable[[int, Exception], None]] = None
    ) -> T:
        """
        Await a coroutine factory with retry logic and exponential backoff

        Args:
            func: Zero-argument callable returning a fresh awaitable per attempt
            operation: Label used in log messages
            on_retry: Optional callback for retry events (attempt_number, exception)

        Returns:
            The awaited result

        Raises:
            The last exception if all retries are exhausted, or any
            non-retriable exception immediately
        """
        max_retries = self.config.max_retries

        for attempt in range(max_retries + 1):  # +1 for initial attempt
            try:
                result = await func()

                if attempt > 0:
                    self.logger.info(f"{operation} succeeded after {attempt} retries")

                return result

            except RETRIABLE_ERRORS as e:
                if attempt == max_retries:
                    self.logger.error(f"{operation} failed after {max_retries} retries: {e}")
                    raise

                delay = exponential_backoff_delay(attempt, self.config.base_delay, self.config.max_delay)

                self.logger.warning(
                    f"{operation} attempt {attempt + 1} failed ({e.__class__.__name__}), retrying in {delay:.2f}s"
                )

                if on_retry:
                    on_retry(attempt + 1, e)

                await asyncio.sleep(delay)

            except NON_RETRIABLE_ERRORS as e:
                self.logger.warning(f"Non-retriable error in {operation}: {e.__class__.__name__}: {e}")
                raise

        raise RuntimeError("unreachable")  # pragma: no cover
