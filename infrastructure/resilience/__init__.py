"""
Resilience infrastructure - handles retry logic and provider error classification.
"""

from .retry_service import (
    RetryService,
    GENERIC_ERROR_MESSAGE,
    RETRIABLE_ERRORS,
    NON_RETRIABLE_ERRORS,
    exponential_backoff_delay,
    is_authentication_error,
    user_facing_error,
)

__all__ = [
    'RetryService',
    'GENERIC_ERROR_MESSAGE',
    'RETRIABLE_ERRORS',
    'NON_RETRIABLE_ERRORS',
    'exponential_backoff_delay',
    'is_authentication_error',
    'user_facing_error',
]
