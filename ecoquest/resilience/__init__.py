"""Resilience patterns for backend calls

Retry with exponential backoff for transient persistence and storage failures.
"""

from ecoquest.resilience.retry import retry_with_backoff, is_retryable_error

__all__ = [
    "retry_with_backoff",
    "is_retryable_error",
]
