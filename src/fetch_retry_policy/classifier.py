"""
Retry eligibility predicates over failed attempts.

All predicates are pure and can be combined into custom retry conditions:

    def retry_on_gateway_errors(event):
        return is_network_error(event) or (
            event.response is not None and event.response.status in (502, 504)
        )
"""
from .types import (
    FailureEvent,
    IDEMPOTENT_HTTP_METHODS,
    SAFE_HTTP_METHODS,
    TIMEOUT_ERROR_CODE,
)
from .trust import is_retry_allowed


def is_network_error(event: FailureEvent) -> bool:
    """
    Check if the failure is a connectivity error that is safe to retry.

    Cancelled requests (no code), timeouts and denied codes are excluded.

    Args:
        event: The failed attempt

    Returns:
        Whether the failure is a retryable network error
    """
    return (
        event.response is None
        and bool(event.code)
        and event.code != TIMEOUT_ERROR_CODE
        and is_retry_allowed(event.code)
    )


def is_retryable_error(event: FailureEvent) -> bool:
    """
    Check if the failure is transient: no response, a 5xx, or a 429.

    Args:
        event: The failed attempt

    Returns:
        Whether the failure is retryable, regardless of the method
    """
    if event.code == TIMEOUT_ERROR_CODE:
        return False
    if event.response is None:
        return True
    status = event.response.status
    return 500 <= status <= 599 or status == 429


def _method_of(event: FailureEvent) -> str:
    return (event.request.method or "").lower()


def is_safe_request_error(event: FailureEvent) -> bool:
    """
    Check if a retryable failure happened on a safe method (GET, HEAD, OPTIONS).

    Returns False when the request is unknown.
    """
    if event.request is None:
        # Cannot determine if the request can be retried
        return False
    return is_retryable_error(event) and _method_of(event) in SAFE_HTTP_METHODS


def is_idempotent_request_error(event: FailureEvent) -> bool:
    """
    Check if a retryable failure happened on an idempotent method.

    Returns False when the request is unknown.
    """
    if event.request is None:
        # Cannot determine if the request can be retried
        return False
    return is_retryable_error(event) and _method_of(event) in IDEMPOTENT_HTTP_METHODS


def is_network_or_idempotent_request_error(event: FailureEvent) -> bool:
    """Default retry condition."""
    return is_network_error(event) or is_idempotent_request_error(event)
