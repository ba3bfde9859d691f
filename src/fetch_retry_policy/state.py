"""
Per-request retry state.

The state lives on the RequestDescriptor itself: it is created the first time
the request is dispatched and shared by every retry of that same request.
"""
import logging
import time
from typing import Optional

from .types import RequestDescriptor, RetryState

logger = logging.getLogger(__name__)


def monotonic_ms() -> float:
    """Current monotonic time in milliseconds."""
    return time.monotonic() * 1000


def get_current_state(descriptor: RequestDescriptor) -> RetryState:
    """
    Return the retry state of a request, creating it on first use.

    Args:
        descriptor: The request

    Returns:
        The request's RetryState (always the same object)
    """
    if descriptor.state is None:
        descriptor.state = RetryState()
    return descriptor.state


def mark_dispatched(descriptor: RequestDescriptor, now_ms: float) -> RetryState:
    """
    Record a dispatch attempt of the request.

    Args:
        descriptor: The request about to be sent
        now_ms: Current time in milliseconds

    Returns:
        The updated RetryState
    """
    state = get_current_state(descriptor)
    state.last_request_time = now_ms
    logger.debug(
        f"Dispatching {descriptor.method.upper()} {descriptor.url or ''} "
        f"(retry_count={state.retry_count})"
    )
    return state


def elapsed_since_dispatch(state: RetryState, now_ms: float) -> Optional[float]:
    """Milliseconds since the last dispatch, None if never dispatched."""
    if state.last_request_time is None:
        return None
    return now_ms - state.last_request_time
