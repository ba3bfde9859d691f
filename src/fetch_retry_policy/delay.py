"""
Delay strategies for fetch_retry_policy.

A delay function receives the retry number (1 for the first retry) and the
failed attempt, and returns the wait in milliseconds. A negative value vetoes
the retry.
"""
import random
import re
import time
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Optional

from .exceptions import RetryAfterValueError
from .types import FailureEvent, RetryDelay


# Leading integer, the way HTTP servers and most clients read delay-seconds
_INTEGER_PREFIX = re.compile(r"^\s*([+-]?\d+)")


def no_delay(retry_number: int = 0, event: Optional[FailureEvent] = None) -> float:
    """
    Retry immediately.

    Returns:
        Delay in milliseconds, always 0
    """
    return 0


def exponential_delay(retry_number: int = 0, event: Optional[FailureEvent] = None) -> float:
    """
    Exponential backoff with up to 20% random jitter.

    delay = 2^retry_number * 100ms, plus random(0, 0.2 * delay)

    Args:
        retry_number: The retry number
        event: Unused, accepted so this can be used as retry_delay

    Returns:
        Delay in milliseconds, between 100 * 2^n and 120 * 2^n
    """
    delay = (2 ** retry_number) * 100
    jitter = delay * 0.2 * random.random()
    return delay + jitter


def _parse_retry_after_ms(value: str) -> float:
    match = _INTEGER_PREFIX.match(value)
    if match:
        return int(match.group(1)) * 1000

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        raise RetryAfterValueError(value) from None
    if retry_at is None:
        raise RetryAfterValueError(value)
    if retry_at.tzinfo is None:
        # "-0000" zones parse as naive datetimes; HTTP dates are always GMT
        retry_at = retry_at.replace(tzinfo=timezone.utc)

    return (retry_at.timestamp() - time.time()) * 1000


def retry_after(retry_number: int, event: FailureEvent) -> float:
    """
    Wait as long as the server's Retry-After header asks.

    The header can contain either a number of seconds or an HTTP date.
    A date in the past yields a negative delay, which vetoes the retry.

    Args:
        retry_number: The retry number (unused)
        event: The failed attempt

    Returns:
        Delay in milliseconds, 0 without a Retry-After header

    Raises:
        RetryAfterValueError: If the header is neither seconds nor a date
    """
    if event.response is None:
        return 0

    value = event.response.header("retry-after")
    if not value:
        return 0

    return _parse_retry_after_ms(value)


def capped_retry_after(max_delay_ms: float) -> RetryDelay:
    """
    Create a Retry-After delay that gives up when the server asks for too long.

    Args:
        max_delay_ms: Longest acceptable wait in milliseconds

    Returns:
        Delay function returning -1 (no retry) above the limit

    Example:
        options = RetryOptions(retry_delay=capped_retry_after(5000))
    """

    def delay(retry_number: int, event: FailureEvent) -> float:
        wait = retry_after(retry_number, event)
        if wait > max_delay_ms:
            return -1
        return wait

    return delay
