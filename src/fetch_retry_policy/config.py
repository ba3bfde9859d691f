"""
Configuration utilities for fetch_retry_policy
"""
import asyncio
import time
from dataclasses import fields, replace
from typing import Optional

from .classifier import is_network_or_idempotent_request_error
from .delay import no_delay
from .types import DEFAULT_RETRIES, RetryOptions, RetryPolicy


# Hard-coded defaults, used for every key no options layer sets
DEFAULT_RETRY_POLICY = RetryPolicy(
    retries=DEFAULT_RETRIES,
    retry_condition=is_network_or_idempotent_request_error,
    retry_delay=no_delay,
    should_reset_timeout=False,
    on_retry=None,
)

_OPTION_KEYS = tuple(f.name for f in fields(RetryOptions))


def _set_values(options: Optional[RetryOptions]) -> dict:
    if options is None:
        return {}
    values = {}
    for key in _OPTION_KEYS:
        value = getattr(options, key)
        if value is not None:
            values[key] = value
    return values


def merge_options(*layers: Optional[RetryOptions]) -> RetryOptions:
    """
    Merge option layers key by key; later layers win.

    Args:
        *layers: Option blocks, None entries are skipped

    Returns:
        A new RetryOptions holding every key set by any layer
    """
    merged: dict = {}
    for layer in layers:
        merged.update(_set_values(layer))
    return RetryOptions(**merged)


def resolve_policy(
    defaults: Optional[RetryOptions] = None,
    overrides: Optional[RetryOptions] = None,
) -> RetryPolicy:
    """
    Resolve the effective policy for one request.

    Per-request overrides win over global defaults, which win over the
    hard-coded DEFAULT_RETRY_POLICY. The merge is shallow and per key.

    Args:
        defaults: Global options
        overrides: Per-request options

    Returns:
        The effective RetryPolicy
    """
    return replace(DEFAULT_RETRY_POLICY, **_set_values(merge_options(defaults, overrides)))


async def async_sleep(milliseconds: float) -> None:
    """
    Sleep for a specified duration (async).

    Args:
        milliseconds: Duration in milliseconds
    """
    await asyncio.sleep(milliseconds / 1000)


def sync_sleep(milliseconds: float) -> None:
    """
    Sleep for a specified duration (sync).

    Args:
        milliseconds: Duration in milliseconds
    """
    time.sleep(milliseconds / 1000)
