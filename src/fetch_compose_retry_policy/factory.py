"""
Factory functions for creating retry-enabled transports and clients
"""
from functools import reduce
from typing import Any, Callable, Iterable, Mapping, Optional, Union

import httpx

from fetch_retry_policy import (
    RetryOptions,
    capped_retry_after,
    exponential_delay,
    is_safe_request_error,
    merge_options,
)
from .transport import RetryTransport, SyncRetryTransport


# Preset retry options
RETRY_PRESETS = {
    "default": RetryOptions(),
    "exponential": RetryOptions(
        retries=3,
        retry_delay=exponential_delay,
    ),
    "retry_after": RetryOptions(
        retries=3,
        retry_delay=capped_retry_after(30_000),
    ),
    "safe": RetryOptions(
        retries=3,
        retry_condition=is_safe_request_error,
        retry_delay=exponential_delay,
    ),
    "none": RetryOptions(retries=0),
}


def _resolve_options(
    preset: Optional[str],
    options: Optional[Union[RetryOptions, Mapping[str, Any]]],
) -> RetryOptions:
    base = None
    if preset is not None:
        if preset not in RETRY_PRESETS:
            raise ValueError(
                f"Unknown retry preset {preset!r}, expected one of: {', '.join(RETRY_PRESETS)}"
            )
        base = RETRY_PRESETS[preset]
    if isinstance(options, Mapping):
        options = RetryOptions.from_mapping(options)
    return merge_options(base, options)


def _apply_wrappers(base: Any, wrappers: Iterable[Callable[[Any], Any]]) -> Any:
    return reduce(lambda transport, wrapper: wrapper(transport), wrappers, base)


def compose_transport(
    base: httpx.AsyncBaseTransport,
    *wrappers: Callable[[httpx.AsyncBaseTransport], httpx.AsyncBaseTransport],
) -> httpx.AsyncBaseTransport:
    """
    Compose multiple transport wrappers together.

    Args:
        base: The base transport to wrap
        *wrappers: Transport wrapper functions to apply in order

    Returns:
        Composed transport with all wrappers applied

    Example:
        base = httpx.AsyncHTTPTransport(proxy="http://proxy:8080")
        transport = compose_transport(
            base,
            create_retry_transport_wrapper(preset="exponential"),
        )
        client = httpx.AsyncClient(transport=transport)
    """
    return _apply_wrappers(base, wrappers)


def compose_sync_transport(
    base: httpx.BaseTransport,
    *wrappers: Callable[[httpx.BaseTransport], httpx.BaseTransport],
) -> httpx.BaseTransport:
    """
    Compose multiple sync transport wrappers together.

    Same as compose_transport(), for httpx.Client transports.
    """
    return _apply_wrappers(base, wrappers)


def create_retry_client(
    *,
    retries: Optional[int] = None,
    options: Optional[Union[RetryOptions, Mapping[str, Any]]] = None,
    preset: Optional[str] = None,
    base_url: Optional[str] = None,
    proxy: Optional[str] = None,
    timeout: float = 5.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **client_kwargs: Any,
) -> httpx.AsyncClient:
    """
    Create a retry-enabled async HTTP client.

    Args:
        retries: Maximum retries, wins over options and preset
        options: Retry options, applied on top of the preset
        preset: Name of an entry in RETRY_PRESETS
        base_url: Base URL for requests
        proxy: Proxy URL to use
        timeout: Request timeout in seconds. Default: 5.0
        transport: Base transport. Default: httpx.AsyncHTTPTransport(proxy=proxy)
        **client_kwargs: Additional arguments for httpx.AsyncClient

    Returns:
        Retry-enabled async HTTP client

    Example:
        client = create_retry_client(
            preset="exponential",
            base_url="https://api.example.com",
        )
        response = await client.get("/data")
    """
    base_transport = transport or httpx.AsyncHTTPTransport(proxy=proxy)

    retry_transport = RetryTransport(
        base_transport,
        options=_resolve_options(preset, options),
        retries=retries,
    )

    return httpx.AsyncClient(
        transport=retry_transport,
        base_url=base_url or "",
        timeout=timeout,
        **client_kwargs,
    )


def create_retry_sync_client(
    *,
    retries: Optional[int] = None,
    options: Optional[Union[RetryOptions, Mapping[str, Any]]] = None,
    preset: Optional[str] = None,
    base_url: Optional[str] = None,
    proxy: Optional[str] = None,
    timeout: float = 5.0,
    transport: Optional[httpx.BaseTransport] = None,
    **client_kwargs: Any,
) -> httpx.Client:
    """
    Create a retry-enabled sync HTTP client.

    Args:
        retries: Maximum retries, wins over options and preset
        options: Retry options, applied on top of the preset
        preset: Name of an entry in RETRY_PRESETS
        base_url: Base URL for requests
        proxy: Proxy URL to use
        timeout: Request timeout in seconds. Default: 5.0
        transport: Base transport. Default: httpx.HTTPTransport(proxy=proxy)
        **client_kwargs: Additional arguments for httpx.Client

    Returns:
        Retry-enabled sync HTTP client
    """
    base_transport = transport or httpx.HTTPTransport(proxy=proxy)

    retry_transport = SyncRetryTransport(
        base_transport,
        options=_resolve_options(preset, options),
        retries=retries,
    )

    return httpx.Client(
        transport=retry_transport,
        base_url=base_url or "",
        timeout=timeout,
        **client_kwargs,
    )


def create_retry_transport_wrapper(
    *,
    retries: Optional[int] = None,
    options: Optional[Union[RetryOptions, Mapping[str, Any]]] = None,
    preset: Optional[str] = None,
) -> Callable[[httpx.AsyncBaseTransport], RetryTransport]:
    """
    Create a retry transport wrapper function for compose_transport().

    Args:
        retries: Maximum retries, wins over options and preset
        options: Retry options, applied on top of the preset
        preset: Name of an entry in RETRY_PRESETS

    Returns:
        Transport wrapper function

    Example:
        github_retry = create_retry_transport_wrapper(preset="retry_after")
        github_transport = github_retry(httpx.AsyncHTTPTransport())
    """
    resolved = _resolve_options(preset, options)

    def wrapper(inner: httpx.AsyncBaseTransport) -> RetryTransport:
        return RetryTransport(inner, options=resolved, retries=retries)

    return wrapper
