"""
Retry transport wrapper for httpx
"""
import logging
from typing import Any, Mapping, Optional, Union

import httpx

from fetch_retry_policy import (
    FailureEvent,
    FailureResponse,
    RequestDescriptor,
    RetryController,
    RetryOptions,
    merge_options,
)

from .codes import error_code_for

logger = logging.getLogger(__name__)

# Request extension holding per-request retry options
RETRY_EXTENSION = "retry_policy"

# Request extension holding the retry engine's view of the request
DESCRIPTOR_EXTENSION = "retry_policy_descriptor"


def _override_of(request: httpx.Request) -> Optional[RetryOptions]:
    override = request.extensions.get(RETRY_EXTENSION)
    if override is None or isinstance(override, RetryOptions):
        return override
    if isinstance(override, Mapping):
        return RetryOptions.from_mapping(override)
    raise TypeError(
        f"extensions[{RETRY_EXTENSION!r}] must be RetryOptions or a mapping, "
        f"got {type(override).__name__}"
    )


def _timeout_budget_ms(request: httpx.Request) -> Optional[float]:
    timeouts = request.extensions.get("timeout") or {}
    configured = [value for value in timeouts.values() if value is not None]
    if not configured:
        return None
    return max(configured) * 1000


def descriptor_for(request: httpx.Request) -> RequestDescriptor:
    """
    Get the RequestDescriptor of an httpx request, creating it on first use.

    The descriptor is stored in the request's extensions, so every retry of
    the same request shares one retry state.
    """
    descriptor = request.extensions.get(DESCRIPTOR_EXTENSION)
    if descriptor is None:
        descriptor = RequestDescriptor(
            method=request.method,
            url=str(request.url),
            retry=_override_of(request),
            timeout=_timeout_budget_ms(request),
            payload=request,
        )
        request.extensions[DESCRIPTOR_EXTENSION] = descriptor
    return descriptor


def apply_timeout(request: httpx.Request, descriptor: RequestDescriptor) -> None:
    """Cap every configured timeout of the request at the remaining budget."""
    timeouts = request.extensions.get("timeout")
    if not timeouts or not descriptor.timeout:
        return
    budget = descriptor.timeout / 1000
    request.extensions["timeout"] = {
        key: (min(value, budget) if value is not None else None)
        for key, value in timeouts.items()
    }


def response_failure(descriptor: RequestDescriptor, response: httpx.Response) -> FailureEvent:
    """Build the failure event for an error response."""
    return FailureEvent(
        request=descriptor,
        response=FailureResponse(
            status=response.status_code,
            headers=dict(response.headers.items()),
            raw=response,
        ),
    )


def transport_failure(descriptor: RequestDescriptor, exc: httpx.TransportError) -> FailureEvent:
    """Build the failure event for a transport error."""
    return FailureEvent(request=descriptor, code=error_code_for(exc), error=exc)


def _build_options(
    options: Optional[Union[RetryOptions, Mapping[str, Any]]],
    retries: Optional[int],
) -> RetryOptions:
    if isinstance(options, Mapping):
        options = RetryOptions.from_mapping(options)
    return merge_options(options, RetryOptions(retries=retries))


class RetryTransport(httpx.AsyncBaseTransport):
    """
    Retry transport wrapper for httpx.

    Wraps another transport and applies the retry policy to all requests.
    Implements the "Transport Wrapping" pattern for HTTPX composition.

    Transport errors and responses with status >= 400 are failures. Each
    failure is handed to the RetryController, which either re-dispatches the
    same request through this transport or surfaces the original failure:
    the exception is re-raised, the error response is returned.

    Example:
        base = httpx.AsyncHTTPTransport()
        transport = RetryTransport(base, retries=3)
        client = httpx.AsyncClient(transport=transport)

        # Per-request override
        await client.get("/data", extensions={"retry_policy": {"retries": 0}})
    """

    def __init__(
        self,
        inner: httpx.AsyncBaseTransport,
        *,
        options: Optional[Union[RetryOptions, Mapping[str, Any]]] = None,
        retries: Optional[int] = None,
        transport_defaults: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Create a new RetryTransport.

        Args:
            inner: The wrapped transport to delegate requests to
            options: Global retry options (RetryOptions or a dict)
            retries: Shorthand for the retry count, wins over options
            transport_defaults: Transport fields dropped from requests before a retry
        """
        self._inner = inner
        self._options = _build_options(options, retries)
        self._controller = RetryController(
            self._redispatch,
            self._options,
            transport_defaults=transport_defaults,
        )

    @property
    def options(self) -> RetryOptions:
        """Get the global retry options."""
        return self._options

    @property
    def controller(self) -> RetryController:
        """Get the retry controller."""
        return self._controller

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        """Handle an async HTTP request with retry logic"""
        descriptor = descriptor_for(request)
        self._controller.on_request(descriptor)
        apply_timeout(request, descriptor)

        try:
            response = await self._inner.handle_async_request(request)
        except httpx.TransportError as exc:
            logger.debug(f"{request.method} {request.url} raised {type(exc).__name__}: {exc}")
            event = transport_failure(descriptor, exc)
        else:
            if response.status_code < 400:
                return response
            # Read the body so the connection is released before a retry
            await response.aread()
            logger.debug(f"{request.method} {request.url} returned {response.status_code}")
            event = response_failure(descriptor, response)

        return await self._controller.on_failure(event)

    async def _redispatch(self, descriptor: RequestDescriptor) -> httpx.Response:
        return await self.handle_async_request(descriptor.payload)

    async def aclose(self) -> None:
        """Close the transport"""
        await self._inner.aclose()


class SyncRetryTransport(httpx.BaseTransport):
    """
    Synchronous retry transport wrapper for httpx.

    Note: Blocks the calling thread during retry delays.
    For async applications, use RetryTransport instead.
    """

    def __init__(
        self,
        inner: httpx.BaseTransport,
        *,
        options: Optional[Union[RetryOptions, Mapping[str, Any]]] = None,
        retries: Optional[int] = None,
        transport_defaults: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Create a new SyncRetryTransport.

        Args:
            inner: The wrapped transport to delegate requests to
            options: Global retry options (RetryOptions or a dict)
            retries: Shorthand for the retry count, wins over options
            transport_defaults: Transport fields dropped from requests before a retry
        """
        self._inner = inner
        self._options = _build_options(options, retries)
        self._controller = RetryController(
            self._redispatch,
            self._options,
            transport_defaults=transport_defaults,
        )

    @property
    def options(self) -> RetryOptions:
        """Get the global retry options."""
        return self._options

    @property
    def controller(self) -> RetryController:
        """Get the retry controller."""
        return self._controller

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        """Handle a sync HTTP request with retry logic"""
        descriptor = descriptor_for(request)
        self._controller.on_request(descriptor)
        apply_timeout(request, descriptor)

        try:
            response = self._inner.handle_request(request)
        except httpx.TransportError as exc:
            logger.debug(f"{request.method} {request.url} raised {type(exc).__name__}: {exc}")
            event = transport_failure(descriptor, exc)
        else:
            if response.status_code < 400:
                return response
            response.read()
            logger.debug(f"{request.method} {request.url} returned {response.status_code}")
            event = response_failure(descriptor, response)

        return self._controller.on_failure_sync(event)

    def _redispatch(self, descriptor: RequestDescriptor) -> httpx.Response:
        return self.handle_request(descriptor.payload)

    def close(self) -> None:
        """Close the transport"""
        self._inner.close()
