"""
Tests for fetch_compose_retry_policy transport wrappers.

Test coverage includes:
- Path coverage: Success paths, retry paths, failure paths
- State transition testing: one retry state per request across attempts
- Decision/Branch coverage: per-request overrides, timeout budgets
- Error handling: transport errors, non-transport errors
"""

import errno
import socket

import pytest
from unittest.mock import MagicMock, AsyncMock, patch
import httpx

from fetch_compose_retry_policy.transport import (
    DESCRIPTOR_EXTENSION,
    RETRY_EXTENSION,
    RetryTransport,
    SyncRetryTransport,
    descriptor_for,
)
from fetch_retry_policy import RetryOptions, exponential_delay, is_safe_request_error


URL = "https://example.com/test"

TIMEOUTS = {"connect": 5.0, "read": 5.0, "write": 5.0, "pool": 5.0}


def make_handler(outcomes):
    """MockTransport handler replaying outcomes; the last one repeats."""
    calls = []

    def handler(request):
        calls.append((request, dict(request.extensions.get("timeout") or {})))
        outcome = outcomes[min(len(calls) - 1, len(outcomes) - 1)]
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, tuple):
            status, headers = outcome
            return httpx.Response(status, headers=headers, text=f"status {status}")
        return httpx.Response(outcome, text=f"status {outcome}")

    handler.calls = calls
    return handler


@pytest.fixture
def mock_async_sleep():
    with patch("fetch_retry_policy.controller.async_sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


@pytest.fixture
def mock_sync_sleep():
    with patch("fetch_retry_policy.controller.sync_sleep") as mock_sleep:
        yield mock_sleep


class TestDescriptorFor:
    """Tests for descriptor_for function."""

    def test_creates_descriptor_once(self):
        """Should store one descriptor per request."""
        request = httpx.Request("GET", URL)
        descriptor = descriptor_for(request)
        assert descriptor_for(request) is descriptor
        assert request.extensions[DESCRIPTOR_EXTENSION] is descriptor
        assert descriptor.method == "GET"
        assert descriptor.url == URL
        assert descriptor.payload is request

    def test_reads_largest_timeout(self):
        """Should use the largest configured timeout as budget."""
        request = httpx.Request(
            "GET", URL, extensions={"timeout": {"connect": 2.0, "read": 10.0, "write": None, "pool": 1.0}}
        )
        assert descriptor_for(request).timeout == 10000

    def test_no_timeout(self):
        """Should leave the budget unset without timeouts."""
        request = httpx.Request("GET", URL, extensions={"timeout": {"connect": None, "read": None}})
        assert descriptor_for(request).timeout is None

    def test_reads_override_object(self):
        """Should accept RetryOptions as override."""
        options = RetryOptions(retries=1)
        request = httpx.Request("GET", URL, extensions={RETRY_EXTENSION: options})
        assert descriptor_for(request).retry is options

    def test_reads_override_mapping(self):
        """Should accept a dict as override."""
        request = httpx.Request("GET", URL, extensions={RETRY_EXTENSION: {"retries": 0}})
        assert descriptor_for(request).retry == RetryOptions(retries=0)

    def test_rejects_invalid_override(self):
        """Should reject overrides of other types."""
        request = httpx.Request("GET", URL, extensions={RETRY_EXTENSION: 3})
        with pytest.raises(TypeError):
            descriptor_for(request)


class TestRetryTransport:
    """Tests for async RetryTransport class."""

    class TestConstructor:
        """Tests for constructor."""

        def test_creates_transport_with_default_options(self):
            """Should leave every option unset by default."""
            transport = RetryTransport(MagicMock(spec=httpx.AsyncHTTPTransport))
            assert transport.options == RetryOptions()
            assert transport.controller.policy_for(descriptor_for(httpx.Request("GET", URL))).retries == 3

        def test_retries_shorthand(self):
            """Should apply the retries shorthand."""
            transport = RetryTransport(MagicMock(spec=httpx.AsyncHTTPTransport), retries=5)
            assert transport.options.retries == 5

        def test_retries_shorthand_wins_over_options(self):
            """Should let retries override the options block."""
            transport = RetryTransport(
                MagicMock(spec=httpx.AsyncHTTPTransport),
                options=RetryOptions(retries=1, retry_delay=exponential_delay),
                retries=4,
            )
            assert transport.options.retries == 4
            assert transport.options.retry_delay is exponential_delay

        def test_accepts_options_mapping(self):
            """Should accept options as a dict."""
            transport = RetryTransport(MagicMock(spec=httpx.AsyncHTTPTransport), options={"retries": 2})
            assert transport.options.retries == 2

    class TestHandleAsyncRequest:
        """Tests for handle_async_request method."""

        @pytest.mark.asyncio
        async def test_returns_response_on_success(self, mock_async_sleep):
            """Should return a successful response after one dispatch."""
            handler = make_handler([200])
            transport = RetryTransport(httpx.MockTransport(handler))

            response = await transport.handle_async_request(httpx.Request("GET", URL))

            assert response.status_code == 200
            assert len(handler.calls) == 1
            mock_async_sleep.assert_not_awaited()

        @pytest.mark.asyncio
        async def test_retries_on_503(self, mock_async_sleep):
            """Should retry a 503 on GET."""
            handler = make_handler([503, 200])
            transport = RetryTransport(httpx.MockTransport(handler))

            response = await transport.handle_async_request(httpx.Request("GET", URL))

            assert response.status_code == 200
            assert len(handler.calls) == 2

        @pytest.mark.asyncio
        async def test_dispatches_four_times_then_returns_last_response(self, mock_async_sleep):
            """Should send 1 + retries times and return the final error response."""
            handler = make_handler([503])
            transport = RetryTransport(httpx.MockTransport(handler), retries=3)

            response = await transport.handle_async_request(httpx.Request("GET", URL))

            assert response.status_code == 503
            assert response.text == "status 503"
            assert len(handler.calls) == 4

        @pytest.mark.asyncio
        async def test_reuses_request_and_state(self, mock_async_sleep):
            """Should re-send the same request with one shared retry state."""
            handler = make_handler([500, 502, 200])
            transport = RetryTransport(httpx.MockTransport(handler))
            request = httpx.Request("GET", URL)

            await transport.handle_async_request(request)

            assert all(sent is request for sent, _ in handler.calls)
            assert request.extensions[DESCRIPTOR_EXTENSION].state.retry_count == 2

        @pytest.mark.asyncio
        async def test_does_not_retry_post_on_503(self, mock_async_sleep):
            """Should not retry non-idempotent methods on status failures."""
            handler = make_handler([503, 200])
            transport = RetryTransport(httpx.MockTransport(handler))

            response = await transport.handle_async_request(httpx.Request("POST", URL))

            assert response.status_code == 503
            assert len(handler.calls) == 1

        @pytest.mark.asyncio
        async def test_does_not_retry_4xx(self, mock_async_sleep):
            """Should return client errors immediately."""
            handler = make_handler([404, 200])
            transport = RetryTransport(httpx.MockTransport(handler))

            response = await transport.handle_async_request(httpx.Request("GET", URL))

            assert response.status_code == 404
            assert len(handler.calls) == 1

        @pytest.mark.asyncio
        async def test_retries_connect_error_on_post(self, mock_async_sleep):
            """Should retry a POST whose connection was refused."""
            handler = make_handler([httpx.ConnectError("refused"), 201])
            transport = RetryTransport(httpx.MockTransport(handler))

            response = await transport.handle_async_request(httpx.Request("POST", URL))

            assert response.status_code == 201
            assert len(handler.calls) == 2

        @pytest.mark.asyncio
        async def test_reraises_transport_error_when_exhausted(self, mock_async_sleep):
            """Should re-raise the transport error after the last retry."""
            handler = make_handler([httpx.ReadError("reset")])
            transport = RetryTransport(httpx.MockTransport(handler), retries=2)

            with pytest.raises(httpx.ReadError):
                await transport.handle_async_request(httpx.Request("GET", URL))

            assert len(handler.calls) == 3

        @pytest.mark.asyncio
        async def test_does_not_retry_timeouts(self, mock_async_sleep):
            """Should raise timeouts immediately."""
            handler = make_handler([httpx.ReadTimeout("slow"), 200])
            transport = RetryTransport(httpx.MockTransport(handler))

            with pytest.raises(httpx.ReadTimeout):
                await transport.handle_async_request(httpx.Request("GET", URL))

            assert len(handler.calls) == 1

        @pytest.mark.asyncio
        async def test_does_not_retry_dns_failures_on_post(self, mock_async_sleep):
            """Should raise DNS failures of non-idempotent requests immediately."""
            error = httpx.ConnectError("dns")
            error.__cause__ = socket.gaierror(-2, "Name or service not known")
            handler = make_handler([error, 200])
            transport = RetryTransport(httpx.MockTransport(handler))

            with pytest.raises(httpx.ConnectError):
                await transport.handle_async_request(httpx.Request("POST", URL))

            assert len(handler.calls) == 1

        @pytest.mark.asyncio
        async def test_propagates_non_transport_errors(self, mock_async_sleep):
            """Should not retry exceptions that are not httpx transport errors."""
            handler = make_handler([ValueError("bug"), 200])
            transport = RetryTransport(httpx.MockTransport(handler))

            with pytest.raises(ValueError):
                await transport.handle_async_request(httpx.Request("GET", URL))

            assert len(handler.calls) == 1

        @pytest.mark.asyncio
        async def test_per_request_override_disables_retries(self, mock_async_sleep):
            """Should honour retries=0 from the request extensions."""
            handler = make_handler([503, 200])
            transport = RetryTransport(httpx.MockTransport(handler), retries=5)
            request = httpx.Request("GET", URL, extensions={RETRY_EXTENSION: {"retries": 0}})

            response = await transport.handle_async_request(request)

            assert response.status_code == 503
            assert len(handler.calls) == 1

        @pytest.mark.asyncio
        async def test_per_request_condition(self, mock_async_sleep):
            """Should use the retry condition from the request extensions."""
            handler = make_handler([503, 200])
            transport = RetryTransport(httpx.MockTransport(handler))
            request = httpx.Request(
                "PUT", URL, extensions={RETRY_EXTENSION: RetryOptions(retry_condition=is_safe_request_error)}
            )

            response = await transport.handle_async_request(request)

            assert response.status_code == 503
            assert len(handler.calls) == 1

        @pytest.mark.asyncio
        async def test_waits_for_retry_after(self, mock_async_sleep):
            """Should sleep for the Retry-After value."""
            from fetch_retry_policy import retry_after

            handler = make_handler([(429, {"Retry-After": "2"}), 200])
            transport = RetryTransport(httpx.MockTransport(handler), options=RetryOptions(retry_delay=retry_after))

            response = await transport.handle_async_request(httpx.Request("GET", URL))

            assert response.status_code == 200
            mock_async_sleep.assert_awaited_once_with(2000)

        @pytest.mark.asyncio
        async def test_shrinks_timeouts_between_attempts(self, mock_async_sleep):
            """Should cap request timeouts at the remaining budget."""
            handler = make_handler([503, 200])
            transport = RetryTransport(
                httpx.MockTransport(handler),
                options=RetryOptions(retry_delay=lambda n, event: 1000),
            )
            request = httpx.Request("GET", URL, extensions={"timeout": dict(TIMEOUTS)})

            await transport.handle_async_request(request)

            first, second = handler.calls[0][1], handler.calls[1][1]
            assert first == TIMEOUTS
            assert all(3.0 < value <= 4.0 for value in second.values())

        @pytest.mark.asyncio
        async def test_keeps_timeouts_when_reset_requested(self, mock_async_sleep):
            """Should keep the full timeouts with should_reset_timeout."""
            handler = make_handler([503, 200])
            transport = RetryTransport(
                httpx.MockTransport(handler),
                options=RetryOptions(retry_delay=lambda n, event: 1000, should_reset_timeout=True),
            )
            request = httpx.Request("GET", URL, extensions={"timeout": dict(TIMEOUTS)})

            await transport.handle_async_request(request)

            assert handler.calls[1][1] == TIMEOUTS

        @pytest.mark.asyncio
        async def test_calls_on_retry_callback(self, mock_async_sleep):
            """Should call on_retry with the retry number and failure."""
            on_retry = MagicMock()
            handler = make_handler([503, 200])
            transport = RetryTransport(httpx.MockTransport(handler), options=RetryOptions(on_retry=on_retry))

            await transport.handle_async_request(httpx.Request("GET", URL))

            on_retry.assert_called_once()
            retry_number, event, descriptor = on_retry.call_args.args
            assert retry_number == 1
            assert event.response.status == 503
            assert isinstance(event.response.raw, httpx.Response)
            assert descriptor.method == "GET"

    class TestAclose:
        """Tests for aclose method."""

        @pytest.mark.asyncio
        async def test_closes_inner_transport(self):
            """Should close the inner transport."""
            inner = AsyncMock(spec=httpx.AsyncHTTPTransport)
            transport = RetryTransport(inner)
            await transport.aclose()
            inner.aclose.assert_awaited_once()


class TestSyncRetryTransport:
    """Tests for sync SyncRetryTransport class."""

    class TestHandleRequest:
        """Tests for handle_request method."""

        def test_retries_on_503(self, mock_sync_sleep):
            """Should retry a 503 on GET."""
            handler = make_handler([503, 200])
            transport = SyncRetryTransport(httpx.MockTransport(handler))

            response = transport.handle_request(httpx.Request("GET", URL))

            assert response.status_code == 200
            assert len(handler.calls) == 2
            mock_sync_sleep.assert_called_once_with(0)

        def test_resends_same_request(self, mock_sync_sleep):
            """Should hand the original httpx.Request to the inner transport on retry."""
            handler = make_handler([httpx.ConnectError("refused"), 200])
            transport = SyncRetryTransport(httpx.MockTransport(handler))
            request = httpx.Request("POST", URL)

            response = transport.handle_request(request)

            assert response.status_code == 200
            assert [sent for sent, _ in handler.calls] == [request, request]
            assert request.extensions[DESCRIPTOR_EXTENSION].state.retry_count == 1

        def test_returns_last_response_when_exhausted(self, mock_sync_sleep):
            """Should return the final error response."""
            handler = make_handler([502])
            transport = SyncRetryTransport(httpx.MockTransport(handler), retries=2)

            response = transport.handle_request(httpx.Request("GET", URL))

            assert response.status_code == 502
            assert len(handler.calls) == 3

        def test_reraises_transport_error(self, mock_sync_sleep):
            """Should re-raise the error after the last retry."""
            error = httpx.ConnectError("refused")
            error.__cause__ = ConnectionRefusedError(errno.ECONNREFUSED, "refused")
            handler = make_handler([error])
            transport = SyncRetryTransport(httpx.MockTransport(handler), retries=1)

            with pytest.raises(httpx.ConnectError):
                transport.handle_request(httpx.Request("GET", URL))

            assert len(handler.calls) == 2

        def test_propagates_non_transport_errors(self, mock_sync_sleep):
            """Should not retry other exceptions."""
            handler = make_handler([KeyError("bug"), 200])
            transport = SyncRetryTransport(httpx.MockTransport(handler))

            with pytest.raises(KeyError):
                transport.handle_request(httpx.Request("GET", URL))

            assert len(handler.calls) == 1

    class TestClose:
        """Tests for close method."""

        def test_closes_inner_transport(self):
            """Should close the inner transport."""
            inner = MagicMock(spec=httpx.HTTPTransport)
            transport = SyncRetryTransport(inner)
            transport.close()
            inner.close.assert_called_once()
