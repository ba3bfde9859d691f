"""
Shared fixtures for fetch_retry_policy tests.
"""
import pytest

from fetch_retry_policy.types import FailureEvent, FailureResponse, RequestDescriptor


def make_event(method="get", status=None, code=None, headers=None, error=None, request=True):
    """Build a FailureEvent for a request with the given method."""
    descriptor = RequestDescriptor(method=method, url="https://example.com/test") if request else None
    response = FailureResponse(status=status, headers=headers or {}) if status is not None else None
    return FailureEvent(request=descriptor, response=response, code=code, error=error)


@pytest.fixture
def event_factory():
    """Factory for FailureEvent objects."""
    return make_event


@pytest.fixture
def get_request():
    """A GET RequestDescriptor."""
    return RequestDescriptor(method="GET", url="https://example.com/test")


@pytest.fixture
def post_request():
    """A POST RequestDescriptor."""
    return RequestDescriptor(method="POST", url="https://example.com/test")
