"""
Retry policy transport wrapper for httpx's compose pattern.
"""
from fetch_retry_policy import (
    RetryOptions,
    RetryPolicy,
    FailureEvent,
    FailureResponse,
    RequestDescriptor,
)
from .codes import error_code_for, CERT_VERIFY_CODES
from .transport import (
    RetryTransport,
    SyncRetryTransport,
    RETRY_EXTENSION,
    DESCRIPTOR_EXTENSION,
    descriptor_for,
)
from .factory import (
    compose_transport,
    compose_sync_transport,
    create_retry_client,
    create_retry_sync_client,
    create_retry_transport_wrapper,
    RETRY_PRESETS,
)


__all__ = [
    # Re-exported types from base package
    "RetryOptions",
    "RetryPolicy",
    "FailureEvent",
    "FailureResponse",
    "RequestDescriptor",
    # Error codes
    "error_code_for",
    "CERT_VERIFY_CODES",
    # Transport wrappers
    "RetryTransport",
    "SyncRetryTransport",
    "RETRY_EXTENSION",
    "DESCRIPTOR_EXTENSION",
    "descriptor_for",
    # Factory functions
    "compose_transport",
    "compose_sync_transport",
    "create_retry_client",
    "create_retry_sync_client",
    "create_retry_transport_wrapper",
    "RETRY_PRESETS",
]

__version__ = "1.0.0"
