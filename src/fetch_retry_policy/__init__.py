"""
Retry policy engine for HTTP clients: error classification, backoff
strategies, per-request retry state and the retry controller.
"""
from .types import (
    RequestDescriptor,
    RetryState,
    FailureResponse,
    FailureEvent,
    RetryOptions,
    RetryPolicy,
    RetryCondition,
    RetryDelay,
    RetryCallback,
    SAFE_HTTP_METHODS,
    IDEMPOTENT_HTTP_METHODS,
    TIMEOUT_ERROR_CODE,
    DEFAULT_RETRIES,
    MIN_TIMEOUT_MS,
)
from .exceptions import (
    RetryPolicyError,
    RetryConfigurationError,
    RetryAfterValueError,
)
from .trust import DENIED_ERROR_CODES, is_retry_allowed
from .classifier import (
    is_network_error,
    is_retryable_error,
    is_safe_request_error,
    is_idempotent_request_error,
    is_network_or_idempotent_request_error,
)
from .delay import (
    no_delay,
    exponential_delay,
    retry_after,
    capped_retry_after,
)
from .state import (
    get_current_state,
    mark_dispatched,
    elapsed_since_dispatch,
    monotonic_ms,
)
from .config import (
    DEFAULT_RETRY_POLICY,
    merge_options,
    resolve_policy,
    async_sleep,
    sync_sleep,
)
from .controller import RetryController, passthrough


__all__ = [
    # Types
    "RequestDescriptor",
    "RetryState",
    "FailureResponse",
    "FailureEvent",
    "RetryOptions",
    "RetryPolicy",
    "RetryCondition",
    "RetryDelay",
    "RetryCallback",
    "SAFE_HTTP_METHODS",
    "IDEMPOTENT_HTTP_METHODS",
    "TIMEOUT_ERROR_CODE",
    "DEFAULT_RETRIES",
    "MIN_TIMEOUT_MS",
    # Errors
    "RetryPolicyError",
    "RetryConfigurationError",
    "RetryAfterValueError",
    # Classification
    "DENIED_ERROR_CODES",
    "is_retry_allowed",
    "is_network_error",
    "is_retryable_error",
    "is_safe_request_error",
    "is_idempotent_request_error",
    "is_network_or_idempotent_request_error",
    # Delays
    "no_delay",
    "exponential_delay",
    "retry_after",
    "capped_retry_after",
    # State
    "get_current_state",
    "mark_dispatched",
    "elapsed_since_dispatch",
    "monotonic_ms",
    # Config
    "DEFAULT_RETRY_POLICY",
    "merge_options",
    "resolve_policy",
    "async_sleep",
    "sync_sleep",
    # Controller
    "RetryController",
    "passthrough",
]


__version__ = "1.0.0"
