"""
Type definitions for fetch_retry_policy
"""
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Mapping, Optional


# HTTP methods without side effects, safe to retry unconditionally
SAFE_HTTP_METHODS = ("get", "head", "options")

# Methods that may be repeated without changing the outcome
IDEMPOTENT_HTTP_METHODS = SAFE_HTTP_METHODS + ("put", "delete")

# Error code for aborted or timed out requests; never retried
TIMEOUT_ERROR_CODE = "ECONNABORTED"

DEFAULT_RETRIES = 3

# Timeouts of 0 or less mean "no timeout" to most transports
MIN_TIMEOUT_MS = 1


@dataclass
class RetryState:
    """Retry counters attached to one request for its whole lifetime"""

    retry_count: int = 0
    """Number of retries already scheduled for this request"""

    last_request_time: Optional[float] = None
    """Timestamp (ms) of the latest dispatch, retries included"""


@dataclass
class RequestDescriptor:
    """One logical outbound call as seen by the retry engine"""

    method: str
    """HTTP method, compared case-insensitively"""

    url: Optional[str] = None
    """Target URL, used for logging only"""

    retry: Optional["RetryOptions"] = None
    """Per-request override block"""

    timeout: Optional[float] = None
    """Timeout budget in milliseconds. None or 0 means no timeout"""

    transport_options: dict[str, Any] = field(default_factory=dict)
    """Transport specific fields (agents, pools), opaque to the engine"""

    transform_request: Optional[tuple[Callable[[Any], Any], ...]] = None
    """Request body transformers applied by the host before sending"""

    state: Optional[RetryState] = None
    """Retry state, created on first dispatch"""

    payload: Any = None
    """The host's own request object"""


@dataclass(frozen=True)
class FailureResponse:
    """Status and headers of a response that counted as a failure"""

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    raw: Any = None
    """The host's original response object"""

    def header(self, name: str) -> Optional[str]:
        """Look up a header by case-insensitive name."""
        value = self.headers.get(name.lower())
        if value is not None:
            return value
        for key, candidate in self.headers.items():
            if key.lower() == name.lower():
                return candidate
        return None


@dataclass(frozen=True)
class FailureEvent:
    """One failed attempt of a request"""

    request: Optional[RequestDescriptor] = None
    """The request that failed, when known"""

    response: Optional[FailureResponse] = None
    """Response received, None for transport-level failures"""

    code: Optional[str] = None
    """Transport error code (e.g. ECONNRESET)"""

    error: Optional[BaseException] = None
    """The original exception, re-raised when the failure is final"""


# Predicate deciding whether a failure may be retried
RetryCondition = Callable[[FailureEvent], bool]

# (retry_number, event) -> delay in ms; negative vetoes the retry
RetryDelay = Callable[[int, FailureEvent], float]

# (retry_number, event, request) -> None, called before each retry
RetryCallback = Callable[[int, FailureEvent, RequestDescriptor], None]


@dataclass
class RetryOptions:
    """Retry options, used both as global defaults and per-request overrides.

    Every field is optional; unset fields fall back to the next layer.
    """

    retries: Optional[int] = None
    """Maximum number of retries. Default: 3"""

    retry_condition: Optional[RetryCondition] = None
    """Decides if a failure can be retried. Default: network or idempotent error"""

    retry_delay: Optional[RetryDelay] = None
    """Computes the wait before a retry (ms). Default: no delay"""

    should_reset_timeout: Optional[bool] = None
    """Keep the full timeout on every attempt. Default: False"""

    on_retry: Optional[RetryCallback] = None
    """Called right before a retry is scheduled"""

    def __post_init__(self) -> None:
        if self.retries is not None:
            if isinstance(self.retries, bool) or not isinstance(self.retries, int):
                raise ValueError(f"retries must be an integer, got {self.retries!r}")
            if self.retries < 0:
                raise ValueError(f"retries must be >= 0, got {self.retries}")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "RetryOptions":
        """Build options from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown retry options: {', '.join(sorted(unknown))}")
        return cls(**values)


@dataclass(frozen=True)
class RetryPolicy:
    """Effective retry configuration resolved for one failure"""

    retries: int
    retry_condition: RetryCondition
    retry_delay: RetryDelay
    should_reset_timeout: bool = False
    on_retry: Optional[RetryCallback] = None
