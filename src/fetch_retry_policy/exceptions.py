"""
Exceptions raised by fetch_retry_policy.

Retryable failures are never wrapped: the controller re-raises the original
transport error. Only misconfiguration produces errors of its own.
"""


class RetryPolicyError(Exception):
    """Base class for errors raised by the retry engine itself."""

    code = "RETRY_POLICY_ERROR"


class RetryConfigurationError(RetryPolicyError, ValueError):
    """Raised when retry configuration or server retry hints are unusable."""

    code = "RETRY_CONFIGURATION_ERROR"


class RetryAfterValueError(RetryConfigurationError):
    """Raised when a Retry-After header is neither seconds nor an HTTP date."""

    code = "UNEXPECTED_RETRY_AFTER"

    def __init__(self, value: str) -> None:
        super().__init__(f"Unexpected Retry-After value: {value}")
        self.value = value
