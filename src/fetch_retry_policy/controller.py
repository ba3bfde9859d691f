"""
Retry controller: decides on each failure whether and when to re-dispatch.
"""
import logging
from typing import Any, Callable, Mapping, Optional

from .config import async_sleep, resolve_policy, sync_sleep
from .exceptions import RetryPolicyError
from .state import elapsed_since_dispatch, get_current_state, mark_dispatched, monotonic_ms
from .types import (
    FailureEvent,
    MIN_TIMEOUT_MS,
    RequestDescriptor,
    RetryOptions,
    RetryPolicy,
)

logger = logging.getLogger(__name__)


def passthrough(data: Any) -> Any:
    """Identity body transformer used for re-dispatched requests."""
    return data


class RetryController:
    """
    Retry Controller

    Sits between a host HTTP client and its transport:
    - on_request() is the dispatch hook, called before every attempt
    - on_failure() / on_failure_sync() is the failure hook

    On failure the controller resolves the policy, checks eligibility and the
    retry budget, computes the delay, prepares the request for another attempt
    and finally calls the host's dispatch function again. Ineligible failures
    are propagated unchanged.

    Example:
        controller = RetryController(send, RetryOptions(retries=3))

        async def send(descriptor):
            controller.on_request(descriptor)
            try:
                return await transport(descriptor)
            except TransportError as exc:
                return await controller.on_failure(
                    FailureEvent(request=descriptor, code=exc.code, error=exc)
                )
    """

    def __init__(
        self,
        dispatch: Callable[[RequestDescriptor], Any],
        defaults: Optional[RetryOptions] = None,
        *,
        transport_defaults: Optional[Mapping[str, Any]] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        """
        Create a new RetryController.

        Args:
            dispatch: Host entry point used to re-send a request. Must be a
                coroutine function when on_failure() is used, and a plain
                function for on_failure_sync()
            defaults: Global retry options
            transport_defaults: Process-wide transport fields; per-request
                fields identical to these are dropped before a retry
            clock: Millisecond clock. Default: monotonic clock
        """
        self._dispatch = dispatch
        self._defaults = defaults or RetryOptions()
        self._transport_defaults = dict(transport_defaults or {})
        self._clock = clock or monotonic_ms

    @property
    def defaults(self) -> RetryOptions:
        """Get the global retry options."""
        return self._defaults

    def policy_for(self, descriptor: RequestDescriptor) -> RetryPolicy:
        """Resolve the effective policy for a request."""
        return resolve_policy(self._defaults, descriptor.retry)

    def on_request(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        """Stamp the dispatch time and pass the request through."""
        mark_dispatched(descriptor, self._clock())
        return descriptor

    def schedule(self, event: FailureEvent) -> Optional[float]:
        """
        Decide what happens after a failed attempt.

        When a retry is granted the request is prepared for the next attempt:
        the retry count is incremented, transport fields equal to the defaults
        are dropped, the timeout budget is shrunk and body transformers are
        reset to a passthrough.

        Args:
            event: The failed attempt

        Returns:
            Delay in milliseconds before the retry, or None if the failure
            is final

        Raises:
            RetryConfigurationError: If the delay strategy cannot interpret
                the server's retry hint
        """
        descriptor = event.request
        if descriptor is None:
            logger.debug("Failure has no request attached, not retrying")
            return None

        policy = self.policy_for(descriptor)
        state = get_current_state(descriptor)

        if not policy.retry_condition(event):
            logger.debug(
                f"Retry condition rejected {descriptor.method.upper()} {descriptor.url or ''} "
                f"(status={event.response.status if event.response else None}, code={event.code})"
            )
            return None

        if state.retry_count >= policy.retries:
            if policy.retries > 0:
                logger.warning(
                    f"Retries exhausted for {descriptor.method.upper()} {descriptor.url or ''} "
                    f"after {state.retry_count} retries"
                )
            return None

        state.retry_count += 1
        delay = policy.retry_delay(state.retry_count, event)

        if not delay >= 0:
            logger.warning(
                f"Retry {state.retry_count} of {descriptor.method.upper()} {descriptor.url or ''} "
                f"vetoed by delay strategy (delay={delay})"
            )
            return None

        self._prepare_retry(descriptor, policy, delay)

        if policy.on_retry is not None:
            policy.on_retry(state.retry_count, event, descriptor)

        logger.info(
            f"Retrying {descriptor.method.upper()} {descriptor.url or ''} "
            f"(retry {state.retry_count}/{policy.retries}) in {delay:.0f}ms"
        )
        return delay

    def _prepare_retry(
        self,
        descriptor: RequestDescriptor,
        policy: RetryPolicy,
        delay: float,
    ) -> None:
        """Mutate the request in place for its next attempt."""
        for key, default in self._transport_defaults.items():
            if key in descriptor.transport_options and descriptor.transport_options[key] is default:
                del descriptor.transport_options[key]

        state = get_current_state(descriptor)
        if not policy.should_reset_timeout and descriptor.timeout:
            elapsed = elapsed_since_dispatch(state, self._clock())
            if elapsed is not None:
                descriptor.timeout = max(descriptor.timeout - elapsed - delay, MIN_TIMEOUT_MS)

        # The body was transformed on the first attempt already
        descriptor.transform_request = (passthrough,)

    def _reject(self, event: FailureEvent) -> Any:
        """Propagate the original failure to the caller."""
        if event.error is not None:
            raise event.error
        if event.response is not None:
            return event.response.raw
        raise RetryPolicyError("Failure carries neither an error nor a response")

    async def on_failure(self, event: FailureEvent) -> Any:
        """
        Handle a failed attempt (async).

        Args:
            event: The failed attempt

        Returns:
            The result of the re-dispatched request, or the original response
            when the failure was a final status response

        Raises:
            BaseException: The original error when the failure is final
        """
        delay = self.schedule(event)
        if delay is None:
            return self._reject(event)

        await async_sleep(delay)
        return await self._dispatch(event.request)

    def on_failure_sync(self, event: FailureEvent) -> Any:
        """
        Handle a failed attempt (sync).

        Same as on_failure() but blocks the calling thread while waiting.
        """
        delay = self.schedule(event)
        if delay is None:
            return self._reject(event)

        sync_sleep(delay)
        return self._dispatch(event.request)
