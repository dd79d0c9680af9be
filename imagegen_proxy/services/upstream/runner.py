"""
Retrying call executor shared by the image generator and the file host.

Each attempt races the operation against a per-attempt deadline. Failures are
classified (see failure_types) and either end the call or schedule another
attempt after an exponential, jittered backoff; rate-limit failures can use a
fixed cool-down instead.
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from imagegen_proxy.services.upstream.failure_types import FailureType, UpstreamFailure
from imagegen_proxy.utils.metrics import upstream_attempts_total, upstream_retries_total

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_RANGE = (0.5, 1.0)


@dataclass(frozen=True)
class RetryPolicy:
    """Per-upstream retry budget. Delays are in seconds."""

    max_attempts: int
    timeout_seconds: float
    base_delay_seconds: float
    max_delay_seconds: float
    rate_limit_delay_seconds: float | None = None
    rate_limit_failures: frozenset[FailureType] = frozenset()

    def exponential_delay(self, attempt: int) -> float:
        """Backoff before jitter: base * 2^(attempt-1), capped at max."""
        return min(self.max_delay_seconds, self.base_delay_seconds * 2 ** (attempt - 1))

    def backoff_delay(
        self,
        attempt: int,
        failure: UpstreamFailure,
        rng: random.Random | None = None,
    ) -> float:
        if (
            self.rate_limit_delay_seconds is not None
            and failure.failure_type in self.rate_limit_failures
        ):
            return self.rate_limit_delay_seconds
        rng = rng or random
        return self.exponential_delay(attempt) * rng.uniform(*JITTER_RANGE)


class RetryFailed(Exception):
    """Terminal failure of a retried call."""

    def __init__(self, last_failure: UpstreamFailure, attempts: int, exhausted: bool) -> None:
        super().__init__(last_failure.message)
        self.last_failure = last_failure
        self.attempts = attempts
        # False when a non-retryable failure stopped the call early
        self.exhausted = exhausted


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    is_retryable: Callable[[UpstreamFailure], bool],
    *,
    upstream: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: random.Random | None = None,
) -> T:
    """
    Run operation with the given retry policy.

    operation is called once per attempt and must raise UpstreamFailure for
    upstream problems; any other exception propagates unchanged. Raises
    RetryFailed with the attempt count when the policy gives up.
    """
    attempt = 0
    while attempt < policy.max_attempts:
        attempt += 1
        logger.info(
            "upstream_attempt",
            extra={"upstream": upstream, "attempt": attempt, "max_attempts": policy.max_attempts},
        )
        try:
            # wait_for cancels the losing operation on deadline
            result = await asyncio.wait_for(operation(), timeout=policy.timeout_seconds)
        except asyncio.TimeoutError:
            failure = UpstreamFailure(
                f"{upstream} timeout after {policy.timeout_seconds:g}s",
                FailureType.TIMEOUT,
            )
        except UpstreamFailure as e:
            failure = e
        else:
            upstream_attempts_total.labels(upstream=upstream, outcome="success").inc()
            if attempt > 1:
                logger.info(
                    "upstream_success_after_retry",
                    extra={"upstream": upstream, "attempt": attempt},
                )
            return result

        upstream_attempts_total.labels(upstream=upstream, outcome=failure.failure_type.value).inc()
        retry_allowed = is_retryable(failure)
        logger.warning(
            "upstream_attempt_failed",
            extra={
                "upstream": upstream,
                "attempt": attempt,
                "max_attempts": policy.max_attempts,
                "failure_type": failure.failure_type.value,
                "http_status": failure.http_status,
                "retry_allowed": retry_allowed,
                "error": failure.message,
            },
        )

        if not retry_allowed:
            raise RetryFailed(failure, attempts=attempt, exhausted=False)
        if attempt >= policy.max_attempts:
            raise RetryFailed(failure, attempts=attempt, exhausted=True)

        delay = policy.backoff_delay(attempt, failure, rng)
        upstream_retries_total.labels(upstream=upstream, failure_type=failure.failure_type.value).inc()
        logger.info(
            "upstream_retry_scheduled",
            extra={
                "upstream": upstream,
                "attempt": attempt,
                "max_attempts": policy.max_attempts,
                "delay_seconds": round(delay, 2),
                "failure_type": failure.failure_type.value,
            },
        )
        await sleep(delay)

    raise RuntimeError("call_with_retry: no result and no error")
