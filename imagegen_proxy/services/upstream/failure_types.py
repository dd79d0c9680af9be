"""
Structured failure classification for upstream HTTP calls.
Retry predicates switch on FailureType instead of matching error text.
"""
from enum import Enum

import httpx


class FailureType(str, Enum):
    """Why an upstream attempt failed."""

    TIMEOUT = "timeout"  # per-attempt deadline or transport timeout
    NETWORK = "network"  # DNS, connection refused/reset, protocol errors
    RATE_LIMITED = "rate_limited"  # 429
    ACCESS_DENIED = "access_denied"  # 403
    SERVER_ERROR = "server_error"  # 5xx
    CLIENT_ERROR = "client_error"  # other non-2xx
    INVALID_RESPONSE = "invalid_response"  # 2xx with an unusable body


# Transient failures worth another attempt against the image generator
TRANSIENT_FAILURES = frozenset({
    FailureType.TIMEOUT,
    FailureType.NETWORK,
    FailureType.RATE_LIMITED,
    FailureType.ACCESS_DENIED,
    FailureType.SERVER_ERROR,
})

# Failures that mean "back off for the provider's cool-down window"
RATE_LIMIT_FAILURES = frozenset({
    FailureType.RATE_LIMITED,
    FailureType.ACCESS_DENIED,
})


class UpstreamFailure(Exception):
    """One failed attempt against an upstream service."""

    def __init__(
        self,
        message: str,
        failure_type: FailureType,
        http_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.failure_type = failure_type
        self.http_status = http_status


def classify_http_status(http_status: int) -> FailureType:
    """Map a non-success HTTP status to a failure type."""
    if http_status == 429:
        return FailureType.RATE_LIMITED
    if http_status == 403:
        return FailureType.ACCESS_DENIED
    if 500 <= http_status < 600:
        return FailureType.SERVER_ERROR
    return FailureType.CLIENT_ERROR


def classify_transport_error(exc: httpx.TransportError) -> FailureType:
    """Map an httpx transport exception (no HTTP response) to a failure type."""
    if isinstance(exc, httpx.TimeoutException):
        return FailureType.TIMEOUT
    return FailureType.NETWORK


def is_transient(failure: UpstreamFailure) -> bool:
    return failure.failure_type in TRANSIENT_FAILURES


def always_retry(failure: UpstreamFailure) -> bool:
    return True
