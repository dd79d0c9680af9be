"""
Upstream call plumbing: failure classification and the retrying executor.
"""
from .failure_types import (
    FailureType,
    RATE_LIMIT_FAILURES,
    TRANSIENT_FAILURES,
    UpstreamFailure,
    always_retry,
    classify_http_status,
    classify_transport_error,
    is_transient,
)
from .runner import RetryFailed, RetryPolicy, call_with_retry

__all__ = [
    "FailureType",
    "RATE_LIMIT_FAILURES",
    "TRANSIENT_FAILURES",
    "UpstreamFailure",
    "always_retry",
    "classify_http_status",
    "classify_transport_error",
    "is_transient",
    "RetryFailed",
    "RetryPolicy",
    "call_with_retry",
]
