"""Tests for structured failure classification."""
import httpx
import pytest

from imagegen_proxy.services.upstream import (
    FailureType,
    UpstreamFailure,
    classify_http_status,
    classify_transport_error,
    is_transient,
)


@pytest.mark.parametrize(
    "status,expected",
    [
        (429, FailureType.RATE_LIMITED),
        (403, FailureType.ACCESS_DENIED),
        (500, FailureType.SERVER_ERROR),
        (502, FailureType.SERVER_ERROR),
        (504, FailureType.SERVER_ERROR),
        (400, FailureType.CLIENT_ERROR),
        (404, FailureType.CLIENT_ERROR),
    ],
)
def test_classify_http_status(status, expected):
    assert classify_http_status(status) is expected


def test_transport_timeouts_and_network_errors():
    request = httpx.Request("GET", "https://upstream.test")
    assert classify_transport_error(httpx.ReadTimeout("slow", request=request)) is FailureType.TIMEOUT
    assert classify_transport_error(httpx.ConnectError("refused", request=request)) is FailureType.NETWORK
    assert classify_transport_error(httpx.RemoteProtocolError("reset", request=request)) is FailureType.NETWORK


def test_transient_set_matches_generation_retry_rules():
    retryable = {t for t in FailureType if is_transient(UpstreamFailure("x", t))}
    assert retryable == {
        FailureType.TIMEOUT,
        FailureType.NETWORK,
        FailureType.RATE_LIMITED,
        FailureType.ACCESS_DENIED,
        FailureType.SERVER_ERROR,
    }
