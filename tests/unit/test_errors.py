"""Unit tests for the error taxonomy and its HTTP mapping."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from fastapi import HTTPException

from agora.errors import (
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    RateLimitedError,
    error_payload,
    raise_http_exception,
)


@pytest.mark.parametrize(
    "error,expected_status",
    [
        (NotFoundError("debate", uuid4()), 404),
        (InvalidArgumentError("bad option", field="option"), 400),
        (ConflictError("Already voted in this debate"), 409),
    ],
)
def test_status_mapping(error, expected_status):
    status_code, body, headers = error_payload(error)
    assert status_code == expected_status
    assert body["error"] == error.error_type
    assert headers is None


def test_rate_limited_carries_retry_information():
    retry_at = datetime(2026, 3, 1, 12, 0, 30, tzinfo=timezone.utc)
    status_code, body, headers = error_payload(RateLimitedError("vote", 1, retry_at))
    assert status_code == 429
    assert body["wait_seconds"] == 1
    assert body["retry_after"] == retry_at.isoformat()
    assert headers == {"Retry-After": "1"}


def test_raise_http_exception():
    with pytest.raises(HTTPException) as exc_info:
        raise_http_exception(ConflictError("Already reported this message"))
    assert exc_info.value.status_code == 409
    assert exc_info.value.detail["detail"] == "Already reported this message"
