"""
Tests for servicerlink error taxonomy.

Copyright (c) 2025 Graziano Labs Corp.
"""

import pytest
from servicerlink.errors import (
    ServicerLinkError,
    TransportError,
    MalformedResponseError,
    TransportTimeoutError,
    SessionError,
    SessionExpiredError,
    SubmissionValidationError,
    ServicerRejectionError,
    LearningError,
    ConcurrentUpdateError,
    ConfigurationError
)


def test_error_has_code():
    """Error has code attribute and includes it in string representation."""
    err = TransportError("E100", "test message")
    assert err.code == "E100"
    assert "[E100]" in str(err)


def test_error_has_message():
    """Error has message attribute."""
    err = TransportError("E100", "test message")
    assert err.message == "test message"
    assert "test message" in str(err)


def test_error_with_hint():
    """Error can store hint for fixing."""
    err = ConfigurationError("E500", "No endpoint", hint="Set CHASE_API_ENDPOINT")
    assert err.hint == "Set CHASE_API_ENDPOINT"


def test_error_hint_defaults_to_none():
    err = LearningError("E400", "store down")
    assert err.hint is None


def test_error_inheritance():
    """Verify error class hierarchy."""
    for cls in (
        TransportError,
        SessionError,
        SubmissionValidationError,
        ServicerRejectionError,
        LearningError,
        ConfigurationError,
    ):
        assert issubclass(cls, ServicerLinkError)

    assert issubclass(TransportTimeoutError, TransportError)
    assert issubclass(SessionExpiredError, SessionError)
    assert issubclass(ConcurrentUpdateError, LearningError)


@pytest.mark.parametrize("cls,retryable", [
    (TransportError, True),
    (TransportTimeoutError, True),
    (MalformedResponseError, False),
    (SessionError, False),
    (SessionExpiredError, True),
    (SubmissionValidationError, False),
    (ServicerRejectionError, False),
    (LearningError, False),
    (ConcurrentUpdateError, True),
    (ConfigurationError, False),
])
def test_retryable_flag(cls, retryable):
    """Only transient failures are marked retryable."""
    assert cls("E000", "x").retryable is retryable


def test_errors_can_be_caught_by_base():
    with pytest.raises(ServicerLinkError):
        raise ServicerRejectionError("E350", "rejected")
