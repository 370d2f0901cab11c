"""
Error taxonomy for servicerlink.

Error code ranges:
- E100-E199: Transport failures (network, timeout, SMTP)
- E200-E299: Portal session failures
- E300-E399: Validation failures and servicer rejections
- E400-E499: Learning and pattern store errors
- E500-E599: Configuration errors

Adapters catch these internally and report a typed SubmissionResult;
they never escape an adapter's submit().

Copyright (c) 2025 Graziano Labs Corp.
"""


class ServicerLinkError(Exception):
    """Base class for all servicerlink errors."""

    retryable = False

    def __init__(
        self,
        code: str,
        message: str,
        hint: str | None = None
    ):
        """
        Initialize servicerlink error.

        Args:
            code: Error code (e.g., "E100")
            message: Human-readable error message
            hint: Optional suggestion for fixing the error
        """
        self.code = code
        self.message = message
        self.hint = hint
        super().__init__(f"[{code}] {message}")


class TransportError(ServicerLinkError):
    """Network, HTTP 5xx or SMTP failures (E100-E199)."""
    retryable = True


class TransportTimeoutError(TransportError):
    """Request exceeded its timeout (E101)."""
    pass


class MalformedResponseError(TransportError):
    """Servicer answered 2xx with a body that is not a JSON object (E103).

    Not retried: the servicer may already hold the submission.
    """
    retryable = False


class SessionError(ServicerLinkError):
    """Portal authentication/session failures (E200-E299)."""
    pass


class SessionExpiredError(SessionError):
    """Portal session expired mid-operation (E201)."""
    retryable = True


class SubmissionValidationError(ServicerLinkError):
    """Local pre-flight check failed (E300-E349). Never retried."""
    pass


class ServicerRejectionError(ServicerLinkError):
    """Servicer declared the submission invalid (E350-E399). Never retried."""
    pass


class LearningError(ServicerLinkError):
    """Learning pipeline and pattern store errors (E400-E499)."""
    pass


class ConcurrentUpdateError(LearningError):
    """Intelligence record changed between read and write (E410)."""
    retryable = True


class ConfigurationError(ServicerLinkError):
    """Adapter or runtime misconfiguration (E500-E599)."""
    pass


# Specific error codes documentation:
#
# E100: Endpoint unreachable / connection error
# E101: Request timed out
# E102: Remote server error (HTTP 5xx, 408, 429)
# E103: Unreadable response body on a successful status
# E110: SMTP delivery failure
# E200: Portal authentication failed
# E201: Portal session expired
# E300: Pre-flight validation failed
# E350: Servicer rejected the submission
# E351: Email recipients refused
# E400: Pattern store unavailable
# E401: Malformed intelligence record
# E410: Concurrent update lost compare-and-swap
# E500: Missing endpoint or credentials
