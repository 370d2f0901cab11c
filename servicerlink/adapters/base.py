"""
Servicer adapter contract and shared submission types.

Every adapter turns a PreparedApplication into a servicer-specific
TransformedApplication and delivers it over one channel (REST API, web
portal, email). Channel failures are reported as a typed SubmissionResult;
exceptions raised inside an adapter never escape submit().
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from ..config import ServicerLinkConfig, get_default_config
from ..errors import (
    ConfigurationError,
    MalformedResponseError,
    ServicerLinkError,
    ServicerRejectionError,
    SessionError,
    SubmissionValidationError,
    TransportError,
    TransportTimeoutError,
)
from ..models import utcnow

logger = logging.getLogger(__name__)

MB = 1024 * 1024

# Extension -> accepted MIME types
MIME_TYPES_BY_FORMAT: Dict[str, List[str]] = {
    "pdf": ["application/pdf"],
    "jpg": ["image/jpeg", "image/jpg"],
    "jpeg": ["image/jpeg", "image/jpg"],
    "png": ["image/png"],
    "tiff": ["image/tiff"],
    "doc": ["application/msword"],
    "docx": ["application/vnd.openxmlformats-officedocument.wordprocessingml.document"],
}

DEFAULT_REQUIRED_DOCUMENTS = ["hardship_letter", "financial_statement", "income_verification"]


# ============================================================================
# Configuration and application types
# ============================================================================

class IntegrationType(Enum):
    """Channel a servicer accepts submissions through."""
    API = "api"
    PORTAL = "portal"
    EMAIL = "email"
    FAX = "fax"


@dataclass
class ServicerConfig:
    """Static description of one servicer integration.

    endpoint is the API base URL, portal URL or destination email address
    depending on type. requirements holds servicer-specific rules (or, for
    the Generic adapter, learned intelligence).
    """
    id: str
    name: str
    type: IntegrationType
    endpoint: Optional[str] = None
    credentials: Dict[str, Any] = field(default_factory=dict)
    requirements: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view with credential values redacted."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "endpoint": self.endpoint,
            "credentials": {k: "***" for k, v in self.credentials.items() if v},
            "requirements": self.requirements,
        }


@dataclass
class ApplicationDocument:
    """One document file in a prepared application."""
    type: str
    file_name: str
    content: bytes
    mime_type: str
    size: Optional[int] = None

    def __post_init__(self):
        if self.size is None:
            self.size = len(self.content)

    @property
    def extension(self) -> str:
        if "." in self.file_name:
            return self.file_name.rsplit(".", 1)[-1]
        return "pdf"


@dataclass
class PreparedApplication:
    """A borrower's document package, ready to be sent to a servicer."""
    case_id: str
    loan_number: str
    borrower_name: str
    borrower_last_name: str
    documents: List[ApplicationDocument]
    submission_type: str = "loss_mitigation"
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def document_types(self) -> List[str]:
        return [doc.type for doc in self.documents]

    @property
    def total_size(self) -> int:
        return sum(doc.size for doc in self.documents)


@dataclass
class TransformedApplication:
    """Servicer-specific payload produced by an adapter's transform()."""
    servicer_id: str
    format: IntegrationType
    data: Dict[str, Any]
    attachments: List[Any] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)


# ============================================================================
# Results
# ============================================================================

class SubmissionStatus(Enum):
    """Outcome of one submit() call."""
    SUBMITTED = "submitted"
    TRANSPORT_ACCEPTED = "transport_accepted"
    REJECTED = "rejected"
    VALIDATION_FAILED = "validation_failed"
    TRANSPORT_FAILURE = "transport_failure"
    SESSION_FAILURE = "session_failure"
    TIMEOUT = "timeout"
    CONFIGURATION_ERROR = "configuration_error"


SUCCESS_STATUSES = {SubmissionStatus.SUBMITTED, SubmissionStatus.TRANSPORT_ACCEPTED}
RETRYABLE_STATUSES = {
    SubmissionStatus.TRANSPORT_FAILURE,
    SubmissionStatus.SESSION_FAILURE,
    SubmissionStatus.TIMEOUT,
}
FIXABLE_STATUSES = {SubmissionStatus.REJECTED, SubmissionStatus.VALIDATION_FAILED}


@dataclass
class SubmissionResult:
    """Typed result of a submission attempt.

    estimated_response_time is in milliseconds.
    """
    status: SubmissionStatus
    servicer_id: str
    submitted_at: datetime = field(default_factory=utcnow)
    attempts: int = 0
    tracking_number: Optional[str] = None
    confirmation_number: Optional[str] = None
    estimated_response_time: Optional[int] = None
    next_steps: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    raw_response: Optional[Dict[str, Any]] = None

    @property
    def success(self) -> bool:
        return self.status in SUCCESS_STATUSES

    @property
    def retryable(self) -> bool:
        return self.status in RETRYABLE_STATUSES

    @property
    def next_action(self) -> str:
        """none | retry | fix_and_resubmit | escalate"""
        if self.success:
            return "none"
        if self.retryable:
            return "retry"
        if self.status in FIXABLE_STATUSES:
            return "fix_and_resubmit"
        return "escalate"

    @property
    def processing_confirmed(self) -> bool:
        """False when only the transport (e.g. an SMTP relay) accepted the package."""
        return self.status is SubmissionStatus.SUBMITTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "servicer_id": self.servicer_id,
            "submitted_at": self.submitted_at.isoformat(),
            "attempts": self.attempts,
            "tracking_number": self.tracking_number,
            "confirmation_number": self.confirmation_number,
            "estimated_response_time": self.estimated_response_time,
            "next_steps": list(self.next_steps),
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "success": self.success,
            "retryable": self.retryable,
            "next_action": self.next_action,
            "processing_confirmed": self.processing_confirmed,
        }


@dataclass
class ValidationResult:
    """Local pre-flight check against a servicer's known requirements."""
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    @classmethod
    def build(cls, errors: List[str], warnings: List[str], suggestions: List[str]) -> "ValidationResult":
        return cls(valid=not errors, errors=errors, warnings=warnings, suggestions=suggestions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "suggestions": list(self.suggestions),
        }


class ReviewStatus(Enum):
    """Servicer-side review state of a submitted package."""
    PENDING = "pending"
    IN_REVIEW = "in_review"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ADDITIONAL_INFO_NEEDED = "additional_info_needed"


@dataclass
class StatusCheck:
    status: ReviewStatus
    message: Optional[str]
    last_updated: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "last_updated": self.last_updated.isoformat(),
        }


@dataclass
class ConnectionCheck:
    success: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "message": self.message}


# ============================================================================
# Helpers
# ============================================================================

def format_date(date: datetime, fmt: Optional[str] = None) -> str:
    """Render date using MM, DD, YYYY and YY tokens (default MM/DD/YYYY)."""
    fmt = fmt or "MM/DD/YYYY"
    return (
        fmt.replace("MM", f"{date.month:02d}", 1)
        .replace("DD", f"{date.day:02d}", 1)
        .replace("YYYY", str(date.year), 1)
        .replace("YY", str(date.year)[-2:], 1)
    )


def format_file_name(
    template: str,
    doc_type: str,
    last_name: str,
    loan_number: str,
    extension: str,
    date: Optional[datetime] = None
) -> str:
    """Fill a naming template.

    Placeholders: {DOCTYPE} (upper case, whitespace -> _), {LASTNAME}
    (upper case), {LOAN_NUMBER}, {DATE} (MMDDYYYY), {EXT} (lower case).
    """
    stamp = format_date(date or utcnow(), "MMDDYYYY")
    return (
        template.replace("{DOCTYPE}", re.sub(r"\s+", "_", doc_type.upper()))
        .replace("{LASTNAME}", last_name.upper())
        .replace("{LOAN_NUMBER}", loan_number)
        .replace("{DATE}", stamp)
        .replace("{EXT}", extension.lower())
    )


def validate_file_size(size: int, max_size: Optional[int] = None) -> bool:
    if not max_size:
        return True
    return size <= max_size


def validate_file_format(mime_type: str, supported_formats: Optional[List[str]] = None) -> bool:
    """True if mime_type matches one of the supported extensions (empty list accepts all)."""
    if not supported_formats:
        return True
    mime_type = mime_type.lower()
    return any(
        mime_type in MIME_TYPES_BY_FORMAT.get(fmt.lower(), [])
        for fmt in supported_formats
    )


def size_in_mb(size: int) -> str:
    return f"{size / MB:.2f}"


def humanize_doc_type(doc_type: str) -> str:
    return doc_type.replace("_", " ").upper()


def hours_to_ms(hours: float) -> int:
    return int(hours * 60 * 60 * 1000)


def review_status(value: Any) -> ReviewStatus:
    """Parse a servicer-reported status, treating unknown values as pending."""
    try:
        return ReviewStatus(value)
    except ValueError:
        return ReviewStatus.PENDING


# ============================================================================
# Adapter base class
# ============================================================================

class ServicerAdapter(ABC):
    """Base class for servicer adapters.

    Subclasses implement validate(), transform() and _send(); the base
    class runs the submit pipeline (validate -> transform -> send with
    bounded retry) and converts channel errors into SubmissionResult.

    _send() signals failures by raising ServicerLinkError subclasses:
        TransportError / TransportTimeoutError -> retried, then
            transport_failure / timeout
        SessionError -> session_failure (retried only if .retryable)
        ServicerRejectionError -> rejected
        ConfigurationError -> configuration_error
    """

    def __init__(
        self,
        config: ServicerConfig,
        settings: Optional[ServicerLinkConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            config: Servicer integration description
            settings: Retry/timeout policy (defaults to environment config)
            transport: Optional httpx transport (used by tests to mock HTTP)
        """
        self.config = config
        self.settings = settings if settings else get_default_config()
        self._transport = transport

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    @abstractmethod
    async def validate(self, application: PreparedApplication) -> ValidationResult:
        """Check an application against this servicer's requirements."""

    @abstractmethod
    async def transform(self, application: PreparedApplication) -> TransformedApplication:
        """Convert an application to this servicer's submission format."""

    @abstractmethod
    async def _send(self, transformed: TransformedApplication) -> SubmissionResult:
        """Deliver once over the servicer's channel; raise ServicerLinkError on failure."""

    @abstractmethod
    async def check_status(self, tracking_number: str) -> StatusCheck:
        """Look up the review status of a previous submission."""

    @abstractmethod
    async def test_connection(self) -> ConnectionCheck:
        """Check that the channel is reachable and credentials are configured."""

    def get_config(self) -> ServicerConfig:
        return self.config

    def get_requirements(self) -> Dict[str, Any]:
        return self.config.requirements or {}

    @property
    def servicer_id(self) -> str:
        return self.config.id

    # ------------------------------------------------------------------
    # Submit pipeline
    # ------------------------------------------------------------------

    async def submit(self, application: PreparedApplication) -> SubmissionResult:
        """Validate, transform and send an application.

        Never raises for channel or validation problems; inspect the
        returned SubmissionResult instead.
        """
        validation = await self.validate(application)
        if not validation.valid:
            logger.info(
                f"Submission {application.case_id} to {self.servicer_id} failed validation: "
                f"{len(validation.errors)} error(s)"
            )
            return SubmissionResult(
                status=SubmissionStatus.VALIDATION_FAILED,
                servicer_id=self.servicer_id,
                errors=list(validation.errors),
                warnings=list(validation.warnings),
                next_steps=list(validation.suggestions),
            )

        try:
            transformed = await self.transform(application)
        except ServicerLinkError as e:
            return self._failure(self._status_for(e), e, attempts=0)

        result = await self._send_with_retry(transformed, application.case_id)
        result.warnings = list(validation.warnings) + result.warnings
        return result

    async def _send_with_retry(self, transformed: TransformedApplication, case_id: str) -> SubmissionResult:
        max_attempts = self.settings.max_attempts
        attempt = 0

        while True:
            attempt += 1
            logger.info(
                f"Submitting {case_id} to {self.servicer_id} via {transformed.format.value} "
                f"(attempt {attempt}/{max_attempts})"
            )
            try:
                result = await self._send(transformed)
            except ServicerLinkError as e:
                status = self._status_for(e)
                if not e.retryable or attempt == max_attempts:
                    logger.error(f"Submission {case_id} to {self.servicer_id} failed: {e}")
                    return self._failure(status, e, attempts=attempt)

                wait_time = self.settings.retry_backoff ** attempt
                logger.warning(
                    f"Submission {case_id} to {self.servicer_id} attempt {attempt} failed "
                    f"({e}); retrying in {wait_time:.1f}s"
                )
                await asyncio.sleep(wait_time)
                continue

            result.attempts = attempt
            logger.info(
                f"Submission {case_id} to {self.servicer_id} {result.status.value} "
                f"(tracking={result.tracking_number or result.confirmation_number})"
            )
            return result

    def _status_for(self, error: ServicerLinkError) -> SubmissionStatus:
        if isinstance(error, TransportTimeoutError):
            return SubmissionStatus.TIMEOUT
        if isinstance(error, TransportError):
            return SubmissionStatus.TRANSPORT_FAILURE
        if isinstance(error, SessionError):
            return SubmissionStatus.SESSION_FAILURE
        if isinstance(error, ServicerRejectionError):
            return SubmissionStatus.REJECTED
        if isinstance(error, SubmissionValidationError):
            return SubmissionStatus.VALIDATION_FAILED
        return SubmissionStatus.CONFIGURATION_ERROR

    def _failure(self, status: SubmissionStatus, error: ServicerLinkError, attempts: int) -> SubmissionResult:
        errors = [str(error)]
        if error.hint:
            errors.append(error.hint)
        return SubmissionResult(
            status=status,
            servicer_id=self.servicer_id,
            attempts=attempts,
            errors=errors,
        )

    # ------------------------------------------------------------------
    # HTTP plumbing shared by API and portal channels
    # ------------------------------------------------------------------

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=self.settings.request_timeout
        )

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs
    ) -> httpx.Response:
        """Issue a request, mapping httpx failures onto TransportError."""
        try:
            return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportTimeoutError(
                "E101",
                f"{self.config.name} did not respond within {self.settings.request_timeout}s",
                hint="The servicer may be slow; the submission can be retried"
            ) from e
        except httpx.TransportError as e:
            raise TransportError(
                "E100",
                f"Could not reach {self.config.name} at {url}: {e}",
                hint="Check network connectivity and the configured endpoint"
            ) from e

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Classify non-2xx responses.

        408, 429 and 5xx are transient; any other 4xx is a rejection.
        """
        code = response.status_code
        if code < 400:
            return

        detail = response.text[:200]
        if code in (408, 429) or code >= 500:
            raise TransportError(
                "E102",
                f"{self.config.name} returned HTTP {code}: {detail}"
            )
        raise ServicerRejectionError(
            "E350",
            f"{self.config.name} rejected the submission (HTTP {code}): {detail}",
            hint="Review the servicer's response and fix the package before resubmitting"
        )

    def _json_body(self, response: httpx.Response) -> Dict[str, Any]:
        """Decode a successful response body, which must be a JSON object."""
        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponseError(
                "E103",
                f"{self.config.name} returned an unreadable body (HTTP {response.status_code}): "
                f"{response.text[:200]}",
                hint="Confirm with the servicer whether the submission was received before resubmitting"
            ) from e
        if not isinstance(body, dict):
            raise MalformedResponseError(
                "E103",
                f"{self.config.name} returned {type(body).__name__} where a JSON object was expected",
                hint="Confirm with the servicer whether the submission was received before resubmitting"
            )
        return body

    def _require_endpoint(self) -> str:
        if not self.config.endpoint:
            raise ConfigurationError(
                "E500",
                f"No endpoint configured for {self.config.name}",
                hint="Set the servicer endpoint in configuration"
            )
        return self.config.endpoint.rstrip("/")
