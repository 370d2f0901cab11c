"""
Web portal adapter.

Each submission attempt authenticates, receives a short-lived session
token and uploads the package under that session. Sessions are never
shared between attempts or submissions.
"""

import base64
import logging
import math
import re
import time
from dataclasses import dataclass
from typing import Dict, List

import httpx

from ..errors import (
    ConfigurationError,
    MalformedResponseError,
    ServicerLinkError,
    SessionError,
    SessionExpiredError,
)
from ..models import parse_timestamp, utcnow
from .base import (
    MB,
    ApplicationDocument,
    ConnectionCheck,
    IntegrationType,
    PreparedApplication,
    ReviewStatus,
    ServicerAdapter,
    StatusCheck,
    SubmissionResult,
    SubmissionStatus,
    TransformedApplication,
    ValidationResult,
    format_date,
    hours_to_ms,
    humanize_doc_type,
    review_status,
    size_in_mb,
    validate_file_format,
    validate_file_size,
)

logger = logging.getLogger(__name__)

# HTTP codes portals use for an expired or invalidated session
SESSION_EXPIRED_CODES = {401, 419, 440}

STATUS_MESSAGES = {
    "pending": "Your submission is awaiting review",
    "in_review": "A specialist is reviewing your documents",
    "additional_info_needed": "Additional documentation required. Check your messages.",
    "accepted": "Your loss mitigation request has been approved",
    "rejected": "Unable to approve at this time. See details in your account.",
}

COVER_SHEET_TEMPLATE = """{title}

Date: {date}
Loan Number: {loan_number}
Borrower Name: {borrower_name}

SUBMISSION CONTENTS:
{contents}

This package contains all required documentation for loss mitigation review.
Please contact us if additional information is needed.

Generated by servicerlink"""


def sanitize_file_name(file_name: str, max_length: int = 50) -> str:
    """Restrict a file name to [a-zA-Z0-9._-], collapsing repeated underscores."""
    cleaned = re.sub(r"[^a-zA-Z0-9._-]", "_", file_name)
    cleaned = re.sub(r"__+", "_", cleaned)
    return cleaned[:max_length]


@dataclass
class PortalSession:
    """Authenticated portal session scoped to one submission attempt."""
    token: str
    expires_at: float

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


class PortalAdapter(ServicerAdapter):
    """Adapter for servicers that only accept uploads through a web portal.

    Recognized requirements:
        max_file_size, max_total_size   bytes
        supported_formats
        requires_cover_sheet            generate one when missing
        cover_sheet_title
        requires_hardship_letter
        session_timeout                 seconds (default: settings.portal_session_timeout)
        document_type_map, default_document_type
        estimated_response_hours, next_steps, submission_warnings

    Credentials: username, password.
    """

    # ------------------------------------------------------------------
    # Validation and transformation
    # ------------------------------------------------------------------

    async def validate(self, application: PreparedApplication) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []
        suggestions: List[str] = []
        requirements = self.get_requirements()

        max_total_size = requirements.get("max_total_size")
        total_size = application.total_size
        if max_total_size and total_size > max_total_size:
            errors.append(
                f"Total file size {size_in_mb(total_size)}MB exceeds limit of {max_total_size / MB:g}MB"
            )

        max_file_size = requirements.get("max_file_size")
        supported_formats = requirements.get("supported_formats") or []
        for doc in application.documents:
            if not validate_file_size(doc.size, max_file_size):
                errors.append(f"{doc.file_name} exceeds max size of {max_file_size / MB:g}MB")

            if not validate_file_format(doc.mime_type, supported_formats):
                errors.append(
                    f"{doc.file_name} format not supported. Accepted: {', '.join(supported_formats)}"
                )

        doc_types = application.document_types

        if requirements.get("requires_cover_sheet"):
            if "cover_sheet" not in doc_types and "cover_letter" not in doc_types:
                errors.append(f"{self.config.name} requires a cover sheet for all submissions")
                suggestions.append(f"Generate a cover sheet using the {self.config.name} template")

        if requirements.get("requires_hardship_letter"):
            if "hardship_letter" not in doc_types:
                errors.append("Hardship letter is required")
            else:
                suggestions.append(
                    "Ensure hardship letter clearly states the reason for financial difficulty"
                )

        warnings.append(f"Portal session timeout is {self.session_timeout / 60:g} minutes")
        suggestions.append("Have all documents ready before starting the submission")

        return ValidationResult.build(errors, warnings, suggestions)

    @property
    def session_timeout(self) -> float:
        return float(self.get_requirements().get("session_timeout", self.settings.portal_session_timeout))

    def generate_cover_sheet(self, application: PreparedApplication) -> ApplicationDocument:
        """Render the servicer's cover sheet listing the package contents."""
        title = self.get_requirements().get(
            "cover_sheet_title",
            f"{self.config.name.upper()} LOSS MITIGATION COVER SHEET"
        )
        contents = "\n".join(
            f"{i}. {humanize_doc_type(doc.type)}"
            for i, doc in enumerate(application.documents, start=1)
        )
        text = COVER_SHEET_TEMPLATE.format(
            title=title,
            date=format_date(utcnow()),
            loan_number=application.loan_number,
            borrower_name=application.borrower_name,
            contents=contents,
        )
        return ApplicationDocument(
            type="cover_sheet",
            file_name=sanitize_file_name(f"{self.config.name}_Cover_Sheet.pdf"),
            content=text.encode("utf-8"),
            mime_type="application/pdf",
        )

    async def transform(self, application: PreparedApplication) -> TransformedApplication:
        requirements = self.get_requirements()
        doc_type_map: Dict[str, str] = requirements.get("document_type_map") or {}

        documents = list(application.documents)
        if requirements.get("requires_cover_sheet") and "cover_sheet" not in application.document_types:
            documents.insert(0, self.generate_cover_sheet(application))

        prefix = self.config.id.upper()
        data = {
            "account_number": application.loan_number,
            "borrower_info": {
                "name": application.borrower_name,
                "last_name": application.borrower_last_name,
            },
            "request_type": application.submission_type.upper(),
            "hardship_reason": application.metadata.get("hardship_reason", "Financial Hardship"),
            "submission_date": utcnow().isoformat(),
            "documents": [
                {
                    "id": f"{prefix}-DOC-{index}",
                    "type": doc_type_map.get(doc.type, requirements.get("default_document_type", doc.type)),
                    "name": sanitize_file_name(doc.file_name),
                    "size": doc.size,
                    "mime_type": doc.mime_type,
                    "data": base64.b64encode(doc.content).decode("ascii"),
                    "upload_order": index + 1,
                }
                for index, doc in enumerate(documents)
            ],
            "session_info": {
                # roughly two minutes of portal time per document
                "expected_duration": math.ceil(len(documents) * 2),
                "case_id": application.case_id,
            },
        }

        return TransformedApplication(
            servicer_id=self.config.id,
            format=IntegrationType.PORTAL,
            data=data,
            attachments=documents,
        )

    # ------------------------------------------------------------------
    # Portal session
    # ------------------------------------------------------------------

    def _require_credentials(self) -> Dict[str, str]:
        username = self.config.credentials.get("username")
        password = self.config.credentials.get("password")
        if not username or not password:
            raise ConfigurationError(
                "E500",
                f"Portal credentials not configured for {self.config.name}",
                hint="Set the portal username and password in configuration"
            )
        return {"username": username, "password": password}

    async def _login(self, client: httpx.AsyncClient) -> PortalSession:
        """Authenticate and open a new session."""
        portal = self._require_endpoint()
        credentials = self._require_credentials()

        logger.debug(f"Establishing portal session with {self.config.name}")
        response = await self._request(client, "POST", f"{portal}/login", json=credentials)

        if response.status_code in (401, 403):
            raise SessionError(
                "E200",
                f"{self.config.name} portal rejected the configured credentials",
                hint="Verify the portal username and password"
            )
        self._raise_for_status(response)

        try:
            token = self._json_body(response).get("session_token")
        except MalformedResponseError as e:
            raise SessionError("E200", f"{self.config.name} portal login returned an unreadable response") from e
        if not token:
            raise SessionError("E200", f"{self.config.name} portal login returned no session token")

        return PortalSession(token=token, expires_at=time.monotonic() + self.session_timeout)

    async def _session_request(
        self,
        client: httpx.AsyncClient,
        session: PortalSession,
        method: str,
        path: str,
        **kwargs
    ) -> httpx.Response:
        if session.expired:
            raise SessionExpiredError("E201", f"{self.config.name} portal session expired")

        response = await self._request(
            client, method, f"{self._require_endpoint()}{path}",
            headers=session.headers, **kwargs
        )
        if response.status_code in SESSION_EXPIRED_CODES:
            raise SessionExpiredError(
                "E201",
                f"{self.config.name} portal ended the session (HTTP {response.status_code})"
            )
        self._raise_for_status(response)
        return response

    async def _with_session(self, client: httpx.AsyncClient, method: str, path: str, **kwargs) -> httpx.Response:
        """Run one portal call, re-authenticating once if the session expires."""
        session = await self._login(client)
        try:
            return await self._session_request(client, session, method, path, **kwargs)
        except SessionExpiredError:
            logger.warning(f"{self.config.name} portal session expired, re-authenticating")

        session = await self._login(client)
        try:
            return await self._session_request(client, session, method, path, **kwargs)
        except SessionExpiredError as e:
            raise SessionError(
                "E201",
                f"{self.config.name} portal session expired again after re-authentication",
                hint="Session timeout may be too short for this package; split it or retry later"
            ) from e

    # ------------------------------------------------------------------
    # Channel operations
    # ------------------------------------------------------------------

    async def _send(self, transformed: TransformedApplication) -> SubmissionResult:
        requirements = self.get_requirements()

        logger.info(
            f"Submitting to {self.config.name} portal: account={transformed.data.get('account_number')} "
            f"documents={len(transformed.data.get('documents', []))}"
        )

        async with self._http_client() as client:
            response = await self._with_session(client, "POST", "/submissions", json=transformed.data)
            body = self._json_body(response)

        return SubmissionResult(
            status=SubmissionStatus.SUBMITTED,
            servicer_id=self.config.id,
            confirmation_number=body.get("confirmation_number"),
            tracking_number=body.get("tracking_number"),
            estimated_response_time=hours_to_ms(requirements.get("estimated_response_hours", 72)),
            next_steps=list(requirements.get("next_steps", [
                "Documents uploaded to servicer portal",
                "Log into your account to track status",
                "Initial review within 3-5 business days",
            ])),
            warnings=list(requirements.get("submission_warnings", [])),
            raw_response=body,
        )

    async def check_status(self, tracking_number: str) -> StatusCheck:
        try:
            async with self._http_client() as client:
                response = await self._with_session(
                    client, "GET", f"/submissions/{tracking_number}/status"
                )
                body = self._json_body(response)
        except (ValueError, ServicerLinkError) as e:
            logger.error(f"Portal status check for {tracking_number} failed: {e}")
            return StatusCheck(
                status=ReviewStatus.PENDING,
                message="Unable to retrieve status. Please check the portal directly.",
                last_updated=utcnow(),
            )

        status = review_status(body.get("status"))
        return StatusCheck(
            status=status,
            message=body.get("message") or STATUS_MESSAGES.get(status.value, "Status update pending"),
            last_updated=parse_timestamp(body["last_updated"]) if body.get("last_updated") else utcnow(),
        )

    async def test_connection(self) -> ConnectionCheck:
        try:
            self._require_credentials()
        except ConfigurationError:
            return ConnectionCheck(False, "Portal credentials not configured")

        try:
            async with self._http_client() as client:
                await self._login(client)
        except ServicerLinkError as e:
            return ConnectionCheck(False, str(e))

        return ConnectionCheck(True, "Portal connection successful")

