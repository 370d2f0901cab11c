"""
REST API adapter.

Synchronous request/response submission: the servicer answers the POST
with a tracking number, so a successful call means the package is in the
servicer's processing queue.
"""

import base64
import logging
from typing import Dict, List

from ..errors import ConfigurationError, ServicerLinkError
from ..models import parse_timestamp, utcnow
from .base import (
    DEFAULT_REQUIRED_DOCUMENTS,
    MB,
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
    format_file_name,
    hours_to_ms,
    review_status,
    validate_file_format,
    validate_file_size,
)

logger = logging.getLogger(__name__)


def is_order_correct(actual: List[str], expected: List[str]) -> bool:
    """True if the known document types in actual appear in expected's order.

    Types not listed in expected are ignored.
    """
    expected_index = 0
    for doc_type in actual:
        if doc_type not in expected:
            continue
        index = expected.index(doc_type)
        if index < expected_index:
            return False
        expected_index = index
    return True


class ApiAdapter(ServicerAdapter):
    """Adapter for servicers exposing a loss-mitigation REST API.

    Recognized requirements:
        document_order       preferred type order (violations are warnings)
        date_format          format_date() pattern for submission_date
        requires_wet_signature
        max_file_size        bytes per file
        supported_formats    extensions, e.g. ["pdf", "png"]
        naming_convention    format_file_name() template
        required_documents   document types that must be present
        document_type_map    our type -> servicer document code
        client_id            X-Client-ID header value
        submission_path      path under the endpoint (default /submissions)
        estimated_response_hours, next_steps
    """

    async def validate(self, application: PreparedApplication) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []
        suggestions: List[str] = []
        requirements = self.get_requirements()

        doc_types = application.document_types
        expected_order = requirements.get("document_order") or []

        if expected_order and not is_order_correct(doc_types, expected_order):
            warnings.append(
                f"{self.config.name} prefers documents in this order: {', '.join(expected_order)}"
            )
            suggestions.append("Reorder documents for faster processing")

        max_file_size = requirements.get("max_file_size")
        supported_formats = requirements.get("supported_formats") or []
        naming_convention = requirements.get("naming_convention")

        for doc in application.documents:
            if not validate_file_size(doc.size, max_file_size):
                errors.append(f"{doc.file_name} exceeds max size of {max_file_size / MB:g}MB")

            if not validate_file_format(doc.mime_type, supported_formats):
                errors.append(
                    f"{doc.file_name} format not supported. Accepted: {', '.join(supported_formats)}"
                )

            if naming_convention:
                expected_name = format_file_name(
                    naming_convention,
                    doc.type,
                    application.borrower_last_name,
                    application.loan_number,
                    doc.extension
                )
                if doc.file_name != expected_name:
                    suggestions.append(f"Rename {doc.file_name} to {expected_name} for better processing")

        required = requirements.get("required_documents", DEFAULT_REQUIRED_DOCUMENTS)
        missing = [req for req in required if req not in doc_types]
        if missing:
            errors.append(f"Missing required documents: {', '.join(missing)}")

        if not requirements.get("requires_wet_signature", False):
            suggestions.append("Electronic signatures are accepted")

        return ValidationResult.build(errors, warnings, suggestions)

    async def transform(self, application: PreparedApplication) -> TransformedApplication:
        requirements = self.get_requirements()
        doc_type_map: Dict[str, str] = requirements.get("document_type_map") or {}
        naming_convention = requirements.get("naming_convention")
        now = utcnow()

        documents = []
        for index, doc in enumerate(application.documents):
            file_name = doc.file_name
            if naming_convention:
                file_name = format_file_name(
                    naming_convention,
                    doc.type,
                    application.borrower_last_name,
                    application.loan_number,
                    doc.extension,
                    date=now
                )
            documents.append({
                "document_id": f"DOC-{application.case_id}-{index}",
                "document_type": doc_type_map.get(doc.type, requirements.get("default_document_type", doc.type)),
                "file_name": file_name,
                "file_size": doc.size,
                "mime_type": doc.mime_type,
                "content": base64.b64encode(doc.content).decode("ascii"),
                "upload_date": now.isoformat(),
            })

        data = {
            "loan_number": application.loan_number,
            "borrower": {
                "first_name": application.borrower_name.split(" ")[0],
                "last_name": application.borrower_last_name,
                "full_name": application.borrower_name,
            },
            "submission_type": application.submission_type,
            "submission_date": format_date(now, requirements.get("date_format")),
            "documents": documents,
            "metadata": {
                **application.metadata,
                "case_id": application.case_id,
                "source": "servicerlink",
            },
        }

        headers = {
            "Content-Type": "application/json",
            "X-Client-ID": requirements.get("client_id", "servicerlink"),
            "X-Request-ID": f"REQ-{application.case_id}-{int(now.timestamp() * 1000)}",
        }
        api_key = self.config.credentials.get("api_key")
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        return TransformedApplication(
            servicer_id=self.config.id,
            format=IntegrationType.API,
            data=data,
            headers=headers,
        )

    async def _send(self, transformed: TransformedApplication) -> SubmissionResult:
        endpoint = self._require_endpoint()
        requirements = self.get_requirements()
        if "Authorization" not in transformed.headers and requirements.get("requires_api_key", True):
            raise ConfigurationError(
                "E500",
                f"No API key configured for {self.config.name}",
                hint="Set the servicer API key in configuration"
            )

        path = requirements.get("submission_path", "/submissions")

        logger.info(
            f"Submitting to {self.config.name} API: loan={transformed.data.get('loan_number')} "
            f"documents={len(transformed.data.get('documents', []))}"
        )

        async with self._http_client() as client:
            response = await self._request(
                client, "POST", f"{endpoint}{path}",
                json=transformed.data,
                headers=transformed.headers
            )
            self._raise_for_status(response)
            body = self._json_body(response)

        return SubmissionResult(
            status=SubmissionStatus.SUBMITTED,
            servicer_id=self.config.id,
            tracking_number=body.get("tracking_number"),
            confirmation_number=body.get("confirmation_number"),
            estimated_response_time=hours_to_ms(requirements.get("estimated_response_hours", 72)),
            next_steps=list(requirements.get("next_steps", [
                "Submission sent via API",
                "Check your email for confirmation",
                "Response typically received within 3-5 business days",
            ])),
            warnings=list(body.get("warnings") or []),
            raw_response=body,
        )

    async def check_status(self, tracking_number: str) -> StatusCheck:
        try:
            endpoint = self._require_endpoint()
            async with self._http_client() as client:
                response = await self._request(
                    client, "GET", f"{endpoint}/status/{tracking_number}",
                    headers=self._auth_headers()
                )
                self._raise_for_status(response)
                body = self._json_body(response)

            return StatusCheck(
                status=review_status(body.get("status")),
                message=body.get("message"),
                last_updated=parse_timestamp(body["last_updated"]) if body.get("last_updated") else utcnow(),
            )
        except (ValueError, KeyError, ServicerLinkError) as e:
            logger.error(f"Status check for {tracking_number} at {self.config.name} failed: {e}")
            return StatusCheck(
                status=ReviewStatus.PENDING,
                message="Unable to retrieve status",
                last_updated=utcnow(),
            )

    async def test_connection(self) -> ConnectionCheck:
        if not self.config.endpoint:
            return ConnectionCheck(False, "API endpoint not configured")

        try:
            async with self._http_client() as client:
                response = await self._request(
                    client, "GET", f"{self._require_endpoint()}/health",
                    headers=self._auth_headers()
                )
                self._raise_for_status(response)
                body = self._json_body(response)
        except (ValueError, ServicerLinkError) as e:
            return ConnectionCheck(False, str(e))

        return ConnectionCheck(
            success=body.get("status") == "healthy",
            message=body.get("message") or "Connection successful",
        )

    def _auth_headers(self) -> Dict[str, str]:
        api_key = self.config.credentials.get("api_key")
        return {"Authorization": f"Bearer {api_key}"} if api_key else {}


