"""
Generic adapter for servicers without a dedicated integration.

Has no hard-coded servicer rules. Whatever the intelligence engine has
learned about the servicer (document order, best submission time,
recommendations, success rate) is applied as soft guidance, and delivery
is delegated to the channel named by the config's integration type.
"""

import base64
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

import httpx

from ..config import ServicerLinkConfig
from ..models import utcnow
from .api import ApiAdapter, is_order_correct
from .base import (
    DEFAULT_REQUIRED_DOCUMENTS,
    MB,
    ApplicationDocument,
    ConnectionCheck,
    IntegrationType,
    PreparedApplication,
    ReviewStatus,
    ServicerAdapter,
    ServicerConfig,
    StatusCheck,
    SubmissionResult,
    TransformedApplication,
    ValidationResult,
    size_in_mb,
)
from .mail import EmailAdapter, SmtpFactory
from .portal import PortalAdapter

logger = logging.getLogger(__name__)

# Conservative limits; exceeding them is only a warning
GENERIC_MAX_FILE_SIZE = 10 * MB
GENERIC_MAX_TOTAL_SIZE = 50 * MB

# Warn when submitting further than this from the learned best hour
BEST_TIME_TOLERANCE_HOURS = 2

LOW_SUCCESS_RATE = 0.5

FAX_REQUIREMENTS: Dict[str, Any] = {
    "requires_api_key": False,
    "submission_path": "/faxes",
    "estimated_response_hours": 120,
    "next_steps": [
        "Documents sent via fax",
        "Call servicer to confirm receipt",
        "Response may take 5-7 business days",
    ],
}


def reorder_documents(documents: List[ApplicationDocument], order: List[str]) -> List[ApplicationDocument]:
    """Stable sort by position in order; unknown types keep their relative order at the end."""
    rank = {doc_type: i for i, doc_type in enumerate(order)}
    return sorted(documents, key=lambda doc: rank.get(doc.type, len(order)))


def standardize_file_name(file_name: str, doc_type: str, loan_number: str, date=None) -> str:
    """{DOCTYPE}_{loan}_{YYYYMMDD}.{ext}"""
    extension = file_name.rsplit(".", 1)[-1] if "." in file_name else "pdf"
    clean_type = "".join(c if c.isalnum() else "_" for c in doc_type).upper()
    stamp = (date or utcnow()).strftime("%Y%m%d")
    return f"{clean_type}_{loan_number}_{stamp}.{extension}"


class GenericAdapter(ServicerAdapter):
    """Intelligence-driven adapter used when no specific adapter is registered.

    Learned requirements (all optional):
        recommendations         shown as suggestions
        success_rate            0.0-1.0
        document_order          applied when transforming
        best_submission_time    {"day_of_week", "hour_of_day", "day_name"}
        learned                 True when built from intelligence
    """

    def __init__(
        self,
        config: ServicerConfig,
        settings: Optional[ServicerLinkConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        smtp_factory: Optional[SmtpFactory] = None
    ):
        super().__init__(config, settings, transport)
        self._smtp_factory = smtp_factory

    def _channel(self) -> ServicerAdapter:
        """Adapter that carries out delivery for this config's integration type."""
        integration = self.config.type

        if integration is IntegrationType.API:
            config = replace(self.config, requirements={"requires_api_key": False})
            return ApiAdapter(config, self.settings, self._transport)

        if integration is IntegrationType.FAX:
            config = replace(self.config, requirements=dict(FAX_REQUIREMENTS))
            return ApiAdapter(config, self.settings, self._transport)

        if integration is IntegrationType.EMAIL:
            config = replace(self.config, requirements={})
            return EmailAdapter(config, self.settings, self._transport, self._smtp_factory)

        config = replace(self.config, type=IntegrationType.PORTAL, requirements={})
        return PortalAdapter(config, self.settings, self._transport)

    # ------------------------------------------------------------------
    # Validation and transformation
    # ------------------------------------------------------------------

    async def validate(self, application: PreparedApplication) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []
        suggestions: List[str] = []
        requirements = self.get_requirements()

        doc_types = application.document_types
        missing = [req for req in DEFAULT_REQUIRED_DOCUMENTS if req not in doc_types]
        if missing:
            errors.append(f"Missing commonly required documents: {', '.join(missing)}")

        total_size = application.total_size
        if total_size > GENERIC_MAX_TOTAL_SIZE:
            warnings.append(f"Total file size {size_in_mb(total_size)}MB may be too large")
            suggestions.append("Consider compressing files or reducing image quality")

        for doc in application.documents:
            if doc.size > GENERIC_MAX_FILE_SIZE:
                warnings.append(f"{doc.file_name} ({size_in_mb(doc.size)}MB) may be too large")
            if doc.mime_type != "application/pdf":
                suggestions.append(f"Consider converting {doc.file_name} to PDF format")

        learned_order = requirements.get("document_order") or []
        if learned_order and not is_order_correct(doc_types, learned_order):
            suggestions.append(
                f"Documents will be reordered to the learned order: {' → '.join(learned_order)}"
            )

        best_time = requirements.get("best_submission_time")
        if best_time and not self._near_best_time(best_time):
            warnings.append(
                f"{self.config.name} has responded best to submissions on "
                f"{best_time['day_name']} around {best_time['hour_of_day']}:00"
            )

        recommendations = requirements.get("recommendations") or []
        success_rate = requirements.get("success_rate")
        if recommendations and success_rate is not None and success_rate < LOW_SUCCESS_RATE:
            warnings.append(
                f"Historical success rate with {self.config.name} is {success_rate * 100:.1f}%"
            )
        suggestions.extend(recommendations)

        suggestions.append("Ensure all documents are clearly legible")
        suggestions.append("Include a cover letter summarizing your situation")
        suggestions.append("Keep copies of all submitted documents")

        return ValidationResult.build(errors, warnings, suggestions)

    def _near_best_time(self, best_time: Dict[str, Any]) -> bool:
        now = utcnow()
        if now.isoweekday() % 7 != best_time["day_of_week"]:
            return False
        return abs(now.hour - best_time["hour_of_day"]) <= BEST_TIME_TOLERANCE_HOURS

    async def transform(self, application: PreparedApplication) -> TransformedApplication:
        requirements = self.get_requirements()

        learned_order = requirements.get("document_order") or []
        documents = reorder_documents(application.documents, learned_order)
        if learned_order:
            logger.info(
                f"Applying learned document order for {self.config.id}: "
                f"{' → '.join(doc.type for doc in documents)}"
            )
        application = replace(application, documents=documents)

        if self.config.type is IntegrationType.EMAIL:
            return await self._channel().transform(application)

        now = utcnow()
        data = {
            "servicer_id": self.config.id,
            "loan_number": application.loan_number,
            "borrower_info": {
                "full_name": application.borrower_name,
                "last_name": application.borrower_last_name,
            },
            "submission_type": application.submission_type,
            "submission_date": now.isoformat(),
            "documents": [
                {
                    "id": f"{self.config.id}-DOC-{index}",
                    "type": doc.type,
                    "file_name": standardize_file_name(doc.file_name, doc.type, application.loan_number, now),
                    "size": doc.size,
                    "mime_type": doc.mime_type,
                    "content": base64.b64encode(doc.content).decode("ascii"),
                    "order": index + 1,
                }
                for index, doc in enumerate(documents)
            ],
            "metadata": {
                **application.metadata,
                "case_id": application.case_id,
                "source": "servicerlink_generic_adapter",
                "servicer_type": self.config.type.value,
                "has_intelligence": bool(requirements.get("learned")),
            },
        }

        headers = {"Content-Type": "application/json"}
        api_key = self.config.credentials.get("api_key")
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        return TransformedApplication(
            servicer_id=self.config.id,
            format=self.config.type,
            data=data,
            attachments=documents,
            headers=headers,
        )

    # ------------------------------------------------------------------
    # Channel operations
    # ------------------------------------------------------------------

    async def _send(self, transformed: TransformedApplication) -> SubmissionResult:
        self._require_endpoint()
        logger.info(
            f"Submitting via generic adapter: servicer={self.config.id} "
            f"method={self.config.type.value}"
        )
        return await self._channel()._send(transformed)

    async def check_status(self, tracking_number: str) -> StatusCheck:
        return StatusCheck(
            status=ReviewStatus.PENDING,
            message=f"Please contact {self.config.name} directly for status updates",
            last_updated=utcnow(),
        )

    async def test_connection(self) -> ConnectionCheck:
        if not self.config.endpoint:
            return ConnectionCheck(False, f"No endpoint configured for {self.config.name}")
        return await self._channel().test_connection()
