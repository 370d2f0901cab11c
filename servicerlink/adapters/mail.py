"""
Email adapter.

Packages go out as a single SMTP message with the documents attached. An
accepting relay only proves delivery to the mail system, so results are
transport_accepted rather than submitted.
"""

import asyncio
import logging
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid
from typing import Any, Callable, Dict, List, Optional

import httpx

from ..config import ServicerLinkConfig
from ..errors import (
    ConfigurationError,
    ServicerRejectionError,
    TransportError,
    TransportTimeoutError,
)
from ..models import utcnow
from .base import (
    MB,
    ConnectionCheck,
    DEFAULT_REQUIRED_DOCUMENTS,
    IntegrationType,
    PreparedApplication,
    ReviewStatus,
    ServicerAdapter,
    ServicerConfig,
    StatusCheck,
    SubmissionResult,
    SubmissionStatus,
    TransformedApplication,
    ValidationResult,
    format_date,
    format_file_name,
    hours_to_ms,
    humanize_doc_type,
    size_in_mb,
)

logger = logging.getLogger(__name__)

SmtpFactory = Callable[..., smtplib.SMTP]

EMAIL_BODY_TEMPLATE = """Dear {servicer_name} Loss Mitigation Department,

I am submitting the attached documentation for loss mitigation review on the following account:

Loan Number: {loan_number}
Borrower Name: {borrower_name}
Date: {date}

ATTACHED DOCUMENTS:
{documents}

Total Attachments: {count}

I am experiencing financial hardship and am requesting assistance with my mortgage. All required documentation is attached for your review.

Please confirm receipt of this submission and advise if any additional information is needed.

Contact Information:
{contact}

Thank you for your consideration.

Sincerely,
{borrower_name}

---
This submission was prepared and sent via servicerlink
Submission ID: {case_id}"""


class EmailAdapter(ServicerAdapter):
    """Adapter for servicers that take submissions by email.

    config.endpoint is the destination address.

    Recognized requirements:
        subject_line_format     {LOAN_NUMBER} and {BORROWER_LAST_NAME} placeholders
        attachment_naming       format_file_name() template
        max_attachment_size     total bytes
        requires_pdf_only
        required_documents
        cc_addresses
        read_receipt_required
        max_attachments         warn above this count (default 10)
        email_domain            expected domain of the destination address
        estimated_response_hours, next_steps, submission_warnings
    """

    def __init__(
        self,
        config: ServicerConfig,
        settings: Optional[ServicerLinkConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        smtp_factory: Optional[SmtpFactory] = None
    ):
        super().__init__(config, settings, transport)
        self._smtp_factory = smtp_factory or smtplib.SMTP

    # ------------------------------------------------------------------
    # Validation and transformation
    # ------------------------------------------------------------------

    async def validate(self, application: PreparedApplication) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []
        suggestions: List[str] = []
        requirements = self.get_requirements()

        max_attachment_size = requirements.get("max_attachment_size")
        total_size = application.total_size
        if max_attachment_size and total_size > max_attachment_size:
            errors.append(
                f"Total attachment size {size_in_mb(total_size)}MB exceeds "
                f"{self.config.name} limit of {max_attachment_size / MB:g}MB"
            )
            suggestions.append("Consider compressing PDFs or splitting into multiple emails")

        if requirements.get("requires_pdf_only"):
            non_pdf = [doc for doc in application.documents if doc.mime_type != "application/pdf"]
            if non_pdf:
                errors.append(f"{self.config.name} requires all documents to be in PDF format")
                for doc in non_pdf:
                    suggestions.append(f"Convert {doc.file_name} to PDF format")

        required = requirements.get("required_documents", DEFAULT_REQUIRED_DOCUMENTS)
        missing = [req for req in required if req not in application.document_types]
        if missing:
            errors.append(f"Missing required documents: {', '.join(missing)}")

        naming = requirements.get("attachment_naming")
        if naming:
            for doc in application.documents:
                expected_name = self._attachment_name(application, doc.type)
                if doc.file_name != expected_name:
                    warnings.append(f"Consider renaming {doc.file_name} to {expected_name}")

        if requirements.get("read_receipt_required"):
            suggestions.append("Email will be sent with read receipt requested")
        if max_attachment_size:
            suggestions.append(
                f"Keep email size under {max_attachment_size / MB:g}MB for reliable delivery"
            )

        if len(application.documents) > requirements.get("max_attachments", 10):
            warnings.append("Large number of attachments may trigger spam filters")
            suggestions.append("Consider combining related documents into single PDFs")

        return ValidationResult.build(errors, warnings, suggestions)

    def _attachment_name(self, application: PreparedApplication, doc_type: str, date=None) -> str:
        return format_file_name(
            self.get_requirements().get("attachment_naming", "{DOCTYPE}_{LOAN_NUMBER}_{DATE}.pdf"),
            doc_type,
            application.borrower_last_name,
            application.loan_number,
            "pdf",
            date=date
        )

    def render_body(self, application: PreparedApplication) -> str:
        documents = "\n".join(
            f"{i}. {humanize_doc_type(doc.type)} ({doc.file_name})"
            for i, doc in enumerate(application.documents, start=1)
        )
        contact_lines = []
        if application.metadata.get("contact_email"):
            contact_lines.append(f"Email: {application.metadata['contact_email']}")
        if application.metadata.get("contact_phone"):
            contact_lines.append(f"Phone: {application.metadata['contact_phone']}")

        return EMAIL_BODY_TEMPLATE.format(
            servicer_name=self.config.name,
            loan_number=application.loan_number,
            borrower_name=application.borrower_name,
            date=format_date(utcnow()),
            documents=documents,
            count=len(application.documents),
            contact="\n".join(contact_lines),
            case_id=application.case_id,
        )

    def render_subject(self, application: PreparedApplication) -> str:
        template = self.get_requirements().get(
            "subject_line_format", "Loss Mit - {LOAN_NUMBER} - {BORROWER_LAST_NAME}"
        )
        return (
            template.replace("{LOAN_NUMBER}", application.loan_number)
            .replace("{BORROWER_LAST_NAME}", application.borrower_last_name.upper())
        )

    async def transform(self, application: PreparedApplication) -> TransformedApplication:
        requirements = self.get_requirements()
        now = utcnow()

        attachments = [
            {
                "filename": self._attachment_name(application, doc.type, date=now),
                "content": doc.content,
                "content_type": doc.mime_type,
                "size": doc.size,
            }
            for doc in application.documents
        ]

        headers: Dict[str, str] = {
            "X-Priority": "1",
            "Importance": "high",
        }
        if requirements.get("read_receipt_required"):
            receipt_to = application.metadata.get("contact_email") or self.settings.smtp_sender
            headers["Return-Receipt-To"] = receipt_to
            headers["Disposition-Notification-To"] = receipt_to

        data = {
            "to": self.config.endpoint,
            "cc": list(requirements.get("cc_addresses") or []),
            "subject": self.render_subject(application),
            "body": self.render_body(application),
            "metadata": {
                "loan_number": application.loan_number,
                "case_id": application.case_id,
                "submission_type": application.submission_type,
                "total_attachments": len(attachments),
                "total_size": sum(a["size"] for a in attachments),
            },
        }

        return TransformedApplication(
            servicer_id=self.config.id,
            format=IntegrationType.EMAIL,
            data=data,
            attachments=attachments,
            headers=headers,
        )

    # ------------------------------------------------------------------
    # SMTP delivery
    # ------------------------------------------------------------------

    def build_message(self, transformed: TransformedApplication) -> MIMEMultipart:
        data = transformed.data
        message = MIMEMultipart()
        message["From"] = self.settings.smtp_sender
        message["To"] = data["to"]
        if data.get("cc"):
            message["Cc"] = ", ".join(data["cc"])
        message["Subject"] = data["subject"]
        message["Date"] = formatdate(localtime=False)
        message["Message-ID"] = make_msgid(domain=self.settings.smtp_sender.split("@")[-1])
        for name, value in transformed.headers.items():
            message[name] = value

        message.attach(MIMEText(data["body"], "plain", "utf-8"))
        for attachment in transformed.attachments:
            subtype = attachment["content_type"].split("/")[-1]
            part = MIMEApplication(attachment["content"], _subtype=subtype)
            part.add_header("Content-Disposition", "attachment", filename=attachment["filename"])
            message.attach(part)

        return message

    def _deliver(self, message: MIMEMultipart, recipients: List[str]) -> Dict[str, Any]:
        """Blocking SMTP send; runs in a worker thread."""
        settings = self.settings
        try:
            with self._smtp_factory(settings.smtp_host, settings.smtp_port, timeout=settings.request_timeout) as server:
                if settings.smtp_use_tls:
                    server.starttls()
                if settings.smtp_username and settings.smtp_password:
                    server.login(settings.smtp_username, settings.smtp_password)
                return server.send_message(message, from_addr=settings.smtp_sender, to_addrs=recipients)
        except smtplib.SMTPRecipientsRefused as e:
            raise ServicerRejectionError(
                "E351",
                f"{self.config.name} mail server refused all recipients: {list(e.recipients)}",
                hint="Verify the servicer's submission address"
            ) from e
        except TimeoutError as e:
            raise TransportTimeoutError(
                "E101",
                f"SMTP server {settings.smtp_host}:{settings.smtp_port} timed out"
            ) from e
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(
                "E110",
                f"SMTP delivery via {settings.smtp_host}:{settings.smtp_port} failed: {e}",
                hint="Check SMTP settings and relay availability"
            ) from e

    async def _send(self, transformed: TransformedApplication) -> SubmissionResult:
        if not self.config.endpoint:
            raise ConfigurationError(
                "E500",
                f"No submission email address configured for {self.config.name}",
                hint="Set the servicer email address in configuration"
            )

        requirements = self.get_requirements()
        message = self.build_message(transformed)
        recipients = [transformed.data["to"], *transformed.data.get("cc", [])]

        logger.info(
            f"Submitting to {self.config.name} via email: loan={transformed.data['metadata']['loan_number']} "
            f"attachments={len(transformed.attachments)} "
            f"size={transformed.data['metadata']['total_size']}"
        )

        refused = await asyncio.to_thread(self._deliver, message, recipients)

        if transformed.data["to"] in refused:
            raise ServicerRejectionError(
                "E351",
                f"{self.config.name} mail server refused {transformed.data['to']}",
                hint="Verify the servicer's submission address"
            )

        warnings = list(requirements.get("submission_warnings", []))
        if refused:
            warnings.append(f"Some CC recipients were refused: {', '.join(sorted(refused))}")

        message_id = message["Message-ID"]
        return SubmissionResult(
            status=SubmissionStatus.TRANSPORT_ACCEPTED,
            servicer_id=self.config.id,
            tracking_number=message_id,
            confirmation_number=message_id,
            estimated_response_time=hours_to_ms(requirements.get("estimated_response_hours", 96)),
            next_steps=list(requirements.get("next_steps", [
                "Email sent to servicer",
                "Expect acknowledgment within 24-48 hours",
                "Keep email confirmation for reference",
            ])),
            warnings=warnings,
        )

    async def check_status(self, tracking_number: str) -> StatusCheck:
        return StatusCheck(
            status=ReviewStatus.PENDING,
            message=(
                f"Email submissions require manual status checks. Please call "
                f"{self.config.name} or check your email for updates."
            ),
            last_updated=utcnow(),
        )

    async def test_connection(self) -> ConnectionCheck:
        address = self.config.endpoint or ""
        domain = self.get_requirements().get("email_domain")
        if "@" not in address or (domain and not address.lower().endswith(f"@{domain}")):
            return ConnectionCheck(False, f"Invalid {self.config.name} email address")

        try:
            await asyncio.to_thread(self._check_smtp_relay)
        except (smtplib.SMTPException, OSError) as e:
            return ConnectionCheck(False, f"SMTP server unreachable: {e}")

        return ConnectionCheck(True, "Email configuration valid")

    def _check_smtp_relay(self) -> None:
        settings = self.settings
        with self._smtp_factory(settings.smtp_host, settings.smtp_port, timeout=settings.request_timeout) as server:
            server.noop()
