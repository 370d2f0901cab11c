"""
Built-in servicer integrations.

Chase (REST API), Bank of America (portal) and Wells Fargo (email), with
endpoints and credentials taken from ServicerLinkConfig.
"""

import logging
from typing import Optional

import httpx

from ..config import ServicerLinkConfig, get_default_config
from .api import ApiAdapter
from .base import MB, IntegrationType, ServicerConfig
from .mail import EmailAdapter, SmtpFactory
from .portal import PortalAdapter
from .registry import AdapterRegistry

logger = logging.getLogger(__name__)


def chase_config(settings: ServicerLinkConfig) -> ServicerConfig:
    return ServicerConfig(
        id="chase",
        name="Chase",
        type=IntegrationType.API,
        endpoint=settings.chase_api_endpoint,
        credentials={"api_key": settings.chase_api_key},
        requirements={
            "document_order": ["cover_letter", "hardship_letter", "financial_docs"],
            "date_format": "MM/DD/YYYY",
            "requires_wet_signature": False,
            "max_file_size": 25 * MB,
            "supported_formats": ["pdf", "jpg", "png", "tiff"],
            "naming_convention": "{DOCTYPE}_{LASTNAME}_{DATE}.{EXT}",
            "required_documents": ["hardship_letter", "financial_statement", "income_verification"],
            "document_type_map": {
                "hardship_letter": "HARDSHIP_EXPLANATION",
                "financial_statement": "FINANCIAL_WORKSHEET",
                "income_verification": "INCOME_DOCS",
                "bank_statement": "BANK_STATEMENTS",
                "tax_return": "TAX_RETURNS",
                "paystub": "PAY_STUBS",
                "cover_letter": "COVER_SHEET",
            },
            "default_document_type": "OTHER_DOCUMENT",
            "client_id": "servicerlink",
            "estimated_response_hours": 48,
            "next_steps": [
                "You will receive an email confirmation within 24 hours",
                "A Chase representative will review your submission within 2 business days",
                "Additional documents may be requested via secure message",
            ],
        },
    )


def bofa_config(settings: ServicerLinkConfig) -> ServicerConfig:
    return ServicerConfig(
        id="bofa",
        name="Bank of America",
        type=IntegrationType.PORTAL,
        endpoint=settings.bofa_portal_url,
        credentials={
            "username": settings.bofa_username,
            "password": settings.bofa_password,
        },
        requirements={
            "max_file_size": 10 * MB,
            "max_total_size": 50 * MB,
            "supported_formats": ["pdf", "jpg", "png"],
            "requires_cover_sheet": True,
            "cover_sheet_title": "BANK OF AMERICA LOSS MITIGATION COVER SHEET",
            "session_timeout": settings.portal_session_timeout,
            "requires_hardship_letter": True,
            "document_type_map": {
                "hardship_letter": "HARDSHIP_AFFIDAVIT",
                "financial_statement": "RMA_FINANCIAL_WORKSHEET",
                "income_verification": "PROOF_OF_INCOME",
                "bank_statement": "BANK_STATEMENTS",
                "tax_return": "TAX_RETURNS",
                "paystub": "PAYSTUBS",
                "cover_sheet": "COVER_SHEET",
                "utility_bill": "PROOF_OF_OCCUPANCY",
            },
            "default_document_type": "OTHER",
            "estimated_response_hours": 72,
            "next_steps": [
                "Check your email for confirmation",
                "Log into Bank of America online banking to track status",
                "Expect initial review within 3 business days",
                "Prepare to provide additional documents if requested",
            ],
            "submission_warnings": [
                "Keep your confirmation number for reference",
                "Do not submit duplicate applications",
            ],
        },
    )


def wells_fargo_config(settings: ServicerLinkConfig) -> ServicerConfig:
    return ServicerConfig(
        id="wells_fargo",
        name="Wells Fargo",
        type=IntegrationType.EMAIL,
        endpoint=settings.wells_fargo_email,
        requirements={
            "subject_line_format": "Loss Mit - {LOAN_NUMBER} - {BORROWER_LAST_NAME}",
            "attachment_naming": "{DOCTYPE}_{LOAN_NUMBER}_{DATE}.pdf",
            "max_attachment_size": 20 * MB,
            "requires_pdf_only": True,
            "required_documents": ["hardship_letter", "financial_statement", "income_verification"],
            "cc_addresses": settings.cc_addresses(),
            "read_receipt_required": True,
            "max_attachments": 10,
            "email_domain": "wellsfargo.com",
            "estimated_response_hours": 96,
            "next_steps": [
                "Email sent successfully with read receipt requested",
                "Wells Fargo typically acknowledges receipt within 24-48 hours",
                "Initial review completed within 4-5 business days",
                "You may receive follow-up requests via email or phone",
                "Check spam folder for any Wells Fargo communications",
            ],
            "submission_warnings": [
                "Save the email confirmation for your records",
                "Do not send duplicate submissions",
            ],
        },
    )


def build_default_registry(
    settings: Optional[ServicerLinkConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    smtp_factory: Optional[SmtpFactory] = None
) -> AdapterRegistry:
    """Registry with the built-in chase, bofa and wells_fargo adapters.

    Args:
        settings: Endpoints, credentials and policy (defaults to environment)
        transport: Optional httpx transport shared by HTTP adapters
        smtp_factory: Optional SMTP client factory for the email adapter
    """
    settings = settings if settings else get_default_config()
    registry = AdapterRegistry()

    registry.register("chase", ApiAdapter(chase_config(settings), settings, transport))
    registry.register("bofa", PortalAdapter(bofa_config(settings), settings, transport))
    registry.register(
        "wells_fargo",
        EmailAdapter(wells_fargo_config(settings), settings, transport, smtp_factory)
    )

    logger.info(f"Registered servicer adapters: {registry.list_servicers()}")
    return registry
