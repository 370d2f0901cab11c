"""
Servicer adapters - one integration per servicer submission channel.

Core components:
- ServicerAdapter: validate / transform / submit contract
- ApiAdapter, PortalAdapter, EmailAdapter: channel implementations
- GenericAdapter: learned-intelligence fallback for unknown servicers
- AdapterRegistry, ServicerAdapterFactory: servicer id -> adapter
"""

from .base import (
    ApplicationDocument,
    ConnectionCheck,
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
    validate_file_format,
    validate_file_size,
)
from .api import ApiAdapter
from .portal import PortalAdapter, PortalSession
from .mail import EmailAdapter
from .generic import GenericAdapter
from .registry import AdapterRegistry
from .builtin import build_default_registry
from .factory import ServicerAdapterFactory

__all__ = [
    "ApplicationDocument",
    "ConnectionCheck",
    "IntegrationType",
    "PreparedApplication",
    "ReviewStatus",
    "ServicerAdapter",
    "ServicerConfig",
    "StatusCheck",
    "SubmissionResult",
    "SubmissionStatus",
    "TransformedApplication",
    "ValidationResult",
    "format_date",
    "format_file_name",
    "validate_file_format",
    "validate_file_size",
    "ApiAdapter",
    "PortalAdapter",
    "PortalSession",
    "EmailAdapter",
    "GenericAdapter",
    "AdapterRegistry",
    "build_default_registry",
    "ServicerAdapterFactory",
]
