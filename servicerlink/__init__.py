"""
servicerlink - mortgage servicer submission adapters with learned intelligence.

Submits loss-mitigation document packages to mortgage servicers through
their own channels (REST API, web portal, email) and learns each
servicer's preferences from submission outcomes. Servicers without a
dedicated adapter are handled by a Generic adapter driven by what has
been learned about them.
"""

__version__ = "0.1.0"

from .config import ServicerLinkConfig, get_default_config
from .errors import ServicerLinkError
from .models import DocumentDescriptor, OutcomeStatus, Submission, SubmissionOutcome
from .intelligence import ServicerIntelligenceEngine
from .adapters import (
    ApplicationDocument,
    PreparedApplication,
    ServicerAdapterFactory,
    SubmissionResult,
    SubmissionStatus,
)
from .service import SubmissionService

__all__ = [
    "__version__",
    "ServicerLinkConfig",
    "get_default_config",
    "ServicerLinkError",
    "DocumentDescriptor",
    "OutcomeStatus",
    "Submission",
    "SubmissionOutcome",
    "ServicerIntelligenceEngine",
    "ApplicationDocument",
    "PreparedApplication",
    "ServicerAdapterFactory",
    "SubmissionResult",
    "SubmissionStatus",
    "SubmissionService",
]
