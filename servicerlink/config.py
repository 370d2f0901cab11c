"""
servicerlink Configuration Module

Centralized configuration for adapters, retry policy and the intelligence
engine. Loads settings from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional


@dataclass
class ServicerLinkConfig:
    """Configuration for servicer adapters and intelligence learning.

    This class consolidates:
    - Pattern store location
    - Learning policy values (confidence step, recommendation threshold)
    - Transport retry policy
    - Built-in servicer endpoints and credentials
    - SMTP settings for email submissions
    """

    # ====================
    # Pattern Store
    # ====================

    db_path: Optional[str] = None
    """SQLite database for intelligence records.

    Default: ~/.servicerlink/intelligence.db
    """

    # ====================
    # Learning Policy
    # ====================

    confidence_step: float = 0.1
    """Fraction of the remaining distance to 1.0 gained per repeated observation.

    new = old + (1 - old) * confidence_step
    """

    confidence_ceiling: float = 0.99
    """Upper bound applied after every confidence update."""

    recommendation_threshold: float = 0.8
    """Minimum confidence before a document order is recommended."""

    evidence_retention: int = 50
    """Outcome observations kept per intelligence record (oldest dropped)."""

    # ====================
    # Transport Policy
    # ====================

    max_attempts: int = 3
    """Attempts per submission for retryable transport failures."""

    retry_backoff: float = 1.5
    """Backoff base; wait retry_backoff ** attempt seconds between attempts."""

    request_timeout: float = 30.0
    """Per-request timeout in seconds for HTTP and SMTP calls."""

    portal_session_timeout: float = 900.0
    """Portal session lifetime in seconds (15 minutes)."""

    # ====================
    # Built-in Servicers
    # ====================

    chase_api_endpoint: str = "https://api.chase.com/loss-mitigation"
    chase_api_key: str = ""

    bofa_portal_url: str = "https://secure.bankofamerica.com/loss-mitigation"
    bofa_username: str = ""
    bofa_password: str = ""

    wells_fargo_email: str = "loss_mitigation@wellsfargo.com"
    wells_fargo_cc: str = "confirmation@wellsfargo.com"

    # ====================
    # SMTP
    # ====================

    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    smtp_sender: str = "noreply@servicerlink.local"

    @classmethod
    def from_env(cls) -> "ServicerLinkConfig":
        """Load configuration from environment variables.

        Environment variables:
          SERVICERLINK_DB_PATH - Pattern store path
          SERVICERLINK_CONFIDENCE_STEP - Confidence step (0.0-1.0)
          SERVICERLINK_CONFIDENCE_CEILING - Confidence ceiling (0.0-1.0)
          SERVICERLINK_RECOMMENDATION_THRESHOLD - Order recommendation threshold
          SERVICERLINK_EVIDENCE_RETENTION - Evidence entries per record

          SERVICERLINK_MAX_ATTEMPTS - Transport attempts
          SERVICERLINK_RETRY_BACKOFF - Backoff base
          SERVICERLINK_REQUEST_TIMEOUT - Request timeout (seconds)
          SERVICERLINK_PORTAL_SESSION_TIMEOUT - Portal session lifetime (seconds)

          CHASE_API_ENDPOINT, CHASE_API_KEY
          BOFA_PORTAL_URL, BOFA_USERNAME, BOFA_PASSWORD
          WF_EMAIL, WF_CC_EMAIL

          SMTP_HOST, SMTP_PORT, SMTP_USERNAME, SMTP_PASSWORD,
          SMTP_USE_TLS (1/0), SMTP_SENDER

        Returns:
            ServicerLinkConfig instance with values from environment
        """
        return cls(
            db_path=os.getenv("SERVICERLINK_DB_PATH"),

            confidence_step=float(os.getenv("SERVICERLINK_CONFIDENCE_STEP", "0.1")),
            confidence_ceiling=float(os.getenv("SERVICERLINK_CONFIDENCE_CEILING", "0.99")),
            recommendation_threshold=float(
                os.getenv("SERVICERLINK_RECOMMENDATION_THRESHOLD", "0.8")
            ),
            evidence_retention=int(os.getenv("SERVICERLINK_EVIDENCE_RETENTION", "50")),

            max_attempts=int(os.getenv("SERVICERLINK_MAX_ATTEMPTS", "3")),
            retry_backoff=float(os.getenv("SERVICERLINK_RETRY_BACKOFF", "1.5")),
            request_timeout=float(os.getenv("SERVICERLINK_REQUEST_TIMEOUT", "30")),
            portal_session_timeout=float(
                os.getenv("SERVICERLINK_PORTAL_SESSION_TIMEOUT", "900")
            ),

            chase_api_endpoint=os.getenv(
                "CHASE_API_ENDPOINT", "https://api.chase.com/loss-mitigation"
            ),
            chase_api_key=os.getenv("CHASE_API_KEY", ""),
            bofa_portal_url=os.getenv(
                "BOFA_PORTAL_URL", "https://secure.bankofamerica.com/loss-mitigation"
            ),
            bofa_username=os.getenv("BOFA_USERNAME", ""),
            bofa_password=os.getenv("BOFA_PASSWORD", ""),
            wells_fargo_email=os.getenv("WF_EMAIL", "loss_mitigation@wellsfargo.com"),
            wells_fargo_cc=os.getenv("WF_CC_EMAIL", "confirmation@wellsfargo.com"),

            smtp_host=os.getenv("SMTP_HOST", "localhost"),
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_username=os.getenv("SMTP_USERNAME"),
            smtp_password=os.getenv("SMTP_PASSWORD"),
            smtp_use_tls=os.getenv("SMTP_USE_TLS", "1") == "1",
            smtp_sender=os.getenv("SMTP_SENDER", "noreply@servicerlink.local"),
        )

    def resolve_db_path(self) -> str:
        """Return the configured database path, creating ~/.servicerlink if needed."""
        if self.db_path:
            return self.db_path
        base = Path.home() / ".servicerlink"
        base.mkdir(exist_ok=True)
        return str(base / "intelligence.db")

    def cc_addresses(self) -> List[str]:
        """Wells Fargo CC list (comma-separated in WF_CC_EMAIL)."""
        return [a.strip() for a in self.wells_fargo_cc.split(",") if a.strip()]

    def validate(self) -> None:
        """Validate configuration settings.

        Raises:
            ValueError: If configuration is invalid
        """
        if not (0.0 < self.confidence_step <= 1.0):
            raise ValueError(
                f"confidence_step must be in (0.0, 1.0], got {self.confidence_step}"
            )

        if not (0.0 <= self.confidence_ceiling <= 1.0):
            raise ValueError(
                f"confidence_ceiling must be 0.0-1.0, got {self.confidence_ceiling}"
            )

        if not (0.0 <= self.recommendation_threshold <= 1.0):
            raise ValueError(
                f"recommendation_threshold must be 0.0-1.0, got {self.recommendation_threshold}"
            )

        if self.evidence_retention < 1:
            raise ValueError(
                f"evidence_retention must be >= 1, got {self.evidence_retention}"
            )

        if self.max_attempts < 1:
            raise ValueError(
                f"max_attempts must be >= 1, got {self.max_attempts}"
            )

        if self.retry_backoff < 0:
            raise ValueError(
                f"retry_backoff must be non-negative, got {self.retry_backoff}"
            )

        if self.request_timeout <= 0:
            raise ValueError(
                f"request_timeout must be positive, got {self.request_timeout}"
            )

        if self.portal_session_timeout <= 0:
            raise ValueError(
                f"portal_session_timeout must be positive, got {self.portal_session_timeout}"
            )

    def get_summary(self) -> str:
        """Get human-readable configuration summary.

        Returns:
            Formatted string describing current configuration
        """
        lines = [
            "servicerlink Configuration Summary",
            "=" * 50,
            "",
            "Pattern Store:",
            f"  Database: {self.db_path or '~/.servicerlink/intelligence.db'}",
            "",
            "Learning:",
            f"  Confidence Step: {self.confidence_step}",
            f"  Confidence Ceiling: {self.confidence_ceiling}",
            f"  Recommendation Threshold: {self.recommendation_threshold}",
            f"  Evidence Retention: {self.evidence_retention}",
            "",
            "Transport:",
            f"  Max Attempts: {self.max_attempts}",
            f"  Retry Backoff: {self.retry_backoff}",
            f"  Request Timeout: {self.request_timeout}s",
            f"  Portal Session: {self.portal_session_timeout}s",
            "",
            "Servicers:",
            f"  Chase API: {self.chase_api_endpoint} "
            f"(key {'set' if self.chase_api_key else 'not set'})",
            f"  BofA Portal: {self.bofa_portal_url} "
            f"(credentials {'set' if self.bofa_username and self.bofa_password else 'not set'})",
            f"  Wells Fargo Email: {self.wells_fargo_email}",
            "",
            "SMTP:",
            f"  Host: {self.smtp_host}:{self.smtp_port}",
            f"  TLS: {'Enabled' if self.smtp_use_tls else 'Disabled'}",
        ]

        return "\n".join(lines)


# Default configuration instance (lazy-loaded from environment)
_default_config: Optional[ServicerLinkConfig] = None


def get_default_config() -> ServicerLinkConfig:
    """Get default configuration instance (singleton pattern).

    Returns:
        Default ServicerLinkConfig loaded from environment
    """
    global _default_config
    if _default_config is None:
        _default_config = ServicerLinkConfig.from_env()
        _default_config.validate()
    return _default_config
