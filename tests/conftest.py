"""
Shared fixtures: temporary intelligence databases, test settings,
application/submission builders and a fake SMTP client.
"""

import os
import smtplib
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

from servicerlink.adapters.base import ApplicationDocument, PreparedApplication
from servicerlink.config import ServicerLinkConfig
from servicerlink.intelligence.engine import ServicerIntelligenceEngine
from servicerlink.models import DocumentDescriptor, OutcomeStatus, Submission, SubmissionOutcome
from servicerlink.storage.sqlite import SQLitePatternStore

# Monday 2024-01-08 10:00 UTC
MONDAY_10AM = datetime(2024, 1, 8, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def temp_db():
    """Create temporary database for testing"""
    with tempfile.NamedTemporaryFile(delete=False, suffix=".db") as f:
        db_path = f.name

    yield db_path

    # Cleanup
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def settings(temp_db):
    """Settings with instant retries and test credentials"""
    return ServicerLinkConfig(
        db_path=temp_db,
        retry_backoff=0.0,
        max_attempts=3,
        request_timeout=5.0,
        chase_api_key="test-key",
        bofa_username="user",
        bofa_password="secret",
        smtp_use_tls=False,
        smtp_sender="noreply@servicerlink.test",
    )


@pytest.fixture
def store(temp_db):
    """Create SQLite pattern store"""
    return SQLitePatternStore(temp_db)


@pytest.fixture
def engine(store, settings):
    """Create intelligence engine on the test store"""
    return ServicerIntelligenceEngine(store=store, config=settings)


@pytest.fixture
def make_application():
    """Build a PreparedApplication from document type tags."""

    def build(doc_types=("hardship_letter", "financial_statement", "income_verification"),
              mime_type="application/pdf", size=None, **overrides):
        documents = [
            ApplicationDocument(
                type=doc_type,
                file_name=f"{doc_type}.pdf",
                content=b"%PDF-1.4 test content",
                mime_type=mime_type,
                size=size,
            )
            for doc_type in doc_types
        ]
        fields = {
            "case_id": "CASE-001",
            "loan_number": "12345",
            "borrower_name": "Jane Doe",
            "borrower_last_name": "Doe",
            "documents": documents,
            "metadata": {"contact_email": "jane@example.com"},
        }
        fields.update(overrides)
        return PreparedApplication(**fields)

    return build


@pytest.fixture
def make_submission():
    """Build a Submission/SubmissionOutcome pair."""

    def build(
        servicer_id="acme_bank",
        doc_types=("hardship_letter", "bank_statement"),
        status=OutcomeStatus.ACCEPTED,
        submission_id="SUB-1",
        submitted_at=MONDAY_10AM,
        response_delay=timedelta(days=2),
        required_changes=None,
    ):
        submission = Submission(
            id=submission_id,
            servicer_id=servicer_id,
            type="loss_mitigation",
            documents=[DocumentDescriptor(type=t, format="pdf", size=1024) for t in doc_types],
            submitted_at=submitted_at,
        )
        outcome = SubmissionOutcome(
            status=status,
            responded_at=submitted_at + response_delay,
            required_changes=required_changes,
        )
        return submission, outcome

    return build


class FakeSMTP:
    """Stand-in for smtplib.SMTP recording what would have been sent."""

    def __init__(self, outbox, refused=None, error=None):
        self.outbox = outbox
        self.refused = refused or {}
        self.error = error
        self.calls = 0

    def __call__(self, host, port, timeout=None):
        self.calls += 1
        self.host = host
        self.port = port
        self.timeout = timeout
        return self

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, username, password):
        pass

    def noop(self):
        if self.error:
            raise self.error
        return (250, b"OK")

    def send_message(self, message, from_addr=None, to_addrs=None):
        if self.error:
            raise self.error
        self.outbox.append((message, list(to_addrs or [])))
        return dict(self.refused)


@pytest.fixture
def outbox():
    return []


@pytest.fixture
def fake_smtp(outbox):
    """Working SMTP relay; sent messages land in outbox."""
    return FakeSMTP(outbox)


@pytest.fixture
def broken_smtp(outbox):
    """SMTP relay that drops the connection on every send."""
    return FakeSMTP(outbox, error=smtplib.SMTPServerDisconnected("Connection unexpectedly closed"))


@pytest.fixture
def make_smtp(outbox):
    """Build a FakeSMTP relay with scripted refusals or errors."""

    def build(refused=None, error=None):
        return FakeSMTP(outbox, refused=refused, error=error)

    return build
