"""
Submission and outcome records exchanged with the surrounding application.

Both are plain structured data, immutable once created, and serialize to
JSON-compatible dicts for persistence or transport.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def normalize_servicer_id(servicer_id: str) -> str:
    """Canonical servicer id: trimmed and lower-cased."""
    return servicer_id.strip().lower()


def as_aware(value: datetime) -> datetime:
    """Treat a naive datetime as UTC; aware values keep their offset."""
    if value.tzinfo is None or value.utcoffset() is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (or pass through a datetime) as an aware datetime."""
    if isinstance(value, datetime):
        return as_aware(value)
    return as_aware(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


class OutcomeStatus(Enum):
    """Final (or interim) servicer decision on a submission."""
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PENDING = "pending"
    REQUIRES_CHANGES = "requires_changes"


@dataclass(frozen=True)
class DocumentDescriptor:
    """One document in a submission: type tag, format and byte size."""
    type: str
    format: str
    size: int

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "format": self.format, "size": self.size}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentDescriptor":
        return cls(type=data["type"], format=data["format"], size=int(data["size"]))


@dataclass(frozen=True)
class Submission:
    """A document package sent to a servicer.

    Owned by the caller; the core only reads it.
    """
    id: str
    servicer_id: str
    type: str
    documents: Tuple[DocumentDescriptor, ...]
    submitted_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # Accept any sequence but store a tuple so ordering is frozen too
        object.__setattr__(self, "documents", tuple(self.documents))
        object.__setattr__(self, "submitted_at", as_aware(self.submitted_at))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "servicer_id": self.servicer_id,
            "type": self.type,
            "documents": [d.to_dict() for d in self.documents],
            "submitted_at": self.submitted_at.isoformat(),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Submission":
        return cls(
            id=data["id"],
            servicer_id=data["servicer_id"],
            type=data["type"],
            documents=tuple(DocumentDescriptor.from_dict(d) for d in data.get("documents", [])),
            submitted_at=parse_timestamp(data["submitted_at"]),
            metadata=dict(data.get("metadata") or {}),
        )

    @classmethod
    def from_application(cls, application, result) -> "Submission":
        """Build a learning record from a prepared application and its SubmissionResult.

        Args:
            application: PreparedApplication that was sent
            result: SubmissionResult returned by the adapter

        Returns:
            Submission keyed by the servicer's tracking/confirmation number
            when one was issued, otherwise by the application's case id
        """
        documents = tuple(
            DocumentDescriptor(
                type=doc.type,
                format=(doc.mime_type.split("/")[-1] or "unknown").lower(),
                size=doc.size,
            )
            for doc in application.documents
        )
        submission_id = (
            result.tracking_number
            or result.confirmation_number
            or application.case_id
        )
        return cls(
            id=submission_id,
            servicer_id=result.servicer_id,
            type=application.submission_type,
            documents=documents,
            submitted_at=result.submitted_at,
            metadata={"case_id": application.case_id, **application.metadata},
        )


@dataclass(frozen=True)
class SubmissionOutcome:
    """Servicer response to a submission.

    Handed to the intelligence engine exactly once per submission.
    processing_time is in milliseconds.
    """
    status: OutcomeStatus
    responded_at: datetime
    feedback: Optional[str] = None
    required_changes: Optional[List[str]] = None
    processing_time: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "responded_at", as_aware(self.responded_at))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "responded_at": self.responded_at.isoformat(),
            "feedback": self.feedback,
            "required_changes": list(self.required_changes) if self.required_changes else None,
            "processing_time": self.processing_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubmissionOutcome":
        processing_time = data.get("processing_time")
        return cls(
            status=OutcomeStatus(data["status"]),
            responded_at=parse_timestamp(data["responded_at"]),
            feedback=data.get("feedback"),
            required_changes=list(data["required_changes"]) if data.get("required_changes") else None,
            processing_time=float(processing_time) if processing_time is not None else None,
        )
