"""
Typed patterns learned from servicer submissions.

A Pattern is one structured observation extracted from a
(Submission, SubmissionOutcome) pair. Its payload is a discriminated
union keyed by PatternType; the payload, not a description string, is
what gets persisted and read back.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from ..models import OutcomeStatus, Submission, SubmissionOutcome

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


# ============================================================================
# Enums
# ============================================================================

class PatternType(Enum):
    """Kinds of learned servicer behavior."""
    DOCUMENT_ORDER = "document_order"
    DOCUMENT_FORMAT = "document_format"
    SUBMISSION_TIMING = "submission_timing"
    COMMON_ISSUES = "common_issues"


class IntelligenceType(Enum):
    """Category of a persisted intelligence record."""
    REQUIREMENT = "requirement"
    PATTERN = "pattern"
    SUCCESS_FACTOR = "success_factor"
    CONTACT_PROTOCOL = "contact_protocol"
    TIMING_PREFERENCE = "timing_preference"


# ============================================================================
# Payloads
# ============================================================================

@dataclass(frozen=True)
class DocumentOrderPayload:
    """Document type tags in the order they were submitted."""
    kind: ClassVar[PatternType] = PatternType.DOCUMENT_ORDER

    documents: Tuple[str, ...]

    def signature(self) -> str:
        return f"{self.kind.value}:{json.dumps(list(self.documents))}"

    def describe(self) -> str:
        return f"{self.kind.value}: {' → '.join(self.documents)}"

    def to_dict(self) -> Dict[str, Any]:
        return {"documents": list(self.documents)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentOrderPayload":
        return cls(documents=tuple(data["documents"]))


@dataclass(frozen=True)
class DocumentFormatPayload:
    """Format used for each document type."""
    kind: ClassVar[PatternType] = PatternType.DOCUMENT_FORMAT

    formats: Dict[str, str]

    def signature(self) -> str:
        return f"{self.kind.value}:{json.dumps(self.formats, sort_keys=True)}"

    def describe(self) -> str:
        pairs = ", ".join(f"{doc}={fmt}" for doc, fmt in self.formats.items())
        return f"{self.kind.value}: {pairs}"

    def to_dict(self) -> Dict[str, Any]:
        return {"formats": dict(self.formats)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentFormatPayload":
        return cls(formats=dict(data["formats"]))


@dataclass(frozen=True)
class SubmissionTimingPayload:
    """When a submission went out and how long the servicer took to respond.

    day_of_week uses Sunday=0 .. Saturday=6. response_time is milliseconds.
    The signature covers the (day, hour) slot only; latency varies per
    submission and is accumulated as evidence instead.
    """
    kind: ClassVar[PatternType] = PatternType.SUBMISSION_TIMING

    day_of_week: int
    hour_of_day: int
    response_time: Optional[float] = None

    def signature(self) -> str:
        return f"{self.kind.value}:{self.day_of_week}:{self.hour_of_day}"

    def describe(self) -> str:
        return f"{self.kind.value}: {DAY_NAMES[self.day_of_week]} {self.hour_of_day:02d}:00"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day_of_week": self.day_of_week,
            "hour_of_day": self.hour_of_day,
            "response_time": self.response_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubmissionTimingPayload":
        response_time = data.get("response_time")
        return cls(
            day_of_week=int(data["day_of_week"]),
            hour_of_day=int(data["hour_of_day"]),
            response_time=float(response_time) if response_time is not None else None,
        )


@dataclass(frozen=True)
class CommonIssuesPayload:
    """Changes the servicer asked for."""
    kind: ClassVar[PatternType] = PatternType.COMMON_ISSUES

    issues: Tuple[str, ...]

    def signature(self) -> str:
        # Issue lists are sets: order and repeats don't make a new record
        return f"{self.kind.value}:{json.dumps(sorted(set(self.issues)))}"

    def describe(self) -> str:
        return f"{self.kind.value}: {', '.join(self.issues)}"

    def to_dict(self) -> Dict[str, Any]:
        return {"issues": list(self.issues)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommonIssuesPayload":
        return cls(issues=tuple(data["issues"]))


PatternPayload = Union[
    DocumentOrderPayload,
    DocumentFormatPayload,
    SubmissionTimingPayload,
    CommonIssuesPayload,
]

PAYLOAD_TYPES: Dict[PatternType, type] = {
    PatternType.DOCUMENT_ORDER: DocumentOrderPayload,
    PatternType.DOCUMENT_FORMAT: DocumentFormatPayload,
    PatternType.SUBMISSION_TIMING: SubmissionTimingPayload,
    PatternType.COMMON_ISSUES: CommonIssuesPayload,
}


def payload_from_dict(pattern_type: PatternType, data: Dict[str, Any]) -> PatternPayload:
    """Decode a stored payload using its pattern type as discriminator."""
    return PAYLOAD_TYPES[pattern_type].from_dict(data)


# ============================================================================
# Pattern → intelligence type
# ============================================================================

INTELLIGENCE_TYPE_BY_PATTERN: Dict[PatternType, IntelligenceType] = {
    PatternType.DOCUMENT_ORDER: IntelligenceType.REQUIREMENT,
    PatternType.DOCUMENT_FORMAT: IntelligenceType.REQUIREMENT,
    PatternType.COMMON_ISSUES: IntelligenceType.REQUIREMENT,
    PatternType.SUBMISSION_TIMING: IntelligenceType.TIMING_PREFERENCE,
}

_unmapped = set(PatternType) - set(INTELLIGENCE_TYPE_BY_PATTERN)
if _unmapped or set(PatternType) != set(PAYLOAD_TYPES):
    raise ImportError(
        f"Every PatternType needs a payload and an intelligence type; missing: "
        f"{sorted(p.value for p in _unmapped | (set(PatternType) - set(PAYLOAD_TYPES)))}"
    )


def map_pattern_to_intelligence_type(pattern_type: PatternType) -> IntelligenceType:
    """Intelligence category for a pattern type (closed mapping)."""
    return INTELLIGENCE_TYPE_BY_PATTERN[pattern_type]


# ============================================================================
# Pattern and persisted record
# ============================================================================

def clamp_confidence(value: float) -> float:
    """Clamp a confidence score to [0, 1]."""
    return max(0.0, min(1.0, float(value)))


def next_confidence(old: float, step: float, ceiling: float = 1.0) -> float:
    """Move confidence a fixed fraction of the remaining distance toward 1.0.

    new = old + (1 - old) * step, then capped at ceiling and clamped to [0, 1].
    """
    old = clamp_confidence(old)
    return clamp_confidence(min(ceiling, old + (1.0 - old) * step))


@dataclass
class Pattern:
    """A typed observation extracted from one submission outcome."""
    type: PatternType
    payload: PatternPayload
    confidence: float
    occurrences: int = 1
    last_seen: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.payload.kind is not self.type:
            raise ValueError(
                f"Payload {type(self.payload).__name__} does not match pattern type {self.type.value}"
            )
        self.confidence = clamp_confidence(self.confidence)

    def signature(self) -> str:
        return self.payload.signature()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "pattern": self.payload.to_dict(),
            "confidence": self.confidence,
            "occurrences": self.occurrences,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
            "metadata": dict(self.metadata),
        }


@dataclass
class IntelligenceRecord:
    """Persisted, confidence-scored observation about one servicer.

    Unique on (servicer_id, signature). evidence maps ISO timestamps to the
    outcome observed at that time.
    """
    servicer_id: str
    intelligence_type: IntelligenceType
    pattern_type: PatternType
    signature: str
    description: str
    payload: PatternPayload
    confidence_score: float
    occurrence_count: int
    impact_score: float
    last_observed: datetime
    created_at: datetime
    evidence: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    id: Optional[int] = None

    def to_pattern(self) -> Pattern:
        return Pattern(
            type=self.pattern_type,
            payload=self.payload,
            confidence=self.confidence_score,
            occurrences=self.occurrence_count,
            last_seen=self.last_observed,
            metadata={"intelligence_type": self.intelligence_type.value},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "servicer_id": self.servicer_id,
            "intelligence_type": self.intelligence_type.value,
            "pattern_type": self.pattern_type.value,
            "signature": self.signature,
            "description": self.description,
            "payload": self.payload.to_dict(),
            "evidence": self.evidence,
            "confidence_score": self.confidence_score,
            "occurrence_count": self.occurrence_count,
            "impact_score": self.impact_score,
            "last_observed": self.last_observed.isoformat(),
            "created_at": self.created_at.isoformat(),
        }


def calculate_impact_score(pattern: Pattern, outcome: SubmissionOutcome) -> float:
    """Impact of a newly discovered pattern.

    0.5 base, +0.3 for an accepted outcome, +0.2 scaled by confidence.
    """
    score = 0.5
    if outcome.status is OutcomeStatus.ACCEPTED:
        score += 0.3
    score += pattern.confidence * 0.2
    return round(score, 2)


# ============================================================================
# Extraction
# ============================================================================

DOCUMENT_ORDER_CONFIDENCE = 0.9
DOCUMENT_FORMAT_CONFIDENCE = 0.85
SUBMISSION_TIMING_CONFIDENCE = 0.7
COMMON_ISSUES_CONFIDENCE = 0.9


def extract_patterns(submission: Submission, outcome: SubmissionOutcome) -> List[Pattern]:
    """Extract actionable patterns from a resolved submission.

    Pure function of its inputs:
    - document_order and document_format only for accepted outcomes
    - submission_timing always, tagged with the outcome status
    - common_issues whenever the servicer listed required changes

    Args:
        submission: The submission as sent
        outcome: The servicer's response

    Returns:
        Patterns in extraction order
    """
    patterns: List[Pattern] = []
    seen_at = outcome.responded_at

    if outcome.status is OutcomeStatus.ACCEPTED:
        patterns.append(Pattern(
            type=PatternType.DOCUMENT_ORDER,
            payload=DocumentOrderPayload(documents=tuple(d.type for d in submission.documents)),
            confidence=DOCUMENT_ORDER_CONFIDENCE,
            last_seen=seen_at,
        ))

        formats: Dict[str, str] = {}
        for doc in submission.documents:
            formats[doc.type] = doc.format
        patterns.append(Pattern(
            type=PatternType.DOCUMENT_FORMAT,
            payload=DocumentFormatPayload(formats=formats),
            confidence=DOCUMENT_FORMAT_CONFIDENCE,
            last_seen=seen_at,
        ))

    response_time = (outcome.responded_at - submission.submitted_at).total_seconds() * 1000
    patterns.append(Pattern(
        type=PatternType.SUBMISSION_TIMING,
        payload=SubmissionTimingPayload(
            day_of_week=submission.submitted_at.isoweekday() % 7,
            hour_of_day=submission.submitted_at.hour,
            response_time=response_time,
        ),
        confidence=SUBMISSION_TIMING_CONFIDENCE,
        last_seen=seen_at,
        metadata={"outcome_status": outcome.status.value},
    ))

    if outcome.required_changes:
        patterns.append(Pattern(
            type=PatternType.COMMON_ISSUES,
            payload=CommonIssuesPayload(issues=tuple(outcome.required_changes)),
            confidence=COMMON_ISSUES_CONFIDENCE,
            last_seen=seen_at,
            metadata={"submission_type": submission.type},
        ))

    return patterns
