"""
Tests for pattern extraction and confidence arithmetic.
"""

import pytest
from datetime import datetime, timedelta, timezone

from servicerlink.intelligence.patterns import (
    CommonIssuesPayload,
    DocumentFormatPayload,
    DocumentOrderPayload,
    IntelligenceType,
    Pattern,
    PatternType,
    SubmissionTimingPayload,
    calculate_impact_score,
    extract_patterns,
    map_pattern_to_intelligence_type,
    next_confidence,
    payload_from_dict,
)
from servicerlink.models import (
    DocumentDescriptor,
    OutcomeStatus,
    Submission,
    SubmissionOutcome,
    parse_timestamp,
)


class TestExtraction:
    """extract_patterns()"""

    def test_accepted_outcome_yields_order_format_and_timing(self, make_submission):
        submission, outcome = make_submission()
        patterns = extract_patterns(submission, outcome)

        assert [p.type for p in patterns] == [
            PatternType.DOCUMENT_ORDER,
            PatternType.DOCUMENT_FORMAT,
            PatternType.SUBMISSION_TIMING,
        ]
        order, formats, timing = patterns
        assert order.payload.documents == ("hardship_letter", "bank_statement")
        assert order.confidence == 0.9
        assert formats.payload.formats == {"hardship_letter": "pdf", "bank_statement": "pdf"}
        assert formats.confidence == 0.85
        assert timing.confidence == 0.7

    def test_timing_uses_sunday_zero_weekdays(self, make_submission):
        submission, outcome = make_submission()
        timing = extract_patterns(submission, outcome)[-1]

        # 2024-01-08 is a Monday
        assert timing.payload.day_of_week == 1
        assert timing.payload.hour_of_day == 10
        assert timing.payload.response_time == timedelta(days=2).total_seconds() * 1000
        assert timing.metadata["outcome_status"] == "accepted"

    def test_rejected_outcome_yields_no_order_or_format(self, make_submission):
        submission, outcome = make_submission(status=OutcomeStatus.REJECTED)
        types = [p.type for p in extract_patterns(submission, outcome)]

        assert PatternType.DOCUMENT_ORDER not in types
        assert PatternType.DOCUMENT_FORMAT not in types
        assert types == [PatternType.SUBMISSION_TIMING]

    def test_required_changes_yield_common_issues(self, make_submission):
        submission, outcome = make_submission(
            status=OutcomeStatus.REQUIRES_CHANGES,
            required_changes=["missing signature", "wrong date format"],
        )
        patterns = extract_patterns(submission, outcome)

        issues = [p for p in patterns if p.type is PatternType.COMMON_ISSUES]
        assert len(issues) == 1
        assert issues[0].payload.issues == ("missing signature", "wrong date format")
        assert issues[0].metadata["submission_type"] == "loss_mitigation"

    def test_empty_required_changes_yield_no_issues(self, make_submission):
        submission, outcome = make_submission(status=OutcomeStatus.REQUIRES_CHANGES, required_changes=[])
        types = [p.type for p in extract_patterns(submission, outcome)]
        assert PatternType.COMMON_ISSUES not in types

    def test_naive_submitted_at_against_aware_response(self):
        submission = Submission(
            id="SUB-1",
            servicer_id="acme_bank",
            type="loss_mitigation",
            documents=[DocumentDescriptor(type="hardship_letter", format="pdf", size=1024)],
            submitted_at=datetime(2024, 1, 8, 10),
        )
        outcome = SubmissionOutcome(
            status=OutcomeStatus.ACCEPTED,
            responded_at=datetime(2024, 1, 10, 10, tzinfo=timezone.utc),
        )

        timing = extract_patterns(submission, outcome)[-1]

        assert submission.submitted_at.tzinfo is timezone.utc
        assert timing.payload.day_of_week == 1
        assert timing.payload.hour_of_day == 10
        assert timing.payload.response_time == timedelta(days=2).total_seconds() * 1000

    def test_parsed_timestamps_are_aware(self):
        naive = parse_timestamp("2024-01-08T10:00:00")
        offset = parse_timestamp("2024-01-08T12:00:00+02:00")

        assert naive.tzinfo is timezone.utc
        assert (offset - naive) == timedelta(0)

    def test_extraction_is_pure(self, make_submission):
        """Same inputs always give equal patterns."""
        submission, outcome = make_submission(required_changes=["missing signature"])
        first = [p.to_dict() for p in extract_patterns(submission, outcome)]
        second = [p.to_dict() for p in extract_patterns(submission, outcome)]
        assert first == second


class TestSignatures:
    """Record identity"""

    def test_order_signature_depends_on_order(self):
        a = DocumentOrderPayload(documents=("hardship_letter", "bank_statement"))
        b = DocumentOrderPayload(documents=("bank_statement", "hardship_letter"))
        assert a.signature() != b.signature()

    def test_issue_signature_ignores_order_and_repeats(self):
        a = CommonIssuesPayload(issues=("missing signature", "wrong date format"))
        b = CommonIssuesPayload(issues=("wrong date format", "missing signature", "missing signature"))
        assert a.signature() == b.signature()

    def test_timing_signature_ignores_response_time(self):
        a = SubmissionTimingPayload(day_of_week=1, hour_of_day=10, response_time=1000.0)
        b = SubmissionTimingPayload(day_of_week=1, hour_of_day=10, response_time=99999.0)
        assert a.signature() == b.signature()

    def test_format_signature_is_key_order_independent(self):
        a = DocumentFormatPayload(formats={"a": "pdf", "b": "png"})
        b = DocumentFormatPayload(formats={"b": "png", "a": "pdf"})
        assert a.signature() == b.signature()

    def test_signatures_differ_across_types(self):
        order = DocumentOrderPayload(documents=("x",))
        issues = CommonIssuesPayload(issues=("x",))
        assert order.signature() != issues.signature()


class TestConfidence:
    """next_confidence()"""

    def test_single_step(self):
        assert next_confidence(0.9, 0.1) == pytest.approx(0.91)

    def test_increments_shrink_and_never_reach_one(self):
        confidence = 0.5
        last_increment = 1.0
        for _ in range(50):
            new = next_confidence(confidence, 0.1)
            increment = new - confidence
            assert 0 < increment < last_increment
            assert new < 1.0
            last_increment = increment
            confidence = new

    def test_long_run_stays_below_one(self):
        confidence = 0.9
        for _ in range(1000):
            confidence = next_confidence(confidence, 0.1)
        assert confidence < 1.0

    def test_strictly_increasing_below_ceiling(self):
        confidence = 0.7
        for _ in range(10):
            new = next_confidence(confidence, 0.1, 0.99)
            assert new > confidence
            confidence = new

    def test_ceiling_caps(self):
        assert next_confidence(0.985, 0.5, 0.99) == 0.99

    def test_out_of_range_input_clamped(self):
        assert 0.0 <= next_confidence(-3.0, 0.1) <= 1.0
        assert next_confidence(7.0, 0.1) == 1.0


class TestMapping:
    """Pattern type -> intelligence type"""

    def test_every_pattern_type_maps(self):
        for pattern_type in PatternType:
            assert isinstance(map_pattern_to_intelligence_type(pattern_type), IntelligenceType)

    def test_timing_is_timing_preference(self):
        assert map_pattern_to_intelligence_type(PatternType.SUBMISSION_TIMING) is IntelligenceType.TIMING_PREFERENCE
        assert map_pattern_to_intelligence_type(PatternType.DOCUMENT_ORDER) is IntelligenceType.REQUIREMENT

    def test_payload_decoded_by_type(self):
        payload = payload_from_dict(PatternType.DOCUMENT_ORDER, {"documents": ["a", "b"]})
        assert payload == DocumentOrderPayload(documents=("a", "b"))


class TestPattern:
    """Pattern invariants"""

    def test_mismatched_payload_rejected(self):
        with pytest.raises(ValueError):
            Pattern(
                type=PatternType.DOCUMENT_ORDER,
                payload=CommonIssuesPayload(issues=("x",)),
                confidence=0.5,
            )

    def test_confidence_clamped(self):
        pattern = Pattern(
            type=PatternType.COMMON_ISSUES,
            payload=CommonIssuesPayload(issues=("x",)),
            confidence=1.7,
        )
        assert pattern.confidence == 1.0

    def test_impact_score(self, make_submission):
        submission, accepted = make_submission()
        _, rejected = make_submission(status=OutcomeStatus.REJECTED)
        pattern = extract_patterns(submission, accepted)[0]

        assert calculate_impact_score(pattern, accepted) == pytest.approx(0.98)
        assert calculate_impact_score(pattern, rejected) == pytest.approx(0.68)
