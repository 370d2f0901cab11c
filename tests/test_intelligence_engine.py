"""
Tests for the servicer intelligence engine.

Test coverage:
1. Record creation and confidence updates from repeated outcomes
2. Recommendation generation
3. Success rate and intelligence view
4. Background learning never raises
5. Concurrent learners lose no observations
"""

import asyncio
from dataclasses import replace
from datetime import timedelta

import pytest

from servicerlink.errors import ConcurrentUpdateError, LearningError
from servicerlink.intelligence.engine import ServicerIntelligenceEngine
from servicerlink.intelligence.patterns import (
    DocumentOrderPayload,
    IntelligenceRecord,
    IntelligenceType,
    PatternType,
)
from servicerlink.models import OutcomeStatus, utcnow
from servicerlink.storage.sqlite import SQLitePatternStore


async def records_by_type(engine, servicer_id="acme_bank"):
    records = await engine.store.list_records(servicer_id)
    grouped = {}
    for record in records:
        grouped.setdefault(record.pattern_type, []).append(record)
    return grouped


class BrokenStore:
    """Pattern store whose every read fails."""

    async def find_record(self, servicer_id, signature):
        raise RuntimeError("database is on fire")

    async def list_records(self, servicer_id):
        raise RuntimeError("database is on fire")


class FlakyStore(SQLitePatternStore):
    """Loses the first compare-and-swap it attempts."""

    def __init__(self, db_path):
        super().__init__(db_path)
        self.conflicts = 0

    async def update_record(self, record, expected_occurrences):
        if self.conflicts == 0:
            self.conflicts += 1
            raise ConcurrentUpdateError("E410", "simulated conflict")
        await super().update_record(record, expected_occurrences)


# ============================================================================
# Learning
# ============================================================================

class TestLearning:
    """learn_from_submission()"""

    @pytest.mark.asyncio
    async def test_first_accepted_submission_creates_records(self, engine, make_submission):
        submission, outcome = make_submission()

        insights = await engine.learn_from_submission(submission, outcome)

        assert insights.updates.created_patterns == 3
        assert insights.updates.updated_patterns == 0
        assert "New document_order pattern discovered" in insights.updates.new_requirements

        grouped = await records_by_type(engine)
        order = grouped[PatternType.DOCUMENT_ORDER][0]
        assert order.confidence_score == pytest.approx(0.9)
        assert order.occurrence_count == 1
        assert order.intelligence_type is IntelligenceType.REQUIREMENT
        assert grouped[PatternType.DOCUMENT_FORMAT][0].confidence_score == pytest.approx(0.85)
        timing = grouped[PatternType.SUBMISSION_TIMING][0]
        assert timing.intelligence_type is IntelligenceType.TIMING_PREFERENCE

    @pytest.mark.asyncio
    async def test_repeat_raises_confidence(self, engine, make_submission):
        first = make_submission(submission_id="SUB-1")
        second = make_submission(submission_id="SUB-2")

        await engine.learn_from_submission(*first)
        insights = await engine.learn_from_submission(*second)

        assert insights.updates.created_patterns == 0
        assert insights.updates.updated_patterns == 3
        assert insights.updates.confidence_change > 0

        order = (await records_by_type(engine))[PatternType.DOCUMENT_ORDER][0]
        assert order.confidence_score == pytest.approx(0.91)
        assert order.occurrence_count == 2
        assert len(order.evidence) == 2

    @pytest.mark.asyncio
    async def test_confidence_increases_with_shrinking_steps(self, engine, make_submission):
        confidences = []
        for i in range(6):
            await engine.learn_from_submission(*make_submission(submission_id=f"SUB-{i}"))
            order = (await records_by_type(engine))[PatternType.DOCUMENT_ORDER][0]
            confidences.append(order.confidence_score)

        steps = [b - a for a, b in zip(confidences, confidences[1:])]
        assert all(step > 0 for step in steps)
        assert all(later < earlier for earlier, later in zip(steps, steps[1:]))
        assert confidences[-1] <= engine.config.confidence_ceiling

    @pytest.mark.asyncio
    async def test_rejected_outcome_learns_only_timing(self, engine, make_submission):
        await engine.learn_from_submission(*make_submission(status=OutcomeStatus.REJECTED))

        grouped = await records_by_type(engine)
        assert set(grouped) == {PatternType.SUBMISSION_TIMING}

    @pytest.mark.asyncio
    async def test_evidence_capped(self, store, settings, make_submission):
        engine = ServicerIntelligenceEngine(store=store, config=replace(settings, evidence_retention=3))

        for i in range(5):
            await engine.learn_from_submission(*make_submission(submission_id=f"SUB-{i}"))

        order = (await records_by_type(engine))[PatternType.DOCUMENT_ORDER][0]
        assert order.occurrence_count == 5
        assert len(order.evidence) == 3
        assert {e["submission_id"] for e in order.evidence.values()} == {"SUB-2", "SUB-3", "SUB-4"}

    @pytest.mark.asyncio
    async def test_raw_observations_logged(self, engine, make_submission):
        await engine.learn_from_submission(*make_submission())
        observations = await engine.store.list_observations("acme_bank")
        assert len(observations) == 1

    @pytest.mark.asyncio
    async def test_store_failure_raises_learning_error(self, settings, make_submission):
        engine = ServicerIntelligenceEngine(store=BrokenStore(), config=settings)

        with pytest.raises(LearningError) as exc:
            await engine.learn_from_submission(*make_submission())
        assert exc.value.code == "E400"

    @pytest.mark.asyncio
    async def test_conflict_is_retried(self, temp_db, settings, make_submission):
        store = FlakyStore(temp_db)
        engine = ServicerIntelligenceEngine(store=store, config=settings)

        await engine.learn_from_submission(*make_submission(submission_id="SUB-1"))
        await engine.learn_from_submission(*make_submission(submission_id="SUB-2"))

        assert store.conflicts == 1
        order = (await records_by_type(engine))[PatternType.DOCUMENT_ORDER][0]
        assert order.occurrence_count == 2

    @pytest.mark.asyncio
    async def test_servicer_id_spelling_shares_records(self, engine, make_submission):
        await engine.learn_from_submission(*make_submission(servicer_id="Acme_Bank", submission_id="SUB-1"))
        await engine.learn_from_submission(*make_submission(servicer_id=" acme_bank ", submission_id="SUB-2"))

        order = (await records_by_type(engine, "acme_bank"))[PatternType.DOCUMENT_ORDER]
        assert len(order) == 1
        assert order[0].occurrence_count == 2
        assert list(engine._locks) == ["acme_bank"]
        assert await engine.get_recommendations("ACME_BANK") == await engine.get_recommendations("acme_bank")


class TestBackgroundLearning:
    """learn_in_background()"""

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self, settings, make_submission):
        engine = ServicerIntelligenceEngine(store=BrokenStore(), config=settings)

        task = engine.learn_in_background(*make_submission())
        assert await task is None

    @pytest.mark.asyncio
    async def test_drain_waits_for_learning(self, engine, make_submission):
        engine.learn_in_background(*make_submission(submission_id="SUB-1"))
        engine.learn_in_background(*make_submission(submission_id="SUB-2"))

        await engine.drain()

        order = (await records_by_type(engine))[PatternType.DOCUMENT_ORDER][0]
        assert order.occurrence_count == 2


class TestConcurrency:
    """Concurrent learners on one servicer"""

    @pytest.mark.asyncio
    async def test_concurrent_learning_same_engine(self, engine, make_submission):
        await asyncio.gather(*[
            engine.learn_from_submission(*make_submission(submission_id=f"SUB-{i}"))
            for i in range(5)
        ])

        order = (await records_by_type(engine))[PatternType.DOCUMENT_ORDER][0]
        assert order.occurrence_count == 5

    @pytest.mark.asyncio
    async def test_concurrent_learning_separate_engines(self, temp_db, settings, make_submission):
        """Two engines share one database but not their locks."""
        first = ServicerIntelligenceEngine(store=SQLitePatternStore(temp_db), config=settings)
        second = ServicerIntelligenceEngine(store=SQLitePatternStore(temp_db), config=settings)

        await asyncio.gather(
            first.learn_from_submission(*make_submission(submission_id="SUB-1")),
            second.learn_from_submission(*make_submission(submission_id="SUB-2")),
        )

        order = (await records_by_type(first))[PatternType.DOCUMENT_ORDER][0]
        assert order.occurrence_count == 2


# ============================================================================
# Recommendations and intelligence
# ============================================================================

class TestRecommendations:
    """generate_recommendations()"""

    @pytest.mark.asyncio
    async def test_unknown_servicer_has_none(self, engine):
        assert await engine.get_recommendations("nobody") == []

    @pytest.mark.asyncio
    async def test_recommendations_after_acceptance(self, engine, make_submission):
        insights = await engine.learn_from_submission(*make_submission())

        assert insights.recommendations == [
            "Recommended document order: hardship_letter → bank_statement",
            "Best submission time: Monday around 10:00",
            "Current success rate with this servicer: 100.0%",
        ]

    @pytest.mark.asyncio
    async def test_low_confidence_order_not_recommended(self, engine):
        payload = DocumentOrderPayload(documents=("hardship_letter", "bank_statement"))
        now = utcnow()
        await engine.store.insert_record(IntelligenceRecord(
            servicer_id="acme_bank",
            intelligence_type=IntelligenceType.REQUIREMENT,
            pattern_type=PatternType.DOCUMENT_ORDER,
            signature=payload.signature(),
            description=payload.describe(),
            payload=payload,
            evidence={now.isoformat(): {"status": "rejected", "submission_id": "SUB-1"}},
            confidence_score=0.6,
            occurrence_count=1,
            impact_score=0.5,
            last_observed=now,
            created_at=now,
        ))

        recommendations = await engine.get_recommendations("acme_bank")
        assert recommendations == ["Current success rate with this servicer: 0.0%"]

    @pytest.mark.asyncio
    async def test_issues_deduplicated(self, engine, make_submission):
        await engine.learn_from_submission(*make_submission(
            submission_id="SUB-1",
            status=OutcomeStatus.REQUIRES_CHANGES,
            required_changes=["missing signature", "wrong date format"],
        ))
        await engine.learn_from_submission(*make_submission(
            submission_id="SUB-2",
            status=OutcomeStatus.REQUIRES_CHANGES,
            required_changes=["wrong date format", "missing signature"],
        ))
        await engine.learn_from_submission(*make_submission(
            submission_id="SUB-3",
            status=OutcomeStatus.REQUIRES_CHANGES,
            required_changes=["missing signature", "illegible bank statement"],
        ))

        recommendations = await engine.get_recommendations("acme_bank")
        issues = [r for r in recommendations if r.startswith("Common issues to avoid")]
        assert len(issues) == 1
        listed = issues[0].split(": ", 1)[1].split(", ")
        assert sorted(listed) == ["illegible bank statement", "missing signature", "wrong date format"]

        grouped = await records_by_type(engine)
        assert len(grouped[PatternType.COMMON_ISSUES]) == 2

    @pytest.mark.asyncio
    async def test_best_time_weighted_by_occurrences(self, engine, make_submission):
        monday = make_submission(submission_id="SUB-1")[0].submitted_at
        for i in range(3):
            await engine.learn_from_submission(*make_submission(submission_id=f"MON-{i}"))
        await engine.learn_from_submission(*make_submission(
            submission_id="WED-1",
            submitted_at=monday + timedelta(days=2, hours=4),
        ))

        intelligence = await engine.get_intelligence("acme_bank")
        best = intelligence.requirements["best_submission_time"]
        # (1*3 + 3*1) / 4 = 1.5 -> 2; (10*3 + 14) / 4 = 11
        assert best == {"day_of_week": 2, "hour_of_day": 11, "day_name": "Tuesday"}


class TestIntelligence:
    """get_success_rate() / get_intelligence()"""

    @pytest.mark.asyncio
    async def test_success_rate_counts_distinct_submissions(self, engine, make_submission):
        await engine.learn_from_submission(*make_submission(submission_id="SUB-1"))
        await engine.learn_from_submission(*make_submission(submission_id="SUB-2"))
        await engine.learn_from_submission(*make_submission(
            submission_id="SUB-3", status=OutcomeStatus.REJECTED
        ))

        assert await engine.get_success_rate("acme_bank") == pytest.approx(2 / 3)

    @pytest.mark.asyncio
    async def test_success_rate_without_data(self, engine):
        assert await engine.get_success_rate("nobody") == 0.0

    @pytest.mark.asyncio
    async def test_intelligence_view(self, engine, make_submission):
        await engine.learn_from_submission(*make_submission())

        intelligence = await engine.get_intelligence("acme_bank")

        assert intelligence.requirements["document_order"] == ["hardship_letter", "bank_statement"]
        assert intelligence.requirements["document_order_confidence"] == pytest.approx(0.9)
        assert intelligence.requirements["document_formats"] == {
            "hardship_letter": "pdf", "bank_statement": "pdf"
        }
        assert intelligence.requirements["best_submission_time"]["day_name"] == "Monday"
        assert "common_issues" not in intelligence.requirements
        assert intelligence.success_rate == 1.0
        assert intelligence.average_response_time == pytest.approx(2 * 24 * 60 * 60 * 1000)
        assert intelligence.last_updated is not None
        assert len(intelligence.patterns) == 3
        assert intelligence.recommendations == await engine.get_recommendations("acme_bank")
        assert intelligence.to_dict()["recommendations"] == intelligence.recommendations

    @pytest.mark.asyncio
    async def test_empty_intelligence(self, engine):
        intelligence = await engine.get_intelligence("nobody")

        assert intelligence.requirements == {}
        assert intelligence.patterns == []
        assert intelligence.last_updated is None
        assert intelligence.to_dict()["last_updated"] is None
        assert intelligence.recommendations == []
