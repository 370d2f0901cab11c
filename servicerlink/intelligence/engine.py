"""
Servicer Intelligence Engine - Core Implementation

Learns each servicer's preferences from submission outcomes and feeds them
back into adapter selection.

Pipeline for one resolved submission:
    1. extract_patterns   - pure (submission, outcome) -> patterns
    2. store_patterns     - update or create per-(servicer, signature) records
    3. generate_recommendations - human-readable guidance from all records

Learning is an enhancement, never a blocker: callers on the submission
path use learn_in_background(), which logs and swallows failures.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set

from ..config import ServicerLinkConfig, get_default_config
from ..errors import ConcurrentUpdateError, LearningError
from ..models import OutcomeStatus, Submission, SubmissionOutcome, normalize_servicer_id, utcnow
from .patterns import (
    DAY_NAMES,
    IntelligenceRecord,
    Pattern,
    PatternType,
    calculate_impact_score,
    extract_patterns,
    map_pattern_to_intelligence_type,
    next_confidence,
)

if TYPE_CHECKING:
    from ..storage.base import PatternStore

logger = logging.getLogger(__name__)

# Compare-and-swap attempts per pattern before giving up
MAX_CAS_ATTEMPTS = 3


# ============================================================================
# Data Structures
# ============================================================================

@dataclass
class LearningUpdates:
    """Delta produced by one store_patterns() call."""
    confidence_change: float = 0.0
    new_requirements: List[str] = field(default_factory=list)
    updated_patterns: int = 0
    created_patterns: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "confidence_change": round(self.confidence_change, 6),
            "new_requirements": list(self.new_requirements),
            "updated_patterns": self.updated_patterns,
            "created_patterns": self.created_patterns,
        }


@dataclass
class LearnedInsights:
    """What one learning event produced."""
    patterns: List[Pattern]
    updates: LearningUpdates
    recommendations: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patterns": [p.to_dict() for p in self.patterns],
            "updates": self.updates.to_dict(),
            "recommendations": list(self.recommendations),
        }


@dataclass
class ServicerIntelligenceData:
    """Materialized view of everything learned about one servicer.

    average_response_time is in milliseconds.
    """
    servicer_id: str
    requirements: Dict[str, Any]
    patterns: List[Pattern]
    success_rate: float
    average_response_time: float
    last_updated: Optional[datetime]
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "servicer_id": self.servicer_id,
            "requirements": self.requirements,
            "patterns": [p.to_dict() for p in self.patterns],
            "success_rate": self.success_rate,
            "average_response_time": self.average_response_time,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "recommendations": list(self.recommendations),
        }


# ============================================================================
# Intelligence Engine
# ============================================================================

class ServicerIntelligenceEngine:
    """Mines submission history into per-servicer intelligence records.

    Writes for one servicer are serialized through a per-servicer lock, and
    each record update is a compare-and-swap on its occurrence count, so
    concurrent learners never lose an observation.

    Example workflow:
        1. Package accepted by acme_bank: [hardship_letter, bank_statement]
        2. document_order record created at 0.9 confidence
        3. Same order accepted again -> 0.91, occurrence_count 2
        4. Once above the threshold, the order is recommended to the
           Generic adapter for acme_bank
    """

    def __init__(
        self,
        store: Optional["PatternStore"] = None,
        config: Optional[ServicerLinkConfig] = None
    ):
        """Initialize intelligence engine.

        Args:
            store: PatternStore backend. Defaults to SQLite at config.db_path.
            config: ServicerLinkConfig with learning policy values
        """
        self.config = config if config else get_default_config()

        if store is None:
            from ..storage.sqlite import SQLitePatternStore
            store = SQLitePatternStore(self.config.resolve_db_path())
        self.store = store

        self._locks: Dict[str, asyncio.Lock] = {}
        self._background: Set[asyncio.Task] = set()

    def _lock_for(self, servicer_id: str) -> asyncio.Lock:
        return self._locks.setdefault(servicer_id, asyncio.Lock())

    @staticmethod
    def _normalized(submission: Submission) -> Submission:
        servicer_id = normalize_servicer_id(submission.servicer_id)
        if servicer_id == submission.servicer_id:
            return submission
        return replace(submission, servicer_id=servicer_id)

    async def learn_from_submission(
        self,
        submission: Submission,
        outcome: SubmissionOutcome
    ) -> LearnedInsights:
        """Learn from a resolved submission.

        Main entry point for learning. Call once per submission outcome.

        Args:
            submission: The submission as sent
            outcome: The servicer's response

        Returns:
            LearnedInsights with extracted patterns, update delta and
            refreshed recommendations

        Raises:
            LearningError: If the pattern store fails
        """
        submission = self._normalized(submission)
        learning_id = f"LEARN-{submission.servicer_id}-{uuid.uuid4().hex[:8]}"

        logger.info(
            f"[{learning_id}] Starting learning: servicer={submission.servicer_id} "
            f"type={submission.type} outcome={outcome.status.value}"
        )

        try:
            patterns = self.extract_patterns(submission, outcome)

            async with self._lock_for(submission.servicer_id):
                updates = await self.store_patterns(submission, patterns, outcome)

            recommendations = await self.generate_recommendations(submission.servicer_id)

        except LearningError as e:
            logger.error(f"[{learning_id}] Learning failed: {e}")
            raise
        except Exception as e:
            logger.error(f"[{learning_id}] Learning failed: {e}")
            raise LearningError(
                "E400",
                f"Learning failed for {submission.servicer_id}: {e}",
                hint="Check that the pattern store is reachable"
            ) from e

        logger.info(
            f"[{learning_id}] Learning completed: patterns={len(patterns)} "
            f"created={updates.created_patterns} updated={updates.updated_patterns} "
            f"confidence_change={updates.confidence_change:+.4f}"
        )

        return LearnedInsights(
            patterns=patterns,
            updates=updates,
            recommendations=recommendations
        )

    def learn_in_background(
        self,
        submission: Submission,
        outcome: SubmissionOutcome
    ) -> asyncio.Task:
        """Schedule learning without blocking the caller.

        Failures are logged and swallowed; the returned task resolves to
        LearnedInsights or None.
        """
        task = asyncio.create_task(self._learn_quietly(submission, outcome))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _learn_quietly(
        self,
        submission: Submission,
        outcome: SubmissionOutcome
    ) -> Optional[LearnedInsights]:
        try:
            return await self.learn_from_submission(submission, outcome)
        except LearningError as e:
            logger.warning(
                f"Learning skipped for submission {submission.id} "
                f"({submission.servicer_id}): {e}"
            )
            return None

    async def drain(self) -> None:
        """Wait for scheduled background learning to finish."""
        if self._background:
            await asyncio.gather(*list(self._background))

    def extract_patterns(
        self,
        submission: Submission,
        outcome: SubmissionOutcome
    ) -> List[Pattern]:
        """Extract patterns from a submission (pure; see patterns.extract_patterns)."""
        return extract_patterns(submission, outcome)

    async def store_patterns(
        self,
        submission: Submission,
        patterns: List[Pattern],
        outcome: SubmissionOutcome
    ) -> LearningUpdates:
        """Store patterns as servicer intelligence.

        Existing (servicer, signature) records move their confidence toward
        1.0 and gain one occurrence; unseen signatures become new records.
        The whole batch is also appended to the raw pattern log.

        Args:
            submission: Source submission (servicer id, submission id)
            patterns: Patterns from extract_patterns()
            outcome: Outcome stored as evidence

        Returns:
            LearningUpdates delta
        """
        submission = self._normalized(submission)
        updates = LearningUpdates()
        observed_at = utcnow()

        for pattern in patterns:
            for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
                try:
                    await self._apply_pattern(submission, pattern, outcome, observed_at, updates)
                    break
                except ConcurrentUpdateError as e:
                    if attempt == MAX_CAS_ATTEMPTS:
                        raise
                    logger.warning(
                        f"Concurrent update on {pattern.type.value} for "
                        f"{submission.servicer_id}, re-reading (attempt {attempt}): {e}"
                    )

        await self.store.append_observations(submission, patterns, outcome, observed_at)

        return updates

    async def _apply_pattern(
        self,
        submission: Submission,
        pattern: Pattern,
        outcome: SubmissionOutcome,
        observed_at: datetime,
        updates: LearningUpdates
    ) -> None:
        """Update or create the record for one pattern."""
        servicer_id = submission.servicer_id
        signature = pattern.signature()
        evidence_key = observed_at.isoformat()
        evidence_entry = self._evidence_entry(submission, pattern, outcome)

        existing = await self.store.find_record(servicer_id, signature)

        if existing:
            old_confidence = existing.confidence_score
            expected_occurrences = existing.occurrence_count

            existing.confidence_score = next_confidence(
                old_confidence,
                self.config.confidence_step,
                self.config.confidence_ceiling
            )
            existing.occurrence_count = expected_occurrences + 1
            existing.last_observed = observed_at
            existing.evidence = self._append_evidence(existing.evidence, evidence_key, evidence_entry)

            await self.store.update_record(existing, expected_occurrences)

            updates.confidence_change += existing.confidence_score - old_confidence
            updates.updated_patterns += 1
        else:
            record = IntelligenceRecord(
                servicer_id=servicer_id,
                intelligence_type=map_pattern_to_intelligence_type(pattern.type),
                pattern_type=pattern.type,
                signature=signature,
                description=pattern.payload.describe(),
                payload=pattern.payload,
                evidence={evidence_key: evidence_entry},
                confidence_score=min(pattern.confidence, self.config.confidence_ceiling),
                occurrence_count=1,
                impact_score=calculate_impact_score(pattern, outcome),
                last_observed=observed_at,
                created_at=observed_at,
            )

            await self.store.insert_record(record)

            updates.new_requirements.append(f"New {pattern.type.value} pattern discovered")
            updates.created_patterns += 1

    def _evidence_entry(
        self,
        submission: Submission,
        pattern: Pattern,
        outcome: SubmissionOutcome
    ) -> Dict[str, Any]:
        entry = {**outcome.to_dict(), "submission_id": submission.id}
        if pattern.type is PatternType.SUBMISSION_TIMING:
            entry["response_time"] = pattern.payload.response_time
        return entry

    def _append_evidence(
        self,
        evidence: Dict[str, Dict[str, Any]],
        key: str,
        entry: Dict[str, Any]
    ) -> Dict[str, Dict[str, Any]]:
        """Add an observation, keeping only the newest evidence_retention entries."""
        merged = dict(evidence)
        merged[key] = entry
        if len(merged) > self.config.evidence_retention:
            newest = sorted(merged.items())[-self.config.evidence_retention:]
            merged = dict(newest)
        return merged

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    async def generate_recommendations(self, servicer_id: str) -> List[str]:
        """Generate recommendations based on stored intelligence.

        Lines, in order (each only when supported by data):
        - recommended document order (confidence above threshold)
        - best submission day/hour
        - de-duplicated issues to avoid
        - overall success rate

        Args:
            servicer_id: Servicer identifier

        Returns:
            Display-ready recommendation strings
        """
        records = await self.store.list_records(normalize_servicer_id(servicer_id))
        return self._recommendations_from(records)

    def _recommendations_from(self, records: List[IntelligenceRecord]) -> List[str]:
        recommendations: List[str] = []

        order_record = self._top_record(records, PatternType.DOCUMENT_ORDER)
        if order_record and order_record.confidence_score > self.config.recommendation_threshold:
            recommendations.append(
                f"Recommended document order: {' → '.join(order_record.payload.documents)}"
            )

        best_time = self._average_timing(records)
        if best_time:
            recommendations.append(
                f"Best submission time: {DAY_NAMES[best_time['day_of_week']]} "
                f"around {best_time['hour_of_day']}:00"
            )

        issues = self._issues_to_avoid(records)
        if issues:
            recommendations.append(f"Common issues to avoid: {', '.join(issues)}")

        if records:
            success_rate = self._success_rate(records) * 100
            recommendations.append(f"Current success rate with this servicer: {success_rate:.1f}%")

        return recommendations

    async def get_recommendations(self, servicer_id: str) -> List[str]:
        """Get servicer recommendations."""
        return await self.generate_recommendations(servicer_id)

    async def get_success_rate(self, servicer_id: str) -> float:
        """Fraction of distinct observed submissions that were accepted (0.0-1.0)."""
        records = await self.store.list_records(normalize_servicer_id(servicer_id))
        return self._success_rate(records)

    async def get_intelligence(self, servicer_id: str) -> ServicerIntelligenceData:
        """Build the full intelligence view for a servicer.

        requirements keys (present only when learned):
            document_order, document_order_confidence, document_formats,
            best_submission_time, common_issues
        """
        servicer_id = normalize_servicer_id(servicer_id)
        records = await self.store.list_records(servicer_id)
        requirements: Dict[str, Any] = {}

        order_record = self._top_record(records, PatternType.DOCUMENT_ORDER)
        if order_record:
            requirements["document_order"] = list(order_record.payload.documents)
            requirements["document_order_confidence"] = order_record.confidence_score

        format_record = self._top_record(records, PatternType.DOCUMENT_FORMAT)
        if format_record:
            requirements["document_formats"] = dict(format_record.payload.formats)

        best_time = self._average_timing(records)
        if best_time:
            requirements["best_submission_time"] = best_time

        issues = self._issues_to_avoid(records)
        if issues:
            requirements["common_issues"] = issues

        last_updated = max((r.last_observed for r in records), default=None)

        return ServicerIntelligenceData(
            servicer_id=servicer_id,
            requirements=requirements,
            patterns=[r.to_pattern() for r in records],
            success_rate=self._success_rate(records),
            average_response_time=self._average_response_time(records),
            last_updated=last_updated,
            recommendations=self._recommendations_from(records),
        )

    def _top_record(
        self,
        records: List[IntelligenceRecord],
        pattern_type: PatternType
    ) -> Optional[IntelligenceRecord]:
        # records arrive ranked by confidence, highest first
        return next((r for r in records if r.pattern_type is pattern_type), None)

    def _average_timing(self, records: List[IntelligenceRecord]) -> Optional[Dict[str, Any]]:
        """Occurrence-weighted mean day and hour across timing records."""
        timing = [r for r in records if r.pattern_type is PatternType.SUBMISSION_TIMING]
        total = sum(r.occurrence_count for r in timing)
        if total == 0:
            return None

        avg_day = sum(r.payload.day_of_week * r.occurrence_count for r in timing) / total
        avg_hour = sum(r.payload.hour_of_day * r.occurrence_count for r in timing) / total
        day = int(avg_day + 0.5) % 7
        hour = int(avg_hour + 0.5) % 24

        return {"day_of_week": day, "hour_of_day": hour, "day_name": DAY_NAMES[day]}

    def _issues_to_avoid(self, records: List[IntelligenceRecord]) -> List[str]:
        issues: List[str] = []
        for record in records:
            if record.pattern_type is not PatternType.COMMON_ISSUES:
                continue
            for issue in record.payload.issues:
                if issue not in issues:
                    issues.append(issue)
        return issues

    def _success_rate(self, records: List[IntelligenceRecord]) -> float:
        """Acceptance rate over distinct submissions found in stored evidence."""
        statuses: Dict[str, str] = {}
        for record in records:
            for key, entry in record.evidence.items():
                submission_id = entry.get("submission_id") or f"{record.id}:{key}"
                statuses[submission_id] = entry.get("status", "")

        if not statuses:
            return 0.0

        accepted = sum(1 for s in statuses.values() if s == OutcomeStatus.ACCEPTED.value)
        return accepted / len(statuses)

    def _average_response_time(self, records: List[IntelligenceRecord]) -> float:
        samples = [
            float(entry["response_time"])
            for record in records
            if record.pattern_type is PatternType.SUBMISSION_TIMING
            for entry in record.evidence.values()
            if entry.get("response_time") is not None
        ]
        return sum(samples) / len(samples) if samples else 0.0
