"""
SQLite storage backend for servicer intelligence.

Two tables:
- servicer_intelligence: aggregated records, unique on (servicer_id, signature)
- learning_patterns: raw, unaggregated extraction batches for audit

Copyright (c) 2025 Graziano Labs Corp.
"""

import aiosqlite
import json
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from ..errors import ConcurrentUpdateError, LearningError
from ..intelligence.patterns import (
    IntelligenceRecord,
    IntelligenceType,
    Pattern,
    PatternType,
    payload_from_dict,
)
from ..models import OutcomeStatus, Submission, SubmissionOutcome, parse_timestamp

logger = logging.getLogger(__name__)


class SQLitePatternStore:
    """SQLite-based persistent storage for intelligence records"""

    def __init__(self, db_path: str):
        """
        Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._initialized = False

    async def _init_db(self):
        """Initialize database schema"""
        if self._initialized:
            return

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS servicer_intelligence (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    servicer_id TEXT NOT NULL,
                    intelligence_type TEXT NOT NULL,
                    pattern_type TEXT NOT NULL,
                    signature TEXT NOT NULL,
                    description TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    evidence TEXT NOT NULL DEFAULT '{}',
                    confidence_score REAL NOT NULL,
                    occurrence_count INTEGER NOT NULL DEFAULT 1,
                    impact_score REAL NOT NULL DEFAULT 0.5,
                    last_observed TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE (servicer_id, signature)
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS learning_patterns (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    servicer_id TEXT NOT NULL,
                    submission_id TEXT NOT NULL,
                    pattern_type TEXT NOT NULL DEFAULT 'servicer_behavior',
                    pattern_data TEXT NOT NULL,
                    outcome TEXT NOT NULL,
                    confidence_score REAL NOT NULL,
                    success_impact REAL NOT NULL,
                    observed_at TEXT NOT NULL
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_intelligence_servicer
                ON servicer_intelligence(servicer_id, confidence_score)
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_learning_patterns_servicer
                ON learning_patterns(servicer_id, observed_at)
            """)

            await db.commit()

        self._initialized = True
        logger.info(f"Initialized SQLite pattern store at {self.db_path}")

    def _row_to_record(self, row: aiosqlite.Row) -> IntelligenceRecord:
        """Decode a servicer_intelligence row"""
        try:
            pattern_type = PatternType(row["pattern_type"])
            return IntelligenceRecord(
                id=row["id"],
                servicer_id=row["servicer_id"],
                intelligence_type=IntelligenceType(row["intelligence_type"]),
                pattern_type=pattern_type,
                signature=row["signature"],
                description=row["description"],
                payload=payload_from_dict(pattern_type, json.loads(row["payload"])),
                evidence=json.loads(row["evidence"] or "{}"),
                confidence_score=float(row["confidence_score"]),
                occurrence_count=int(row["occurrence_count"]),
                impact_score=float(row["impact_score"]),
                last_observed=parse_timestamp(row["last_observed"]),
                created_at=parse_timestamp(row["created_at"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise LearningError(
                "E401",
                f"Malformed intelligence record {row['id']}: {e}",
                hint="Inspect the servicer_intelligence row or remove it"
            ) from e

    async def find_record(self, servicer_id: str, signature: str) -> Optional[IntelligenceRecord]:
        """Load the record for (servicer_id, signature)"""
        await self._init_db()

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM servicer_intelligence WHERE servicer_id = ? AND signature = ?",
                (servicer_id, signature)
            ) as cursor:
                row = await cursor.fetchone()

        return self._row_to_record(row) if row else None

    async def insert_record(self, record: IntelligenceRecord) -> IntelligenceRecord:
        """Insert a new record and return it with its id"""
        await self._init_db()

        async with aiosqlite.connect(self.db_path) as db:
            try:
                cursor = await db.execute(
                    """
                    INSERT INTO servicer_intelligence (
                        servicer_id, intelligence_type, pattern_type, signature,
                        description, payload, evidence, confidence_score,
                        occurrence_count, impact_score, last_observed, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.servicer_id,
                        record.intelligence_type.value,
                        record.pattern_type.value,
                        record.signature,
                        record.description,
                        json.dumps(record.payload.to_dict()),
                        json.dumps(record.evidence),
                        record.confidence_score,
                        record.occurrence_count,
                        record.impact_score,
                        record.last_observed.isoformat(),
                        record.created_at.isoformat()
                    )
                )
            except aiosqlite.IntegrityError as e:
                raise ConcurrentUpdateError(
                    "E410",
                    f"Record {record.signature} for {record.servicer_id} was created concurrently"
                ) from e
            await db.commit()
            record.id = cursor.lastrowid

        logger.debug(f"Inserted intelligence record {record.id} for {record.servicer_id}")
        return record

    async def update_record(self, record: IntelligenceRecord, expected_occurrences: int) -> None:
        """Write back an updated record if nobody else updated it first"""
        await self._init_db()

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """
                UPDATE servicer_intelligence
                SET confidence_score = ?,
                    occurrence_count = ?,
                    evidence = ?,
                    last_observed = ?,
                    payload = ?
                WHERE id = ? AND occurrence_count = ?
                """,
                (
                    record.confidence_score,
                    record.occurrence_count,
                    json.dumps(record.evidence),
                    record.last_observed.isoformat(),
                    json.dumps(record.payload.to_dict()),
                    record.id,
                    expected_occurrences
                )
            )
            await db.commit()

            if cursor.rowcount == 0:
                raise ConcurrentUpdateError(
                    "E410",
                    f"Record {record.id} changed since it was read "
                    f"(expected occurrence_count={expected_occurrences})"
                )

        logger.debug(
            f"Updated intelligence record {record.id}: "
            f"confidence={record.confidence_score:.4f}, occurrences={record.occurrence_count}"
        )

    async def list_records(self, servicer_id: str) -> List[IntelligenceRecord]:
        """All records for a servicer, highest confidence first"""
        await self._init_db()

        records = []
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT * FROM servicer_intelligence
                WHERE servicer_id = ?
                ORDER BY confidence_score DESC, id ASC
                """,
                (servicer_id,)
            ) as cursor:
                async for row in cursor:
                    records.append(self._row_to_record(row))

        return records

    async def append_observations(
        self,
        submission: Submission,
        patterns: List[Pattern],
        outcome: SubmissionOutcome,
        observed_at: datetime
    ) -> None:
        """Append one extraction batch to the raw pattern log"""
        if not patterns:
            return

        await self._init_db()

        avg_confidence = sum(p.confidence for p in patterns) / len(patterns)
        success_impact = 1.0 if outcome.status is OutcomeStatus.ACCEPTED else 0.0

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO learning_patterns (
                    servicer_id, submission_id, pattern_data, outcome,
                    confidence_score, success_impact, observed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    submission.servicer_id,
                    submission.id,
                    json.dumps([p.to_dict() for p in patterns]),
                    json.dumps(outcome.to_dict()),
                    avg_confidence,
                    success_impact,
                    observed_at.isoformat()
                )
            )
            await db.commit()

    async def list_observations(self, servicer_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        """Most recent raw observations for a servicer"""
        await self._init_db()

        observations = []
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT submission_id, pattern_data, outcome, confidence_score,
                       success_impact, observed_at
                FROM learning_patterns
                WHERE servicer_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (servicer_id, limit)
            ) as cursor:
                async for row in cursor:
                    observations.append({
                        "submission_id": row["submission_id"],
                        "patterns": json.loads(row["pattern_data"]),
                        "outcome": json.loads(row["outcome"]),
                        "confidence_score": row["confidence_score"],
                        "success_impact": row["success_impact"],
                        "observed_at": row["observed_at"],
                    })

        return observations

    async def list_servicers(self) -> List[str]:
        """Servicer ids with at least one intelligence record"""
        await self._init_db()

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT DISTINCT servicer_id FROM servicer_intelligence ORDER BY servicer_id"
            ) as cursor:
                rows = await cursor.fetchall()

        return [row[0] for row in rows]

    async def get_stats(self) -> dict:
        """Get storage statistics"""
        await self._init_db()

        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT COUNT(*) FROM servicer_intelligence") as cursor:
                row = await cursor.fetchone()
                total_records = row[0] if row else 0

            async with db.execute(
                "SELECT COUNT(DISTINCT servicer_id) FROM servicer_intelligence"
            ) as cursor:
                row = await cursor.fetchone()
                total_servicers = row[0] if row else 0

            async with db.execute("SELECT COUNT(*) FROM learning_patterns") as cursor:
                row = await cursor.fetchone()
                total_observations = row[0] if row else 0

            async with db.execute(
                "SELECT AVG(confidence_score) FROM servicer_intelligence"
            ) as cursor:
                row = await cursor.fetchone()
                avg_confidence = row[0] if row and row[0] else 0.0

        return {
            "total_records": total_records,
            "total_servicers": total_servicers,
            "total_observations": total_observations,
            "avg_confidence": round(avg_confidence, 4),
            "db_path": self.db_path
        }
