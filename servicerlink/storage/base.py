"""
Pattern store protocol.

Copyright (c) 2025 Graziano Labs Corp.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from ..intelligence.patterns import IntelligenceRecord, Pattern
from ..models import Submission, SubmissionOutcome


class PatternStore(Protocol):
    """Protocol for intelligence record storage"""

    async def find_record(self, servicer_id: str, signature: str) -> Optional[IntelligenceRecord]:
        """Load the record for (servicer_id, signature), if any"""
        ...

    async def insert_record(self, record: IntelligenceRecord) -> IntelligenceRecord:
        """Insert a new record; raise ConcurrentUpdateError if the key already exists"""
        ...

    async def update_record(self, record: IntelligenceRecord, expected_occurrences: int) -> None:
        """Compare-and-swap update keyed on the previously read occurrence count"""
        ...

    async def list_records(self, servicer_id: str) -> List[IntelligenceRecord]:
        """All records for a servicer, highest confidence first"""
        ...

    async def append_observations(
        self,
        submission: Submission,
        patterns: List[Pattern],
        outcome: SubmissionOutcome,
        observed_at: datetime
    ) -> None:
        """Append an unaggregated extraction batch to the raw pattern log"""
        ...

    async def list_observations(self, servicer_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        """Most recent raw observations for a servicer"""
        ...

    async def list_servicers(self) -> List[str]:
        """Servicer ids with at least one record"""
        ...
