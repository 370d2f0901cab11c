"""
Servicer intelligence - learning servicer preferences from outcomes.

Each resolved submission is mined for typed patterns (document order,
document formats, submission timing, common issues). Repeated observations
raise confidence in a pattern; confident patterns become recommendations
that the Generic adapter applies for servicers without a dedicated adapter.

Core components:
- extract_patterns: pure (submission, outcome) -> patterns
- ServicerIntelligenceEngine: stores patterns and derives recommendations
- IntelligenceRecord: persisted, confidence-scored observation
"""

from .patterns import (
    DAY_NAMES,
    CommonIssuesPayload,
    DocumentFormatPayload,
    DocumentOrderPayload,
    IntelligenceRecord,
    IntelligenceType,
    Pattern,
    PatternType,
    SubmissionTimingPayload,
    calculate_impact_score,
    extract_patterns,
    map_pattern_to_intelligence_type,
    next_confidence,
)
from .engine import (
    LearnedInsights,
    LearningUpdates,
    ServicerIntelligenceData,
    ServicerIntelligenceEngine,
)

__all__ = [
    "DAY_NAMES",
    "CommonIssuesPayload",
    "DocumentFormatPayload",
    "DocumentOrderPayload",
    "IntelligenceRecord",
    "IntelligenceType",
    "Pattern",
    "PatternType",
    "SubmissionTimingPayload",
    "calculate_impact_score",
    "extract_patterns",
    "map_pattern_to_intelligence_type",
    "next_confidence",
    "LearnedInsights",
    "LearningUpdates",
    "ServicerIntelligenceData",
    "ServicerIntelligenceEngine",
]
