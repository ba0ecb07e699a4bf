"""Sovereign Credit Intelligence - Models"""
from .intelligence import (
    CONFLICT,
    Bureau,
    Collection,
    DisputeEntry,
    DisputeStatus,
    DisputeType,
    EnforcementStrategy,
    ExecutionHistoryEntry,
    ExecutionOutcome,
    Identity,
    Inquiry,
    NormalizedField,
    ProfileMetrics,
    PublicRecord,
    RiskLevel,
    Scores,
    Severity,
    StrategyType,
    Tradeline,
    UserCreditProfile,
    Violation,
    clamp_confidence,
)

__all__ = [
    "CONFLICT",
    "Bureau",
    "Collection",
    "DisputeEntry",
    "DisputeStatus",
    "DisputeType",
    "EnforcementStrategy",
    "ExecutionHistoryEntry",
    "ExecutionOutcome",
    "Identity",
    "Inquiry",
    "NormalizedField",
    "ProfileMetrics",
    "PublicRecord",
    "RiskLevel",
    "Scores",
    "Severity",
    "StrategyType",
    "Tradeline",
    "UserCreditProfile",
    "Violation",
    "clamp_confidence",
]
