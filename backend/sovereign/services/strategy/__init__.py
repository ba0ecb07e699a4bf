"""Strategy Engine: violations -> enforcement strategies with outcome learning."""
from .engine import (
    COOLDOWN_ACTION_TYPES,
    PROBABILITY_FLOOR,
    TIERS,
    Adjustment,
    StrategyEngine,
)
from .history import ExecutionHistoryStore, InMemoryExecutionHistory, SqlExecutionHistory

__all__ = [
    "COOLDOWN_ACTION_TYPES",
    "PROBABILITY_FLOOR",
    "TIERS",
    "Adjustment",
    "StrategyEngine",
    "ExecutionHistoryStore",
    "InMemoryExecutionHistory",
    "SqlExecutionHistory",
]
