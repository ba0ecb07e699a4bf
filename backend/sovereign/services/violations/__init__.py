"""Violation Engine: deterministic Metro 2 rule scanning."""
from .engine import ViolationEngine
from .rules import (
    RULE_BALANCE_PAST_DUE,
    RULE_CHARGE_OFF_INCONSISTENT,
    RULE_CLOSED_DEROGATORY,
    RULE_MISSING_OPEN_DATE,
    TradelineRules,
    evaluate_tradeline,
    staleness_penalty,
    violation_id,
)

__all__ = [
    "ViolationEngine",
    "RULE_BALANCE_PAST_DUE",
    "RULE_CHARGE_OFF_INCONSISTENT",
    "RULE_CLOSED_DEROGATORY",
    "RULE_MISSING_OPEN_DATE",
    "TradelineRules",
    "evaluate_tradeline",
    "staleness_penalty",
    "violation_id",
]
