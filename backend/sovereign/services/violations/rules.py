"""
Violation Rules

Deterministic Metro 2 contradiction rules for a single tradeline.
NO LLMs used here - pure logic only.

Every rule is independently evaluable and returns at most one Violation.
Malformed input never raises; a rule whose inputs cannot be read simply
does not fire.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple
from uuid import NAMESPACE_URL, uuid5

from ...models.intelligence import CONFLICT, NormalizedField, Severity, Tradeline, Violation, clamp_confidence
from ..normalization import DEROGATORY_LATE_CODES, METRO2_CHARGE_OFF, days_since

logger = logging.getLogger(__name__)


RULE_BALANCE_PAST_DUE = "METRO2-BAL-PAST-DUE"
RULE_CLOSED_DEROGATORY = "METRO2-CLOSED-DEROG"
RULE_CHARGE_OFF_INCONSISTENT = "METRO2-CO-INCONSISTENT"
RULE_MISSING_OPEN_DATE = "FORMAT-MISSING-OPEN-DATE"

MISSING_DATA_BASE_CONFIDENCE = 50

_VIOLATION_NAMESPACE = uuid5(NAMESPACE_URL, "sovereign:violations")


def violation_id(entity_id: str, rule_id: str) -> str:
    """
    Stable id for a (tradeline, rule) finding.

    Re-scans build new Violation instances but an unchanged finding keeps
    its id, which keeps plan fingerprints stable across cycles.
    """
    return str(uuid5(_VIOLATION_NAMESPACE, f"{entity_id}:{rule_id}"))


def staleness_penalty(tradeline: Tradeline, now: Optional[datetime] = None) -> int:
    """-30 past 120 days since reporting, -15 past 90 days, else 0."""
    elapsed = days_since(tradeline.date_reported.value, now)
    if elapsed is None:
        return 0
    if elapsed > 120:
        return -30
    if elapsed > 90:
        return -15
    return 0


def finding_confidence(first: NormalizedField, second: NormalizedField, penalty: int) -> int:
    """Average of the two contributing fields plus the staleness penalty, clamped."""
    return clamp_confidence(round((first.confidence + second.confidence) / 2) + penalty)


def _amount(field: NormalizedField) -> Optional[float]:
    if field.value is None or field.value == CONFLICT:
        return None
    try:
        return float(field.value)
    except (TypeError, ValueError):
        return None


def _text(field: NormalizedField) -> str:
    if field.value is None or field.value == CONFLICT:
        return ""
    return str(field.value).strip()


def _build(
    tradeline: Tradeline,
    rule_id: str,
    severity: Severity,
    description: str,
    statute: str,
    remedy: str,
    confidence: int,
) -> Violation:
    return Violation(
        id=violation_id(tradeline.id, rule_id),
        rule_id=rule_id,
        severity=severity,
        description=description,
        statute=statute,
        remedy=remedy,
        confidence=clamp_confidence(confidence),
        related_entity_id=tradeline.id,
    )


class TradelineRules:
    """
    Rules that check one tradeline's fields for internal contradictions.
    """

    @staticmethod
    def check_balance_past_due(tradeline: Tradeline, penalty: int) -> Optional[Violation]:
        """$0 balance with a positive past-due amount is a mathematical impossibility."""
        balance = _amount(tradeline.balance)
        past_due = _amount(tradeline.past_due_amount)
        if balance is None or past_due is None:
            return None
        if balance != 0 or past_due <= 0:
            return None

        return _build(
            tradeline,
            RULE_BALANCE_PAST_DUE,
            Severity.HIGH,
            f"Tradeline reports $0 balance but has a past due amount of ${past_due:,.2f}.",
            "FCRA § 623(a)",
            "Delete past due amount or correct balance.",
            finding_confidence(tradeline.balance, tradeline.past_due_amount, penalty),
        )

    @staticmethod
    def check_closed_derogatory(tradeline: Tradeline, penalty: int) -> Optional[Violation]:
        """Closed account still carrying an active 30/60/90-day late status."""
        if not _text(tradeline.date_closed):
            return None
        if _text(tradeline.status_code) not in DEROGATORY_LATE_CODES:
            return None

        return _build(
            tradeline,
            RULE_CLOSED_DEROGATORY,
            Severity.MEDIUM,
            "Account reports derogatory status on a closed account.",
            "FCRA § 623",
            "Update status to reflect accurate terminal state.",
            finding_confidence(tradeline.date_closed, tradeline.status_code, penalty),
        )

    @staticmethod
    def check_charge_off_inconsistent(tradeline: Tradeline, penalty: int) -> Optional[Violation]:
        """Charge-off status code alongside a "Current"/"OK" free-text status."""
        if _text(tradeline.status_code) != METRO2_CHARGE_OFF:
            return None
        status = _text(tradeline.status).lower()
        if "current" not in status and status != "ok":
            return None

        return _build(
            tradeline,
            RULE_CHARGE_OFF_INCONSISTENT,
            Severity.HIGH,
            'Account reported as Charge-Off but reflects a "Current" or "OK" status.',
            "FCRA § 623(a)",
            "Correct status to reflect actual account state.",
            finding_confidence(tradeline.status_code, tradeline.status, penalty),
        )

    @staticmethod
    def check_missing_open_date(tradeline: Tradeline, penalty: int) -> Optional[Violation]:
        """Otherwise-populated record without an open date."""
        if _text(tradeline.date_opened):
            return None
        if not _text(tradeline.creditor) or not _text(tradeline.account_number):
            return None

        # Lower base: the finding rests on absent data, not a contradiction
        return _build(
            tradeline,
            RULE_MISSING_OPEN_DATE,
            Severity.LOW,
            "Tradeline is missing an Open Date.",
            "Metro 2 Standard",
            "Provide accurate date opened.",
            MISSING_DATA_BASE_CONFIDENCE + penalty,
        )


Rule = Callable[[Tradeline, int], Optional[Violation]]

TRADELINE_RULES: Tuple[Rule, ...] = (
    TradelineRules.check_balance_past_due,
    TradelineRules.check_closed_derogatory,
    TradelineRules.check_charge_off_inconsistent,
    TradelineRules.check_missing_open_date,
)


def evaluate_tradeline(tradeline: Tradeline, now: Optional[datetime] = None) -> List[Violation]:
    """Run every tradeline rule and return the findings in rule order."""
    penalty = staleness_penalty(tradeline, now)
    violations: List[Violation] = []
    for rule in TRADELINE_RULES:
        finding = rule(tradeline, penalty)
        if finding is not None:
            violations.append(finding)
    return violations
