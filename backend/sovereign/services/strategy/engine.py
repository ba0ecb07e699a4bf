"""
Strategy Engine

Turns validated violations into one prioritized, risk-tiered enforcement
strategy per affected entity, informed by a self-adjusting model of past
outcomes.

Pipeline per generate_strategies() call:
1. Confidence gate   - drop violations below the minimum confidence
2. Group             - by target entity
3. Conflict freeze   - skip entities whose balance is a high-trust CONFLICT
4. Cooldown filter   - drop (entity, rule, action) combos acted on recently
5. Adjustment        - drift penalty from legal rejections, slow recovery credit
6. Tiering           - CFPB_COMPLAINT > ESCALATION > DISPUTE, first match wins

Only substantive outcomes (SUCCESS, LEGAL_REJECTION) influence cooldown and
adjustment. SYSTEM_ERROR is recorded but never counts.
"""
from __future__ import annotations
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from ...config import COOLDOWN_DAYS, CONFLICT_FREEZE_CONFIDENCE, MIN_CONFIDENCE_THRESHOLD
from ...models.intelligence import (
    EnforcementStrategy,
    ExecutionHistoryEntry,
    ExecutionOutcome,
    RiskLevel,
    Severity,
    StrategyType,
    UserCreditProfile,
    Violation,
)
from .history import ExecutionHistoryStore, InMemoryExecutionHistory

logger = logging.getLogger(__name__)


DRIFT_PER_REJECTION = -15
RECOVERY_PER_PERIOD = 5
RECOVERY_PERIOD_DAYS = 180
PROBABILITY_FLOOR = 10
ESCALATION_MIN_VIOLATIONS = 3

# Action types a violation may be selected for. A recent substantive outcome
# for any of them puts the (entity, rule) pair in cooldown.
COOLDOWN_ACTION_TYPES = (
    StrategyType.DISPUTE,
    StrategyType.CFPB_COMPLAINT,
    StrategyType.ESCALATION,
)


@dataclass(frozen=True)
class StrategyTier:
    type: StrategyType
    base_probability: int
    litigation_risk: RiskLevel
    recommended_action: str
    reason: str


TIERS: Dict[StrategyType, StrategyTier] = {
    StrategyType.CFPB_COMPLAINT: StrategyTier(
        type=StrategyType.CFPB_COMPLAINT,
        base_probability=85,
        litigation_risk=RiskLevel.HIGH,
        recommended_action="Official CFPB Portal Submission",
        reason="Critical accuracy failure detected",
    ),
    StrategyType.ESCALATION: StrategyTier(
        type=StrategyType.ESCALATION,
        base_probability=70,
        litigation_risk=RiskLevel.MEDIUM,
        recommended_action="Direct Furnisher Escalation",
        reason="Multiple systemic reporting errors suggest process failure.",
    ),
    StrategyType.DISPUTE: StrategyTier(
        type=StrategyType.DISPUTE,
        base_probability=55,
        litigation_risk=RiskLevel.LOW,
        recommended_action="Standard Bureau Dispute Letter",
        reason="Reporting inconsistency requires verification.",
    ),
}


@dataclass(frozen=True)
class Adjustment:
    """Long-horizon probability adjustment for one entity."""
    drift: int
    recovery: int

    @property
    def total(self) -> int:
        # Recovery may cancel drift but never produces a net bonus
        return min(0, self.drift + self.recovery)


def _action_key(action_type: Union[str, Enum]) -> str:
    return action_type.value if isinstance(action_type, Enum) else str(action_type)


class StrategyEngine:
    """
    Derives enforcement strategies and owns the outcome-learning state.

    Args:
        history: injected execution history store (in-memory by default)
        min_confidence: confidence gate for violations
        cooldown_days: suppression window after a substantive outcome
        conflict_freeze_confidence: balance CONFLICT confidence that freezes an entity
        clock: callable returning the current aware datetime
    """

    def __init__(
        self,
        history: Optional[ExecutionHistoryStore] = None,
        min_confidence: int = MIN_CONFIDENCE_THRESHOLD,
        cooldown_days: int = COOLDOWN_DAYS,
        conflict_freeze_confidence: int = CONFLICT_FREEZE_CONFIDENCE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.history = history if history is not None else InMemoryExecutionHistory()
        self.min_confidence = min_confidence
        self.cooldown_days = cooldown_days
        self.conflict_freeze_confidence = conflict_freeze_confidence
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self._clock()

    # =========================================================================
    # LEARNING STATE
    # =========================================================================

    def record_outcome(
        self,
        entity_id: str,
        rule_id: str,
        action_type: Union[str, StrategyType],
        outcome: Union[str, ExecutionOutcome],
        recorded_at: Optional[datetime] = None,
    ) -> ExecutionHistoryEntry:
        """Append an execution outcome for an entity."""
        entry = ExecutionHistoryEntry(
            rule_id=rule_id,
            type=_action_key(action_type),
            outcome=ExecutionOutcome(outcome),
            date=recorded_at or self.now(),
        )
        self.history.append(entity_id, entry)
        logger.info(
            f"[Strategy-Learning] Recorded {entry.outcome.value} for {entry.type} "
            f"(Rule: {rule_id}) on {entity_id}"
        )
        return entry

    def decay_history(self, entity_id: str) -> int:
        """
        Halve the number of retained LEGAL_REJECTION entries for an entity.

        Rejections still inside the cooldown window are not eligible; of the
        older ones the earliest floor(n/2) are kept. Every other entry stays,
        in recording order. Returns how many rejections remain.
        """
        now = self.now()
        window = timedelta(days=self.cooldown_days)
        entries = self.history.entries(entity_id)
        rejections = [e for e in entries if e.outcome is ExecutionOutcome.LEGAL_REJECTION]
        settled = [e for e in rejections if now - e.date > window]
        if not settled:
            return len(rejections)

        dropped = set(id(e) for e in settled[len(settled) // 2:])
        retained = [e for e in entries if id(e) not in dropped]
        self.history.replace(entity_id, retained)

        remaining = len(rejections) - len(dropped)
        logger.info(
            f"[Strategy-Guard] Penalty decay for {entity_id}: "
            f"{len(rejections)} -> {remaining} legal rejections retained"
        )
        return remaining

    def is_in_cooldown(
        self,
        entity_id: str,
        rule_id: str,
        action_type: Union[str, StrategyType],
        now: Optional[datetime] = None,
    ) -> bool:
        """True if a substantive outcome for (entity, rule, action) falls inside the window."""
        now = now or self.now()
        window = timedelta(days=self.cooldown_days)
        key = _action_key(action_type)
        for entry in self.history.entries(entity_id):
            if entry.rule_id != rule_id or entry.type != key:
                continue
            if not entry.outcome.is_substantive:
                continue
            if now - entry.date < window:
                return True
        return False

    def compute_adjustment(self, entity_id: str, now: Optional[datetime] = None) -> Adjustment:
        """Drift penalty and recovery credit from the entity's legal rejections."""
        now = now or self.now()
        rejections = [
            e for e in self.history.entries(entity_id)
            if e.outcome is ExecutionOutcome.LEGAL_REJECTION
        ]
        drift = len(rejections) * DRIFT_PER_REJECTION

        recovery = 0
        if rejections:
            last_failure = max(e.date for e in rejections)
            days_since_failure = max(0, (now - last_failure).days)
            recovery = (days_since_failure // RECOVERY_PERIOD_DAYS) * RECOVERY_PER_PERIOD

        return Adjustment(drift=drift, recovery=recovery)

    # =========================================================================
    # STRATEGY GENERATION
    # =========================================================================

    def generate_strategies(self, profile: UserCreditProfile) -> List[EnforcementStrategy]:
        """Generate strategies for every entity with actionable violations."""
        now = self.now()

        valid = [v for v in profile.active_violations if v.confidence >= self.min_confidence]
        dropped = len(profile.active_violations) - len(valid)
        if dropped:
            logger.info(f"[Strategy-Guard] Filtered {dropped} low-confidence violations.")

        grouped: "OrderedDict[str, List[Violation]]" = OrderedDict()
        for violation in valid:
            grouped.setdefault(violation.related_entity_id, []).append(violation)

        strategies: List[EnforcementStrategy] = []
        for entity_id, violations in grouped.items():
            if self._is_conflict_frozen(profile, entity_id):
                logger.warning(
                    f"[Strategy-Guard] CONFLICT FREEZE for entity {entity_id}. "
                    f"High-confidence source disagreement on balance."
                )
                continue

            strategy = self._derive_strategy(entity_id, violations, now)
            if strategy is not None:
                strategies.append(strategy)

        profile.active_strategies = strategies
        logger.info(f"Generated {len(strategies)} strategies for {profile.user_id}")
        return strategies

    def _is_conflict_frozen(self, profile: UserCreditProfile, entity_id: str) -> bool:
        tradeline = profile.get_tradeline(entity_id)
        if tradeline is None:
            return False
        balance = tradeline.balance
        return balance.is_conflict and balance.confidence >= self.conflict_freeze_confidence

    def _derive_strategy(
        self,
        entity_id: str,
        violations: List[Violation],
        now: datetime,
    ) -> Optional[EnforcementStrategy]:
        actionable = [
            v for v in violations
            if not any(self.is_in_cooldown(entity_id, v.rule_id, t, now) for t in COOLDOWN_ACTION_TYPES)
        ]
        if not actionable:
            logger.info(f"[Strategy-Guard] All violations for entity {entity_id} are in cooldown.")
            return None

        high_severity = [v for v in actionable if v.severity is Severity.HIGH]
        adjustment = self.compute_adjustment(entity_id, now)

        if high_severity:
            tier = TIERS[StrategyType.CFPB_COMPLAINT]
        elif len(actionable) >= ESCALATION_MIN_VIOLATIONS:
            tier = TIERS[StrategyType.ESCALATION]
        else:
            tier = TIERS[StrategyType.DISPUTE]

        metadata = {
            "reason": tier.reason,
            "rule_ids": [v.rule_id for v in actionable],
            "drift_applied": adjustment.drift,
            "recovery_applied": adjustment.recovery,
            "total_adjustment": adjustment.total,
        }
        if tier.type is StrategyType.CFPB_COMPLAINT:
            metadata["reason"] = f"{tier.reason} ({high_severity[0].rule_id})."
            metadata["statute"] = high_severity[0].statute
        elif tier.type is StrategyType.ESCALATION:
            metadata["error_count"] = len(actionable)

        return EnforcementStrategy(
            type=tier.type,
            target_entity_id=entity_id,
            violation_ids=[v.id for v in actionable],
            removal_probability=max(PROBABILITY_FLOOR, tier.base_probability + adjustment.total),
            litigation_risk=tier.litigation_risk,
            recommended_action=tier.recommended_action,
            declarative_metadata=metadata,
        )
