"""
Orchestration Skills

A skill is one executable enforcement action. Skills are addressed by a
closed SkillId enumeration and looked up through an explicit registry, so
every strategy type maps to exactly one known skill.
"""
from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import uuid4

from ...models.intelligence import ExecutionOutcome, RiskLevel, StrategyType

logger = logging.getLogger(__name__)


class SkillId(str, Enum):
    GENERATE_DISPUTE_LETTER_V1 = "GENERATE_DISPUTE_LETTER_V1"
    SUBMIT_CFPB_COMPLAINT_V1 = "SUBMIT_CFPB_COMPLAINT_V1"
    FURNISHER_ESCALATION_V1 = "FURNISHER_ESCALATION_V1"


# Strategy type -> skill that carries it out
STRATEGY_SKILLS: Dict[StrategyType, SkillId] = {
    StrategyType.DISPUTE: SkillId.GENERATE_DISPUTE_LETTER_V1,
    StrategyType.CFPB_COMPLAINT: SkillId.SUBMIT_CFPB_COMPLAINT_V1,
    StrategyType.ESCALATION: SkillId.FURNISHER_ESCALATION_V1,
}


@dataclass
class SkillContext:
    """Everything a skill needs to act on one strategy."""
    case_id: str
    target_entity_id: str
    strategy_type: StrategyType
    violation_ids: List[str] = field(default_factory=list)
    rule_ids: List[str] = field(default_factory=list)
    removal_probability: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "case_id": self.case_id,
            "target_entity_id": self.target_entity_id,
            "strategy_type": self.strategy_type.value,
            "violation_ids": list(self.violation_ids),
            "rule_ids": list(self.rule_ids),
            "removal_probability": self.removal_probability,
            "metadata": dict(self.metadata),
        }


@dataclass
class SkillResult:
    success: bool
    audit_trail_id: str
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    # Set by a skill that knows better than the generic classifier
    outcome: Optional[ExecutionOutcome] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "audit_trail_id": self.audit_trail_id,
            "output": self.output,
            "error": self.error,
            "outcome": self.outcome.value if self.outcome else None,
        }


SkillHandler = Callable[[SkillContext], Awaitable[SkillResult]]


@dataclass
class Skill:
    id: SkillId
    name: str
    description: str
    risk_profile: RiskLevel
    legal_citations: List[str]
    execute: SkillHandler

    @property
    def requires_approval(self) -> bool:
        return self.risk_profile is RiskLevel.HIGH


class SkillRegistry:
    """Explicit SkillId -> Skill table."""

    def __init__(self):
        self._skills: Dict[SkillId, Skill] = {}

    def register(self, skill: Skill) -> None:
        self._skills[SkillId(skill.id)] = skill
        logger.info(f"[Orchestration] Registered Skill: {skill.id.value}")

    def get(self, skill_id: SkillId) -> Optional[Skill]:
        try:
            return self._skills.get(SkillId(skill_id))
        except ValueError:
            return None

    def has(self, skill_id: SkillId) -> bool:
        return self.get(skill_id) is not None

    def skill_for(self, strategy_type: StrategyType) -> Optional[Skill]:
        skill_id = STRATEGY_SKILLS.get(strategy_type)
        if skill_id is None:
            return None
        return self.get(skill_id)

    def __len__(self) -> int:
        return len(self._skills)


# =============================================================================
# COLLABORATORS
# =============================================================================

class ComplaintSubmitter(ABC):
    """Files a regulator complaint. Portal automation lives behind this."""

    @abstractmethod
    async def submit(self, context: SkillContext) -> Dict[str, Any]:
        """Submit and return a receipt. Raise on failure."""


class ManualComplaintSubmitter(ComplaintSubmitter):
    """Prepares a complaint packet for an operator to file by hand."""

    async def submit(self, context: SkillContext) -> Dict[str, Any]:
        return {
            "complaint_id": f"CFPB-PKT-{uuid4().hex[:8].upper()}",
            "status": "PREPARED_FOR_MANUAL_FILING",
            "target_entity_id": context.target_entity_id,
            "rule_ids": list(context.rule_ids),
        }


# =============================================================================
# BUILT-IN SKILLS
# =============================================================================

def _audit_id(prefix: str) -> str:
    return f"AUDIT-{prefix}-{uuid4().hex[:8]}"


def _dispute_letter_skill() -> Skill:
    citations = ["15 U.S.C. § 1681i", "FCRA § 611"]

    async def execute(context: SkillContext) -> SkillResult:
        logger.info(
            f"[Skill] {SkillId.GENERATE_DISPUTE_LETTER_V1.value} executing for "
            f"{context.target_entity_id} ({', '.join(context.rule_ids)})"
        )
        letter_id = f"LTR-{uuid4().hex[:8]}"
        return SkillResult(
            success=True,
            audit_trail_id=_audit_id("LTR"),
            output={
                "letter_id": letter_id,
                "type": "Forensic Dispute",
                "statutes": citations,
                "preview_url": f"/letters/preview/{letter_id}",
            },
        )

    return Skill(
        id=SkillId.GENERATE_DISPUTE_LETTER_V1,
        name="Generate Dispute Letter",
        description="Deterministic drafting of a formal bureau dispute letter.",
        risk_profile=RiskLevel.LOW,
        legal_citations=citations,
        execute=execute,
    )


def _escalation_skill() -> Skill:
    citations = ["15 U.S.C. § 1681s-2(b)", "FCRA § 623"]

    async def execute(context: SkillContext) -> SkillResult:
        logger.info(
            f"[Skill] {SkillId.FURNISHER_ESCALATION_V1.value} executing for "
            f"{context.target_entity_id} ({len(context.violation_ids)} violations)"
        )
        notice_id = f"ESC-{uuid4().hex[:8]}"
        return SkillResult(
            success=True,
            audit_trail_id=_audit_id("ESC"),
            output={
                "notice_id": notice_id,
                "type": "Direct Furnisher Escalation",
                "statutes": citations,
                "error_count": context.metadata.get("error_count", len(context.violation_ids)),
            },
        )

    return Skill(
        id=SkillId.FURNISHER_ESCALATION_V1,
        name="Escalate To Furnisher",
        description="Direct notice to the furnisher citing systemic reporting errors.",
        risk_profile=RiskLevel.MEDIUM,
        legal_citations=citations,
        execute=execute,
    )


def _cfpb_complaint_skill(submitter: ComplaintSubmitter) -> Skill:
    async def execute(context: SkillContext) -> SkillResult:
        audit_trail_id = _audit_id("CFPB")
        logger.info(f"[Skill] {SkillId.SUBMIT_CFPB_COMPLAINT_V1.value} executing for case {context.case_id}")
        try:
            receipt = await submitter.submit(context)
        except Exception as e:
            logger.error(f"[Skill] CFPB submission failed for case {context.case_id}: {e}")
            return SkillResult(success=False, audit_trail_id=audit_trail_id, error=str(e))
        return SkillResult(success=True, audit_trail_id=audit_trail_id, output=receipt)

    return Skill(
        id=SkillId.SUBMIT_CFPB_COMPLAINT_V1,
        name="Submit CFPB Complaint",
        description="Submission of an official complaint to the CFPB portal.",
        risk_profile=RiskLevel.HIGH,
        legal_citations=["12 C.F.R. Part 1006 (Reg F)", "FDCPA"],
        execute=execute,
    )


def build_default_registry(complaint_submitter: Optional[ComplaintSubmitter] = None) -> SkillRegistry:
    """Registry with one skill for every entry in STRATEGY_SKILLS."""
    registry = SkillRegistry()
    registry.register(_dispute_letter_skill())
    registry.register(_cfpb_complaint_skill(complaint_submitter or ManualComplaintSubmitter()))
    registry.register(_escalation_skill())
    return registry
