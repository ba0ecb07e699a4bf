"""
Orchestration Engine

Executes enforcement strategies as discrete plan steps and feeds every
outcome back into the Strategy Engine's learning state.

Step lifecycle:
    QUEUED -> EXECUTING -> COMPLETED | FAILED
    QUEUED -> PENDING_APPROVAL -> APPROVED -> EXECUTING -> ...   (HIGH risk skills)

Outcome classification:
- success                                       -> SUCCESS
- failure mentioning "duplicate" or "verified"  -> LEGAL_REJECTION
- any other failure, or a raised exception      -> SYSTEM_ERROR
"""
from __future__ import annotations
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from uuid import uuid4

from ...models.intelligence import ExecutionOutcome, RiskLevel, UserCreditProfile
from ..strategy import StrategyEngine
from .skills import STRATEGY_SKILLS, SkillContext, SkillId, SkillRegistry, SkillResult

logger = logging.getLogger(__name__)


LEGAL_REJECTION_MARKERS = ("duplicate", "verified")


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class StepStatus(str, Enum):
    QUEUED = "QUEUED"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    EXECUTING = "EXECUTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETED, StepStatus.FAILED)


class PlanStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass
class PlanStep:
    skill_id: SkillId
    context: SkillContext
    id: str = field(default_factory=lambda: str(uuid4()))
    status: StepStatus = StepStatus.QUEUED
    result: Optional[SkillResult] = None
    scheduled_at: str = field(default_factory=_utcnow_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "skill_id": self.skill_id.value,
            "status": self.status.value,
            "context": self.context.to_dict(),
            "result": self.result.to_dict() if self.result else None,
            "scheduled_at": self.scheduled_at,
        }


@dataclass
class ExecutionPlan:
    case_id: str
    steps: List[PlanStep] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid4()))
    status: PlanStatus = PlanStatus.PENDING
    ledger: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=_utcnow_iso)
    completion_notified: bool = False

    def get_step(self, step_id: str) -> Optional[PlanStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    @property
    def affected_entity_ids(self) -> List[str]:
        seen: List[str] = []
        for step in self.steps:
            entity_id = step.context.target_entity_id
            if entity_id and entity_id not in seen:
                seen.append(entity_id)
        return seen

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "case_id": self.case_id,
            "status": self.status.value,
            "steps": [s.to_dict() for s in self.steps],
            "ledger": list(self.ledger),
            "created_at": self.created_at,
        }


class ApprovalGateway(ABC):
    """Human-in-the-loop approval channel (email, dashboard, ...)."""

    @abstractmethod
    async def request_approval(self, description: str, target: str, risk_level: RiskLevel) -> None:
        """Ask an operator to approve a high-risk action."""


class LoggingApprovalGateway(ApprovalGateway):
    """Records approval requests in the log only."""

    async def request_approval(self, description: str, target: str, risk_level: RiskLevel) -> None:
        logger.warning(f"[Orchestration] Approval requested ({risk_level.value}): {description} -> {target}")


PlanCompleteCallback = Callable[[str, List[str]], Union[Awaitable[Any], Any]]


def classify_outcome(result: SkillResult) -> ExecutionOutcome:
    """Map a skill result to the outcome recorded in execution history."""
    if result.outcome is not None:
        return result.outcome
    if result.success:
        return ExecutionOutcome.SUCCESS
    error = (result.error or "").lower()
    if any(marker in error for marker in LEGAL_REJECTION_MARKERS):
        return ExecutionOutcome.LEGAL_REJECTION
    return ExecutionOutcome.SYSTEM_ERROR


class OrchestrationEngine:
    """
    Seeds plans from a profile's active strategies and executes their steps.

    Args:
        registry: skills available for execution
        strategy_engine: receives every step outcome via record_outcome()
        approval_gateway: HITL channel for HIGH risk skills
        on_plan_complete: called once per plan with (case_id, affected_entity_ids)
            when every step is terminal; may be sync or async
    """

    def __init__(
        self,
        registry: SkillRegistry,
        strategy_engine: StrategyEngine,
        approval_gateway: Optional[ApprovalGateway] = None,
        on_plan_complete: Optional[PlanCompleteCallback] = None,
    ):
        self.registry = registry
        self.strategy_engine = strategy_engine
        self.approval_gateway = approval_gateway or LoggingApprovalGateway()
        self.on_plan_complete = on_plan_complete

    # =========================================================================
    # PLAN SEEDING
    # =========================================================================

    def generate_plan_from_strategies(self, profile: UserCreditProfile) -> ExecutionPlan:
        """One QUEUED step per active strategy whose skill is registered."""
        logger.info(f"[Orchestration] Seeding plan from strategies for user {profile.user_id}")
        violations_by_id = {v.id: v for v in profile.active_violations}

        steps: List[PlanStep] = []
        for strategy in profile.active_strategies:
            skill_id = STRATEGY_SKILLS.get(strategy.type)
            if skill_id is None or not self.registry.has(skill_id):
                logger.warning(
                    f"[Orchestration] No registered skill for strategy type {strategy.type.value}; skipping"
                )
                continue

            rule_ids = strategy.declarative_metadata.get("rule_ids")
            if not rule_ids:
                rule_ids = [
                    violations_by_id[vid].rule_id
                    for vid in strategy.violation_ids
                    if vid in violations_by_id
                ]

            steps.append(PlanStep(
                skill_id=skill_id,
                context=SkillContext(
                    case_id=profile.user_id,
                    target_entity_id=strategy.target_entity_id,
                    strategy_type=strategy.type,
                    violation_ids=list(strategy.violation_ids),
                    rule_ids=list(rule_ids),
                    removal_probability=strategy.removal_probability,
                    metadata=dict(strategy.declarative_metadata),
                ),
            ))

        plan = ExecutionPlan(case_id=profile.user_id, steps=steps)
        logger.info(f"[Orchestration] Plan {plan.id} seeded with {len(steps)} steps")
        return plan

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute_step(self, plan: ExecutionPlan, step_id: str) -> ExecutionPlan:
        step = plan.get_step(step_id)
        if step is None:
            raise ValueError(f"Step {step_id} not found in plan {plan.id}")

        skill = self.registry.get(step.skill_id)
        if skill is None:
            raise ValueError(f"Skill {step.skill_id} not registered")

        if step.status.is_terminal or step.status is StepStatus.EXECUTING:
            logger.warning(f"[Orchestration] Step {step.id} already {step.status.value}; ignoring")
            return plan

        if skill.requires_approval and step.status is not StepStatus.APPROVED:
            if step.status is StepStatus.QUEUED:
                logger.info(f"[Orchestration] Skill {skill.id.value} requires approval. Sending request...")
                await self.approval_gateway.request_approval(
                    description=f"{skill.name}: Addressing {', '.join(step.context.rule_ids)}",
                    target=f"Case {step.context.case_id}",
                    risk_level=skill.risk_profile,
                )
                step.status = StepStatus.PENDING_APPROVAL
            return plan

        step.status = StepStatus.EXECUTING
        plan.status = PlanStatus.IN_PROGRESS

        try:
            result = await skill.execute(step.context)
        except Exception as e:
            logger.exception(f"[Orchestration] Skill {skill.id.value} raised for step {step.id}")
            result = SkillResult(
                success=False,
                audit_trail_id="FAILED_INTERNAL",
                error=str(e),
                outcome=ExecutionOutcome.SYSTEM_ERROR,
            )

        result.outcome = classify_outcome(result)
        step.result = result
        step.status = StepStatus.COMPLETED if result.success else StepStatus.FAILED

        self._log_drift(step, result)
        self._record_feedback(step, result.outcome)

        if result.success:
            plan.ledger.append(result.audit_trail_id)

        await self._finalize(plan)
        return plan

    def approve_step(self, plan: ExecutionPlan, step_id: str) -> PlanStep:
        step = plan.get_step(step_id)
        if step is None:
            raise ValueError(f"Step {step_id} not found in plan {plan.id}")
        if step.status is not StepStatus.PENDING_APPROVAL:
            raise ValueError(f"Step {step_id} is {step.status.value}, not awaiting approval")
        step.status = StepStatus.APPROVED
        logger.info(f"[Orchestration] Step {step.id} approved")
        return step

    async def execute_plan(self, plan: ExecutionPlan) -> Dict[str, Optional[ExecutionOutcome]]:
        """
        Run every runnable step in order.

        HIGH risk steps that have not been approved are moved to
        PENDING_APPROVAL and reported with outcome None.
        """
        outcomes: Dict[str, Optional[ExecutionOutcome]] = {}
        for step in list(plan.steps):
            if step.status.is_terminal:
                outcomes[step.id] = step.result.outcome if step.result else None
                continue
            await self.execute_step(plan, step.id)
            outcomes[step.id] = step.result.outcome if step.result else None
        return outcomes

    # =========================================================================
    # FEEDBACK
    # =========================================================================

    def _log_drift(self, step: PlanStep, result: SkillResult) -> None:
        predicted = step.context.removal_probability
        actual = 100 if result.success else 0
        if result.outcome.is_substantive:
            logger.info(
                f"[Drift-Detection] Skill {step.skill_id.value} for user {step.context.case_id}: "
                f"Predicted {predicted}%, Actual {actual}%, Delta {actual - predicted}%"
            )
        else:
            logger.info(f"[Drift-Detection] SYSTEM ERROR for skill {step.skill_id.value}. Skipping drift penalty.")

    def _record_feedback(self, step: PlanStep, outcome: ExecutionOutcome) -> None:
        entity_id = step.context.target_entity_id
        if not entity_id:
            return
        for rule_id in step.context.rule_ids:
            self.strategy_engine.record_outcome(
                entity_id,
                rule_id,
                step.context.strategy_type,
                outcome,
            )

    async def _finalize(self, plan: ExecutionPlan) -> None:
        if not plan.steps or not all(s.status.is_terminal for s in plan.steps):
            return

        all_completed = all(s.status is StepStatus.COMPLETED for s in plan.steps)
        plan.status = PlanStatus.COMPLETED if all_completed else PlanStatus.FAILED

        if plan.completion_notified:
            return
        plan.completion_notified = True
        logger.info(f"[Orchestration] Plan {plan.id} finished with status {plan.status.value}")

        if self.on_plan_complete is not None:
            ret = self.on_plan_complete(plan.case_id, plan.affected_entity_ids)
            if inspect.isawaitable(ret):
                await ret
