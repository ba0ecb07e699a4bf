"""Orchestration Engine: executes strategies as plan steps and reports outcomes."""
from .engine import (
    ApprovalGateway,
    ExecutionPlan,
    LoggingApprovalGateway,
    OrchestrationEngine,
    PlanStatus,
    PlanStep,
    StepStatus,
    classify_outcome,
)
from .skills import (
    STRATEGY_SKILLS,
    ComplaintSubmitter,
    ManualComplaintSubmitter,
    Skill,
    SkillContext,
    SkillId,
    SkillRegistry,
    SkillResult,
    build_default_registry,
)

__all__ = [
    "ApprovalGateway",
    "ExecutionPlan",
    "LoggingApprovalGateway",
    "OrchestrationEngine",
    "PlanStatus",
    "PlanStep",
    "StepStatus",
    "classify_outcome",
    "STRATEGY_SKILLS",
    "ComplaintSubmitter",
    "ManualComplaintSubmitter",
    "Skill",
    "SkillContext",
    "SkillId",
    "SkillRegistry",
    "SkillResult",
    "build_default_registry",
]
