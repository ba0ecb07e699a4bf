"""Intelligence Loop: per-subject closed-loop lifecycle controller."""
from .fingerprint import InMemoryPlanFingerprintStore, PlanFingerprintStore, plan_fingerprint
from .loop import IntelligenceLoop, LifecycleResult, LifecycleStatus
from .worker_pool import SubjectWorkerPool

__all__ = [
    "InMemoryPlanFingerprintStore",
    "PlanFingerprintStore",
    "plan_fingerprint",
    "IntelligenceLoop",
    "LifecycleResult",
    "LifecycleStatus",
    "SubjectWorkerPool",
]
