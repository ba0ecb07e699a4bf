"""
Intelligence Loop

Closed-loop lifecycle controller for one subject at a time:

    profile update / re-scan / plan completion
        -> Violation Engine (targeted or full scan)
        -> Strategy Engine
        -> persist profile
        -> plan fingerprint check -> seed orchestration plan
        -> COMPLETE event

Per subject, lifecycles run strictly in arrival order on a SubjectWorkerPool.
Different subjects run concurrently. A failing lifecycle is logged, reported
as an ERROR event and never blocks the subject's queue.

Any read-modify-write of the stored profile happens inside the queued
lifecycle (apply_update, rescan), never on a snapshot read beforehand.
"""
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from ...config import LOOP_MAX_WORKERS
from ...models.intelligence import UserCreditProfile
from ..events import EventBus, LifecyclePhase
from ..orchestration import ExecutionPlan, OrchestrationEngine, build_default_registry
from ..store import PersistenceError, ProfileStore
from ..strategy import StrategyEngine
from ..violations import ViolationEngine
from .fingerprint import InMemoryPlanFingerprintStore, PlanFingerprintStore, plan_fingerprint
from .worker_pool import SubjectWorkerPool

logger = logging.getLogger(__name__)

# stored profile (None when absent) -> profile to process (None to skip)
ProfileUpdate = Callable[[Optional[UserCreditProfile]], Optional[UserCreditProfile]]


class LifecycleStatus(str, Enum):
    SEEDED = "SEEDED"          # profile persisted and a new plan seeded
    UNCHANGED = "UNCHANGED"    # profile persisted, strategy set identical to the last seeded one
    NOT_FOUND = "NOT_FOUND"    # no stored profile to re-scan
    ERROR = "ERROR"


@dataclass
class LifecycleResult:
    user_id: str
    status: LifecycleStatus
    fingerprint: Optional[str] = None
    violation_count: int = 0
    strategy_count: int = 0
    plan: Optional[ExecutionPlan] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "status": self.status.value,
            "fingerprint": self.fingerprint,
            "violation_count": self.violation_count,
            "strategy_count": self.strategy_count,
            "plan": self.plan.to_dict() if self.plan else None,
            "error": self.error,
        }


class IntelligenceLoop:
    """
    Coordinates the violation scan -> strategy -> orchestration cycle.

    Collaborators are injected; anything omitted gets an in-process default.
    When no orchestration engine is given, one is built whose plan
    completion callback re-enters this loop.

    Cycles that bring new profile data (process_profile_update, apply_update)
    decay each in-scope entity's rejection history first. Re-scans
    (rescan, handle_plan_completion) judge the history as recorded.
    """

    def __init__(
        self,
        store: ProfileStore,
        violation_engine: Optional[ViolationEngine] = None,
        strategy_engine: Optional[StrategyEngine] = None,
        orchestration: Optional[OrchestrationEngine] = None,
        events: Optional[EventBus] = None,
        fingerprints: Optional[PlanFingerprintStore] = None,
        max_workers: int = LOOP_MAX_WORKERS,
    ):
        self.store = store
        self.violation_engine = violation_engine or ViolationEngine()
        self.strategy_engine = strategy_engine or StrategyEngine()
        self.events = events or EventBus()
        self.fingerprints = fingerprints or InMemoryPlanFingerprintStore()
        self.pool = SubjectWorkerPool(max_workers=max_workers)

        if orchestration is None:
            orchestration = OrchestrationEngine(
                registry=build_default_registry(),
                strategy_engine=self.strategy_engine,
            )
        if orchestration.on_plan_complete is None:
            orchestration.on_plan_complete = self.handle_plan_completion
        self.orchestration = orchestration

        # Latest seeded plan per subject
        self.plans: Dict[str, ExecutionPlan] = {}

    async def start(self):
        await self.pool.start()
        logger.info("[Intelligence-Loop] Closed-loop lifecycle controller started")

    async def stop(self):
        await self.pool.stop()
        logger.info("[Intelligence-Loop] Closed-loop lifecycle controller stopped")

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    async def process_profile_update(
        self,
        profile: UserCreditProfile,
        target_entity_ids: Optional[Iterable[str]] = None,
    ) -> LifecycleResult:
        """Queue a lifecycle for a complete, freshly built profile and wait for it."""
        future = self.submit(profile.user_id, target_entity_ids, profile=profile, decay=True)
        return await future

    async def apply_update(
        self,
        user_id: str,
        update: ProfileUpdate,
        target_entity_ids: Optional[Iterable[str]] = None,
    ) -> LifecycleResult:
        """
        Load the stored profile inside the subject's queue, pass it through
        `update` and run the lifecycle on the result.
        """
        future = self.submit(user_id, target_entity_ids, update=update, decay=True)
        return await future

    def rescan(
        self,
        user_id: str,
        target_entity_ids: Optional[Iterable[str]] = None,
    ) -> "asyncio.Future[LifecycleResult]":
        """Re-run the lifecycle on the stored profile."""
        return self.submit(user_id, target_entity_ids)

    def handle_plan_completion(
        self,
        user_id: str,
        target_entity_ids: Optional[Iterable[str]] = None,
    ) -> "asyncio.Future[LifecycleResult]":
        """
        Feedback re-entry after an orchestration plan finishes.

        Returns the queued lifecycle's future without awaiting it, so the
        caller may itself be running on a worker.
        """
        targets = list(target_entity_ids) if target_entity_ids is not None else None
        logger.info(
            f"[Intelligence-Loop] Feedback loop triggered for user {user_id}"
            + (f" (Affected: {','.join(targets)})" if targets else "")
        )
        return self.rescan(user_id, targets)

    def submit(
        self,
        user_id: str,
        target_entity_ids: Optional[Iterable[str]] = None,
        profile: Optional[UserCreditProfile] = None,
        update: Optional[ProfileUpdate] = None,
        decay: bool = False,
    ) -> "asyncio.Future[LifecycleResult]":
        if not self.pool.running:
            raise RuntimeError("IntelligenceLoop is not running; call start() first")
        targets = list(target_entity_ids) if target_entity_ids is not None else None
        return self.pool.submit(
            user_id,
            lambda: self._execute_lifecycle(user_id, targets, profile, update, decay),
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def _emit(self, user_id: str, phase: LifecyclePhase, progress: int, message: str, payload=None):
        self.events.emit(user_id, phase, progress, message, payload)

    async def _execute_lifecycle(
        self,
        user_id: str,
        targets: Optional[List[str]],
        profile: Optional[UserCreditProfile],
        update: Optional[ProfileUpdate],
        decay: bool,
    ) -> LifecycleResult:
        try:
            if profile is None:
                profile = await self.store.load(user_id)
                if update is not None:
                    profile = update(profile)
                if profile is None:
                    logger.warning(f"[Intelligence-Loop] No stored profile for user {user_id}; nothing to scan")
                    return LifecycleResult(user_id=user_id, status=LifecycleStatus.NOT_FOUND)

            logger.info(
                f"[Intelligence-Loop] Lifecycle triggered for user {user_id}"
                + (f" (Targeted: {','.join(targets)})" if targets is not None else "")
            )

            # Stage 1: violation detection
            self._emit(user_id, LifecyclePhase.VALIDATING_METRO2, 60, "Scanning tradelines for reporting violations...")
            violations = self.violation_engine.scan_profile(profile, targets)

            # Stage 2: strategy generation
            self._emit(user_id, LifecyclePhase.SCORING, 75, "Deriving enforcement strategies...")
            if decay:
                scope = targets if targets is not None else [t.id for t in profile.tradelines]
                for entity_id in scope:
                    self.strategy_engine.decay_history(entity_id)
            strategies = self.strategy_engine.generate_strategies(profile)

            # Stage 3: persist every cycle before any seeding
            profile.touch()
            await self.store.save(profile)

            # Stage 4: idempotence check
            fingerprint = plan_fingerprint(strategies)
            if self.fingerprints.get(user_id) == fingerprint:
                logger.info(
                    f"[Intelligence-Loop] No drift in strategies for user {user_id}. "
                    f"Skipping orchestration seeding."
                )
                self._complete(user_id, fingerprint, len(violations), len(strategies), None)
                return LifecycleResult(
                    user_id=user_id,
                    status=LifecycleStatus.UNCHANGED,
                    fingerprint=fingerprint,
                    violation_count=len(violations),
                    strategy_count=len(strategies),
                )

            # Stage 5: orchestration seeding
            self._emit(user_id, LifecyclePhase.SEEDING, 90, "Seeding orchestration plan...")
            plan = self.orchestration.generate_plan_from_strategies(profile)
            self.plans[user_id] = plan
            self.fingerprints.set(user_id, fingerprint)

            logger.info(f"[Intelligence-Loop] Lifecycle complete. Plan {plan.id} generated for user {user_id}")
            self._complete(user_id, fingerprint, len(violations), len(strategies), plan)
            return LifecycleResult(
                user_id=user_id,
                status=LifecycleStatus.SEEDED,
                fingerprint=fingerprint,
                violation_count=len(violations),
                strategy_count=len(strategies),
                plan=plan,
            )

        except PersistenceError as e:
            logger.error(f"[Intelligence-Loop] Persistence failure for user {user_id}: {e}")
            self._emit(user_id, LifecyclePhase.ERROR, 100, "Profile store unavailable. Cycle aborted.")
            return LifecycleResult(user_id=user_id, status=LifecycleStatus.ERROR, error=str(e))
        except Exception as e:
            logger.exception(f"[Intelligence-Loop] Lifecycle failure for user {user_id}")
            self._emit(user_id, LifecyclePhase.ERROR, 100, "Lifecycle failed.")
            return LifecycleResult(user_id=user_id, status=LifecycleStatus.ERROR, error=str(e))

    def _complete(
        self,
        user_id: str,
        fingerprint: str,
        violation_count: int,
        strategy_count: int,
        plan: Optional[ExecutionPlan],
    ) -> None:
        self._emit(
            user_id,
            LifecyclePhase.COMPLETE,
            100,
            "LifeCycle: Intelligence Synchronized.",
            {
                "fingerprint": fingerprint,
                "violation_count": violation_count,
                "strategy_count": strategy_count,
                "plan_id": plan.id if plan else None,
            },
        )
