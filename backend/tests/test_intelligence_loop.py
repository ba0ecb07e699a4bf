"""
Intelligence Loop Tests

- Strict FIFO lifecycles per subject, parallelism across subjects
- Idempotent orchestration seeding (plan fingerprint)
- Persistence failure aborts the cycle without seeding
- Lifecycle failures are contained
- Plan completion feedback re-enters the loop
"""
import asyncio
import pytest
from contextlib import asynccontextmanager
from datetime import timedelta
from unittest.mock import MagicMock

from sovereign.models.intelligence import ExecutionOutcome, StrategyType
from sovereign.services.events import LifecyclePhase
from sovereign.services.intelligence import (
    IntelligenceLoop,
    LifecycleStatus,
    SubjectWorkerPool,
    plan_fingerprint,
)
from sovereign.services.store import InMemoryProfileStore, PersistenceError
from sovereign.services.violations import RULE_BALANCE_PAST_DUE

from factories import NOW, balance_past_due_tradeline, make_profile, make_tradeline


class RecordingStore(InMemoryProfileStore):
    """Profile store whose save() suspends and logs entry/exit."""

    def __init__(self, log, delays=None):
        super().__init__()
        self.log = log
        self.delays = delays or {}

    async def save(self, profile):
        marker = profile.tradelines[0].id if profile.tradelines else profile.user_id
        self.log.append(("start", profile.user_id, marker))
        await asyncio.sleep(self.delays.get(marker, 0.01))
        await super().save(profile)
        self.log.append(("end", profile.user_id, marker))


class FailingStore(InMemoryProfileStore):

    def __init__(self):
        super().__init__()
        self.fail = True

    async def save(self, profile):
        if self.fail:
            raise PersistenceError("database unavailable", user_id=profile.user_id)
        await super().save(profile)


@asynccontextmanager
async def running(loop):
    await loop.start()
    try:
        yield loop
    finally:
        await loop.stop()


async def drain(subscription):
    """Collect events up to and including the first terminal phase."""
    phases = []
    while True:
        event = await subscription.get(timeout=1)
        phases.append(event.phase)
        if event.phase.is_terminal:
            return phases


def build_loop(store, violation_engine, strategy_engine, **kwargs):
    return IntelligenceLoop(
        store=store,
        violation_engine=violation_engine,
        strategy_engine=strategy_engine,
        **kwargs,
    )


# =============================================================================
# TEST: worker pool
# =============================================================================

class TestSubjectWorkerPool:

    @pytest.mark.asyncio
    async def test_same_key_runs_sequentially(self):
        pool = SubjectWorkerPool(max_workers=4)
        await pool.start()
        log = []

        def job(n):
            async def run():
                log.append(("start", n))
                await asyncio.sleep(0.01 * (5 - n))
                log.append(("end", n))
                return n
            return run

        futures = [pool.submit("user-1", job(n)) for n in range(5)]
        results = await asyncio.gather(*futures)
        await pool.stop()

        assert results == [0, 1, 2, 3, 4]
        assert log == [(kind, n) for n in range(5) for kind in ("start", "end")]

    @pytest.mark.asyncio
    async def test_failed_job_does_not_block_queue(self):
        pool = SubjectWorkerPool(max_workers=1)
        await pool.start()

        async def boom():
            raise RuntimeError("boom")

        async def ok():
            return "ok"

        failed = pool.submit("user-1", boom)
        succeeded = pool.submit("user-1", ok)

        with pytest.raises(RuntimeError):
            await failed
        assert await succeeded == "ok"
        await pool.stop()

    @pytest.mark.asyncio
    async def test_submit_requires_start(self):
        pool = SubjectWorkerPool()

        async def ok():
            return None

        with pytest.raises(RuntimeError):
            pool.submit("user-1", ok)


# =============================================================================
# TEST: sequencing
# =============================================================================

class TestSequencing:

    @pytest.mark.asyncio
    async def test_five_concurrent_updates_run_in_submission_order(self, violation_engine, strategy_engine):
        log = []
        # Later submissions save faster; any interleaving would reorder the log
        delays = {f"TL-{i}": 0.01 * (5 - i) for i in range(5)}
        loop = build_loop(RecordingStore(log, delays), violation_engine, strategy_engine)

        async with running(loop):
            results = await asyncio.gather(*[
                loop.process_profile_update(make_profile(balance_past_due_tradeline(f"TL-{i}")))
                for i in range(5)
            ])

        assert [r.status for r in results] == [LifecycleStatus.SEEDED] * 5
        assert log == [
            (kind, "user-1", f"TL-{i}")
            for i in range(5)
            for kind in ("start", "end")
        ]

    @pytest.mark.asyncio
    async def test_different_subjects_run_in_parallel(self, violation_engine, strategy_engine):
        log = []
        loop = build_loop(RecordingStore(log, {"TL-A": 0.05, "TL-B": 0.01}), violation_engine, strategy_engine)

        async with running(loop):
            await asyncio.gather(
                loop.process_profile_update(make_profile(balance_past_due_tradeline("TL-A"), user_id="user-a")),
                loop.process_profile_update(make_profile(balance_past_due_tradeline("TL-B"), user_id="user-b")),
            )

        assert log.index(("start", "user-b", "TL-B")) < log.index(("end", "user-a", "TL-A"))

    @pytest.mark.asyncio
    async def test_process_requires_running_loop(self, violation_engine, strategy_engine):
        loop = build_loop(InMemoryProfileStore(), violation_engine, strategy_engine)
        with pytest.raises(RuntimeError):
            await loop.process_profile_update(make_profile())


# =============================================================================
# TEST: lifecycle
# =============================================================================

class TestLifecycle:

    @pytest.mark.asyncio
    async def test_seeds_plan_and_persists(self, violation_engine, strategy_engine):
        store = InMemoryProfileStore()
        loop = build_loop(store, violation_engine, strategy_engine)
        profile = make_profile(balance_past_due_tradeline("TL-1"))
        subscription = loop.events.subscribe("user-1")

        async with running(loop):
            result = await loop.process_profile_update(profile)

        assert result.status is LifecycleStatus.SEEDED
        assert result.violation_count == 1
        assert result.strategy_count == 1
        assert result.fingerprint == plan_fingerprint(profile.active_strategies)
        assert len(result.plan.steps) == 1
        assert loop.plans["user-1"] is result.plan
        stored = await store.load("user-1")
        assert stored.active_strategies[0].removal_probability == 85
        assert await drain(subscription) == [
            LifecyclePhase.VALIDATING_METRO2,
            LifecyclePhase.SCORING,
            LifecyclePhase.SEEDING,
            LifecyclePhase.COMPLETE,
        ]

    @pytest.mark.asyncio
    async def test_unchanged_strategies_skip_seeding(self, violation_engine, strategy_engine):
        store = InMemoryProfileStore()
        loop = build_loop(store, violation_engine, strategy_engine)
        seed = MagicMock(wraps=loop.orchestration.generate_plan_from_strategies)
        loop.orchestration.generate_plan_from_strategies = seed
        profile = make_profile(balance_past_due_tradeline("TL-1"))

        async with running(loop):
            first = await loop.process_profile_update(profile)
            subscription = loop.events.subscribe("user-1")
            # A clean account adds data without changing the strategy set
            profile.tradelines.append(make_tradeline(id="TL-2", account_number="7777"))
            second = await loop.process_profile_update(profile)

        assert first.status is LifecycleStatus.SEEDED
        assert second.status is LifecycleStatus.UNCHANGED
        assert second.fingerprint == first.fingerprint
        assert second.plan is None
        seed.assert_called_once()
        stored = await store.load("user-1")
        assert [t.id for t in stored.tradelines] == ["TL-1", "TL-2"]
        # Completion is still announced for the skipped pass
        assert await drain(subscription) == [
            LifecyclePhase.VALIDATING_METRO2,
            LifecyclePhase.SCORING,
            LifecyclePhase.COMPLETE,
        ]

    @pytest.mark.asyncio
    async def test_save_failure_aborts_without_seeding(self, violation_engine, strategy_engine):
        store = FailingStore()
        loop = build_loop(store, violation_engine, strategy_engine)
        seed = MagicMock(wraps=loop.orchestration.generate_plan_from_strategies)
        loop.orchestration.generate_plan_from_strategies = seed
        subscription = loop.events.subscribe("user-1")
        profile = make_profile(balance_past_due_tradeline("TL-1"))

        async with running(loop):
            failed = await loop.process_profile_update(profile)
            phases = await drain(subscription)

            store.fail = False
            retried = await loop.process_profile_update(profile)

        assert failed.status is LifecycleStatus.ERROR
        assert "database unavailable" in failed.error
        assert phases[-1] is LifecyclePhase.ERROR
        assert LifecyclePhase.SEEDING not in phases
        # Fingerprint was not recorded, so the retry seeds
        assert retried.status is LifecycleStatus.SEEDED
        seed.assert_called_once()

    @pytest.mark.asyncio
    async def test_lifecycle_exception_is_contained(self, strategy_engine):
        violation_engine = MagicMock()
        violation_engine.scan_profile.side_effect = [KeyError("bad data"), []]
        loop = build_loop(InMemoryProfileStore(), violation_engine, strategy_engine)

        async with running(loop):
            failed, recovered = await asyncio.gather(
                loop.process_profile_update(make_profile()),
                loop.process_profile_update(make_profile()),
            )

        assert failed.status is LifecycleStatus.ERROR
        assert recovered.status is LifecycleStatus.SEEDED

    @pytest.mark.asyncio
    async def test_decay_only_on_new_profile_data(self, violation_engine, strategy_engine):
        strategy_engine.decay_history = MagicMock(return_value=0)
        loop = build_loop(InMemoryProfileStore(), violation_engine, strategy_engine)
        profile = make_profile(balance_past_due_tradeline("TL-1"), make_tradeline(id="TL-2", account_number="55"))

        async with running(loop):
            await loop.process_profile_update(profile)
            await loop.rescan("user-1")
            await loop.handle_plan_completion("user-1", ["TL-1"])
            await loop.apply_update("user-1", lambda stored: stored, target_entity_ids=["TL-2"])

        assert [c.args[0] for c in strategy_engine.decay_history.call_args_list] == ["TL-1", "TL-2", "TL-2"]


# =============================================================================
# TEST: learning state through the loop
# =============================================================================

class TestLearningThroughLoop:

    @pytest.mark.asyncio
    async def test_fresh_rejection_suppresses_and_survives_feedback(self, violation_engine, strategy_engine, history):
        store = InMemoryProfileStore()
        loop = build_loop(store, violation_engine, strategy_engine)
        profile = make_profile(balance_past_due_tradeline("TL-1"))
        strategy_engine.record_outcome(
            "TL-1", RULE_BALANCE_PAST_DUE, StrategyType.CFPB_COMPLAINT, ExecutionOutcome.LEGAL_REJECTION
        )

        async with running(loop):
            updated = await loop.process_profile_update(profile)
            feedback = await loop.handle_plan_completion("user-1", ["TL-1"])

        assert updated.violation_count == 1
        assert updated.strategy_count == 0
        assert feedback.strategy_count == 0
        assert len(history.entries("TL-1")) == 1
        assert strategy_engine.is_in_cooldown("TL-1", RULE_BALANCE_PAST_DUE, StrategyType.CFPB_COMPLAINT)

    @pytest.mark.asyncio
    async def test_settled_rejections_drift_probability(self, violation_engine, strategy_engine, history):
        store = InMemoryProfileStore()
        loop = build_loop(store, violation_engine, strategy_engine)
        for days_ago in (40, 35):
            strategy_engine.record_outcome(
                "TL-1", RULE_BALANCE_PAST_DUE, StrategyType.CFPB_COMPLAINT, ExecutionOutcome.LEGAL_REJECTION,
                recorded_at=NOW - timedelta(days=days_ago),
            )

        async with running(loop):
            updated = await loop.process_profile_update(make_profile(balance_past_due_tradeline("TL-1")))
            feedback = await loop.handle_plan_completion("user-1", ["TL-1"])

        # Decay halved the two settled rejections; one -15 drift remains
        assert len(history.entries("TL-1")) == 1
        stored = await store.load("user-1")
        assert stored.active_strategies[0].removal_probability == 70
        assert updated.status is LifecycleStatus.SEEDED
        assert feedback.status is LifecycleStatus.UNCHANGED


# =============================================================================
# TEST: read-modify-write inside the subject queue
# =============================================================================

class TestQueuedUpdates:

    @pytest.mark.asyncio
    async def test_concurrent_updates_keep_every_write(self, violation_engine, strategy_engine):
        log = []
        store = RecordingStore(log)
        await store.save(make_profile(make_tradeline(id="TL-1")))
        loop = build_loop(store, violation_engine, strategy_engine)

        def add(tradeline):
            def update(stored):
                stored.tradelines.append(tradeline)
                return stored
            return update

        async with running(loop):
            results = await asyncio.gather(
                loop.handle_plan_completion("user-1", ["TL-1"]),
                loop.apply_update("user-1", add(make_tradeline(id="TL-2", account_number="2222"))),
                loop.apply_update("user-1", add(make_tradeline(id="TL-3", account_number="3333"))),
            )

        assert all(r.status is not LifecycleStatus.ERROR for r in results)
        stored = await store.load("user-1")
        assert [t.id for t in stored.tradelines] == ["TL-1", "TL-2", "TL-3"]

    @pytest.mark.asyncio
    async def test_rescan_of_unknown_subject(self, violation_engine, strategy_engine):
        store = InMemoryProfileStore()
        loop = build_loop(store, violation_engine, strategy_engine)

        async with running(loop):
            result = await loop.rescan("nobody")
            skipped = await loop.apply_update("nobody", lambda stored: stored)

        assert result.status is LifecycleStatus.NOT_FOUND
        assert skipped.status is LifecycleStatus.NOT_FOUND
        assert "nobody" not in store


# =============================================================================
# TEST: feedback re-entry
# =============================================================================

class TestFeedbackLoop:

    @pytest.mark.asyncio
    async def test_plan_completion_rescans_affected_entities(self, violation_engine, strategy_engine):
        store = InMemoryProfileStore()
        loop = build_loop(store, violation_engine, strategy_engine)
        # Closed account still reporting late -> DISPUTE, no approval needed
        profile = make_profile(make_tradeline(id="TL-1", date_closed="2024-01-01", status_code="71"))

        async with running(loop):
            seeded = await loop.process_profile_update(profile)
            await loop.orchestration.execute_plan(seeded.plan)

        # Outcome recorded -> rule in cooldown -> re-scan seeded an empty plan
        assert loop.plans["user-1"] is not seeded.plan
        assert loop.plans["user-1"].steps == []
        stored = await store.load("user-1")
        assert stored.active_strategies == []
        assert len(stored.active_violations) == 1

    @pytest.mark.asyncio
    async def test_completion_for_unknown_subject(self, violation_engine, strategy_engine):
        loop = build_loop(InMemoryProfileStore(), violation_engine, strategy_engine)

        async with running(loop):
            result = await loop.handle_plan_completion("nobody", ["TL-1"])

        assert result.status is LifecycleStatus.NOT_FOUND

    def test_injected_orchestration_is_wired_back(self, violation_engine, strategy_engine):
        orchestration = MagicMock(on_plan_complete=None)
        loop = build_loop(InMemoryProfileStore(), violation_engine, strategy_engine, orchestration=orchestration)
        assert orchestration.on_plan_complete == loop.handle_plan_completion
