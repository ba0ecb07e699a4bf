"""
HTTP surface smoke tests (FastAPI TestClient).
"""
import asyncio
import pytest
from fastapi.testclient import TestClient

from sovereign.main import create_app
from sovereign.services.intelligence import IntelligenceLoop
from sovereign.services.store import InMemoryProfileStore

from factories import balance_past_due_tradeline, make_profile, make_tradeline


@pytest.fixture
def store():
    store = InMemoryProfileStore()
    profile = make_profile(balance_past_due_tradeline("TL-1"), make_tradeline(id="TL-2", account_number="7777"))
    asyncio.run(store.save(profile))
    return store


@pytest.fixture
def client(store, violation_engine, strategy_engine):
    loop = IntelligenceLoop(store=store, violation_engine=violation_engine, strategy_engine=strategy_engine)
    with TestClient(create_app(loop=loop)) as client:
        yield client


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": "1.0.0"}

    def test_loop_not_running_is_503(self):
        # Without entering the client the lifespan never starts the loop
        client = TestClient(create_app(loop=IntelligenceLoop(store=InMemoryProfileStore())))
        assert client.get("/profiles/user-1").status_code == 503


class TestProfilesRouter:

    def test_get_profile(self, client):
        response = client.get("/profiles/user-1")

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == "user-1"
        assert len(data["tradelines"]) == 2

    def test_unknown_profile_is_404(self, client):
        assert client.get("/profiles/nobody").status_code == 404
        assert client.post("/profiles/nobody/process").status_code == 404

    def test_process_seeds_plan(self, client):
        response = client.post("/profiles/user-1/process")

        assert response.status_code == 200
        result = response.json()
        assert result["status"] == "SEEDED"
        assert result["violation_count"] == 1
        assert result["strategy_count"] == 1
        assert result["plan"]["steps"][0]["skill_id"] == "SUBMIT_CFPB_COMPLAINT_V1"

        plan = client.get("/profiles/user-1/plan")
        assert plan.status_code == 200
        assert plan.json()["id"] == result["plan"]["id"]

        again = client.post("/profiles/user-1/process", json={"target_entity_ids": ["TL-2"]})
        assert again.json()["status"] == "UNCHANGED"

    def test_plan_before_processing_is_404(self, client):
        assert client.get("/profiles/user-1/plan").status_code == 404


class TestOutcomesRouter:

    def test_invalid_outcome_is_400(self, client):
        response = client.post("/outcomes", json={
            "entity_id": "TL-1",
            "rule_id": "METRO2-BAL-PAST-DUE",
            "action_type": "DISPUTE",
            "outcome": "MAYBE",
        })
        assert response.status_code == 400

    def test_invalid_action_type_is_400(self, client):
        response = client.post("/outcomes", json={
            "entity_id": "TL-1",
            "rule_id": "METRO2-BAL-PAST-DUE",
            "action_type": "LAWSUIT",
            "outcome": "SUCCESS",
        })
        assert response.status_code == 400

    def test_feedback_requires_user_id(self, client):
        response = client.post("/outcomes", json={
            "entity_id": "TL-1",
            "rule_id": "METRO2-BAL-PAST-DUE",
            "action_type": "DISPUTE",
            "outcome": "SUCCESS",
            "trigger_feedback": True,
        })
        assert response.status_code == 400

    def test_record_without_feedback(self, client, history):
        response = client.post("/outcomes", json={
            "entity_id": "TL-1",
            "rule_id": "METRO2-BAL-PAST-DUE",
            "action_type": "CFPB_COMPLAINT",
            "outcome": "LEGAL_REJECTION",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["entry"]["type"] == "CFPB_COMPLAINT"
        assert data["entry"]["outcome"] == "LEGAL_REJECTION"
        assert data["lifecycle"] is None
        assert len(history.entries("TL-1")) == 1

    def test_successful_outcome_rescans_into_cooldown(self, client):
        client.post("/profiles/user-1/process")

        response = client.post("/outcomes", json={
            "entity_id": "TL-1",
            "rule_id": "METRO2-BAL-PAST-DUE",
            "action_type": "CFPB_COMPLAINT",
            "outcome": "SUCCESS",
            "user_id": "user-1",
            "trigger_feedback": True,
        })

        assert response.status_code == 200
        lifecycle = response.json()["lifecycle"]
        assert lifecycle["status"] == "SEEDED"
        assert lifecycle["violation_count"] == 1
        assert lifecycle["strategy_count"] == 0
        assert lifecycle["plan"]["steps"] == []
