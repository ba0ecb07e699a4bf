"""
Shared fixtures.

DATABASE_URL must be set before sovereign.database is imported anywhere.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sovereign.database import init_db
from sovereign.services.strategy import InMemoryExecutionHistory, StrategyEngine
from sovereign.services.violations import ViolationEngine

from factories import NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def history():
    return InMemoryExecutionHistory()


@pytest.fixture
def strategy_engine(history, clock):
    return StrategyEngine(history=history, clock=clock)


@pytest.fixture
def violation_engine(clock):
    return ViolationEngine(clock=clock)


@pytest.fixture
def session_factory():
    """In-memory SQLite shared across threads, schema created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()
