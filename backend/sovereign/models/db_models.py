"""
Sovereign Credit Intelligence - SQLAlchemy ORM Models
Durable storage for profiles and strategy learning state
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON, Enum as SQLEnum, Index

from ..database import Base
from .intelligence import ExecutionOutcome


class ProfileDB(Base):
    """
    One row per subject holding the whole UserCreditProfile aggregate.

    Writers read-modify-write the full document; writes are already
    serialized per subject by the Intelligence Loop.
    """
    __tablename__ = "credit_profiles"

    id = Column(String(64), primary_key=True)  # user_id
    data = Column(JSON, nullable=False)
    tradeline_count = Column(Integer, default=0)
    violation_count = Column(Integer, default=0)
    strategy_count = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ExecutionHistoryDB(Base):
    """
    Recorded enforcement outcome for a target entity.

    Rows are appended by the orchestration feedback path. The only removal
    is the Strategy Engine's rejection-count decay.
    """
    __tablename__ = "execution_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_id = Column(String(64), nullable=False, index=True)
    rule_id = Column(String(100), nullable=False)
    action_type = Column(String(50), nullable=False)
    outcome = Column(SQLEnum(ExecutionOutcome), nullable=False)
    recorded_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_execution_history_entity_rule", "entity_id", "rule_id"),
    )
