"""
Execution History Stores

Learning state for the Strategy Engine: recorded outcomes keyed by target
entity. Injected into the engine instead of living in a module global, so
tests get isolated state and several engine instances can share a backend.
"""
from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import timezone
from typing import Callable, Dict, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.db_models import ExecutionHistoryDB
from ...models.intelligence import ExecutionHistoryEntry

logger = logging.getLogger(__name__)


class ExecutionHistoryStore(ABC):
    """Per-entity outcome history with explicit get/append/replace."""

    @abstractmethod
    def entries(self, entity_id: str) -> List[ExecutionHistoryEntry]:
        """Entries for an entity in recording order (empty list if none)."""

    @abstractmethod
    def append(self, entity_id: str, entry: ExecutionHistoryEntry) -> None:
        """Append one entry."""

    @abstractmethod
    def replace(self, entity_id: str, entries: List[ExecutionHistoryEntry]) -> None:
        """Replace an entity's full history (used by decay)."""

    @abstractmethod
    def entity_ids(self) -> List[str]:
        """Entities that have any recorded history."""


class InMemoryExecutionHistory(ExecutionHistoryStore):
    """Process-local history map."""

    def __init__(self):
        self._history: Dict[str, List[ExecutionHistoryEntry]] = defaultdict(list)

    def entries(self, entity_id: str) -> List[ExecutionHistoryEntry]:
        return list(self._history.get(entity_id, []))

    def append(self, entity_id: str, entry: ExecutionHistoryEntry) -> None:
        self._history[entity_id].append(entry)

    def replace(self, entity_id: str, entries: List[ExecutionHistoryEntry]) -> None:
        self._history[entity_id] = list(entries)

    def entity_ids(self) -> List[str]:
        return [entity_id for entity_id, entries in self._history.items() if entries]


class SqlExecutionHistory(ExecutionHistoryStore):
    """
    History persisted in the execution_history table.

    Args:
        session_factory: callable returning a new SQLAlchemy Session
            (e.g. database.SessionLocal)
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    @staticmethod
    def _to_entry(row: ExecutionHistoryDB) -> ExecutionHistoryEntry:
        recorded_at = row.recorded_at
        if recorded_at.tzinfo is None:
            recorded_at = recorded_at.replace(tzinfo=timezone.utc)
        return ExecutionHistoryEntry(
            rule_id=row.rule_id,
            type=row.action_type,
            outcome=row.outcome,
            date=recorded_at,
        )

    @staticmethod
    def _to_row(entity_id: str, entry: ExecutionHistoryEntry) -> ExecutionHistoryDB:
        return ExecutionHistoryDB(
            entity_id=entity_id,
            rule_id=entry.rule_id,
            action_type=entry.type,
            outcome=entry.outcome,
            recorded_at=entry.date,
        )

    def entries(self, entity_id: str) -> List[ExecutionHistoryEntry]:
        db = self._session_factory()
        try:
            rows = (
                db.query(ExecutionHistoryDB)
                .filter(ExecutionHistoryDB.entity_id == entity_id)
                .order_by(ExecutionHistoryDB.id.asc())
                .all()
            )
            return [self._to_entry(row) for row in rows]
        finally:
            db.close()

    def append(self, entity_id: str, entry: ExecutionHistoryEntry) -> None:
        db = self._session_factory()
        try:
            db.add(self._to_row(entity_id, entry))
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Failed to append execution history for {entity_id}")
            raise
        finally:
            db.close()

    def replace(self, entity_id: str, entries: List[ExecutionHistoryEntry]) -> None:
        db = self._session_factory()
        try:
            db.query(ExecutionHistoryDB).filter(ExecutionHistoryDB.entity_id == entity_id).delete()
            for entry in entries:
                db.add(self._to_row(entity_id, entry))
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Failed to replace execution history for {entity_id}")
            raise
        finally:
            db.close()

    def entity_ids(self) -> List[str]:
        db = self._session_factory()
        try:
            rows = db.query(ExecutionHistoryDB.entity_id).distinct().all()
            return [row[0] for row in rows]
        finally:
            db.close()
