"""
Profile Store

Durable key-value store for the UserCreditProfile aggregate. The
Intelligence Loop treats each subject as one logical record and always
read-modify-writes the whole document.
"""
from __future__ import annotations
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.db_models import ProfileDB
from ...models.intelligence import UserCreditProfile

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when a profile cannot be durably written or read."""

    def __init__(self, message: str, user_id: Optional[str] = None):
        super().__init__(message)
        self.user_id = user_id


class ProfileStore(ABC):

    @abstractmethod
    async def save(self, profile: UserCreditProfile) -> None:
        """Durably write the whole aggregate. Raises PersistenceError."""

    @abstractmethod
    async def load(self, user_id: str) -> Optional[UserCreditProfile]:
        """Return the stored aggregate or None."""


class InMemoryProfileStore(ProfileStore):
    """
    Process-local store.

    Profiles are copied through to_dict()/from_dict() on the way in and out
    so callers never share mutable state with the store.
    """

    def __init__(self):
        self._profiles: Dict[str, dict] = {}

    async def save(self, profile: UserCreditProfile) -> None:
        self._profiles[profile.user_id] = profile.to_dict()

    async def load(self, user_id: str) -> Optional[UserCreditProfile]:
        data = self._profiles.get(user_id)
        if data is None:
            return None
        return UserCreditProfile.from_dict(data)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)


class SqlProfileStore(ProfileStore):
    """
    Profiles persisted in the credit_profiles table as one JSON document.

    Session work runs in a thread so the event loop is never blocked on
    the database driver.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    async def save(self, profile: UserCreditProfile) -> None:
        await asyncio.to_thread(self._save_sync, profile)

    async def load(self, user_id: str) -> Optional[UserCreditProfile]:
        return await asyncio.to_thread(self._load_sync, user_id)

    def _save_sync(self, profile: UserCreditProfile) -> None:
        db = self._session_factory()
        try:
            row = db.query(ProfileDB).filter(ProfileDB.id == profile.user_id).first()
            if row is None:
                row = ProfileDB(id=profile.user_id)
                db.add(row)
            row.data = profile.to_dict()
            row.tradeline_count = len(profile.tradelines)
            row.violation_count = len(profile.active_violations)
            row.strategy_count = len(profile.active_strategies)
            row.updated_at = datetime.utcnow()
            db.commit()
            logger.info(
                f"Saved profile {profile.user_id}: {row.tradeline_count} tradelines, "
                f"{row.violation_count} violations, {row.strategy_count} strategies"
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to save profile {profile.user_id}: {e}")
            raise PersistenceError(f"Failed to save profile: {e}", user_id=profile.user_id) from e
        finally:
            db.close()

    def _load_sync(self, user_id: str) -> Optional[UserCreditProfile]:
        db = self._session_factory()
        try:
            row = db.query(ProfileDB).filter(ProfileDB.id == user_id).first()
            if row is None:
                return None
            return UserCreditProfile.from_dict(row.data)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load profile {user_id}: {e}")
            raise PersistenceError(f"Failed to load profile: {e}", user_id=user_id) from e
        finally:
            db.close()
