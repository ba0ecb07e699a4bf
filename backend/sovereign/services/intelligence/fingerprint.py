"""
Plan fingerprints for idempotent orchestration seeding.

The fingerprint is a best-effort de-duplication signal: a short blake2b
digest over the strategy set. A collision would at worst skip one seeding
pass, which the next profile change corrects.
"""
import hashlib
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

from ...models.intelligence import EnforcementStrategy


def plan_fingerprint(strategies: Iterable[EnforcementStrategy]) -> str:
    """Order-independent digest of (type, target, sorted violation ids) tuples."""
    parts = sorted(
        f"{s.type.value}:{s.target_entity_id}:{','.join(sorted(s.violation_ids))}"
        for s in strategies
    )
    return hashlib.blake2b("|".join(parts).encode("utf-8"), digest_size=16).hexdigest()


class PlanFingerprintStore(ABC):

    @abstractmethod
    def get(self, user_id: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, user_id: str, fingerprint: str) -> None:
        ...


class InMemoryPlanFingerprintStore(PlanFingerprintStore):

    def __init__(self):
        self._fingerprints: Dict[str, str] = {}

    def get(self, user_id: str) -> Optional[str]:
        return self._fingerprints.get(user_id)

    def set(self, user_id: str, fingerprint: str) -> None:
        self._fingerprints[user_id] = fingerprint
