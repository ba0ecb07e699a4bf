"""
Violation Engine

Scans a UserCreditProfile for deterministic rule violations and writes the
findings back onto each tradeline and onto profile.active_violations.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from ...models.intelligence import UserCreditProfile, Violation
from .rules import evaluate_tradeline

logger = logging.getLogger(__name__)


class ViolationEngine:
    """
    Runs all tradeline rules against a profile.

    A targeted scan (target_entity_ids given) re-evaluates only the named
    tradelines; every other tradeline keeps the violations it already had.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock

    def scan_profile(
        self,
        profile: UserCreditProfile,
        target_entity_ids: Optional[Iterable[str]] = None,
    ) -> List[Violation]:
        targets = set(target_entity_ids) if target_entity_ids is not None else None
        now = self._clock() if self._clock else None

        violations: List[Violation] = []
        rescanned = 0

        for tradeline in profile.tradelines:
            if targets is not None and tradeline.id not in targets:
                violations.extend(tradeline.violations)
                continue

            tradeline.violations = evaluate_tradeline(tradeline, now)
            violations.extend(tradeline.violations)
            rescanned += 1

        profile.active_violations = violations

        scope = "full" if targets is None else f"targeted ({len(targets)} ids)"
        logger.info(
            f"Violation scan ({scope}) for {profile.user_id}: "
            f"{rescanned}/{len(profile.tradelines)} tradelines evaluated, "
            f"{len(violations)} active violations"
        )
        return violations
