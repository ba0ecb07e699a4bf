"""
Normalization Utilities

Pure helpers that turn raw extracted values into typed, confidence-scored
fields. Nothing here raises on bad input: unparseable values come back as
None or as low-confidence fields.
"""
from __future__ import annotations
import logging
from datetime import date, datetime, timezone
from typing import Any, Optional, Union

from ...config import HIGH_CONFIDENCE_THRESHOLD
from ...models.intelligence import CONFLICT, NormalizedField, clamp_confidence

logger = logging.getLogger(__name__)


DATE_FORMATS = [
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%Y/%m/%d",
    "%Y-%m-%d",
    "%b %d, %Y",   # Jan 5, 2020
    "%B %d, %Y",   # January 5, 2020
]

# Metro 2 account status codes this system maps free text onto
METRO2_CURRENT = "11"
METRO2_LATE_30 = "71"
METRO2_LATE_60 = "78"
METRO2_LATE_90 = "80"
METRO2_COLLECTION = "93"
METRO2_REPOSSESSION = "96"
METRO2_CHARGE_OFF = "97"
METRO2_BANKRUPTCY = "D"
METRO2_UNKNOWN = "01"

DEROGATORY_LATE_CODES = frozenset({METRO2_LATE_30, METRO2_LATE_60, METRO2_LATE_90})

DECAY_POINTS_PER_PERIOD = 5
DECAY_PERIOD_DAYS = 30

# Weighted source reliability
SOURCE_WEIGHTS = {
    "MYFICO": 1.0,
    "PDF_AUTO_EXTRACT": 0.85,
    "CREDIT_KARMA": 0.75,
    "USER_INPUT": 0.5,
    "UNKNOWN": 0.6,
}


def normalize_date(date_str: Optional[str]) -> Optional[str]:
    """
    Normalize a date string to ISO-8601 (YYYY-MM-DD).

    Returns None when no known format matches - never a guess.
    """
    if not date_str:
        return None

    cleaned = " ".join(str(date_str).split())
    if not cleaned:
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def parse_iso_date(value: Any) -> Optional[date]:
    """Parse an ISO date (or datetime) string produced by normalize_date."""
    if value is None or value == CONFLICT:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value)).date()
    except ValueError:
        return None


def map_status_to_metro2(status: Optional[str]) -> str:
    """
    Map a human-readable account status onto a Metro 2 status code.

    Substring heuristics, checked in order. Anything unrecognised maps to
    the unknown/other code "01".
    """
    s = (status or "").strip().lower()
    if "current" in s or s == "ok":
        return METRO2_CURRENT
    if "30 day" in s:
        return METRO2_LATE_30
    if "60 day" in s:
        return METRO2_LATE_60
    if "90 day" in s:
        return METRO2_LATE_90
    if "charge" in s or "loss" in s:
        return METRO2_CHARGE_OFF
    if "collection" in s:
        return METRO2_COLLECTION
    if "repo" in s:
        return METRO2_REPOSSESSION
    if "bankruptcy" in s:
        return METRO2_BANKRUPTCY
    return METRO2_UNKNOWN


def create_normalized_field(
    value: Any,
    original_value: Optional[str],
    confidence: float,
    source: str,
) -> NormalizedField:
    """Build a NormalizedField; confidence is clamped to [0, 100]."""
    return NormalizedField(
        value=value,
        original_value=original_value,
        confidence=clamp_confidence(confidence),
        source=source,
    )


def days_since(value: Union[str, date, datetime, None], now: Optional[datetime] = None) -> Optional[int]:
    """Whole days elapsed since a date, or None if it cannot be parsed."""
    parsed = parse_iso_date(value)
    if parsed is None:
        return None
    today = (now or datetime.now(timezone.utc)).date()
    return (today - parsed).days


def calculate_confidence_decay(
    initial_confidence: float,
    reported_date: Union[str, date, datetime, None],
    now: Optional[datetime] = None,
) -> int:
    """
    Decay confidence by the age of the data.

    Subtracts 5 points for every full 30-day period since the reporting
    date, floored at 0. Unparseable or future dates leave it unchanged.
    """
    elapsed = days_since(reported_date, now)
    if elapsed is None or elapsed <= 0:
        return clamp_confidence(initial_confidence)

    periods = elapsed // DECAY_PERIOD_DAYS
    return clamp_confidence(initial_confidence - periods * DECAY_POINTS_PER_PERIOD)


def resolve_field_conflict(
    current: NormalizedField,
    incoming: NormalizedField,
    threshold: int = HIGH_CONFIDENCE_THRESHOLD,
) -> NormalizedField:
    """
    Resolve two readings of the same field.

    When both sources are high-trust and disagree the field is frozen to
    CONFLICT instead of silently picking one. Otherwise the higher
    confidence reading wins; ties keep the current reading.
    """
    if (
        current.confidence >= threshold
        and incoming.confidence >= threshold
        and current.value != incoming.value
    ):
        logger.warning(
            f"High-confidence disagreement ({current.source}={current.value!r} vs "
            f"{incoming.source}={incoming.value!r}); freezing field to {CONFLICT}"
        )
        return NormalizedField(
            value=CONFLICT,
            original_value=CONFLICT,
            confidence=max(current.confidence, incoming.confidence),
            source=merge_sources(current.source, incoming.source),
        )

    if incoming.confidence > current.confidence:
        return incoming
    return current


def merge_sources(existing: str, incoming: str) -> str:
    """Concatenate provenance strings without repeating a source."""
    existing_parts = [s.strip() for s in (existing or "").split(",") if s.strip()]
    for part in (incoming or "").split(","):
        part = part.strip()
        if part and part not in existing_parts:
            existing_parts.append(part)
    return ", ".join(existing_parts)


def source_weight(source_kind: Optional[str]) -> float:
    """Reliability weight for a source kind; unknown kinds use the UNKNOWN weight."""
    return SOURCE_WEIGHTS.get((source_kind or "UNKNOWN").upper(), SOURCE_WEIGHTS["UNKNOWN"])
