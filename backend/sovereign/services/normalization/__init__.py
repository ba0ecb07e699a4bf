"""Normalization utilities: dates, Metro 2 status codes, confidence."""
from .fields import (
    DEROGATORY_LATE_CODES,
    METRO2_CHARGE_OFF,
    METRO2_CURRENT,
    METRO2_UNKNOWN,
    SOURCE_WEIGHTS,
    calculate_confidence_decay,
    create_normalized_field,
    days_since,
    map_status_to_metro2,
    merge_sources,
    normalize_date,
    parse_iso_date,
    resolve_field_conflict,
    source_weight,
)

__all__ = [
    "DEROGATORY_LATE_CODES",
    "METRO2_CHARGE_OFF",
    "METRO2_CURRENT",
    "METRO2_UNKNOWN",
    "SOURCE_WEIGHTS",
    "calculate_confidence_decay",
    "create_normalized_field",
    "days_since",
    "map_status_to_metro2",
    "merge_sources",
    "normalize_date",
    "parse_iso_date",
    "resolve_field_conflict",
    "source_weight",
]
