"""Entity Resolution: one canonical tradeline per logical account."""
from .entity_resolution import (
    is_duplicate,
    merge_tradeline,
    normalize_creditor_name,
    resolve_tradeline_duplicates,
)

__all__ = [
    "is_duplicate",
    "merge_tradeline",
    "normalize_creditor_name",
    "resolve_tradeline_duplicates",
]
