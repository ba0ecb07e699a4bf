"""
Entity Resolution

Collapses tradelines extracted redundantly (overlapping text chunks, several
sources) into one canonical record per account. Nothing is dropped: a
duplicate is merged into the record it matches.
"""
from __future__ import annotations
import logging
import re
from copy import deepcopy
from typing import List, Optional

from ...models.intelligence import CONFLICT, NormalizedField, Tradeline
from ..normalization import merge_sources, resolve_field_conflict

logger = logging.getLogger(__name__)


MIN_ACCOUNT_OVERLAP = 4
BALANCE_TOLERANCE = 50.0  # slight reporting delays between sources

_MASK_CHARS = re.compile(r"[\s*xX#\-]")
_NAME_SUFFIX = re.compile(r" (BANK|NA|N\.A\.|NATIONAL ASSOCIATION|FSB|INC|LLC|CORPORATION|CORP)\.?$")

CREDITOR_ALIASES = {
    "JPM CHASE": "CHASE",
    "JPMORGAN CHASE": "CHASE",
    "JPMCB": "CHASE",
    "CHASE BANK": "CHASE",
    "AMEX": "AMERICAN EXPRESS",
    "AMERICAN EXPRESS CO": "AMERICAN EXPRESS",
    "CAP1": "CAPITAL ONE",
    "CAP ONE": "CAPITAL ONE",
    "CAPITALONE": "CAPITAL ONE",
    "SYNCB": "SYNCHRONY BANK",
    "SYNCHRONY": "SYNCHRONY BANK",
    "CBNA": "CITIBANK",
    "CITI": "CITIBANK",
    "WELLS FARGO CARD SER": "WELLS FARGO",
    "WF CARD": "WELLS FARGO",
    "DISCOVER FIN SVCS": "DISCOVER",
    "DISCOVERBANK": "DISCOVER",
}

# Identity fields: formatting differs legitimately between sources, so the
# higher-confidence reading wins without a conflict freeze.
IDENTITY_FIELDS = ("creditor", "account_number", "account_type")

FACT_FIELDS = (
    "date_opened", "date_last_active", "date_closed", "date_reported",
    "balance", "credit_limit", "past_due_amount",
    "status", "status_code",
)


def normalize_creditor_name(name: Optional[str]) -> str:
    """Uppercase, strip corporate suffixes and map known aliases."""
    clean = " ".join((name or "").upper().split())
    clean = _NAME_SUFFIX.sub("", clean).strip()
    return CREDITOR_ALIASES.get(clean, clean)


def _account_digits(account: NormalizedField) -> str:
    raw = account.original_value if account.original_value else account.value
    return _MASK_CHARS.sub("", str(raw or ""))


def _as_amount(field: NormalizedField) -> Optional[float]:
    if field.value is None or field.value == CONFLICT:
        return None
    try:
        return float(field.value)
    except (TypeError, ValueError):
        return None


def accounts_overlap(first: NormalizedField, second: NormalizedField) -> bool:
    """
    True when the unmasked account numbers contain one another and the
    shared run is at least four characters.
    """
    a = _account_digits(first)
    b = _account_digits(second)
    if not a or not b:
        return False
    shorter, longer = (a, b) if len(a) <= len(b) else (b, a)
    return len(shorter) >= MIN_ACCOUNT_OVERLAP and shorter in longer


def is_duplicate(first: Tradeline, second: Tradeline) -> bool:
    """Heuristic to decide whether two tradelines are the same account."""
    # 1. Same account number (partial match)
    if accounts_overlap(first.account_number, second.account_number):
        return True

    # 2. Same creditor + same open date + similar balance
    if normalize_creditor_name(first.creditor.value) != normalize_creditor_name(second.creditor.value):
        return False
    if not first.date_opened.value or first.date_opened.value != second.date_opened.value:
        return False

    balance_a = _as_amount(first.balance)
    balance_b = _as_amount(second.balance)
    if balance_a is None or balance_b is None:
        return False
    return abs(balance_a - balance_b) < BALANCE_TOLERANCE


def merge_tradeline(existing: Tradeline, incoming: Tradeline) -> Tradeline:
    """
    Merge `incoming` into `existing` in place.

    Fields move over when the incoming reading is more confident; fact fields
    freeze to CONFLICT when two high-trust readings disagree. Provenance is
    concatenated on the creditor field.
    """
    incoming = deepcopy(incoming)
    provenance = merge_sources(existing.creditor.source, incoming.creditor.source)

    for name in IDENTITY_FIELDS:
        current = getattr(existing, name)
        candidate = getattr(incoming, name)
        if candidate.confidence > current.confidence:
            setattr(existing, name, candidate)

    for name in FACT_FIELDS:
        setattr(existing, name, resolve_field_conflict(getattr(existing, name), getattr(incoming, name)))

    existing.creditor.source = provenance

    if len(incoming.payment_history) > len(existing.payment_history):
        existing.payment_history = list(incoming.payment_history)
    for remark in incoming.remarks:
        if remark not in existing.remarks:
            existing.remarks.append(remark)
    existing.is_disputed = existing.is_disputed or incoming.is_disputed
    return existing


def resolve_tradeline_duplicates(tradelines: List[Tradeline]) -> List[Tradeline]:
    """
    Merge a list of tradelines from several sources into a de-duplicated
    canonical set. Input records are not mutated.
    """
    resolved: List[Tradeline] = []

    for tradeline in tradelines:
        match = next((r for r in resolved if is_duplicate(r, tradeline)), None)
        if match is not None:
            merge_tradeline(match, tradeline)
        else:
            resolved.append(deepcopy(tradeline))

    if len(resolved) < len(tradelines):
        logger.info(f"Entity resolution merged {len(tradelines)} tradelines into {len(resolved)} accounts")
    return resolved
