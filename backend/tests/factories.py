"""Builders for test profiles and tradelines."""
from datetime import datetime, timezone
from typing import Optional

from sovereign.models.intelligence import NormalizedField, Tradeline, UserCreditProfile

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_field(value, confidence: int = 100, source: str = "MYFICO") -> NormalizedField:
    return NormalizedField(
        value=value,
        original_value=None if value is None else str(value),
        confidence=confidence,
        source=source,
    )


def make_tradeline(
    id: str = "TL-1",
    creditor: str = "Chase",
    account_number: str = "4111222233334444",
    balance=1000,
    past_due=0,
    credit_limit=5000,
    date_opened: Optional[str] = "2019-03-01",
    date_closed: Optional[str] = None,
    date_reported: Optional[str] = "2026-01-01",
    status: str = "Current",
    status_code: str = "11",
    confidence: int = 100,
    source: str = "MYFICO",
) -> Tradeline:
    return Tradeline(
        id=id,
        creditor=make_field(creditor, confidence, source),
        account_number=make_field(account_number, confidence, source),
        account_type=make_field("Revolving", confidence, source),
        date_opened=make_field(date_opened, confidence if date_opened else 0, source),
        date_closed=make_field(date_closed, confidence if date_closed else 0, source),
        date_reported=make_field(date_reported, confidence if date_reported else 0, source),
        balance=make_field(balance, confidence, source),
        credit_limit=make_field(credit_limit, confidence, source),
        past_due_amount=make_field(past_due, confidence, source),
        status=make_field(status, confidence, source),
        status_code=make_field(status_code, confidence, source),
    )


def make_profile(*tradelines: Tradeline, user_id: str = "user-1") -> UserCreditProfile:
    return UserCreditProfile(user_id=user_id, tradelines=list(tradelines))


def balance_past_due_tradeline(id: str = "TL-1", **kwargs) -> Tradeline:
    """One HIGH-severity METRO2-BAL-PAST-DUE finding at full confidence."""
    return make_tradeline(id=id, balance=0, past_due=500, **kwargs)
