"""
Sovereign Credit Intelligence - Single Source of Truth Models

These dataclasses are the only structures the closed loop passes around:

- NormalizedField     one fact with provenance and a 0-100 confidence
- Tradeline           one reported account, built from NormalizedFields
- Violation           immutable rule finding attached to a tradeline
- EnforcementStrategy ephemeral action derived from violations
- UserCreditProfile   aggregate root, persisted atomically per cycle

Profiles round-trip through to_dict()/from_dict() so any durable store can
hold the whole aggregate as one JSON document.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4


# Frozen value for a field whose high-trust sources disagree.
CONFLICT = "CONFLICT"


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def clamp_confidence(value: float) -> int:
    """Clamp a confidence score into [0, 100]."""
    return int(max(0, min(100, round(value))))


# =============================================================================
# ENUMS
# =============================================================================

class Bureau(str, Enum):
    EXPERIAN = "EXPERIAN"
    TRANSUNION = "TRANSUNION"
    EQUIFAX = "EQUIFAX"
    UNKNOWN = "UNKNOWN"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class StrategyType(str, Enum):
    DISPUTE = "DISPUTE"
    BLOCK_605B = "605B_BLOCK"
    CFPB_COMPLAINT = "CFPB_COMPLAINT"
    ESCALATION = "ESCALATION"
    MONITOR = "MONITOR"


class ExecutionOutcome(str, Enum):
    """
    Outcome of one executed enforcement action.

    Only SUCCESS and LEGAL_REJECTION are substantive. SYSTEM_ERROR is an
    infrastructure failure and never feeds drift or cooldown.
    """
    SUCCESS = "SUCCESS"
    LEGAL_REJECTION = "LEGAL_REJECTION"
    SYSTEM_ERROR = "SYSTEM_ERROR"

    @property
    def is_substantive(self) -> bool:
        return self is not ExecutionOutcome.SYSTEM_ERROR


class DisputeType(str, Enum):
    BUREAU_DISPUTE = "BUREAU_DISPUTE"
    FURNISHER_DISPUTE = "FURNISHER_DISPUTE"
    CFPB_COMPLAINT = "CFPB_COMPLAINT"


class DisputeStatus(str, Enum):
    PENDING = "PENDING"
    RESOLVED_REMOVED = "RESOLVED_REMOVED"
    RESOLVED_UPDATED = "RESOLVED_UPDATED"
    RESOLVED_VALIDATED = "RESOLVED_VALIDATED"
    FAILED = "FAILED"


# =============================================================================
# NORMALIZED FIELD
# =============================================================================

@dataclass
class NormalizedField:
    """One fact with provenance and trust weighting."""
    value: Any = None
    original_value: Optional[str] = None
    confidence: int = 0
    source: str = "UNKNOWN"

    def __post_init__(self):
        self.confidence = clamp_confidence(self.confidence)

    @property
    def is_conflict(self) -> bool:
        return self.value == CONFLICT or self.original_value == CONFLICT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "original_value": self.original_value,
            "confidence": self.confidence,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "NormalizedField":
        if not data:
            return cls()
        return cls(
            value=data.get("value"),
            original_value=data.get("original_value"),
            confidence=data.get("confidence") or 0,
            source=data.get("source") or "UNKNOWN",
        )


def _field(value: Any = None) -> NormalizedField:
    return NormalizedField(value=value)


# =============================================================================
# FINDINGS AND STRATEGIES
# =============================================================================

@dataclass(frozen=True)
class Violation:
    """
    A single deterministic rule finding.

    Frozen: a re-scan produces new instances instead of editing old ones.
    """
    id: str
    rule_id: str
    severity: Severity
    description: str
    statute: str
    remedy: str
    confidence: int
    related_entity_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "severity": self.severity.value,
            "description": self.description,
            "statute": self.statute,
            "remedy": self.remedy,
            "confidence": self.confidence,
            "related_entity_id": self.related_entity_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Violation":
        return cls(
            id=data["id"],
            rule_id=data["rule_id"],
            severity=Severity(data["severity"]),
            description=data.get("description", ""),
            statute=data.get("statute", ""),
            remedy=data.get("remedy", ""),
            confidence=clamp_confidence(data.get("confidence", 0)),
            related_entity_id=data["related_entity_id"],
        )


@dataclass
class EnforcementStrategy:
    """Ephemeral action plan for one target entity."""
    type: StrategyType
    target_entity_id: str
    violation_ids: List[str] = field(default_factory=list)
    removal_probability: int = 0
    litigation_risk: RiskLevel = RiskLevel.LOW
    recommended_action: str = ""
    declarative_metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "target_entity_id": self.target_entity_id,
            "violation_ids": list(self.violation_ids),
            "removal_probability": self.removal_probability,
            "litigation_risk": self.litigation_risk.value,
            "recommended_action": self.recommended_action,
            "declarative_metadata": dict(self.declarative_metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EnforcementStrategy":
        return cls(
            id=data["id"],
            type=StrategyType(data["type"]),
            target_entity_id=data["target_entity_id"],
            violation_ids=list(data.get("violation_ids", [])),
            removal_probability=data.get("removal_probability", 0),
            litigation_risk=RiskLevel(data.get("litigation_risk", "LOW")),
            recommended_action=data.get("recommended_action", ""),
            declarative_metadata=dict(data.get("declarative_metadata", {})),
        )


@dataclass(frozen=True)
class ExecutionHistoryEntry:
    """One recorded enforcement outcome for a target entity."""
    rule_id: str
    type: str
    outcome: ExecutionOutcome
    date: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "type": self.type,
            "outcome": self.outcome.value,
            "date": self.date.isoformat(),
        }


# =============================================================================
# ACCOUNT-LEVEL RECORDS
# =============================================================================

TRADELINE_FIELDS = (
    "creditor", "account_number", "account_type",
    "date_opened", "date_last_active", "date_closed", "date_reported",
    "balance", "credit_limit", "past_due_amount",
    "status", "status_code",
)


@dataclass
class Tradeline:
    """
    One reported credit account.

    Entity Resolution merges duplicates into one canonical Tradeline and the
    Violation Engine replaces `violations` on every scan that targets it.
    """
    id: str = field(default_factory=lambda: str(uuid4()))
    bureau: Bureau = Bureau.UNKNOWN

    # Identity
    creditor: NormalizedField = field(default_factory=lambda: _field(""))
    account_number: NormalizedField = field(default_factory=lambda: _field(""))
    account_type: NormalizedField = field(default_factory=lambda: _field(""))

    # Dates (ISO-8601 strings or None)
    date_opened: NormalizedField = field(default_factory=_field)
    date_last_active: NormalizedField = field(default_factory=_field)
    date_closed: NormalizedField = field(default_factory=_field)
    date_reported: NormalizedField = field(default_factory=_field)

    # Amounts
    balance: NormalizedField = field(default_factory=lambda: _field(0))
    credit_limit: NormalizedField = field(default_factory=lambda: _field(0))
    past_due_amount: NormalizedField = field(default_factory=lambda: _field(0))

    # Status (free text + derived Metro-2 code)
    status: NormalizedField = field(default_factory=lambda: _field(""))
    status_code: NormalizedField = field(default_factory=lambda: _field("01"))

    payment_history: List[str] = field(default_factory=list)
    is_disputed: bool = False
    remarks: List[str] = field(default_factory=list)
    violations: List[Violation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "bureau": self.bureau.value}
        for name in TRADELINE_FIELDS:
            data[name] = getattr(self, name).to_dict()
        data["payment_history"] = list(self.payment_history)
        data["is_disputed"] = self.is_disputed
        data["remarks"] = list(self.remarks)
        data["violations"] = [v.to_dict() for v in self.violations]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tradeline":
        tradeline = cls(
            id=data["id"],
            bureau=Bureau(data.get("bureau", "UNKNOWN")),
            payment_history=list(data.get("payment_history", [])),
            is_disputed=data.get("is_disputed", False),
            remarks=list(data.get("remarks", [])),
            violations=[Violation.from_dict(v) for v in data.get("violations", [])],
        )
        for name in TRADELINE_FIELDS:
            if name in data:
                setattr(tradeline, name, NormalizedField.from_dict(data[name]))
        return tradeline


@dataclass
class Collection:
    """Third-party collection account."""
    id: str = field(default_factory=lambda: str(uuid4()))
    bureau: Bureau = Bureau.UNKNOWN
    collection_agency: NormalizedField = field(default_factory=lambda: _field(""))
    original_creditor: NormalizedField = field(default_factory=lambda: _field(""))
    date_opened: NormalizedField = field(default_factory=_field)
    amount: NormalizedField = field(default_factory=lambda: _field(0))
    status: NormalizedField = field(default_factory=lambda: _field("UNPAID"))
    account_number: NormalizedField = field(default_factory=lambda: _field(""))
    violations: List[Violation] = field(default_factory=list)

    _FIELDS = ("collection_agency", "original_creditor", "date_opened", "amount", "status", "account_number")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "bureau": self.bureau.value}
        for name in self._FIELDS:
            data[name] = getattr(self, name).to_dict()
        data["violations"] = [v.to_dict() for v in self.violations]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Collection":
        record = cls(
            id=data["id"],
            bureau=Bureau(data.get("bureau", "UNKNOWN")),
            violations=[Violation.from_dict(v) for v in data.get("violations", [])],
        )
        for name in cls._FIELDS:
            if name in data:
                setattr(record, name, NormalizedField.from_dict(data[name]))
        return record


@dataclass
class Inquiry:
    """Credit inquiry."""
    id: str = field(default_factory=lambda: str(uuid4()))
    bureau: Bureau = Bureau.UNKNOWN
    creditor: NormalizedField = field(default_factory=lambda: _field(""))
    date: NormalizedField = field(default_factory=_field)
    purpose: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "bureau": self.bureau.value,
            "creditor": self.creditor.to_dict(),
            "date": self.date.to_dict(),
            "purpose": self.purpose,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Inquiry":
        return cls(
            id=data["id"],
            bureau=Bureau(data.get("bureau", "UNKNOWN")),
            creditor=NormalizedField.from_dict(data.get("creditor")),
            date=NormalizedField.from_dict(data.get("date")),
            purpose=data.get("purpose"),
        )


@dataclass
class PublicRecord:
    """Bankruptcy, judgment or lien."""
    id: str = field(default_factory=lambda: str(uuid4()))
    bureau: Bureau = Bureau.UNKNOWN
    record_type: str = "JUDGMENT"
    date_filed: NormalizedField = field(default_factory=_field)
    reference_number: NormalizedField = field(default_factory=lambda: _field(""))
    court: NormalizedField = field(default_factory=lambda: _field(""))
    status: NormalizedField = field(default_factory=lambda: _field(""))
    amount: NormalizedField = field(default_factory=lambda: _field(0))

    _FIELDS = ("date_filed", "reference_number", "court", "status", "amount")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "bureau": self.bureau.value,
            "record_type": self.record_type,
        }
        for name in self._FIELDS:
            data[name] = getattr(self, name).to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PublicRecord":
        record = cls(
            id=data["id"],
            bureau=Bureau(data.get("bureau", "UNKNOWN")),
            record_type=data.get("record_type", "JUDGMENT"),
        )
        for name in cls._FIELDS:
            if name in data:
                setattr(record, name, NormalizedField.from_dict(data[name]))
        return record


@dataclass
class DisputeEntry:
    """One dispute or complaint filed against an entity."""
    target_entity_id: str
    type: DisputeType = DisputeType.BUREAU_DISPUTE
    date_initiated: str = field(default_factory=_utcnow_iso)
    status: DisputeStatus = DisputeStatus.PENDING
    date_completed: Optional[str] = None
    resolution_note: Optional[str] = None
    audit_trail_url: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "target_entity_id": self.target_entity_id,
            "type": self.type.value,
            "date_initiated": self.date_initiated,
            "date_completed": self.date_completed,
            "status": self.status.value,
            "resolution_note": self.resolution_note,
            "audit_trail_url": self.audit_trail_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DisputeEntry":
        return cls(
            id=data["id"],
            target_entity_id=data["target_entity_id"],
            type=DisputeType(data.get("type", "BUREAU_DISPUTE")),
            date_initiated=data.get("date_initiated") or _utcnow_iso(),
            date_completed=data.get("date_completed"),
            status=DisputeStatus(data.get("status", "PENDING")),
            resolution_note=data.get("resolution_note"),
            audit_trail_url=data.get("audit_trail_url"),
        )


# =============================================================================
# AGGREGATE ROOT
# =============================================================================

@dataclass
class Identity:
    name: str = ""
    ssn_partial: str = ""
    dob: Optional[str] = None
    addresses: List[str] = field(default_factory=list)
    employers: List[str] = field(default_factory=list)


@dataclass
class Scores:
    experian: Optional[int] = None
    transunion: Optional[int] = None
    equifax: Optional[int] = None
    last_update: str = field(default_factory=_utcnow_iso)


@dataclass
class ProfileMetrics:
    total_debt: float = 0.0
    total_limit: float = 0.0
    utilization: int = 0
    derogatory_count: int = 0
    average_age_months: int = 0


@dataclass
class UserCreditProfile:
    """
    Aggregate root for one subject.

    Owned by the Intelligence Loop during a processing cycle and persisted
    as a whole after each cycle.
    """
    user_id: str
    updated_at: str = field(default_factory=_utcnow_iso)
    identity: Identity = field(default_factory=Identity)
    scores: Scores = field(default_factory=Scores)

    tradelines: List[Tradeline] = field(default_factory=list)
    collections: List[Collection] = field(default_factory=list)
    inquiries: List[Inquiry] = field(default_factory=list)
    public_records: List[PublicRecord] = field(default_factory=list)

    dispute_history: List[DisputeEntry] = field(default_factory=list)
    active_violations: List[Violation] = field(default_factory=list)
    active_strategies: List[EnforcementStrategy] = field(default_factory=list)

    metrics: ProfileMetrics = field(default_factory=ProfileMetrics)

    def get_tradeline(self, entity_id: str) -> Optional[Tradeline]:
        for tradeline in self.tradelines:
            if tradeline.id == entity_id:
                return tradeline
        return None

    def touch(self) -> None:
        self.updated_at = _utcnow_iso()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "updated_at": self.updated_at,
            "identity": {
                "name": self.identity.name,
                "ssn_partial": self.identity.ssn_partial,
                "dob": self.identity.dob,
                "addresses": list(self.identity.addresses),
                "employers": list(self.identity.employers),
            },
            "scores": {
                "experian": self.scores.experian,
                "transunion": self.scores.transunion,
                "equifax": self.scores.equifax,
                "last_update": self.scores.last_update,
            },
            "tradelines": [t.to_dict() for t in self.tradelines],
            "collections": [c.to_dict() for c in self.collections],
            "inquiries": [i.to_dict() for i in self.inquiries],
            "public_records": [p.to_dict() for p in self.public_records],
            "dispute_history": [d.to_dict() for d in self.dispute_history],
            "active_violations": [v.to_dict() for v in self.active_violations],
            "active_strategies": [s.to_dict() for s in self.active_strategies],
            "metrics": {
                "total_debt": self.metrics.total_debt,
                "total_limit": self.metrics.total_limit,
                "utilization": self.metrics.utilization,
                "derogatory_count": self.metrics.derogatory_count,
                "average_age_months": self.metrics.average_age_months,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserCreditProfile":
        identity = data.get("identity") or {}
        scores = data.get("scores") or {}
        metrics = data.get("metrics") or {}
        return cls(
            user_id=data["user_id"],
            updated_at=data.get("updated_at") or _utcnow_iso(),
            identity=Identity(
                name=identity.get("name", ""),
                ssn_partial=identity.get("ssn_partial", ""),
                dob=identity.get("dob"),
                addresses=list(identity.get("addresses", [])),
                employers=list(identity.get("employers", [])),
            ),
            scores=Scores(
                experian=scores.get("experian"),
                transunion=scores.get("transunion"),
                equifax=scores.get("equifax"),
                last_update=scores.get("last_update") or _utcnow_iso(),
            ),
            tradelines=[Tradeline.from_dict(t) for t in data.get("tradelines", [])],
            collections=[Collection.from_dict(c) for c in data.get("collections", [])],
            inquiries=[Inquiry.from_dict(i) for i in data.get("inquiries", [])],
            public_records=[PublicRecord.from_dict(p) for p in data.get("public_records", [])],
            dispute_history=[DisputeEntry.from_dict(d) for d in data.get("dispute_history", [])],
            active_violations=[Violation.from_dict(v) for v in data.get("active_violations", [])],
            active_strategies=[EnforcementStrategy.from_dict(s) for s in data.get("active_strategies", [])],
            metrics=ProfileMetrics(
                total_debt=metrics.get("total_debt", 0.0),
                total_limit=metrics.get("total_limit", 0.0),
                utilization=metrics.get("utilization", 0),
                derogatory_count=metrics.get("derogatory_count", 0),
                average_age_months=metrics.get("average_age_months", 0),
            ),
        )
