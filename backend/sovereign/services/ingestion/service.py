"""
Ingestion Service

Raw report text -> chunked extraction -> normalized, confidence-scored
tradelines -> entity resolution -> profile -> Intelligence Loop hand-off.

Extraction output (usually an LLM) is untrusted: every raw value goes
through the normalization pipeline and nothing is consumed directly.
"""
from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from dateutil.relativedelta import relativedelta

from ...config import INGEST_CHUNK_OVERLAP, INGEST_CHUNK_SIZE
from ...models.intelligence import (
    CONFLICT,
    Identity,
    ProfileMetrics,
    Tradeline,
    UserCreditProfile,
)
from ..events import LifecyclePhase
from ..intelligence import IntelligenceLoop, LifecycleResult, LifecycleStatus
from ..normalization import (
    METRO2_CURRENT,
    calculate_confidence_decay,
    create_normalized_field,
    map_status_to_metro2,
    normalize_date,
    parse_iso_date,
    source_weight,
)
from ..resolution import resolve_tradeline_duplicates

logger = logging.getLogger(__name__)


class ExtractionProvider(ABC):
    """Turns one text chunk into raw structured guesses."""

    @abstractmethod
    async def extract(self, chunk: str) -> Dict[str, Any]:
        """
        Return {"tradelines": [...], "identity": {...}}.

        Each raw tradeline may carry creditor, account_number, account_type,
        balance, credit_limit, past_due_amount, status, date_opened,
        date_closed, date_last_active, date_reported, is_disputed.
        """


def chunk_text(text: str, size: int = INGEST_CHUNK_SIZE, overlap: int = INGEST_CHUNK_OVERLAP) -> List[str]:
    """Fixed-size windows that overlap so records on a boundary appear whole in one chunk."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    if not 0 <= overlap < size:
        raise ValueError("chunk overlap must be in [0, size)")

    chunks = []
    index = 0
    while index < len(text):
        chunks.append(text[index:index + size])
        index += size - overlap
    return chunks


def _parse_amount(value: Any) -> Optional[float]:
    """Read a money amount from a number or a string like "$1,234.50"."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = str(value).replace("$", "").replace(",", "").strip()
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def _raw_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def build_tradeline(
    raw: Dict[str, Any],
    source_id: str,
    source_kind: str = "PDF_AUTO_EXTRACT",
    now: Optional[datetime] = None,
) -> Tradeline:
    """
    Normalize one raw extraction into a Tradeline.

    Confidence heuristic: +50 with creditor and account number, +30 with a
    balance, +20 with a parseable open date; weighted by the source's
    reliability and decayed by the age of the reporting date.
    """
    creditor = raw.get("creditor")
    account_number = raw.get("account_number")
    balance = _parse_amount(raw.get("balance"))
    date_opened = normalize_date(raw.get("date_opened"))
    date_reported = normalize_date(raw.get("date_reported"))
    status_text = raw.get("status") or raw.get("status_code") or ""

    base = 0
    if creditor and account_number:
        base += 50
    if balance is not None:
        base += 30
    if date_opened:
        base += 20

    confidence = round(base * source_weight(source_kind))
    confidence = calculate_confidence_decay(confidence, date_reported, now)

    def date_field(key: str):
        parsed = normalize_date(raw.get(key))
        return create_normalized_field(parsed, _raw_text(raw.get(key)), confidence if parsed else 0, source_id)

    def amount_field(key: str):
        parsed = _parse_amount(raw.get(key))
        return create_normalized_field(
            parsed if parsed is not None else 0,
            _raw_text(raw.get(key)),
            confidence if parsed is not None else 0,
            source_id,
        )

    return Tradeline(
        creditor=create_normalized_field(creditor or "Unknown", _raw_text(creditor), confidence, source_id),
        account_number=create_normalized_field(
            account_number or "****", _raw_text(account_number), confidence, source_id
        ),
        account_type=create_normalized_field(
            raw.get("account_type") or "Unknown", _raw_text(raw.get("account_type")), confidence - 10, source_id
        ),
        date_opened=create_normalized_field(date_opened, _raw_text(raw.get("date_opened")), confidence, source_id),
        date_last_active=date_field("date_last_active"),
        date_closed=date_field("date_closed"),
        date_reported=create_normalized_field(
            date_reported, _raw_text(raw.get("date_reported")), confidence if date_reported else 0, source_id
        ),
        balance=amount_field("balance"),
        credit_limit=amount_field("credit_limit"),
        past_due_amount=amount_field("past_due_amount"),
        status=create_normalized_field(status_text or "Normal", _raw_text(status_text), confidence, source_id),
        status_code=create_normalized_field(
            map_status_to_metro2(status_text), _raw_text(status_text), confidence, source_id
        ),
        is_disputed=bool(raw.get("is_disputed", False)),
        remarks=[str(r) for r in raw.get("remarks") or []],
        payment_history=[str(p) for p in raw.get("payment_history") or []],
    )


def _number(value: Any) -> float:
    if value is None or value == CONFLICT:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def compute_metrics(tradelines: List[Tradeline], now: Optional[datetime] = None) -> ProfileMetrics:
    """Summary metrics over a resolved tradeline set."""
    today = (now or datetime.now(timezone.utc)).date()

    total_debt = sum(_number(t.balance.value) for t in tradelines)
    total_limit = sum(_number(t.credit_limit.value) for t in tradelines)
    utilization = round(total_debt / total_limit * 100) if total_limit > 0 else 0
    derogatory = sum(1 for t in tradelines if t.status_code.value != METRO2_CURRENT)

    ages = []
    for tradeline in tradelines:
        opened = parse_iso_date(tradeline.date_opened.value)
        if opened is None or opened > today:
            continue
        delta = relativedelta(today, opened)
        ages.append(delta.years * 12 + delta.months)

    return ProfileMetrics(
        total_debt=round(total_debt, 2),
        total_limit=round(total_limit, 2),
        utilization=utilization,
        derogatory_count=derogatory,
        average_age_months=round(sum(ages) / len(ages)) if ages else 0,
    )


class IngestionService:
    """
    Feeds extracted reports into the Intelligence Loop.

    Args:
        extractor: ExtractionProvider for unstructured text
        loop: running IntelligenceLoop; its store and event bus are reused
        source_kind: reliability class used for SOURCE_WEIGHTS
    """

    def __init__(
        self,
        extractor: ExtractionProvider,
        loop: IntelligenceLoop,
        source_kind: str = "PDF_AUTO_EXTRACT",
        chunk_size: int = INGEST_CHUNK_SIZE,
        chunk_overlap: int = INGEST_CHUNK_OVERLAP,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.extractor = extractor
        self.loop = loop
        self.source_kind = source_kind
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _emit(self, user_id: str, phase: LifecyclePhase, progress: int, message: str) -> None:
        self.loop.events.emit(user_id, phase, progress, message)

    async def ingest_text(self, user_id: str, text: str, file_name: str) -> LifecycleResult:
        now = self._clock()
        self._emit(user_id, LifecyclePhase.INITIALIZING, 5, f"Ingestion initiated for {file_name}")

        chunks = chunk_text(text, self.chunk_size, self.chunk_overlap)
        logger.info(f"[Ingestion] {file_name}: segmented into {len(chunks)} blocks")
        self._emit(user_id, LifecyclePhase.PARSING_TEXT, 10, f"Segmented report into {len(chunks)} blocks")

        raw_tradelines: List[Dict[str, Any]] = []
        raw_identity: Dict[str, Any] = {}
        for i, chunk in enumerate(chunks):
            self._emit(
                user_id,
                LifecyclePhase.EXTRACTING_TRADELINES,
                10 + round(i / len(chunks) * 40),
                f"Extracting block {i + 1}/{len(chunks)}...",
            )
            try:
                extraction = await self.extractor.extract(chunk)
            except Exception as e:
                logger.error(f"[Ingestion] Chunk {i} extraction failed: {e}")
                continue
            if not isinstance(extraction, dict):
                continue
            raw_tradelines.extend(t for t in extraction.get("tradelines") or [] if isinstance(t, dict))
            if not raw_identity and isinstance(extraction.get("identity"), dict):
                raw_identity = extraction["identity"]

        if not raw_tradelines:
            logger.error(f"[Ingestion] All {len(chunks)} chunks produced zero tradeline extractions")
            self._emit(user_id, LifecyclePhase.ERROR, 0, "No tradeline data extracted.")
            return LifecycleResult(
                user_id=user_id,
                status=LifecycleStatus.ERROR,
                error="No tradeline data extracted",
            )

        self._emit(user_id, LifecyclePhase.VALIDATING_METRO2, 50, "Normalizing fields and computing confidence...")
        source_id = f"file-{file_name}"
        extracted = [build_tradeline(raw, source_id, self.source_kind, now) for raw in raw_tradelines]

        def merge(existing: Optional[UserCreditProfile]) -> UserCreditProfile:
            # Runs inside the subject's queue, against the latest stored profile
            if existing is not None:
                profile = existing
                profile.tradelines = resolve_tradeline_duplicates(existing.tradelines + extracted)
            else:
                profile = UserCreditProfile(
                    user_id=user_id,
                    identity=Identity(
                        name=raw_identity.get("name") or "Unknown Consumer",
                        ssn_partial=raw_identity.get("ssn_partial") or "XXXX",
                        dob=normalize_date(raw_identity.get("dob")),
                    ),
                    tradelines=resolve_tradeline_duplicates(extracted),
                )

            profile.metrics = compute_metrics(profile.tradelines, now)
            logger.info(
                f"[Ingestion] {file_name}: {len(extracted)} extracted tradelines resolved into "
                f"{len(profile.tradelines)} accounts for {user_id}"
            )
            return profile

        return await self.loop.apply_update(user_id, merge)
