"""Service for spending-pace tracking against a historical baseline."""

from typing import List, Optional, Dict, Tuple, Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from calendar import monthrange
import logging
import uuid

from sqlalchemy.orm import Session

from budgenudge.config import settings
from budgenudge.exceptions import ValidationError
from budgenudge.models.pacing import PacingRecord, TrackedKeyType, SelectionSource, PaceStatus
from budgenudge.models.transaction import Transaction
from budgenudge.services.prediction_service import add_months
from budgenudge.services.recurring_service import normalize_merchant_key

logger = logging.getLogger(__name__)

EPSILON = 1e-6


@dataclass(frozen=True)
class PaceResult:
    elapsed_fraction: float
    pace_ratio: Optional[float]
    status: PaceStatus


def period_bounds(day: date) -> Tuple[date, date]:
    """Calendar month containing ``day`` as (first day, last day)."""
    start = day.replace(day=1)
    end = day.replace(day=monthrange(day.year, day.month)[1])
    return start, end


def elapsed_fraction(today: date, period_start: date, period_end: date) -> float:
    """Share of the period elapsed, counting today as an elapsed day."""
    total_days = (period_end - period_start).days + 1
    days_elapsed = min(max((today - period_start).days + 1, 0), total_days)
    return days_elapsed / total_days


def compute_pace(
    current_amount: float,
    baseline_amount: float,
    fraction: float,
    over_ratio: Optional[float] = None,
    under_ratio: Optional[float] = None,
) -> PaceResult:
    """Project current spend over the full period and compare with the baseline."""
    over_ratio = over_ratio or settings.pacing_over_ratio
    under_ratio = under_ratio or settings.pacing_under_ratio

    if baseline_amount <= 0:
        return PaceResult(elapsed_fraction=fraction, pace_ratio=None, status=PaceStatus.no_baseline)

    ratio = (current_amount / max(fraction, EPSILON)) / baseline_amount
    if ratio > over_ratio:
        status = PaceStatus.over
    elif ratio < under_ratio:
        status = PaceStatus.under
    else:
        status = PaceStatus.on_pace
    return PaceResult(elapsed_fraction=fraction, pace_ratio=ratio, status=status)


def tracked_key_for(transaction: Transaction, key_type: TrackedKeyType) -> Optional[str]:
    if key_type == TrackedKeyType.merchant:
        return normalize_merchant_key(transaction.merchant_text)
    if transaction.enriched_category:
        return transaction.enriched_category.strip().casefold()
    return None


def _spending(db: Session, user_id: str, until: date) -> List[Transaction]:
    return db.query(Transaction).filter(
        Transaction.user_id == user_id,
        Transaction.amount < 0,
        Transaction.pending == False,
        Transaction.date <= until,
    ).all()


def baseline_for(
    spend_by_month: Dict[date, Decimal],
    current_start: date,
    first_month: Optional[date],
    periods: Optional[int] = None
) -> Decimal:
    """
    Mean spend of the most recent completed months, excluding the current one.

    Months before the user's first transaction are not counted, so a new user
    is averaged over the history that actually exists.
    """
    periods = periods or settings.pacing_baseline_periods
    months = []
    for back in range(1, periods + 1):
        month = add_months(current_start, -back)
        if first_month is None or month < first_month:
            break
        months.append(spend_by_month.get(month, Decimal("0")))
    if not months:
        return Decimal("0")
    return (sum(months) / len(months)).quantize(Decimal("0.01"))


def total_spend_by_key(
    transactions: Iterable[Transaction],
    key_type: TrackedKeyType
) -> Dict[str, Decimal]:
    totals: Dict[str, Decimal] = {}
    for t in transactions:
        key = tracked_key_for(t, key_type)
        if key:
            totals[key] = totals.get(key, Decimal("0")) + abs(Decimal(t.amount))
    return totals


def rank_keys(totals: Dict[str, Decimal], top_k: int) -> List[str]:
    """Highest total spend first; ties broken alphabetically."""
    return [key for key, _ in sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))[:top_k]]


def auto_select(
    db: Session,
    user_id: str,
    key_type: TrackedKeyType,
    today: date,
    top_k: Optional[int] = None
) -> List[PacingRecord]:
    """
    Bootstrap the tracked set for a user without a manual selection.

    Does nothing when the user already chose keys by hand for this key type.
    """
    has_manual = db.query(PacingRecord).filter(
        PacingRecord.user_id == user_id,
        PacingRecord.key_type == key_type,
        PacingRecord.selection == SelectionSource.manual,
    ).first() is not None
    if has_manual:
        return get_pacing_records(db, user_id, key_type)

    totals = total_spend_by_key(_spending(db, user_id, today), key_type)
    chosen = rank_keys(totals, top_k or settings.pacing_auto_select_count)
    records = _apply_selection(db, user_id, key_type, chosen, SelectionSource.auto)
    logger.info("Auto-selected %d %s keys for user %s", len(records), key_type.value, user_id)
    return records


def set_manual_selection(
    db: Session,
    user_id: str,
    key_type: TrackedKeyType,
    keys: List[str]
) -> List[PacingRecord]:
    """Replace the active tracked set with the user's explicit choice."""
    normalized = sorted({
        normalize_merchant_key(k) if key_type == TrackedKeyType.merchant else k.strip().casefold()
        for k in keys if k and k.strip()
    })
    return _apply_selection(db, user_id, key_type, normalized, SelectionSource.manual)


def _apply_selection(
    db: Session,
    user_id: str,
    key_type: TrackedKeyType,
    keys: List[str],
    selection: SelectionSource
) -> List[PacingRecord]:
    existing = {
        r.tracked_key: r
        for r in db.query(PacingRecord).filter(
            PacingRecord.user_id == user_id,
            PacingRecord.key_type == key_type,
        ).all()
    }

    for key, record in existing.items():
        if key not in keys:
            record.is_active = False

    for key in keys:
        record = existing.get(key)
        if record is None:
            record = PacingRecord(
                id=str(uuid.uuid4()),
                user_id=user_id,
                key_type=key_type,
                tracked_key=key,
            )
            db.add(record)
        record.selection = selection
        record.is_active = True

    db.commit()
    return get_pacing_records(db, user_id, key_type)


def refresh_pacing(db: Session, user_id: str, today: date) -> List[PacingRecord]:
    """Recompute baseline, current spend and pace for every active record of a user."""
    records = db.query(PacingRecord).filter(
        PacingRecord.user_id == user_id,
        PacingRecord.is_active == True,
    ).all()
    if not records:
        return []

    transactions = _spending(db, user_id, today)
    if not transactions:
        raise ValidationError(f"User {user_id} has no spending to pace")

    first_month = min(t.date for t in transactions).replace(day=1)
    current_start, current_end = period_bounds(today)
    fraction = elapsed_fraction(today, current_start, current_end)

    # month -> key -> amount, per key type
    monthly: Dict[TrackedKeyType, Dict[str, Dict[date, Decimal]]] = {}
    for key_type in {r.key_type for r in records}:
        by_key: Dict[str, Dict[date, Decimal]] = {}
        for t in transactions:
            key = tracked_key_for(t, key_type)
            if not key:
                continue
            month = t.date.replace(day=1)
            bucket = by_key.setdefault(key, {})
            bucket[month] = bucket.get(month, Decimal("0")) + abs(Decimal(t.amount))
        monthly[key_type] = by_key

    for record in records:
        spend = monthly[record.key_type].get(record.tracked_key, {})
        current = spend.get(current_start, Decimal("0"))
        baseline = baseline_for(spend, current_start, first_month)
        pace = compute_pace(float(current), float(baseline), fraction)

        record.period_start = current_start
        record.period_end = current_end
        record.current_period_amount = current
        record.baseline_amount = baseline
        record.pace_ratio = pace.pace_ratio
        record.pace_status = pace.status
        record.updated_at = datetime.utcnow()

    db.commit()
    return records


def get_pacing_records(
    db: Session,
    user_id: str,
    key_type: Optional[TrackedKeyType] = None,
    include_inactive: bool = False
) -> List[PacingRecord]:
    query = db.query(PacingRecord).filter(PacingRecord.user_id == user_id)
    if key_type is not None:
        query = query.filter(PacingRecord.key_type == key_type)
    if not include_inactive:
        query = query.filter(PacingRecord.is_active == True)
    return query.order_by(PacingRecord.key_type, PacingRecord.tracked_key).all()
