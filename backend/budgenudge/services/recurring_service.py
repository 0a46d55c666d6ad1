"""Service for recurring merchant detection and management."""

from typing import List, Optional, Dict, Tuple, Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from statistics import mean, median, pstdev
import logging
import re
import uuid

from sqlalchemy.orm import Session

from budgenudge.config import settings
from budgenudge.exceptions import DataInconsistencyError, ValidationError
from budgenudge.models.recurring import RecurringMerchant, FrequencyClass, PredictionSource
from budgenudge.models.transaction import Transaction
from budgenudge.services.prediction_service import predict_next_for

logger = logging.getLogger(__name__)

# (low, high) inclusive day bands per class
FREQUENCY_BANDS = [
    (FrequencyClass.weekly, 5, 9),
    (FrequencyClass.monthly, 24, 35),
    (FrequencyClass.quarterly, 80, 100),
]

# Trailing reference tokens: "#1234", "*AB12CD", "8839201", "ID:9912", and
# "*AB12" or "#77" glued to the merchant name
_TRAILING_REF = re.compile(r"(?:\s*[#*][^\s#*]*|\s+\S*\d\S*)+$")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class Occurrence:
    """One transaction reduced to what the detector needs."""
    date: date
    amount: Decimal
    merchant_text: str


@dataclass(frozen=True)
class DetectionResult:
    """Candidate produced by the detector for one (merchant key, source) group."""
    merchant_key: str
    display_name: str
    source: PredictionSource
    frequency_class: FrequencyClass
    average_amount: Decimal
    last_occurrence_date: date
    occurrence_count: int

    @property
    def is_confirmed(self) -> bool:
        return self.frequency_class in (
            FrequencyClass.weekly, FrequencyClass.monthly, FrequencyClass.quarterly
        )


def normalize_merchant_key(text: str) -> str:
    """Case-fold merchant text and strip trailing transaction ids and digits."""
    cleaned = _WHITESPACE.sub(" ", (text or "").strip())
    stripped = _TRAILING_REF.sub("", cleaned)
    # Keep the original text when everything looked like a reference
    return (stripped or cleaned).casefold()


def classify_deltas(deltas: List[int]) -> FrequencyClass:
    """Map inter-occurrence gaps to a frequency class; every gap must share a band."""
    if any(d <= 0 for d in deltas):
        raise DataInconsistencyError(f"Non-positive interval in {deltas}")

    for frequency, low, high in FREQUENCY_BANDS:
        if all(low <= d <= high for d in deltas):
            return frequency
    return FrequencyClass.irregular


def relative_std_dev(amounts: List[Decimal]) -> float:
    values = [float(a) for a in amounts]
    avg = mean(values)
    if avg == 0:
        return 0.0
    return pstdev(values) / avg


def _check_outliers(amounts: List[Decimal], factor: float) -> None:
    mid = float(median(amounts))
    if mid > 0 and any(float(a) > mid * factor for a in amounts):
        raise DataInconsistencyError(f"Amount outlier above {factor}x median {mid:.2f}")


def _quantize(value: float) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def classify_group(
    merchant_key: str,
    source: PredictionSource,
    occurrences: List[Occurrence],
    min_occurrences: Optional[int] = None,
    rsd_threshold: Optional[float] = None,
    outlier_factor: Optional[float] = None,
) -> Optional[DetectionResult]:
    """
    Classify a single merchant group.

    Returns None for single occurrences, an ``unconfirmed`` result for exactly
    two (or for data that contradicts itself), and otherwise the frequency
    class, which is ``irregular`` when the dates or amounts do not line up.
    """
    min_occurrences = min_occurrences or settings.min_occurrences
    rsd_threshold = settings.amount_rsd_threshold if rsd_threshold is None else rsd_threshold
    outlier_factor = outlier_factor or settings.amount_outlier_factor

    if len(occurrences) < 2:
        return None

    ordered = sorted(occurrences, key=lambda o: (o.date, o.amount))
    amounts = [abs(o.amount) for o in ordered]
    average = _quantize(mean(float(a) for a in amounts))
    # Latest spelling wins for display
    display_name = ordered[-1].merchant_text.strip()

    def result(frequency: FrequencyClass) -> DetectionResult:
        return DetectionResult(
            merchant_key=merchant_key,
            display_name=display_name,
            source=source,
            frequency_class=frequency,
            average_amount=average,
            last_occurrence_date=ordered[-1].date,
            occurrence_count=len(ordered),
        )

    if len(ordered) < min_occurrences:
        return result(FrequencyClass.unconfirmed)

    deltas = [(b.date - a.date).days for a, b in zip(ordered, ordered[1:])]
    try:
        _check_outliers(amounts, outlier_factor)
        frequency = classify_deltas(deltas)
    except DataInconsistencyError as e:
        logger.warning("Recurring detection: %s marked unconfirmed: %s", merchant_key, e)
        return result(FrequencyClass.unconfirmed)

    if frequency != FrequencyClass.irregular and relative_std_dev(amounts) > rsd_threshold:
        # Regular dates with wildly varying amounts are not a bill
        frequency = FrequencyClass.irregular

    return result(frequency)


def group_occurrences(
    transactions: Iterable[Transaction]
) -> Dict[Tuple[str, PredictionSource], List[Occurrence]]:
    groups: Dict[Tuple[str, PredictionSource], List[Occurrence]] = {}
    for t in transactions:
        if t.pending or t.amount == 0:
            continue
        source = PredictionSource.bill if t.amount < 0 else PredictionSource.income
        key = normalize_merchant_key(t.merchant_text)
        groups.setdefault((key, source), []).append(
            Occurrence(date=t.date, amount=Decimal(t.amount), merchant_text=t.merchant_text)
        )
    return groups


def detect_patterns(transactions: Iterable[Transaction]) -> List[DetectionResult]:
    """Run the detector over a transaction set. Output is sorted by merchant key."""
    results = []
    for (key, source), occurrences in group_occurrences(transactions).items():
        detection = classify_group(key, source, occurrences)
        if detection is not None:
            results.append(detection)
    return sorted(results, key=lambda r: (r.merchant_key, r.source.value))


def get_lookback_transactions(
    db: Session,
    user_id: str,
    today: date,
    lookback_days: Optional[int] = None
) -> List[Transaction]:
    cutoff = today - timedelta(days=lookback_days or settings.lookback_days)
    return db.query(Transaction).filter(
        Transaction.user_id == user_id,
        Transaction.date >= cutoff,
        Transaction.date <= today,
    ).order_by(Transaction.date).all()


def sync_recurring_merchants(
    db: Session,
    user_id: str,
    today: date,
    holiday_calendar=None
) -> List[DetectionResult]:
    """
    Detect patterns for a user and persist the confirmed ones.

    Existing records that no longer meet the threshold are left untouched;
    the deactivation rule in the maintenance pass retires them.
    """
    transactions = get_lookback_transactions(db, user_id, today)
    if not transactions:
        raise ValidationError(f"User {user_id} has no transactions in the lookback window")

    detections = detect_patterns(transactions)

    existing = {
        (m.merchant_key, m.source): m
        for m in db.query(RecurringMerchant).filter(RecurringMerchant.user_id == user_id).all()
    }

    created = updated = 0
    for detection in detections:
        if not detection.is_confirmed:
            continue

        merchant = existing.get((detection.merchant_key, detection.source))
        if merchant is None:
            merchant = RecurringMerchant(
                id=str(uuid.uuid4()),
                user_id=user_id,
                merchant_key=detection.merchant_key,
                source=detection.source,
                is_active=True,
                auto_detected=True,
            )
            db.add(merchant)
            created += 1
        elif not merchant.is_active and detection.last_occurrence_date <= merchant.last_occurrence_date:
            # Nothing new since it was retired
            continue
        else:
            updated += 1

        merchant.display_name = detection.display_name
        merchant.frequency_class = detection.frequency_class
        merchant.average_amount = detection.average_amount
        merchant.occurrence_count = detection.occurrence_count
        merchant.last_occurrence_date = detection.last_occurrence_date
        merchant.is_active = True
        merchant.next_predicted_date = predict_next_for(merchant, holiday_calendar)

    db.commit()
    logger.info(
        "Recurring sync for user %s: %d candidates, %d created, %d updated",
        user_id, len(detections), created, updated,
    )
    return detections


def get_recurring_merchants(
    db: Session,
    user_id: str,
    include_inactive: bool = False
) -> List[RecurringMerchant]:
    """Get a user's recurring merchants ordered by next predicted date."""
    query = db.query(RecurringMerchant).filter(RecurringMerchant.user_id == user_id)

    if not include_inactive:
        query = query.filter(RecurringMerchant.is_active == True)

    return query.order_by(
        RecurringMerchant.next_predicted_date, RecurringMerchant.merchant_key
    ).all()
