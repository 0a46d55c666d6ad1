"""Service for next-occurrence prediction and past-date correction."""

from typing import List, Optional, Dict, Any
from datetime import date, timedelta
from calendar import monthrange
from functools import lru_cache
import enum
import logging

import holidays
from sqlalchemy.orm import Session

from budgenudge.config import settings
from budgenudge.models.recurring import RecurringMerchant, FrequencyClass, PredictionSource

logger = logging.getLogger(__name__)

# Typical interval per class, used by the deactivation rule
INTERVAL_DAYS = {
    FrequencyClass.weekly: 7,
    FrequencyClass.monthly: 30,
    FrequencyClass.quarterly: 91,
}

# Safety net for the roll-forward loop (about 20 years of weekly steps)
MAX_ROLL_STEPS = 1100


class BusinessDayDirection(str, enum.Enum):
    """Where a date that lands on a non-business day is moved."""
    none = "none"
    preceding = "preceding"
    following = "following"


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping the day to the target month's last day."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, monthrange(year, month)[1])
    return date(year, month, day)


def predict_step(anchor: date, frequency: FrequencyClass, steps: int = 1) -> date:
    """Date that lies ``steps`` whole intervals after ``anchor``.

    Monthly and quarterly steps are taken from the anchor in one jump, so a
    31st keeps coming back as the 31st in long months instead of sticking to
    the 28th after February.
    """
    if frequency == FrequencyClass.weekly:
        return anchor + timedelta(days=7 * steps)
    elif frequency == FrequencyClass.monthly:
        return add_months(anchor, steps)
    elif frequency == FrequencyClass.quarterly:
        return add_months(anchor, 3 * steps)
    raise ValueError(f"Cannot predict dates for frequency {frequency.value}")


def predict_next(last_date: date, frequency: FrequencyClass) -> date:
    """Calculate the next expected date based on frequency."""
    return predict_step(last_date, frequency, 1)


@lru_cache(maxsize=8)
def get_holiday_calendar(country_code: Optional[str] = None) -> holidays.HolidayBase:
    return holidays.country_holidays(country_code or settings.holiday_country)


def is_business_day(day: date, holiday_calendar=None) -> bool:
    calendar = holiday_calendar if holiday_calendar is not None else get_holiday_calendar()
    return day.weekday() < 5 and day not in calendar


def adjust_to_business_day(
    day: date,
    direction: BusinessDayDirection,
    holiday_calendar=None
) -> date:
    """Shift a weekend or holiday date to the preceding or following business day."""
    if direction == BusinessDayDirection.none:
        return day

    step = timedelta(days=-1 if direction == BusinessDayDirection.preceding else 1)
    candidate = day
    # A holiday cluster plus a weekend never exceeds a couple of weeks
    for _ in range(14):
        if is_business_day(candidate, holiday_calendar):
            return candidate
        candidate += step
    return candidate


def direction_for_source(source: PredictionSource) -> BusinessDayDirection:
    """Configured business-day direction for a prediction source."""
    if source == PredictionSource.income:
        return BusinessDayDirection(settings.income_business_day_direction)
    return BusinessDayDirection(settings.bill_business_day_direction)


def predict_next_for(merchant: RecurringMerchant, holiday_calendar=None) -> date:
    """Next occurrence after the merchant's last seen date, business-day adjusted."""
    raw = predict_next(merchant.last_occurrence_date, merchant.frequency_class)
    return adjust_to_business_day(raw, direction_for_source(merchant.source), holiday_calendar)


def roll_forward(stale: date, frequency: FrequencyClass, today: date) -> date:
    """Advance a stale prediction by whole intervals until it is after today."""
    for steps in range(1, MAX_ROLL_STEPS + 1):
        candidate = predict_step(stale, frequency, steps)
        if candidate >= today + timedelta(days=1):
            return candidate
    raise ValueError(f"Could not roll {stale} forward past {today}")


def is_missed(merchant: RecurringMerchant, today: date) -> bool:
    """True when the expected occurrence is overdue by more than twice the interval."""
    interval = INTERVAL_DAYS.get(merchant.frequency_class)
    if interval is None:
        return False
    expected = predict_next(merchant.last_occurrence_date, merchant.frequency_class)
    return (today - expected).days > 2 * interval


def correct_past_dates(
    db: Session,
    today: date,
    user_id: Optional[str] = None,
    holiday_calendar=None
) -> Dict[str, Any]:
    """
    Maintenance pass run before anything reads next_predicted_date.

    Deactivates merchants whose occurrence was missed by more than twice the
    typical interval, then rolls every remaining stale prediction forward
    from the stale date itself so the result stays on the original cadence.
    """
    query = db.query(RecurringMerchant).filter(RecurringMerchant.is_active == True)
    if user_id:
        query = query.filter(RecurringMerchant.user_id == user_id)

    deactivated: List[str] = []
    corrected: List[Dict[str, Any]] = []

    for merchant in query.all():
        if merchant.frequency_class not in INTERVAL_DAYS:
            continue

        if is_missed(merchant, today):
            merchant.is_active = False
            deactivated.append(merchant.id)
            logger.info(
                "Deactivated recurring merchant %s (%s): last seen %s",
                merchant.id, merchant.merchant_key, merchant.last_occurrence_date,
            )
            continue

        stale = merchant.next_predicted_date
        if stale is None:
            stale = predict_next(merchant.last_occurrence_date, merchant.frequency_class)
        elif stale >= today:
            continue

        rolled = roll_forward(stale, merchant.frequency_class, today) if stale <= today else stale
        adjusted = adjust_to_business_day(rolled, direction_for_source(merchant.source), holiday_calendar)
        # A preceding shift must not pull the date back into the past
        merchant.next_predicted_date = adjusted if adjusted > today else rolled
        corrected.append({
            "merchant_id": merchant.id,
            "merchant_key": merchant.merchant_key,
            "old_date": stale,
            "new_date": merchant.next_predicted_date,
        })

    db.commit()

    if corrected or deactivated:
        logger.info(
            "Past-date correction: %d corrected, %d deactivated",
            len(corrected), len(deactivated),
        )

    return {"corrected": corrected, "deactivated": deactivated}
