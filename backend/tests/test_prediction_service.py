"""Tests for next-date prediction, business-day adjustment and past-date correction."""

import pytest
import uuid
from datetime import date, timedelta
from decimal import Decimal

from budgenudge.models.recurring import RecurringMerchant, FrequencyClass, PredictionSource
from budgenudge.services.prediction_service import (
    BusinessDayDirection,
    add_months,
    adjust_to_business_day,
    correct_past_dates,
    get_holiday_calendar,
    is_missed,
    predict_next,
    predict_step,
    roll_forward,
)


@pytest.fixture
def us_holidays():
    return get_holiday_calendar("US")


class TestPredictNext:
    """Test next expected date calculations."""

    def test_weekly(self):
        """Weekly should add 7 days."""
        assert predict_next(date(2025, 1, 15), FrequencyClass.weekly) == date(2025, 1, 22)

    def test_monthly_normal(self):
        assert predict_next(date(2025, 1, 5), FrequencyClass.monthly) == date(2025, 2, 5)

    def test_monthly_end_of_month(self):
        """Monthly on the 31st clamps to the end of February."""
        assert predict_next(date(2025, 1, 31), FrequencyClass.monthly) == date(2025, 2, 28)

    def test_monthly_leap_year(self):
        assert predict_next(date(2024, 1, 31), FrequencyClass.monthly) == date(2024, 2, 29)

    def test_monthly_year_rollover(self):
        assert predict_next(date(2024, 12, 15), FrequencyClass.monthly) == date(2025, 1, 15)

    def test_quarterly_year_rollover(self):
        assert predict_next(date(2024, 11, 30), FrequencyClass.quarterly) == date(2025, 2, 28)

    def test_irregular_is_rejected(self):
        with pytest.raises(ValueError):
            predict_next(date(2025, 1, 1), FrequencyClass.irregular)

    def test_multi_step_does_not_drift(self):
        """Two monthly steps from Jan 31 land on Mar 31, not Mar 28."""
        assert predict_step(date(2025, 1, 31), FrequencyClass.monthly, 2) == date(2025, 3, 31)

    def test_add_months_backwards(self):
        assert add_months(date(2025, 3, 31), -1) == date(2025, 2, 28)


class TestBusinessDays:
    """Weekend and holiday shifting."""

    def test_none_leaves_weekend(self, us_holidays):
        saturday = date(2025, 4, 5)
        assert adjust_to_business_day(saturday, BusinessDayDirection.none, us_holidays) == saturday

    def test_preceding_weekend(self, us_holidays):
        assert adjust_to_business_day(
            date(2025, 5, 3), BusinessDayDirection.preceding, us_holidays
        ) == date(2025, 5, 2)

    def test_preceding_holiday(self, us_holidays):
        """Independence Day 2025 is a Friday."""
        assert adjust_to_business_day(
            date(2025, 7, 4), BusinessDayDirection.preceding, us_holidays
        ) == date(2025, 7, 3)

    def test_following_holiday_and_weekend(self, us_holidays):
        assert adjust_to_business_day(
            date(2025, 7, 4), BusinessDayDirection.following, us_holidays
        ) == date(2025, 7, 7)

    def test_business_day_unchanged(self, us_holidays):
        tuesday = date(2025, 4, 15)
        assert adjust_to_business_day(tuesday, BusinessDayDirection.following, us_holidays) == tuesday


class TestRollForward:
    """Stale predictions advance by whole intervals until after today."""

    def test_one_step(self):
        assert roll_forward(date(2025, 4, 5), FrequencyClass.monthly, date(2025, 4, 6)) == date(2025, 5, 5)

    def test_lands_on_today_is_not_enough(self):
        """A result equal to today is still stale."""
        assert roll_forward(date(2025, 3, 6), FrequencyClass.monthly, date(2025, 4, 6)) == date(2025, 5, 6)

    def test_month_end_anchor(self):
        assert roll_forward(date(2025, 1, 31), FrequencyClass.monthly, date(2025, 3, 15)) == date(2025, 3, 31)

    @pytest.mark.parametrize("offset", [0, 1, 6, 7, 13, 29, 90, 365])
    def test_weekly_stays_on_cadence(self, offset):
        stale = date(2025, 3, 1)
        today = stale + timedelta(days=offset)
        result = roll_forward(stale, FrequencyClass.weekly, today)
        assert result > today
        assert (result - stale).days % 7 == 0
        assert result - timedelta(days=7) <= today

    @pytest.mark.parametrize("today", [date(2025, 4, 30), date(2025, 6, 1), date(2026, 1, 2)])
    def test_quarterly_is_whole_steps(self, today):
        stale = date(2025, 3, 15)
        result = roll_forward(stale, FrequencyClass.quarterly, today)
        assert result > today
        assert any(predict_step(stale, FrequencyClass.quarterly, k) == result for k in range(1, 10))


def _merchant(user_id, last, next_date, frequency=FrequencyClass.monthly, key="acme gym"):
    return RecurringMerchant(
        id=str(uuid.uuid4()),
        user_id=user_id,
        merchant_key=key,
        display_name=key.title(),
        source=PredictionSource.bill,
        frequency_class=frequency,
        average_amount=Decimal("49.99"),
        occurrence_count=3,
        last_occurrence_date=last,
        next_predicted_date=next_date,
        is_active=True,
    )


class TestIsMissed:

    def test_within_two_intervals(self, db_session, sample_user):
        merchant = _merchant(sample_user.id, date(2025, 1, 5), date(2025, 2, 5))
        # Expected Feb 5, sixty days later is still inside the window
        assert not is_missed(merchant, date(2025, 4, 6))

    def test_beyond_two_intervals(self, db_session, sample_user):
        merchant = _merchant(sample_user.id, date(2025, 1, 5), date(2025, 2, 5))
        assert is_missed(merchant, date(2025, 4, 7))


class TestCorrectPastDates:
    """Maintenance pass over stored predictions."""

    def test_rolls_stale_prediction(self, db_session, sample_merchant):
        result = correct_past_dates(db_session, date(2025, 4, 20))

        db_session.refresh(sample_merchant)
        assert sample_merchant.next_predicted_date == date(2025, 5, 12)
        assert len(result["corrected"]) == 1
        assert result["corrected"][0]["old_date"] == date(2025, 4, 12)
        assert result["deactivated"] == []

    def test_future_prediction_untouched(self, db_session, sample_merchant):
        result = correct_past_dates(db_session, date(2025, 4, 1))

        db_session.refresh(sample_merchant)
        assert sample_merchant.next_predicted_date == date(2025, 4, 12)
        assert result["corrected"] == []

    def test_missing_prediction_is_filled(self, db_session, sample_user):
        merchant = _merchant(sample_user.id, date(2025, 3, 5), None)
        db_session.add(merchant)
        db_session.commit()

        correct_past_dates(db_session, date(2025, 3, 10))

        db_session.refresh(merchant)
        assert merchant.next_predicted_date == date(2025, 4, 5)

    def test_deactivates_missed_merchant(self, db_session, sample_user):
        merchant = _merchant(sample_user.id, date(2024, 12, 1), date(2025, 1, 1))
        db_session.add(merchant)
        db_session.commit()

        result = correct_past_dates(db_session, date(2025, 4, 20))

        db_session.refresh(merchant)
        assert merchant.is_active is False
        assert result["deactivated"] == [merchant.id]

    def test_result_is_always_after_today(self, db_session, sample_user):
        merchants = [
            _merchant(sample_user.id, date(2025, 4, 5), date(2025, 4, 12), FrequencyClass.weekly, "weekly"),
            _merchant(sample_user.id, date(2025, 2, 28), date(2025, 3, 31), FrequencyClass.monthly, "monthly"),
            _merchant(sample_user.id, date(2025, 1, 15), date(2025, 4, 15), FrequencyClass.quarterly, "quarterly"),
        ]
        db_session.add_all(merchants)
        db_session.commit()

        today = date(2025, 4, 16)
        correct_past_dates(db_session, today)

        for merchant in merchants:
            db_session.refresh(merchant)
            assert merchant.is_active
            assert merchant.next_predicted_date > today

    def test_user_filter(self, db_session, sample_merchant, create_user):
        other = create_user(db_session)
        merchant = _merchant(other.id, date(2025, 3, 12), date(2025, 4, 12))
        db_session.add(merchant)
        db_session.commit()

        correct_past_dates(db_session, date(2025, 4, 20), user_id=other.id)

        db_session.refresh(sample_merchant)
        db_session.refresh(merchant)
        assert sample_merchant.next_predicted_date == date(2025, 4, 12)
        assert merchant.next_predicted_date == date(2025, 5, 12)
