"""Tests for template rendering and truncation."""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from budgenudge.exceptions import ValidationError
from budgenudge.models.notification import TemplateType
from budgenudge.models.pacing import PaceStatus, TrackedKeyType
from budgenudge.models.recurring import PredictionSource
from budgenudge.services.recurring_service import sync_recurring_merchants
from budgenudge.services.template_service import (
    ELLIPSIS,
    SECTION_BUILDERS,
    TEMPLATE_SPECS,
    BillLine,
    PaceLine,
    Section,
    SpendLine,
    TemplateContext,
    assemble,
    build_context,
    fit_to_budget,
    render,
)

AS_OF = date(2025, 3, 6)


def bill(name, amount, when, source=PredictionSource.bill):
    return BillLine(name, Decimal(amount), when, source)


class TestRegistry:

    def test_every_type_has_spec_and_builder(self):
        for template_type in TemplateType:
            assert template_type in TEMPLATE_SPECS
            assert template_type in SECTION_BUILDERS

    def test_weekly_only_on_sunday(self):
        spec = TEMPLATE_SPECS[TemplateType.weekly_summary]
        assert spec.is_due_on(date(2025, 4, 6))
        assert not spec.is_due_on(date(2025, 4, 7))

    def test_monthly_only_on_first(self):
        spec = TEMPLATE_SPECS[TemplateType.monthly_summary]
        assert spec.is_due_on(date(2025, 4, 1))
        assert not spec.is_due_on(date(2025, 4, 2))


class TestRecurringSummary:

    def test_single_bill(self):
        ctx = TemplateContext(as_of=AS_OF, bills=(bill("ACME GYM #4471", "49.99", date(2025, 4, 5)),))

        text = render(TemplateType.recurring_summary, ctx)

        assert text.startswith("Recurring Bills\n1 upcoming")
        assert "Apr 5: ACME GYM #4471 - $49.99" in text
        assert "Next 7 days: $0.00" in text
        assert "Next 30 days: $49.99" in text

    def test_income_and_past_dates_excluded(self):
        ctx = TemplateContext(as_of=AS_OF, bills=(
            bill("PAYROLL", "2500.00", date(2025, 3, 14), PredictionSource.income),
            bill("OLD", "10.00", date(2025, 3, 1)),
            bill("NETFLIX", "15.49", date(2025, 3, 12)),
        ))

        text = render(TemplateType.recurring_summary, ctx)

        assert "PAYROLL" not in text
        assert "OLD" not in text
        assert "1 upcoming" in text

    def test_no_bills_raises(self):
        with pytest.raises(ValidationError):
            render(TemplateType.recurring_summary, TemplateContext(as_of=AS_OF))

    def test_deterministic(self):
        ctx = TemplateContext(as_of=AS_OF, bills=tuple(
            bill(f"MERCHANT {i}", "10.00", AS_OF + timedelta(days=i + 1)) for i in range(5)
        ))
        assert render(TemplateType.recurring_summary, ctx) == render(TemplateType.recurring_summary, ctx)

    def test_truncation_keeps_header_and_totals(self):
        ctx = TemplateContext(as_of=AS_OF, bills=tuple(
            bill(f"SUBSCRIPTION NUMBER {i:02d}", "12.34", AS_OF + timedelta(days=i % 28 + 1)) for i in range(40)
        ))

        text = render(TemplateType.recurring_summary, ctx)

        assert len(text) <= TEMPLATE_SPECS[TemplateType.recurring_summary].budget
        assert text.startswith("Recurring Bills\n40 upcoming")
        assert "Next 30 days: $493.60" in text
        # Soonest bill survives, latest ones are dropped first
        assert "Mar 7:" in text
        assert "Apr 3:" not in text


class TestFitToBudget:

    def test_fits_untouched(self):
        sections = [Section("Header", required=True), Section("body", priority=1)]
        assert fit_to_budget(sections, 100) == "Header\nbody"

    def test_drops_lowest_priority_first(self):
        sections = [
            Section("Header", required=True),
            Section("keep me", priority=5),
            Section("drop me", priority=1),
        ]
        assert fit_to_budget(sections, 15) == "Header\nkeep me"

    def test_required_text_cut_with_ellipsis(self):
        sections = [Section("Header", required=True), Section("x" * 400, required=True)]

        text = fit_to_budget(sections, 50)

        assert len(text) <= 50
        assert text.startswith("Header\n")
        assert text.endswith(ELLIPSIS)


class TestOtherTemplates:

    def test_activity_without_transactions(self):
        text = render(TemplateType.activity, TemplateContext(as_of=AS_OF))
        assert text == "Yesterday's Activity\n\nNo transactions yesterday."

    def test_activity_lists_yesterday(self):
        ctx = TemplateContext(as_of=AS_OF, spending=(
            SpendLine(AS_OF - timedelta(days=1), "Whole Foods", "Groceries", Decimal("42.10")),
            SpendLine(AS_OF - timedelta(days=1), "Shell", "Gas", Decimal("38.00")),
            SpendLine(AS_OF - timedelta(days=2), "Cinema", "Fun", Decimal("25.00")),
        ))

        text = render(TemplateType.activity, ctx)

        assert "Whole Foods - $42.10" in text
        assert "Cinema" not in text
        assert text.endswith("Yesterday's total: $80.10")

    def test_pacing_alert(self):
        ctx = TemplateContext(as_of=date(2025, 4, 15), pacing=(
            PaceLine("whole foods", TrackedKeyType.merchant, Decimal("240"), Decimal("300"), 1.6, PaceStatus.over),
            PaceLine("gas", TrackedKeyType.category, Decimal("0"), Decimal("60"), 0.0, PaceStatus.under),
        ))

        text = render(TemplateType.pacing_alert, ctx)

        assert text.startswith("Spending Pace - Apr 2025 (Day 15/30)\n1 over, 1 under, 0 on pace")
        assert "Whole Foods: $240.00 of $300.00 avg (160%, over pace)" in text

    def test_pacing_alert_without_records_raises(self):
        with pytest.raises(ValidationError):
            render(TemplateType.pacing_alert, TemplateContext(as_of=AS_OF))

    def test_monthly_summary_covers_previous_month(self):
        ctx = TemplateContext(as_of=date(2025, 4, 1), spending=(
            SpendLine(date(2025, 3, 3), "Whole Foods", "groceries", Decimal("100.00")),
            SpendLine(date(2025, 3, 20), "Shell", "gas", Decimal("40.00")),
            SpendLine(date(2025, 2, 27), "Cinema", "fun", Decimal("25.00")),
        ))

        text = render(TemplateType.monthly_summary, ctx)

        assert text.startswith("March 2025 Summary\nTotal spent: $140.00 (2 transactions)")
        assert "Groceries - $100.00" in text
        assert "Cinema" not in text

    def test_afternoon_recap_only_flags_over(self):
        ctx = TemplateContext(
            as_of=date(2025, 4, 15),
            spending=(SpendLine(date(2025, 4, 15), "Shell", "gas", Decimal("30.00")),),
            pacing=(
                PaceLine("whole foods", TrackedKeyType.merchant, Decimal("240"), Decimal("300"), 1.6, PaceStatus.over),
                PaceLine("cinema", TrackedKeyType.merchant, Decimal("5"), Decimal("25"), 0.4, PaceStatus.under),
            ),
        )

        text = render(TemplateType.afternoon_recap, ctx)

        assert "Today: $30.00 | Month to date: $30.00" in text
        assert "Whole Foods" in text
        assert "Cinema" not in text


class TestAssemble:

    def test_assemble_from_database(self, db_session, gym_history):
        sync_recurring_merchants(db_session, gym_history.id, AS_OF)

        text = assemble(db_session, gym_history.id, TemplateType.recurring_summary, AS_OF)

        assert "Apr 5: ACME GYM #4471 - $49.99" in text

    def test_context_loads_only_declared_needs(self, db_session, gym_history):
        sync_recurring_merchants(db_session, gym_history.id, AS_OF)

        ctx = build_context(db_session, gym_history.id, TemplateType.activity, AS_OF)

        assert ctx.bills == ()
        assert ctx.pacing == ()
        assert len(ctx.spending) == 3


class TestSplitPacing:

    def _many_merchants(self):
        merchants = tuple(
            PaceLine(f"merchant number {i:02d}", TrackedKeyType.merchant,
                     Decimal("150"), Decimal("100"), 1.5 + i / 100, PaceStatus.over)
            for i in range(12)
        )
        category = PaceLine("groceries", TrackedKeyType.category, Decimal("80"), Decimal("400"), 0.4, PaceStatus.under)
        return TemplateContext(as_of=date(2025, 4, 15), pacing=merchants + (category,))

    def test_category_line_survives_many_merchants(self):
        text = render(TemplateType.category_pacing, self._many_merchants())

        assert text.startswith("Category Pace - Apr 2025 (Day 15/30)\n0 over, 1 under, 0 on pace")
        assert "Groceries: $80.00 of $400.00 avg (40%, under pace)" in text
        assert "Merchant Number" not in text

    def test_merchant_pacing_excludes_categories(self):
        text = render(TemplateType.merchant_pacing, self._many_merchants())

        assert len(text) <= TEMPLATE_SPECS[TemplateType.merchant_pacing].budget
        assert "12 over, 0 under, 0 on pace" in text
        assert "Groceries" not in text

    def test_category_pacing_without_categories_raises(self):
        ctx = TemplateContext(as_of=AS_OF, pacing=(
            PaceLine("shell", TrackedKeyType.merchant, Decimal("10"), Decimal("20"), 1.0, PaceStatus.on_pace),
        ))
        with pytest.raises(ValidationError):
            render(TemplateType.category_pacing, ctx)


class TestCashFlowRunway:

    def test_bills_before_next_paycheck(self):
        ctx = TemplateContext(as_of=date(2025, 4, 4), bills=(
            bill("CITY POWER", "80.00", date(2025, 4, 20)),
            bill("ACME GYM", "49.99", date(2025, 5, 5)),
            bill("ACME CORP PAYROLL", "2500.00", date(2025, 5, 2), PredictionSource.income),
        ))

        text = render(TemplateType.cash_flow_runway, ctx)

        assert text.startswith("Cash Flow Runway\nNext paycheck: May 2 (28 days)\nACME CORP PAYROLL ~$2,500.00")
        assert "Apr 20: CITY POWER - $80.00" in text
        assert "ACME GYM" not in text
        assert text.endswith("Bills before payday: $80.00 (1)")

    def test_no_income_raises(self):
        ctx = TemplateContext(as_of=AS_OF, bills=(bill("NETFLIX", "15.49", date(2025, 3, 12)),))
        with pytest.raises(ValidationError):
            render(TemplateType.cash_flow_runway, ctx)

    def test_payday_moved_to_preceding_business_day(self, db_session, sample_user, add_txn):
        for when in (date(2025, 2, 3), date(2025, 3, 3), date(2025, 4, 3)):
            add_txn(db_session, sample_user.id, when, "2500.00", "ACME CORP PAYROLL")
        for month in (1, 2, 3):
            add_txn(db_session, sample_user.id, date(2025, month, 20), "-80.00", "CITY POWER")
        sync_recurring_merchants(db_session, sample_user.id, date(2025, 4, 4))

        text = assemble(db_session, sample_user.id, TemplateType.cash_flow_runway, date(2025, 4, 4))

        # May 3 2025 is a Saturday
        assert "Next paycheck: May 2 (28 days)" in text
        assert "Apr 20: CITY POWER - $80.00" in text
        assert "Bills before payday: $80.00 (1)" in text
