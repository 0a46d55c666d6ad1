"""
Service for assembling notification text.

Every template type maps to a spec (data needs, send slot, budget) and a
section builder. Builders read only a frozen ``TemplateContext`` so the same
snapshot always renders to the same text. When the text is over budget,
sections are dropped lowest priority first; required sections (header and
primary numeric summary) are never dropped.
"""

from typing import List, Optional, Dict, Tuple, Callable
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from decimal import Decimal
import enum

from sqlalchemy.orm import Session

from budgenudge.config import settings
from budgenudge.exceptions import ValidationError
from budgenudge.models.notification import TemplateType
from budgenudge.models.pacing import PacingRecord, PaceStatus, TrackedKeyType
from budgenudge.models.recurring import RecurringMerchant, PredictionSource
from budgenudge.models.transaction import Transaction

MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
MERCHANT_WIDTH = 18
TRANSACTION_WINDOW_DAYS = 62
ELLIPSIS = "..."


class DataNeed(enum.Flag):
    """Inputs a template reads."""
    RECURRING = enum.auto()
    PACING = enum.auto()
    TRANSACTIONS = enum.auto()


@dataclass(frozen=True)
class TemplateSpec:
    template_type: TemplateType
    title: str
    needs: DataNeed
    send_slot: Optional[time] = None  # None: the user's own send time
    weekday: Optional[int] = None  # Only due on this weekday (Monday=0)
    month_day: Optional[int] = None  # Only due on this day of the month
    char_budget: Optional[int] = None  # None: settings.sms_char_budget

    @property
    def budget(self) -> int:
        return self.char_budget or settings.sms_char_budget

    def is_due_on(self, day: date) -> bool:
        if self.weekday is not None and day.weekday() != self.weekday:
            return False
        if self.month_day is not None and day.day != self.month_day:
            return False
        return True


@dataclass(frozen=True)
class Section:
    text: str
    priority: int = 0
    required: bool = False
    gap: bool = False  # Blank line before this section


@dataclass(frozen=True)
class BillLine:
    name: str
    amount: Decimal
    next_date: date
    source: PredictionSource


@dataclass(frozen=True)
class PaceLine:
    key: str
    key_type: TrackedKeyType
    current: Decimal
    baseline: Decimal
    ratio: Optional[float]
    status: PaceStatus


@dataclass(frozen=True)
class SpendLine:
    day: date
    merchant: str
    category: Optional[str]
    amount: Decimal  # Positive spend


@dataclass(frozen=True)
class TemplateContext:
    """Immutable input snapshot for one render."""
    as_of: date
    bills: Tuple[BillLine, ...] = field(default_factory=tuple)
    pacing: Tuple[PaceLine, ...] = field(default_factory=tuple)
    spending: Tuple[SpendLine, ...] = field(default_factory=tuple)


TEMPLATE_SPECS: Dict[TemplateType, TemplateSpec] = {
    TemplateType.recurring_summary: TemplateSpec(
        TemplateType.recurring_summary, "Recurring Bills", DataNeed.RECURRING,
    ),
    TemplateType.activity: TemplateSpec(
        TemplateType.activity, "Yesterday's Activity", DataNeed.TRANSACTIONS,
    ),
    TemplateType.pacing_alert: TemplateSpec(
        TemplateType.pacing_alert, "Spending Pace", DataNeed.PACING,
    ),
    TemplateType.merchant_pacing: TemplateSpec(
        TemplateType.merchant_pacing, "Merchant Pace", DataNeed.PACING,
    ),
    TemplateType.category_pacing: TemplateSpec(
        TemplateType.category_pacing, "Category Pace", DataNeed.PACING,
    ),
    TemplateType.cash_flow_runway: TemplateSpec(
        TemplateType.cash_flow_runway, "Cash Flow Runway", DataNeed.RECURRING,
    ),
    TemplateType.weekly_summary: TemplateSpec(
        TemplateType.weekly_summary, "Weekly Summary",
        DataNeed.TRANSACTIONS | DataNeed.RECURRING, weekday=6,
    ),
    TemplateType.monthly_summary: TemplateSpec(
        TemplateType.monthly_summary, "Monthly Summary",
        DataNeed.TRANSACTIONS | DataNeed.PACING, month_day=1,
    ),
    TemplateType.morning_expenses: TemplateSpec(
        TemplateType.morning_expenses, "Good Morning", DataNeed.TRANSACTIONS,
        send_slot=time(7, 0),
    ),
    TemplateType.afternoon_recap: TemplateSpec(
        TemplateType.afternoon_recap, "Afternoon Check-In",
        DataNeed.TRANSACTIONS | DataNeed.PACING, send_slot=time(16, 15),
    ),
}


# Formatting helpers

def money(amount) -> str:
    return f"${Decimal(amount):,.2f}"


def short_date(day: date) -> str:
    return f"{MONTH_ABBR[day.month - 1]} {day.day}"


def clip(name: str, width: int = MERCHANT_WIDTH) -> str:
    name = name.strip()
    return name if len(name) <= width else name[:width].rstrip()


def _sum(amounts) -> Decimal:
    return sum(amounts, Decimal("0"))


def _spend_on(ctx: TemplateContext, start: date, end: date) -> List[SpendLine]:
    """Spend lines within [start, end], largest first with stable tie-breaks."""
    lines = [s for s in ctx.spending if start <= s.day <= end]
    return sorted(lines, key=lambda s: (-s.amount, s.day, s.merchant))


def _top_merchants(lines: List[SpendLine], limit: int) -> List[Tuple[str, Decimal]]:
    totals: Dict[str, Decimal] = {}
    for s in lines:
        totals[s.merchant] = totals.get(s.merchant, Decimal("0")) + s.amount
    return sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]


def _pace_label(line: PaceLine) -> str:
    if line.status == PaceStatus.over:
        return "over pace"
    if line.status == PaceStatus.under:
        return "under pace"
    if line.status == PaceStatus.on_pace:
        return "on pace"
    return "new"


def _pace_order(lines) -> List[PaceLine]:
    rank = {PaceStatus.over: 0, PaceStatus.under: 1, PaceStatus.on_pace: 2, PaceStatus.no_baseline: 3}
    return sorted(lines, key=lambda p: (rank[p.status], -(p.ratio or 0), p.key))


def _pace_sections(lines, base_priority: int) -> List[Section]:
    sections = []
    ordered = _pace_order(lines)
    for i, line in enumerate(ordered):
        pct = f"{line.ratio * 100:.0f}%" if line.ratio is not None else "n/a"
        sections.append(Section(
            f"{clip(line.key.title())}: {money(line.current)} of {money(line.baseline)} avg ({pct}, {_pace_label(line)})",
            priority=base_priority + len(ordered) - i,
        ))
    return sections


# Section builders

def build_recurring_summary(spec: TemplateSpec, ctx: TemplateContext) -> List[Section]:
    upcoming = sorted(
        (b for b in ctx.bills if b.next_date > ctx.as_of and b.source == PredictionSource.bill),
        key=lambda b: (b.next_date, b.name),
    )
    if not upcoming:
        raise ValidationError("No upcoming recurring bills")

    def within(days: int) -> Decimal:
        horizon = ctx.as_of + timedelta(days=days)
        return _sum(b.amount for b in upcoming if b.next_date <= horizon)

    sections = [Section(f"{spec.title}\n{len(upcoming)} upcoming", required=True)]
    for i, bill in enumerate(upcoming):
        sections.append(Section(
            f"{short_date(bill.next_date)}: {clip(bill.name)} - {money(bill.amount)}",
            priority=len(upcoming) - i,
            gap=(i == 0),
        ))
    sections.append(Section(
        f"Next 7 days: {money(within(7))}\nNext 30 days: {money(within(30))}",
        required=True,
        gap=True,
    ))
    return sections


def build_activity(spec: TemplateSpec, ctx: TemplateContext) -> List[Section]:
    yesterday = ctx.as_of - timedelta(days=1)
    lines = _spend_on(ctx, yesterday, yesterday)
    sections = [Section(spec.title, required=True)]
    if not lines:
        sections.append(Section("No transactions yesterday.", required=True, gap=True))
        return sections

    for i, line in enumerate(lines):
        sections.append(Section(
            f"{clip(line.merchant)} - {money(line.amount)}",
            priority=len(lines) - i,
            gap=(i == 0),
        ))
    sections.append(Section(
        f"Yesterday's total: {money(_sum(s.amount for s in lines))}",
        required=True,
        gap=True,
    ))
    return sections


def _pace_report(spec: TemplateSpec, as_of: date, lines: Tuple[PaceLine, ...]) -> List[Section]:
    over = sum(1 for p in lines if p.status == PaceStatus.over)
    under = sum(1 for p in lines if p.status == PaceStatus.under)
    steady = sum(1 for p in lines if p.status == PaceStatus.on_pace)
    month = as_of.replace(day=1)
    days_in_month = ((month + timedelta(days=32)).replace(day=1) - month).days

    sections = [
        Section(
            f"{spec.title} - {MONTH_ABBR[as_of.month - 1]} {as_of.year} (Day {as_of.day}/{days_in_month})",
            required=True,
        ),
        Section(f"{over} over, {under} under, {steady} on pace", required=True),
    ]
    body = _pace_sections(lines, 0)
    if body:
        body[0] = Section(body[0].text, priority=body[0].priority, gap=True)
    return sections + body


def build_pacing_alert(spec: TemplateSpec, ctx: TemplateContext) -> List[Section]:
    if not ctx.pacing:
        raise ValidationError("No tracked pacing keys")
    return _pace_report(spec, ctx.as_of, ctx.pacing)


def build_merchant_pacing(spec: TemplateSpec, ctx: TemplateContext) -> List[Section]:
    lines = tuple(p for p in ctx.pacing if p.key_type == TrackedKeyType.merchant)
    if not lines:
        raise ValidationError("No tracked merchants")
    return _pace_report(spec, ctx.as_of, lines)


def build_category_pacing(spec: TemplateSpec, ctx: TemplateContext) -> List[Section]:
    lines = tuple(p for p in ctx.pacing if p.key_type == TrackedKeyType.category)
    if not lines:
        raise ValidationError("No tracked categories")
    return _pace_report(spec, ctx.as_of, lines)


def build_cash_flow_runway(spec: TemplateSpec, ctx: TemplateContext) -> List[Section]:
    """Next predicted paycheck and the bills that land before it."""
    paydays = sorted(
        (b for b in ctx.bills if b.next_date > ctx.as_of and b.source == PredictionSource.income),
        key=lambda b: (b.next_date, b.name),
    )
    if not paydays:
        raise ValidationError("No predicted income")
    payday = paydays[0]

    due = sorted(
        (
            b for b in ctx.bills
            if ctx.as_of < b.next_date < payday.next_date and b.source == PredictionSource.bill
        ),
        key=lambda b: (b.next_date, b.name),
    )
    days_left = (payday.next_date - ctx.as_of).days

    sections = [
        Section(spec.title, required=True),
        Section(
            f"Next paycheck: {short_date(payday.next_date)} ({days_left} days)\n"
            f"{clip(payday.name)} ~{money(payday.amount)}",
            required=True,
        ),
    ]
    for i, b in enumerate(due):
        sections.append(Section(
            f"{short_date(b.next_date)}: {clip(b.name)} - {money(b.amount)}",
            priority=len(due) - i,
            gap=(i == 0),
        ))
    sections.append(Section(
        f"Bills before payday: {money(_sum(b.amount for b in due))} ({len(due)})",
        required=True,
        gap=True,
    ))
    return sections


def build_weekly_summary(spec: TemplateSpec, ctx: TemplateContext) -> List[Section]:
    end = ctx.as_of - timedelta(days=1)
    start = end - timedelta(days=6)
    lines = _spend_on(ctx, start, end)
    total = _sum(s.amount for s in lines)

    sections = [
        Section(f"{spec.title} ({short_date(start)}-{short_date(end)})", required=True),
        Section(f"Spent {money(total)} across {len(lines)} transactions", required=True),
    ]
    top = _top_merchants(lines, 5)
    for i, (merchant, amount) in enumerate(top):
        sections.append(Section(
            f"{clip(merchant)} - {money(amount)}", priority=10 + len(top) - i, gap=(i == 0),
        ))

    horizon = ctx.as_of + timedelta(days=7)
    due = sorted(
        (b for b in ctx.bills if ctx.as_of < b.next_date <= horizon and b.source == PredictionSource.bill),
        key=lambda b: (b.next_date, b.name),
    )
    if due:
        sections.append(Section(
            f"Bills this week: {money(_sum(b.amount for b in due))} ({len(due)})",
            priority=20,
            gap=True,
        ))
    return sections


def build_monthly_summary(spec: TemplateSpec, ctx: TemplateContext) -> List[Section]:
    end = ctx.as_of.replace(day=1) - timedelta(days=1)
    start = end.replace(day=1)
    lines = _spend_on(ctx, start, end)
    total = _sum(s.amount for s in lines)

    sections = [
        Section(f"{MONTH_NAMES[start.month - 1]} {start.year} Summary", required=True),
        Section(f"Total spent: {money(total)} ({len(lines)} transactions)", required=True),
    ]

    categories: Dict[str, Decimal] = {}
    for s in lines:
        if s.category:
            categories[s.category] = categories.get(s.category, Decimal("0")) + s.amount
    top = sorted(categories.items(), key=lambda kv: (-kv[1], kv[0]))[:4]
    for i, (category, amount) in enumerate(top):
        sections.append(Section(
            f"{clip(category.title())} - {money(amount)}", priority=20 + len(top) - i, gap=(i == 0),
        ))

    merchants = _top_merchants(lines, 3)
    for i, (merchant, amount) in enumerate(merchants):
        sections.append(Section(
            f"{clip(merchant)} - {money(amount)}", priority=10 + len(merchants) - i, gap=(i == 0),
        ))
    return sections


def build_morning_expenses(spec: TemplateSpec, ctx: TemplateContext) -> List[Section]:
    yesterday = ctx.as_of - timedelta(days=1)
    lines = _spend_on(ctx, yesterday, yesterday)
    sections = [
        Section(spec.title, required=True),
        Section(f"Yesterday you spent {money(_sum(s.amount for s in lines))}", required=True),
    ]
    for i, line in enumerate(lines[:3]):
        sections.append(Section(
            f"{clip(line.merchant)} - {money(line.amount)}", priority=3 - i, gap=(i == 0),
        ))
    return sections


def build_afternoon_recap(spec: TemplateSpec, ctx: TemplateContext) -> List[Section]:
    lines = _spend_on(ctx, ctx.as_of, ctx.as_of)
    month_start = ctx.as_of.replace(day=1)
    month_total = _sum(s.amount for s in _spend_on(ctx, month_start, ctx.as_of))
    sections = [
        Section(spec.title, required=True),
        Section(
            f"Today: {money(_sum(s.amount for s in lines))} | Month to date: {money(month_total)}",
            required=True,
        ),
    ]
    flagged = [p for p in ctx.pacing if p.status == PaceStatus.over]
    body = _pace_sections(flagged, 0)
    if body:
        body[0] = Section(body[0].text, priority=body[0].priority, gap=True)
    return sections + body


SectionBuilder = Callable[[TemplateSpec, TemplateContext], List[Section]]

SECTION_BUILDERS: Dict[TemplateType, SectionBuilder] = {
    TemplateType.recurring_summary: build_recurring_summary,
    TemplateType.activity: build_activity,
    TemplateType.pacing_alert: build_pacing_alert,
    TemplateType.merchant_pacing: build_merchant_pacing,
    TemplateType.category_pacing: build_category_pacing,
    TemplateType.cash_flow_runway: build_cash_flow_runway,
    TemplateType.weekly_summary: build_weekly_summary,
    TemplateType.monthly_summary: build_monthly_summary,
    TemplateType.morning_expenses: build_morning_expenses,
    TemplateType.afternoon_recap: build_afternoon_recap,
}

_missing = (set(TemplateType) - set(TEMPLATE_SPECS)) | (set(TemplateType) - set(SECTION_BUILDERS))
if _missing:
    raise RuntimeError(f"Template types without spec or builder: {sorted(t.value for t in _missing)}")


# Assembly

def join_sections(sections: List[Section]) -> str:
    parts = []
    for i, section in enumerate(sections):
        if section.gap and i > 0:
            parts.append("")
        parts.append(section.text)
    return "\n".join(parts)


def fit_to_budget(sections: List[Section], budget: int) -> str:
    """Drop optional sections, lowest priority (then latest) first, until the text fits."""
    kept = list(sections)
    text = join_sections(kept)
    droppable = sorted(
        (i for i, s in enumerate(kept) if not s.required),
        key=lambda i: (kept[i].priority, -i),
    )
    dropped = set()
    for index in droppable:
        if len(text) <= budget:
            break
        dropped.add(index)
        text = join_sections([s for i, s in enumerate(kept) if i not in dropped])

    if len(text) > budget:
        # Only required sections left and still too long
        text = text[:budget - len(ELLIPSIS)].rstrip() + ELLIPSIS
    return text


def render(template_type: TemplateType, ctx: TemplateContext) -> str:
    """Render a template deterministically from a snapshot."""
    spec = TEMPLATE_SPECS[template_type]
    sections = SECTION_BUILDERS[template_type](spec, ctx)
    return fit_to_budget(sections, spec.budget)


def build_context(
    db: Session,
    user_id: str,
    template_type: TemplateType,
    as_of: date
) -> TemplateContext:
    """Load the snapshot a template needs, and nothing more."""
    needs = TEMPLATE_SPECS[template_type].needs
    bills: Tuple[BillLine, ...] = ()
    pacing: Tuple[PaceLine, ...] = ()
    spending: Tuple[SpendLine, ...] = ()

    if needs & DataNeed.RECURRING:
        merchants = db.query(RecurringMerchant).filter(
            RecurringMerchant.user_id == user_id,
            RecurringMerchant.is_active == True,
            RecurringMerchant.next_predicted_date != None,
        ).all()
        bills = tuple(sorted(
            (BillLine(m.display_name, Decimal(m.average_amount), m.next_predicted_date, m.source) for m in merchants),
            key=lambda b: (b.next_date, b.name),
        ))

    if needs & DataNeed.PACING:
        records = db.query(PacingRecord).filter(
            PacingRecord.user_id == user_id,
            PacingRecord.is_active == True,
        ).all()
        pacing = tuple(sorted(
            (
                PaceLine(r.tracked_key, r.key_type, Decimal(r.current_period_amount),
                         Decimal(r.baseline_amount), r.pace_ratio, r.pace_status)
                for r in records
            ),
            key=lambda p: (p.key_type.value, p.key),
        ))

    if needs & DataNeed.TRANSACTIONS:
        transactions = db.query(Transaction).filter(
            Transaction.user_id == user_id,
            Transaction.amount < 0,
            Transaction.pending == False,
            Transaction.date >= as_of - timedelta(days=TRANSACTION_WINDOW_DAYS),
            Transaction.date <= as_of,
        ).all()
        spending = tuple(sorted(
            (
                SpendLine(t.date, t.merchant_text.strip(), t.enriched_category, abs(Decimal(t.amount)))
                for t in transactions
            ),
            key=lambda s: (s.day, s.merchant, s.amount),
        ))

    return TemplateContext(as_of=as_of, bills=bills, pacing=pacing, spending=spending)


def assemble(db: Session, user_id: str, template_type: TemplateType, as_of: date) -> str:
    return render(template_type, build_context(db, user_id, template_type, as_of))
