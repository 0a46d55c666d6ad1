"""
Notification log database model (the dedup ledger).
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Date, Enum, Text, ForeignKey, UniqueConstraint
import enum
from budgenudge.database import Base


class TemplateType(str, enum.Enum):
    """Closed set of notification templates."""
    recurring_summary = "recurring-summary"
    activity = "activity"
    pacing_alert = "pacing-alert"
    merchant_pacing = "merchant-pacing"
    category_pacing = "category-pacing"
    cash_flow_runway = "cash-flow-runway"
    weekly_summary = "weekly-summary"
    monthly_summary = "monthly-summary"
    morning_expenses = "morning-expenses"
    afternoon_recap = "afternoon-recap"


class NotificationStatus(str, enum.Enum):
    """Notification log status enumeration."""
    claimed = "claimed"
    sent = "sent"
    failed = "failed"
    skipped = "skipped"


class SourceEndpoint(str, enum.Enum):
    """What kind of caller claimed the send."""
    scheduled = "scheduled"
    manual = "manual"
    retry = "retry"
    test = "test"


class NotificationLog(Base):
    """One row per (user, template, day); the unique key is the only send lock."""

    __tablename__ = "notification_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    template_type = Column(Enum(TemplateType), nullable=False)
    send_date = Column(Date, nullable=False, index=True)
    status = Column(Enum(NotificationStatus), default=NotificationStatus.claimed, nullable=False)
    source_endpoint = Column(Enum(SourceEndpoint), default=SourceEndpoint.scheduled, nullable=False)
    provider_message_id = Column(String(100), nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    finalized_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "template_type", "send_date",
            name="uq_notification_logs_user_template_day",
        ),
    )
