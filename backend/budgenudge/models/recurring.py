"""
Recurring merchant database model.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Date, Integer, Numeric, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
import enum
from budgenudge.database import Base


class FrequencyClass(str, enum.Enum):
    """Recurring frequency buckets."""
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    irregular = "irregular"
    unconfirmed = "unconfirmed"


class PredictionSource(str, enum.Enum):
    """Whether the pattern is money going out or coming in."""
    bill = "bill"
    income = "income"


class RecurringMerchant(Base):
    """A merchant with a confirmed periodic, amount-consistent pattern."""

    __tablename__ = "recurring_merchants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    merchant_key = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=False)
    source = Column(Enum(PredictionSource), default=PredictionSource.bill, nullable=False)
    frequency_class = Column(Enum(FrequencyClass), nullable=False)
    average_amount = Column(Numeric(12, 2), nullable=False)  # Always positive
    occurrence_count = Column(Integer, default=0, nullable=False)
    last_occurrence_date = Column(Date, nullable=False)
    next_predicted_date = Column(Date, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    auto_detected = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="recurring_merchants")

    __table_args__ = (
        UniqueConstraint("user_id", "merchant_key", "source", name="uq_recurring_merchants_user_key"),
    )
