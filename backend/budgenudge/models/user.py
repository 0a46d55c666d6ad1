"""
User and SMS preference database models.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from budgenudge.database import Base
from budgenudge.models.notification import TemplateType


class User(Base):
    """A notification recipient. Authentication lives outside this service."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=True)
    phone_number = Column(String(20), nullable=True)
    send_time = Column(String(5), default="08:00", nullable=False)  # Local HH:MM
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    sms_preferences = relationship("SmsPreference", back_populates="user")
    transactions = relationship("Transaction", back_populates="user")
    recurring_merchants = relationship("RecurringMerchant", back_populates="user")
    pacing_records = relationship("PacingRecord", back_populates="user")


class SmsPreference(Base):
    """Per-user opt-in for one template type."""

    __tablename__ = "sms_preferences"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    template_type = Column(Enum(TemplateType), nullable=False)
    enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="sms_preferences")

    __table_args__ = (
        UniqueConstraint("user_id", "template_type", name="uq_sms_preferences_user_template"),
    )
