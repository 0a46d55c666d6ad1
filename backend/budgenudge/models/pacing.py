"""
Pacing record database model.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Date, Numeric, Float, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
import enum
from budgenudge.database import Base


class TrackedKeyType(str, enum.Enum):
    """What a pacing record tracks."""
    merchant = "merchant"
    category = "category"


class SelectionSource(str, enum.Enum):
    """How the tracked key was chosen."""
    auto = "auto"
    manual = "manual"


class PaceStatus(str, enum.Enum):
    """Pacing verdict for the current period."""
    over = "over"
    under = "under"
    on_pace = "on_pace"
    no_baseline = "no_baseline"


class PacingRecord(Base):
    """Current-period spend versus baseline for one tracked merchant or category."""

    __tablename__ = "pacing_records"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    key_type = Column(Enum(TrackedKeyType), nullable=False)
    tracked_key = Column(String(255), nullable=False)
    selection = Column(Enum(SelectionSource), default=SelectionSource.auto, nullable=False)
    baseline_amount = Column(Numeric(12, 2), default=0, nullable=False)
    current_period_amount = Column(Numeric(12, 2), default=0, nullable=False)
    period_start = Column(Date, nullable=True)
    period_end = Column(Date, nullable=True)
    pace_ratio = Column(Float, nullable=True)
    pace_status = Column(Enum(PaceStatus), default=PaceStatus.no_baseline, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="pacing_records")

    __table_args__ = (
        UniqueConstraint("user_id", "key_type", "tracked_key", name="uq_pacing_records_user_key"),
    )
