"""
Transaction database model.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Date, Numeric, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from budgenudge.database import Base


class Transaction(Base):
    """Bank transaction as persisted by the ingestion side. Read-only here."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)  # Negative = expense, positive = income
    raw_description = Column(Text, nullable=False)
    enriched_merchant_name = Column(String(255), nullable=True)  # AI tag, may be missing
    enriched_category = Column(String(100), nullable=True)  # AI tag, may be missing
    pending = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="transactions")

    # Indexes for common queries
    __table_args__ = (
        Index("idx_transaction_user_date", "user_id", "date"),
    )

    @property
    def merchant_text(self) -> str:
        """Enriched merchant name when present, otherwise the raw bank text."""
        return self.enriched_merchant_name or self.raw_description
