"""Pydantic schemas for pacing records."""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal

from budgenudge.models.pacing import TrackedKeyType, SelectionSource, PaceStatus


class PacingRecordResponse(BaseModel):
    id: str
    key_type: TrackedKeyType
    tracked_key: str
    selection: SelectionSource
    baseline_amount: Decimal
    current_period_amount: Decimal
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    pace_ratio: Optional[float] = None
    pace_status: PaceStatus
    is_active: bool
    updated_at: datetime

    model_config = {"from_attributes": True}


class PacingSelectionRequest(BaseModel):
    key_type: TrackedKeyType = TrackedKeyType.merchant
    keys: List[str] = Field(default_factory=list, max_length=25)


class AutoSelectRequest(BaseModel):
    key_type: TrackedKeyType = TrackedKeyType.merchant
    top_k: Optional[int] = Field(default=None, ge=1, le=25)
