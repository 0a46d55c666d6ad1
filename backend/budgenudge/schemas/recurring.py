"""Pydantic schemas for recurring merchants."""

from pydantic import BaseModel
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal

from budgenudge.models.recurring import FrequencyClass, PredictionSource


class RecurringMerchantResponse(BaseModel):
    id: str
    merchant_key: str
    display_name: str
    source: PredictionSource
    frequency_class: FrequencyClass
    average_amount: Decimal
    occurrence_count: int
    last_occurrence_date: date
    next_predicted_date: Optional[date] = None
    is_active: bool
    auto_detected: bool
    created_at: datetime

    class Config:
        from_attributes = True


class RecurringMerchantUpdate(BaseModel):
    display_name: Optional[str] = None
    is_active: Optional[bool] = None


class DetectionCandidate(BaseModel):
    """One detector candidate, including unconfirmed and irregular groups."""
    merchant_key: str
    display_name: str
    source: PredictionSource
    frequency_class: FrequencyClass
    average_amount: Decimal
    last_occurrence_date: date
    occurrence_count: int
    is_confirmed: bool


class DetectionResponse(BaseModel):
    """Response from recurring detection."""
    candidates: List[DetectionCandidate]
    confirmed: int
    unconfirmed: int


class CorrectionResponse(BaseModel):
    corrected: int
    deactivated: int
