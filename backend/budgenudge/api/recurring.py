"""API endpoints for recurring merchant management."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from budgenudge.dependencies import get_db, get_user, get_today
from budgenudge.exceptions import ValidationError
from budgenudge.models.recurring import RecurringMerchant
from budgenudge.models.user import User
from budgenudge.schemas.recurring import (
    RecurringMerchantResponse,
    RecurringMerchantUpdate,
    DetectionCandidate,
    DetectionResponse,
    CorrectionResponse,
)
from budgenudge.services import prediction_service, recurring_service

router = APIRouter(prefix="/users/{user_id}/recurring", tags=["recurring"])


@router.get("", response_model=List[RecurringMerchantResponse])
def get_recurring_merchants(
    include_inactive: bool = Query(False),
    user: User = Depends(get_user),
    db: Session = Depends(get_db)
):
    """Get a user's recurring merchants, soonest predicted date first."""
    return recurring_service.get_recurring_merchants(db, user.id, include_inactive)


@router.post("/detect", response_model=DetectionResponse)
def detect_recurring(
    as_of: Optional[date] = Query(None),
    today: date = Depends(get_today),
    user: User = Depends(get_user),
    db: Session = Depends(get_db)
):
    """
    Run the detector over the lookback window and persist confirmed patterns.
    The response lists every candidate, unconfirmed and irregular ones included.
    """
    today = as_of or today
    try:
        detections = recurring_service.sync_recurring_merchants(db, user.id, today)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    # Sync rewrites predictions from the last occurrence; keep them in the future
    prediction_service.correct_past_dates(db, today, user_id=user.id)

    candidates = [
        DetectionCandidate(
            merchant_key=d.merchant_key,
            display_name=d.display_name,
            source=d.source,
            frequency_class=d.frequency_class,
            average_amount=d.average_amount,
            last_occurrence_date=d.last_occurrence_date,
            occurrence_count=d.occurrence_count,
            is_confirmed=d.is_confirmed,
        )
        for d in detections
    ]
    confirmed = sum(1 for c in candidates if c.is_confirmed)
    return DetectionResponse(
        candidates=candidates,
        confirmed=confirmed,
        unconfirmed=len(candidates) - confirmed,
    )


@router.post("/correct-past-dates", response_model=CorrectionResponse)
def correct_past_dates(
    as_of: Optional[date] = Query(None),
    today: date = Depends(get_today),
    user: User = Depends(get_user),
    db: Session = Depends(get_db)
):
    """Roll stale predictions forward and retire missed merchants for one user."""
    result = prediction_service.correct_past_dates(db, as_of or today, user_id=user.id)
    return CorrectionResponse(
        corrected=len(result["corrected"]),
        deactivated=len(result["deactivated"]),
    )


@router.patch("/{merchant_id}", response_model=RecurringMerchantResponse)
def update_recurring_merchant(
    merchant_id: str,
    update: RecurringMerchantUpdate,
    user: User = Depends(get_user),
    db: Session = Depends(get_db)
):
    """Rename or (de)activate a recurring merchant."""
    merchant = db.query(RecurringMerchant).filter(
        RecurringMerchant.id == merchant_id,
        RecurringMerchant.user_id == user.id,
    ).first()
    if not merchant:
        raise HTTPException(status_code=404, detail="Recurring merchant not found")

    update_data = update.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(merchant, field, value)

    db.commit()
    db.refresh(merchant)
    return merchant
