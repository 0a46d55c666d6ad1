"""API endpoints for spending pace tracking."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from budgenudge.dependencies import get_db, get_user, get_today
from budgenudge.exceptions import ValidationError
from budgenudge.models.pacing import TrackedKeyType
from budgenudge.models.user import User
from budgenudge.schemas.pacing import PacingRecordResponse, PacingSelectionRequest, AutoSelectRequest
from budgenudge.services import pacing_service

router = APIRouter(prefix="/users/{user_id}/pacing", tags=["pacing"])


def _refresh(db: Session, user_id: str, today: date) -> None:
    try:
        pacing_service.refresh_pacing(db, user_id, today)
    except ValidationError:
        # Nothing spent yet; records keep their previous figures
        db.rollback()


@router.get("", response_model=List[PacingRecordResponse])
def get_pacing_records(
    key_type: Optional[TrackedKeyType] = Query(None),
    include_inactive: bool = Query(False),
    user: User = Depends(get_user),
    db: Session = Depends(get_db)
):
    """Get a user's tracked pacing records."""
    return pacing_service.get_pacing_records(db, user.id, key_type, include_inactive)


@router.post("/auto-select", response_model=List[PacingRecordResponse])
def auto_select(
    request: AutoSelectRequest,
    as_of: Optional[date] = Query(None),
    today: date = Depends(get_today),
    user: User = Depends(get_user),
    db: Session = Depends(get_db)
):
    """Pick the top merchants or categories by spend. A manual selection wins."""
    today = as_of or today
    pacing_service.auto_select(db, user.id, request.key_type, today, request.top_k)
    _refresh(db, user.id, today)
    return pacing_service.get_pacing_records(db, user.id, request.key_type)


@router.put("/selection", response_model=List[PacingRecordResponse])
def set_selection(
    request: PacingSelectionRequest,
    as_of: Optional[date] = Query(None),
    today: date = Depends(get_today),
    user: User = Depends(get_user),
    db: Session = Depends(get_db)
):
    """Replace the tracked set with an explicit list of keys."""
    if not request.keys:
        raise HTTPException(status_code=400, detail="At least one key is required")

    today = as_of or today
    pacing_service.set_manual_selection(db, user.id, request.key_type, request.keys)
    _refresh(db, user.id, today)
    return pacing_service.get_pacing_records(db, user.id, request.key_type)
