"""API endpoints for notification history, previews and manual sends."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date

from budgenudge.dependencies import get_db, get_user, get_transport, get_today
from budgenudge.exceptions import ValidationError
from budgenudge.models.notification import NotificationLog, SourceEndpoint, TemplateType
from budgenudge.models.user import User
from budgenudge.schemas.notification import (
    NotificationHistoryResponse,
    NotificationLogResponse,
    PreviewResponse,
    RetryResponse,
)
from budgenudge.schemas.scan import UnitResult, UnitStatus
from budgenudge.services import dedup_service, scan_service, template_service
from budgenudge.services.sms_service import SmsTransport

router = APIRouter(prefix="/users/{user_id}/notifications", tags=["notifications"])


@router.get("", response_model=NotificationHistoryResponse)
def get_history(
    days: int = Query(7, ge=1, le=90),
    as_of: Optional[date] = Query(None),
    today: date = Depends(get_today),
    user: User = Depends(get_user),
    db: Session = Depends(get_db)
):
    """Get the user's notification log for the last N days."""
    logs = dedup_service.get_history(db, user.id, days=days, today=as_of or today)
    return NotificationHistoryResponse(
        items=[NotificationLogResponse.model_validate(log) for log in logs],
        total=len(logs),
    )


@router.get("/preview/{template_type}", response_model=PreviewResponse)
def preview(
    template_type: TemplateType,
    as_of: Optional[date] = Query(None),
    today: date = Depends(get_today),
    user: User = Depends(get_user),
    db: Session = Depends(get_db)
):
    """Render a template without claiming or sending anything."""
    today = as_of or today
    try:
        text = template_service.assemble(db, user.id, template_type, today)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return PreviewResponse(template_type=template_type, as_of=today, text=text, length=len(text))


@router.post("/send/{template_type}", response_model=UnitResult)
def send_now(
    template_type: TemplateType,
    today: date = Depends(get_today),
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
    transport: SmsTransport = Depends(get_transport)
):
    """
    Send one template now. Goes through the same dedup gate as the scan, so a
    template already attempted today is reported as skipped. Always claims
    against the current local day.
    """
    unit = scan_service.Unit(user_id=user.id, phone_number=user.phone_number, template_type=template_type)
    return scan_service.process_unit(db, unit, today, transport, SourceEndpoint.manual)


@router.post("/{log_id}/retry", response_model=RetryResponse)
def retry(
    log_id: str,
    today: date = Depends(get_today),
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
    transport: SmsTransport = Depends(get_transport)
):
    """Opt-in retry of a failed send, allowed once and only on its send date."""
    log = db.query(NotificationLog).filter(
        NotificationLog.id == log_id,
        NotificationLog.user_id == user.id,
    ).first()
    if not log:
        raise HTTPException(status_code=404, detail="Notification not found")

    if not user.phone_number:
        raise HTTPException(status_code=422, detail="User has no phone number")

    claim = dedup_service.retry_failed(db, log_id, today)
    if not claim.can_send:
        raise HTTPException(status_code=409, detail=f"Retry not allowed: {claim.reason}")

    unit = scan_service.Unit(user_id=user.id, phone_number=user.phone_number, template_type=log.template_type)
    result = scan_service.deliver_claimed(db, unit, log_id, today, transport)
    db.refresh(log)
    return RetryResponse(
        log_id=log_id,
        status=log.status,
        error=result.detail if result.status != UnitStatus.sent else None,
    )
