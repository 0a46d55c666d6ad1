"""
Dedup gate: at most one successful notification per (user, template, day).

The unique constraint on notification_logs is the only lock. A claim is an
INSERT that either succeeds or hits the constraint; nothing is held in
process memory, so overlapping trigger runs in separate processes are safe.
"""

from typing import List, Optional
from dataclasses import dataclass
from datetime import date, datetime, timedelta
import logging
import uuid

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from budgenudge.models.notification import (
    NotificationLog, NotificationStatus, SourceEndpoint, TemplateType
)

logger = logging.getLogger(__name__)

ALREADY_ATTEMPTED = "already attempted today"

FINAL_STATUSES = {NotificationStatus.sent, NotificationStatus.failed, NotificationStatus.skipped}


@dataclass(frozen=True)
class ClaimResult:
    can_send: bool
    reason: Optional[str] = None
    log_id: Optional[str] = None


def check_and_claim(
    db: Session,
    user_id: str,
    template_type: TemplateType,
    day: date,
    source_endpoint: SourceEndpoint = SourceEndpoint.scheduled
) -> ClaimResult:
    """
    Try to insert the claimed row for (user, template, day).

    Losing the insert is the normal dedup outcome, not an error. Any other
    database error propagates to the caller.
    """
    log = NotificationLog(
        id=str(uuid.uuid4()),
        user_id=user_id,
        template_type=template_type,
        send_date=day,
        status=NotificationStatus.claimed,
        source_endpoint=source_endpoint,
        retry_count=0,
        created_at=datetime.utcnow(),
    )
    db.add(log)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(
            "Dedup: %s for user %s on %s already attempted",
            template_type.value, user_id, day,
        )
        return ClaimResult(can_send=False, reason=ALREADY_ATTEMPTED)

    return ClaimResult(can_send=True, log_id=log.id)


def finalize(
    db: Session,
    log_id: str,
    outcome: NotificationStatus,
    provider_message_id: Optional[str] = None,
    error: Optional[str] = None
) -> NotificationLog:
    """Move a claimed row to its final status. Any other transition is refused."""
    if outcome not in FINAL_STATUSES:
        raise ValueError(f"Cannot finalize with status {outcome.value}")

    result = db.execute(
        update(NotificationLog)
        .where(
            NotificationLog.id == log_id,
            NotificationLog.status == NotificationStatus.claimed,
        )
        .values(
            status=outcome,
            provider_message_id=provider_message_id,
            error_message=error,
            finalized_at=datetime.utcnow(),
        )
    )
    db.commit()

    if result.rowcount != 1:
        raise ValueError(f"Notification log {log_id} is not in claimed state")

    log = db.get(NotificationLog, log_id)
    db.refresh(log)
    return log


def retry_failed(db: Session, log_id: str, today: date) -> ClaimResult:
    """
    Explicit opt-in retry: re-claim a failed row once, on the same day.

    The conditional UPDATE only matches a row that is failed, still on its
    send date and not yet retried, so concurrent retries serialize on the
    database exactly like first claims.
    """
    result = db.execute(
        update(NotificationLog)
        .where(
            NotificationLog.id == log_id,
            NotificationLog.status == NotificationStatus.failed,
            NotificationLog.send_date == today,
            NotificationLog.retry_count == 0,
        )
        .values(
            status=NotificationStatus.claimed,
            source_endpoint=SourceEndpoint.retry,
            retry_count=1,
            error_message=None,
            finalized_at=None,
        )
    )
    db.commit()

    if result.rowcount == 1:
        logger.info("Dedup: retry claimed for log %s", log_id)
        return ClaimResult(can_send=True, log_id=log_id)

    log = db.get(NotificationLog, log_id)
    if log is None:
        return ClaimResult(can_send=False, reason="not found")
    if log.status != NotificationStatus.failed:
        return ClaimResult(can_send=False, reason=f"status is {log.status.value}")
    if log.send_date != today:
        return ClaimResult(can_send=False, reason="retry only allowed on the send date")
    return ClaimResult(can_send=False, reason="retry already used")


def get_history(db: Session, user_id: str, days: int = 7, today: Optional[date] = None) -> List[NotificationLog]:
    """Notification log rows for a user over the last N days."""
    start = (today or date.today()) - timedelta(days=days)
    return db.query(NotificationLog).filter(
        NotificationLog.user_id == user_id,
        NotificationLog.send_date >= start,
    ).order_by(NotificationLog.send_date.desc(), NotificationLog.template_type).all()
