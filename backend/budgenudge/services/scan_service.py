"""
Scan runner: one stateless unit of work per trigger invocation.

Runs may overlap and every run may be a fresh process. Nothing here is a
lock; the dedup gate's unique constraint is what keeps sends at most once.
"""

from typing import List, Optional, Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo
import logging
import threading

from sqlalchemy.exc import OperationalError, InterfaceError
from sqlalchemy.orm import Session

from budgenudge.config import settings
from budgenudge.database import SessionLocal
from budgenudge.exceptions import ValidationError, DataInconsistencyError, InfrastructureError
from budgenudge.models.notification import NotificationStatus, SourceEndpoint, TemplateType
from budgenudge.models.pacing import PacingRecord, TrackedKeyType
from budgenudge.models.user import User, SmsPreference
from budgenudge.schemas.scan import RunSummary, UnitResult, UnitStatus
from budgenudge.services import (
    dedup_service, delivery_service, pacing_service, prediction_service,
    recurring_service, template_service,
)
from budgenudge.services.operator_alerts import notify_operator
from budgenudge.services.sms_service import SmsTransport, get_sms_transport

logger = logging.getLogger(__name__)

STORE_ERRORS = (OperationalError, InterfaceError)

SessionFactory = Callable[[], Session]


@dataclass(frozen=True)
class Unit:
    user_id: str
    phone_number: Optional[str]
    template_type: TemplateType


def local_now(now: Optional[datetime] = None) -> datetime:
    """Current wall-clock time in the configured timezone."""
    tz = ZoneInfo(settings.timezone)
    if now is None:
        return datetime.now(timezone.utc).astimezone(tz)
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


def parse_send_time(value: Optional[str]) -> time:
    try:
        hour, minute = (value or settings.default_send_time).split(":")
        return time(int(hour), int(minute))
    except ValueError:
        logger.warning("Bad send_time %r, using default %s", value, settings.default_send_time)
        hour, minute = settings.default_send_time.split(":")
        return time(int(hour), int(minute))


def is_due(template_type: TemplateType, user: User, at: datetime) -> bool:
    """A template is due once its day rule matches and its send slot has passed."""
    spec = template_service.TEMPLATE_SPECS[template_type]
    if not spec.is_due_on(at.date()):
        return False
    slot = spec.send_slot or parse_send_time(user.send_time)
    return at.time() >= slot


def due_units(db: Session, at: datetime) -> List[Unit]:
    """All (active user, enabled template) pairs due at ``at``, in a stable order."""
    rows = db.query(User, SmsPreference).join(
        SmsPreference, SmsPreference.user_id == User.id
    ).filter(
        User.is_active == True,
        SmsPreference.enabled == True,
    ).all()

    units = [
        Unit(user_id=user.id, phone_number=user.phone_number, template_type=pref.template_type)
        for user, pref in rows
        if is_due(pref.template_type, user, at)
    ]
    return sorted(units, key=lambda u: (u.user_id, u.template_type.value))


def refresh_user(db: Session, user_id: str, today: date) -> None:
    """Re-run the detector and the pacing tracker for one user."""
    recurring_service.sync_recurring_merchants(db, user_id, today)

    for key_type in TrackedKeyType:
        has_records = db.query(PacingRecord).filter(
            PacingRecord.user_id == user_id,
            PacingRecord.key_type == key_type,
        ).first() is not None
        if not has_records:
            pacing_service.auto_select(db, user_id, key_type, today)

    pacing_service.refresh_pacing(db, user_id, today)


def deliver_claimed(
    db: Session,
    unit: Unit,
    log_id: str,
    today: date,
    transport: SmsTransport
) -> UnitResult:
    """Assemble and send for a row this caller already holds the claim on."""
    base = {"user_id": unit.user_id, "template_type": unit.template_type.value, "log_id": log_id}
    try:
        text = template_service.assemble(db, unit.user_id, unit.template_type, today)
    except ValidationError as e:
        dedup_service.finalize(db, log_id, NotificationStatus.skipped, error=str(e))
        return UnitResult(**base, status=UnitStatus.skipped_invalid, detail=str(e))
    except STORE_ERRORS:
        raise
    except Exception as e:
        logger.exception("Assembly failed for %s/%s", unit.user_id, unit.template_type.value)
        dedup_service.finalize(db, log_id, NotificationStatus.failed, error=str(e))
        return UnitResult(**base, status=UnitStatus.error, detail=str(e))

    outcome = delivery_service.dispatch(db, log_id, unit.phone_number, text, transport)
    status = UnitStatus.sent if outcome.status == NotificationStatus.sent else UnitStatus.failed
    return UnitResult(**base, status=status, detail=outcome.error)


def process_unit(
    db: Session,
    unit: Unit,
    today: date,
    transport: SmsTransport,
    source_endpoint: SourceEndpoint = SourceEndpoint.scheduled
) -> UnitResult:
    """Claim, assemble and deliver one notification on the given session."""
    base = {"user_id": unit.user_id, "template_type": unit.template_type.value}
    if not unit.phone_number:
        return UnitResult(**base, status=UnitStatus.skipped_invalid, detail="user has no phone number")

    claim = dedup_service.check_and_claim(db, unit.user_id, unit.template_type, today, source_endpoint)
    if not claim.can_send:
        return UnitResult(**base, status=UnitStatus.skipped_dedup, detail=claim.reason)

    return deliver_claimed(db, unit, claim.log_id, today, transport)


def run_unit(
    session_factory: SessionFactory,
    unit: Unit,
    today: date,
    transport: SmsTransport,
    source_endpoint: SourceEndpoint,
    abort: threading.Event
) -> UnitResult:
    """Worker entry point: own session, abort flag, never raises."""
    base = {"user_id": unit.user_id, "template_type": unit.template_type.value}
    if abort.is_set():
        return UnitResult(**base, status=UnitStatus.aborted, detail="run aborted")

    db = session_factory()
    try:
        return process_unit(db, unit, today, transport, source_endpoint)
    except STORE_ERRORS as e:
        abort.set()
        logger.error("Data store failure in unit %s/%s: %s", unit.user_id, unit.template_type.value, e)
        return UnitResult(**base, status=UnitStatus.aborted, detail=f"infrastructure: {e}")
    except Exception as e:
        # One unit's failure must not take the run down
        logger.exception("Unit %s/%s failed", unit.user_id, unit.template_type.value)
        return UnitResult(**base, status=UnitStatus.error, detail=str(e))
    finally:
        db.close()


def _maintenance_and_refresh(
    session_factory: SessionFactory,
    today: date,
    at: datetime,
    summary: RunSummary
) -> List[Unit]:
    db = session_factory()
    try:
        try:
            corrections = prediction_service.correct_past_dates(db, today)
            summary.corrected_predictions = len(corrections["corrected"])
            summary.deactivated_merchants = len(corrections["deactivated"])

            user_ids = [u.id for u in db.query(User.id).filter(User.is_active == True).order_by(User.id)]
        except STORE_ERRORS as e:
            raise InfrastructureError(str(e)) from e

        for user_id in user_ids:
            try:
                refresh_user(db, user_id, today)
                summary.users_refreshed += 1
            except (ValidationError, DataInconsistencyError) as e:
                db.rollback()
                summary.users_skipped += 1
                logger.info("Refresh skipped for user %s: %s", user_id, e)
            except STORE_ERRORS as e:
                raise InfrastructureError(str(e)) from e
            except Exception:
                db.rollback()
                summary.users_skipped += 1
                logger.exception("Refresh failed for user %s", user_id)

        # Predictions may have been rewritten by the refresh; keep the invariant
        try:
            prediction_service.correct_past_dates(db, today)
            return due_units(db, at)
        except STORE_ERRORS as e:
            raise InfrastructureError(str(e)) from e
    finally:
        db.close()


def run_scan(
    session_factory: SessionFactory = SessionLocal,
    transport: Optional[SmsTransport] = None,
    now: Optional[datetime] = None,
    source_endpoint: SourceEndpoint = SourceEndpoint.scheduled,
    max_workers: Optional[int] = None
) -> RunSummary:
    """
    Run one scan: maintenance pass, per-user refresh, then every due unit on
    a bounded worker pool. Infrastructure failures stop the remaining units
    and are reported to the operator channel; committed units stand.
    """
    at = local_now(now)
    today = at.date()
    summary = RunSummary(run_date=today, started_at=datetime.utcnow())
    transport = transport or get_sms_transport()
    logger.info("Scan starting for %s at %s", today, at.isoformat())

    try:
        units = _maintenance_and_refresh(session_factory, today, at, summary)
    except InfrastructureError as e:
        summary.infrastructure_error = str(e)
        summary.finished_at = datetime.utcnow()
        notify_operator("Notification scan aborted", f"Data store unreachable before sending: {e}")
        return summary

    summary.units_total = len(units)
    abort = threading.Event()
    workers = max(1, max_workers or settings.scan_max_workers)

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scan-unit") as pool:
        futures = [
            pool.submit(run_unit, session_factory, unit, today, transport, source_endpoint, abort)
            for unit in units
        ]
        for future in as_completed(futures):
            summary.record(future.result())

    summary.units.sort(key=lambda r: (r.user_id, r.template_type))
    summary.finished_at = datetime.utcnow()

    if abort.is_set():
        details = [r.detail for r in summary.units if r.detail and r.detail.startswith("infrastructure")]
        summary.infrastructure_error = details[0] if details else "data store failure"
        notify_operator(
            "Notification scan aborted",
            f"{summary.aborted} units aborted, {summary.sent} sent before failure: {summary.infrastructure_error}",
        )

    logger.info(
        "Scan complete for %s: %d units, sent=%d, failed=%d, dedup=%d, invalid=%d, aborted=%d, errors=%d",
        today, summary.units_total, summary.sent, summary.failed, summary.skipped_dedup,
        summary.skipped_invalid, summary.aborted, summary.errors,
    )
    return summary
