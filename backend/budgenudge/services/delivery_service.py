"""Delivery dispatcher: hand text to the SMS transport and record the outcome."""

from dataclasses import dataclass
from typing import Optional
import logging

import httpx
from sqlalchemy.orm import Session

from budgenudge.exceptions import DeliveryFailure
from budgenudge.logging_config import mask_phone
from budgenudge.models.notification import NotificationStatus
from budgenudge.services import dedup_service
from budgenudge.services.sms_service import SmsTransport, SendResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryOutcome:
    log_id: str
    status: NotificationStatus
    provider_message_id: Optional[str] = None
    error: Optional[str] = None


def _send(transport: SmsTransport, phone_number: str, text: str) -> SendResult:
    """Call the transport, turning transport exceptions into DeliveryFailure."""
    try:
        result = transport.send(phone_number, text)
    except httpx.TimeoutException as e:
        raise DeliveryFailure(f"SMS transport timed out: {e}") from e
    except httpx.HTTPError as e:
        raise DeliveryFailure(f"SMS transport error: {e}") from e

    if not result.success:
        raise DeliveryFailure(result.error or "SMS transport reported failure")
    return result


def dispatch(
    db: Session,
    log_id: str,
    phone_number: str,
    text: str,
    transport: SmsTransport
) -> DeliveryOutcome:
    """
    Send one claimed notification and finalize its log row.

    There is no retry here; a failed row can only be retried through the
    dedup gate's explicit opt-in.
    """
    try:
        result = _send(transport, phone_number, text)
    except DeliveryFailure as e:
        logger.warning("Delivery failed for log %s to %s: %s", log_id, mask_phone(phone_number), e)
        dedup_service.finalize(db, log_id, NotificationStatus.failed, error=str(e))
        return DeliveryOutcome(log_id=log_id, status=NotificationStatus.failed, error=str(e))

    dedup_service.finalize(
        db, log_id, NotificationStatus.sent, provider_message_id=result.provider_message_id
    )
    logger.info("Delivered log %s to %s", log_id, mask_phone(phone_number))
    return DeliveryOutcome(
        log_id=log_id,
        status=NotificationStatus.sent,
        provider_message_id=result.provider_message_id,
    )
