"""SMS transports: a console mock for development and the SlickText HTTP API."""

from typing import Optional, Protocol
from dataclasses import dataclass
import logging

import httpx

from budgenudge.config import settings
from budgenudge.logging_config import mask_phone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    success: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None


class SmsTransport(Protocol):
    def send(self, phone_number: str, text: str) -> SendResult:
        ...


class LogTransport:
    """Writes the message to the log instead of sending it."""

    def __init__(self):
        self.sent = []

    def send(self, phone_number: str, text: str) -> SendResult:
        self.sent.append((phone_number, text))
        logger.info(
            "\n=== SMS ===\nTo: %s\n%s\n===========",
            mask_phone(phone_number), text,
        )
        return SendResult(success=True, provider_message_id=f"log-{len(self.sent)}")


class SlickTextTransport:
    """SlickText messages API. Timeouts and HTTP errors surface as exceptions."""

    def __init__(
        self,
        api_key: str,
        brand_id: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None
    ):
        self.brand_id = brand_id
        self.client = client or httpx.Client(
            base_url=base_url or settings.slicktext_base_url,
            timeout=timeout or settings.call_timeout_seconds,
        )
        self.client.headers.update({
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        })

    def send(self, phone_number: str, text: str) -> SendResult:
        response = self.client.post(
            f"/brands/{self.brand_id}/messages",
            json={"mobile_number": phone_number, "body": text},
        )
        if response.status_code >= 400:
            return SendResult(
                success=False,
                error=f"SlickText HTTP {response.status_code}: {response.text[:200]}",
            )
        data = response.json() if response.content else {}
        message_id = data.get("id") or data.get("message_id")
        return SendResult(success=True, provider_message_id=str(message_id) if message_id else None)


def get_sms_transport() -> SmsTransport:
    """Transport selected by settings.sms_provider."""
    if settings.sms_provider == "slicktext":
        if not settings.slicktext_api_key or not settings.slicktext_brand_id:
            raise ValueError("SlickText provider needs SLICKTEXT_API_KEY and SLICKTEXT_BRAND_ID")
        return SlickTextTransport(settings.slicktext_api_key, settings.slicktext_brand_id)
    return LogTransport()
