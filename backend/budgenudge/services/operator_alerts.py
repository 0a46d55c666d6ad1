"""Operator channel: Slack incoming webhook, falling back to the error log."""

from typing import Optional
import logging

import httpx

from budgenudge.config import settings

logger = logging.getLogger(__name__)


def notify_operator(
    title: str,
    detail: str,
    webhook_url: Optional[str] = None,
    client: Optional[httpx.Client] = None
) -> bool:
    """Post an operator alert. Returns True when Slack accepted it."""
    url = webhook_url or settings.slack_webhook_url
    logger.error("%s: %s", title, detail)

    if not url:
        logger.warning("SLACK_WEBHOOK_URL not configured - operator alert only logged")
        return False

    payload = {
        "text": f":rotating_light: {title}",
        "blocks": [
            {"type": "section", "text": {"type": "mrkdwn", "text": f"*{title}*\n{detail}"}},
        ],
    }
    http = client or httpx.Client(timeout=settings.call_timeout_seconds)
    try:
        response = http.post(url, json=payload)
        response.raise_for_status()
        return True
    except httpx.HTTPError as e:
        logger.error("Slack operator alert failed: %s", e)
        return False
    finally:
        if client is None:
            http.close()
