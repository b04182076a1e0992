"""Twilio text message helper."""

from __future__ import annotations

import json
from typing import Optional

import httpx
import structlog

from .config import Settings
from .errors import NotificationError

LOGGER = structlog.get_logger(__name__)


def booked_message(date_iso: str, base_url: str) -> str:
    return f"Parking reserved for {date_iso} at {base_url}"


def build_message_payload(settings: Settings, message: str, to_number: Optional[str] = None) -> dict[str, str]:
    """Form fields for a templated Twilio message."""
    return {
        "From": settings.twilio_from_number or "",
        "To": to_number or settings.twilio_to_number or "",
        "ContentSid": settings.twilio_content_sid,
        "ContentVariables": json.dumps({"1": message}),
    }


async def send_text_message(settings: Settings, message: str, to_number: Optional[str] = None) -> None:
    """Send ``message`` through the configured Twilio content template."""
    if not settings.twilio_configured:
        raise NotificationError("Twilio is not configured")

    payload = build_message_payload(settings, message, to_number)
    LOGGER.info("sms.send.start", to=payload["To"])

    async with httpx.AsyncClient(timeout=15.0) as client:
        response = await client.post(
            settings.twilio_messages_endpoint,
            data=payload,
            auth=(settings.twilio_account_sid, settings.twilio_auth_token.get_secret_value()),
        )
    if response.is_success:
        LOGGER.info("sms.send.success", message=message)
        return
    LOGGER.error("sms.send.failed", status_code=response.status_code, body=response.text)
    raise NotificationError(f"Twilio send failed with {response.status_code}: {response.text}")
