"""WhatsApp message delivery through the Twilio REST API."""

import json
import logging

import httpx

from padel.core.config import settings

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class TwilioError(Exception):
    """Twilio rejected the message or could not be reached."""


def _whatsapp_address(phone: str) -> str:
    return phone if phone.startswith("whatsapp:") else f"whatsapp:{phone}"


async def send_whatsapp_message(to_phone: str, data: dict) -> str:
    """POST a message to Twilio and return its SID. Raises TwilioError on failure."""
    sid = settings.twilio_account_sid
    if not sid or not settings.twilio_auth_token:
        raise TwilioError("Twilio credentials are not configured")

    payload = {"From": settings.twilio_whatsapp_from, "To": _whatsapp_address(to_phone), **data}
    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{TWILIO_API_BASE}/Accounts/{sid}/Messages.json",
                auth=(sid, settings.twilio_auth_token),
                data=payload,
                timeout=10.0,
            )
    except httpx.HTTPError as exc:
        logger.error("Twilio request failed: %s", exc)
        raise TwilioError(str(exc)) from exc

    if response.status_code not in (200, 201):
        error = response.json() if response.content else {}
        logger.error("Twilio API error [%s]: %s", error.get("code"), error.get("message"))
        raise TwilioError(error.get("message", f"HTTP {response.status_code}"))

    message_sid = response.json().get("sid")
    logger.info("WhatsApp message %s queued for %s", message_sid, to_phone)
    return message_sid


async def send_whatsapp_otp(to_phone: str, code: str) -> str:
    """Send an OTP code, through the approved content template when one is configured."""
    if settings.twilio_content_sid:
        data = {
            "ContentSid": settings.twilio_content_sid,
            "ContentVariables": json.dumps({"1": code}),
        }
    else:
        body = (
            f"Your Padel Community verification code is {code}. "
            f"It expires in {settings.otp_expiry_minutes} minutes."
        )
        data = {"Body": body}
    return await send_whatsapp_message(to_phone, data)
