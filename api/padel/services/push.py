"""Apple Push Notification service client.

Talks to the APNs HTTP/2 provider API with a token-based (ES256 JWT)
connection. The provider token is reused for up to 50 minutes as APNs
rejects tokens older than an hour.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

import httpx
from jose import JOSEError, jwt

from padel.core.config import settings

logger = logging.getLogger(__name__)

APNS_PRODUCTION_HOST = "https://api.push.apple.com"
APNS_SANDBOX_HOST = "https://api.sandbox.push.apple.com"
TOKEN_TTL_SECONDS = 50 * 60

# Reasons meaning the device token will never work again
INVALID_TOKEN_REASONS = {"BadDeviceToken", "Unregistered", "DeviceTokenNotForTopic"}

_provider_token: tuple[str, float] | None = None


@dataclass
class PushResult:
    sent: int = 0
    failed: int = 0
    invalid_tokens: list[str] = field(default_factory=list)


def is_configured() -> bool:
    return bool(settings.apns_key_path and settings.apns_key_id and settings.apns_team_id)


def _provider_jwt() -> str:
    global _provider_token

    now = time.time()
    if _provider_token and now - _provider_token[1] < TOKEN_TTL_SECONDS:
        return _provider_token[0]

    signing_key = Path(settings.apns_key_path).read_text()
    token = jwt.encode(
        {"iss": settings.apns_team_id, "iat": int(now)},
        signing_key,
        algorithm="ES256",
        headers={"kid": settings.apns_key_id},
    )
    _provider_token = (token, now)
    return token


def build_payload(title: str, body: str, data: dict | None = None) -> dict:
    return {
        "aps": {"alert": {"title": title, "body": body}, "sound": "default", "badge": 1},
        **(data or {}),
    }


async def _send_one(
    client: httpx.AsyncClient,
    provider_token: str,
    device_token: str,
    payload: dict,
    result: PushResult,
) -> None:
    host = APNS_PRODUCTION_HOST if settings.apns_production else APNS_SANDBOX_HOST
    headers = {
        "authorization": f"bearer {provider_token}",
        "apns-topic": settings.apns_bundle_id,
        "apns-push-type": "alert",
        "apns-priority": "10",
    }
    try:
        response = await client.post(f"{host}/3/device/{device_token}", json=payload, headers=headers)
    except httpx.HTTPError as exc:
        logger.warning("APNs request failed for %s...: %s", device_token[:8], exc)
        result.failed += 1
        return

    if response.status_code == 200:
        result.sent += 1
        return

    reason = response.json().get("reason") if response.content else None
    logger.warning("APNs rejected %s... [%s]: %s", device_token[:8], response.status_code, reason)
    result.failed += 1
    if response.status_code == 410 or reason in INVALID_TOKEN_REASONS:
        result.invalid_tokens.append(device_token)


async def send_push(device_tokens: list[str], title: str, body: str, data: dict | None = None) -> PushResult:
    """Send one alert to every device token. Never raises for delivery failures."""
    result = PushResult()
    tokens = [t for t in dict.fromkeys(device_tokens) if t]
    if not tokens:
        return result

    if not is_configured():
        logger.warning("APNs not configured; dropping push '%s' for %d devices", title, len(tokens))
        result.failed = len(tokens)
        return result

    try:
        provider_token = _provider_jwt()
    except (OSError, JOSEError) as exc:
        logger.error("Could not sign APNs provider token: %s", exc)
        result.failed = len(tokens)
        return result

    payload = build_payload(title, body, data)
    async with httpx.AsyncClient(http2=True, timeout=10.0) as client:
        for token in tokens:
            await _send_one(client, provider_token, token, payload, result)

    logger.info("Push '%s': %d sent, %d failed", title, result.sent, result.failed)
    return result
