"""One-time passcode issuing, delivery and verification."""

import logging
import secrets
from datetime import timedelta

import aiosmtplib
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from padel.core.config import settings
from padel.models.otp import Otp, OtpMedium
from padel.services.email import send_otp_email
from padel.services.twilio_service import TwilioError, send_whatsapp_otp
from padel.utils.datetime_utils import as_utc, utcnow

logger = logging.getLogger(__name__)

DEV_OTP_CODE = "123456"


class OtpError(Exception):
    """The code could not be verified (missing, expired, exhausted or wrong)."""


class OtpDeliveryError(Exception):
    """The code was stored but could not be delivered."""


def generate_otp_code() -> str:
    return str(secrets.randbelow(900_000) + 100_000)


async def issue_otp(db: AsyncSession, identifier: str, medium: OtpMedium) -> Otp:
    """Store a fresh code for ``identifier`` and deliver it over ``medium``.

    In dev mode the code is always DEV_OTP_CODE and nothing is sent.
    """
    code = DEV_OTP_CODE if settings.otp_dev_mode else generate_otp_code()
    otp = Otp(
        identifier=identifier,
        code=code,
        medium=medium,
        expires_at=utcnow() + timedelta(minutes=settings.otp_expiry_minutes),
    )
    db.add(otp)
    await db.flush()

    if settings.otp_dev_mode:
        logger.info("Dev mode: OTP for %s not sent (use %s)", identifier, DEV_OTP_CODE)
        return otp

    try:
        if medium == OtpMedium.EMAIL:
            await send_otp_email(identifier, code)
        else:
            await send_whatsapp_otp(identifier, code)
    except (TwilioError, aiosmtplib.SMTPException, OSError) as exc:
        logger.error("Failed to deliver OTP to %s via %s: %s", identifier, medium, exc)
        raise OtpDeliveryError("Failed to send verification code") from exc

    return otp


async def verify_otp(db: AsyncSession, identifier: str, code: str) -> Otp:
    """Check ``code`` against the latest unverified OTP for ``identifier``.

    A wrong code bumps the attempt counter; callers must commit before
    turning the OtpError into a response so the attempt is not rolled back.
    """
    result = await db.execute(
        select(Otp)
        .where(Otp.identifier == identifier, Otp.verified.is_(False))
        .order_by(Otp.created_at.desc(), Otp.id.desc())
        .limit(1)
    )
    otp = result.scalar_one_or_none()
    if otp is None:
        raise OtpError("No verification code found. Please request a new one")

    if as_utc(otp.expires_at) < utcnow():
        raise OtpError("Verification code has expired")

    if otp.attempts >= settings.otp_max_attempts:
        raise OtpError("Too many attempts. Please request a new code")

    if not secrets.compare_digest(otp.code, code.strip()):
        otp.attempts += 1
        await db.flush()
        raise OtpError("Invalid verification code")

    otp.verified = True
    await db.flush()
    return otp


async def purge_expired_otps(db: AsyncSession) -> int:
    result = await db.execute(delete(Otp).where(Otp.expires_at < utcnow()))
    return result.rowcount or 0
