"""Email sending via SMTP."""

import logging
from email.message import EmailMessage

import aiosmtplib

from padel.core.config import settings

logger = logging.getLogger(__name__)


async def send_email(to: str, subject: str, body: str, html: str | None = None) -> None:
    """Send an email via SMTP, with an optional HTML alternative."""
    message = EmailMessage()
    message["From"] = settings.smtp_from
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)
    if html:
        message.add_alternative(html, subtype="html")

    await aiosmtplib.send(
        message,
        hostname=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_user or None,
        password=settings.smtp_password or None,
    )


async def send_otp_email(to: str, code: str) -> None:
    """Send a verification code."""
    minutes = settings.otp_expiry_minutes
    body = (
        f"Hi,\n\n"
        f"Your Padel Community verification code is: {code}\n\n"
        f"This code expires in {minutes} minutes.\n\n"
        f"If you didn't request this, you can safely ignore this email.\n\n"
        f"Padel Community"
    )
    html = (
        "<div style=\"font-family: sans-serif; max-width: 480px; margin: 0 auto;\">"
        "<h2>Your verification code</h2>"
        f"<p style=\"font-size: 32px; font-weight: bold; letter-spacing: 8px;\">{code}</p>"
        f"<p>This code expires in {minutes} minutes.</p>"
        "<p style=\"color: #888;\">If you didn't request this, you can safely ignore this email.</p>"
        "</div>"
    )
    await send_email(to, "Your Padel Community verification code", body, html)
    logger.info("OTP email sent to %s", to)
