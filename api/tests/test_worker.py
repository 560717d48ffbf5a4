"""Housekeeping task tests."""

from datetime import timedelta

from sqlalchemy import select

from padel.core.database import async_session_factory
from padel.models import Otp, OtpMedium, PendingRegistration
from padel.utils.datetime_utils import utcnow
from padel.worker import _purge


async def test_purge_removes_only_expired_rows():
    now = utcnow()
    async with async_session_factory() as db:
        db.add_all(
            [
                Otp(
                    identifier="old@example.com",
                    code="111111",
                    medium=OtpMedium.EMAIL,
                    expires_at=now - timedelta(minutes=5),
                ),
                Otp(
                    identifier="new@example.com",
                    code="222222",
                    medium=OtpMedium.EMAIL,
                    expires_at=now + timedelta(minutes=5),
                ),
                PendingRegistration(
                    email="gone@example.com",
                    phone="+971501110000",
                    name="Gone",
                    hashed_password="x",
                    expires_at=now - timedelta(minutes=1),
                ),
            ]
        )
        await db.commit()

    assert await _purge() == {"otps": 1, "pending_registrations": 1}

    async with async_session_factory() as db:
        remaining = (await db.execute(select(Otp.identifier))).scalars().all()
        assert remaining == ["new@example.com"]
        assert (await db.execute(select(PendingRegistration))).first() is None
