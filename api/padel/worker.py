"""Celery worker configuration and housekeeping tasks.

Run the worker with beat enabled so expired OTPs and abandoned
registrations are purged periodically:

    celery -A padel.worker worker --beat
"""

import asyncio
import logging

from celery import Celery
from sqlalchemy import delete

from padel.core.config import settings
from padel.core.database import async_session_factory, engine
from padel.models.user import PendingRegistration
from padel.services.otp import purge_expired_otps
from padel.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

celery_app = Celery(
    "padel",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.timezone,
    enable_utc=True,
    beat_schedule={
        "purge-expired-verifications": {
            "task": "padel.worker.purge_expired_verifications",
            "schedule": 15 * 60,
        },
    },
)


async def _purge() -> dict:
    async with async_session_factory() as db:
        otps = await purge_expired_otps(db)
        result = await db.execute(delete(PendingRegistration).where(PendingRegistration.expires_at < utcnow()))
        await db.commit()
    # Pooled connections belong to this task's event loop
    await engine.dispose()
    return {"otps": otps, "pending_registrations": result.rowcount or 0}


@celery_app.task(name="padel.worker.purge_expired_verifications")
def purge_expired_verifications() -> dict:
    purged = asyncio.run(_purge())
    logger.info("Purged %(otps)d OTPs and %(pending_registrations)d pending registrations", purged)
    return purged
