"""Session lifecycle: creation with community announcement, cancellation with refunds,
and expansion of weekly templates into concrete sessions."""

import logging
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from padel.core.config import settings
from padel.models.booking import Booking, PaymentStatus
from padel.models.community import Community
from padel.models.session import Session, SessionStatus, SessionTemplate
from padel.models.social import Announcement
from padel.services.bookings import get_payment, mark_refunded, release_seat
from padel.services.notifications import notify_new_session, notify_session_cancelled
from padel.services.stripe_service import refund_payment
from padel.utils.datetime_utils import as_utc, next_weekday_occurrence, utcnow

logger = logging.getLogger(__name__)


async def create_session(db: AsyncSession, creator_id: int, **fields) -> Session:
    session = Session(**fields)
    db.add(session)
    await db.flush()
    logger.info("Session %s created in community %s by user %s", session.id, session.community_id, creator_id)
    return session


async def announce_session(db: AsyncSession, session: Session, creator_id: int) -> dict:
    """Post a "New Match" announcement and push it to the community.

    Push delivery problems are reported in the result, never raised.
    """
    db.add(
        Announcement(
            community_id=session.community_id,
            created_by=creator_id,
            title="New Match",
            message=f"New Match: {session.title} - {session.location}",
        )
    )
    await db.flush()
    return await notify_new_session(db, session, exclude_user_id=creator_id)


async def cancel_session(db: AsyncSession, session: Session) -> dict:
    """Cancel a session, refund every live paid booking and tell the players."""
    # Lock the row and close it to new seats before the bookings are read
    await db.execute(select(Session.id).where(Session.id == session.id).with_for_update())
    session.status = SessionStatus.CANCELLED
    await db.flush()

    result = await db.execute(
        select(Booking).where(Booking.session_id == session.id, Booking.cancelled_at.is_(None))
    )
    bookings = list(result.scalars().all())
    community = await db.get(Community, session.community_id)

    refunded, refund_failures = 0, 0
    for booking in bookings:
        payment = await get_payment(db, booking.id)
        refund_id = None
        if payment and payment.status == PaymentStatus.COMPLETED and payment.stripe_payment_intent_id:
            try:
                refund = await refund_payment(
                    payment.stripe_payment_intent_id,
                    reverse_transfer=bool(community and community.stripe_account_id),
                )
            except stripe.StripeError as exc:
                logger.error("Refund failed for booking %s: %s", booking.id, exc)
                refund_failures += 1
                continue
            refund_id = refund.id
            refunded += 1
        mark_refunded(booking, payment, refund_id)

    await release_seat(db, session.id, seats=len(bookings) - refund_failures)
    await db.flush()

    notified = await notify_session_cancelled(db, [b.user_id for b in bookings], session)
    logger.info("Session %s cancelled: %d refunded, %d refund failures", session.id, refunded, refund_failures)
    return {"refunded": refunded, "refund_failures": refund_failures, "notified": notified["sent"]}


def template_occurrence(template: SessionTemplate, after: date) -> datetime:
    """UTC start of the template's next occurrence strictly after ``after`` (local calendar)."""
    day = next_weekday_occurrence(after, template.day_of_week)
    local = datetime.combine(day, template.time_of_day, tzinfo=ZoneInfo(settings.timezone))
    return as_utc(local)


async def _occurrence_exists(db: AsyncSession, template_id: int, scheduled_at: datetime) -> bool:
    result = await db.execute(
        select(Session.id).where(
            Session.created_from_template_id == template_id,
            Session.scheduled_at == scheduled_at,
            Session.status != SessionStatus.CANCELLED,
        )
    )
    return result.first() is not None


async def bulk_create_from_templates(
    db: AsyncSession,
    templates: list[SessionTemplate],
    weeks_ahead: int,
    creator_id: int,
    start_date: date | None = None,
) -> tuple[list[Session], list[dict]]:
    """Create one session per template per week. Failures are collected, not raised."""
    today = utcnow().astimezone(ZoneInfo(settings.timezone)).date()
    reference = start_date or today
    created: list[Session] = []
    errors: list[dict] = []

    for template in templates:
        location = "TBD"
        if template.sub_community_id is not None:
            sub = await db.get(Community, template.sub_community_id)
            if sub is not None:
                location = sub.location or sub.name

        for week in range(weeks_ahead):
            scheduled_at = template_occurrence(template, reference + timedelta(weeks=week))
            if scheduled_at <= utcnow():
                errors.append({"template_id": template.id, "week": week, "error": "Occurrence is in the past"})
                continue
            if await _occurrence_exists(db, template.id, scheduled_at):
                errors.append(
                    {"template_id": template.id, "week": week, "error": "Session already exists for this date"}
                )
                continue

            session = await create_session(
                db,
                creator_id,
                community_id=template.community_id,
                sub_community_id=template.sub_community_id,
                created_from_template_id=template.id,
                title=template.title,
                description=template.description,
                scheduled_at=scheduled_at,
                duration_minutes=template.duration_minutes,
                location=location,
                price_fils=template.price_fils,
                max_players=template.max_players,
                visibility=True,
                free_cancellation_hours=template.free_cancellation_hours,
                allow_conditional_cancellation=template.allow_conditional_cancellation,
            )
            created.append(session)

    logger.info("Bulk create: %d sessions, %d errors", len(created), len(errors))
    return created, errors
