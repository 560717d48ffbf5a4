"""Booking rules: seat accounting, paid-booking records and the cancellation policy.

``booked_count`` is only ever changed through ``reserve_seat`` and
``release_seat``; both are single conditional UPDATE statements so two
concurrent bookings can never push a session past ``max_players``.
"""

import enum
import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from padel.core.config import settings
from padel.models.booking import Booking, CancellationStatus, Payment, PaymentStatus
from padel.models.session import Session, SessionStatus
from padel.services.fees import split_payment
from padel.utils.datetime_utils import hours_until, utcnow

logger = logging.getLogger(__name__)


class BookingError(Exception):
    """A booking rule was broken. Carries the HTTP status the route should answer with."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class CancellationOutcome(enum.StrEnum):
    REFUND = "cancelled"
    PENDING_REPLACEMENT = "pending_replacement"


async def get_session(db: AsyncSession, session_id: int) -> Session:
    session = await db.get(Session, session_id)
    if session is None:
        raise BookingError("Session not found", 404)
    return session


def check_open(session: Session, now: datetime | None = None) -> None:
    """Active and not yet started."""
    if session.status != SessionStatus.ACTIVE:
        raise BookingError("Session is not available for booking")
    if hours_until(session.scheduled_at, now) <= 0:
        raise BookingError("Session has already started")


def check_bookable(session: Session, now: datetime | None = None) -> None:
    check_open(session, now)
    if session.price_fils <= 0:
        raise BookingError("Free sessions cannot be booked by card")
    if session.is_full:
        raise BookingError("Session is full", 409)


async def get_live_booking(db: AsyncSession, user_id: int, session_id: int) -> Booking | None:
    result = await db.execute(
        select(Booking).where(
            Booking.user_id == user_id,
            Booking.session_id == session_id,
            Booking.cancelled_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def ensure_not_booked(db: AsyncSession, user_id: int, session_id: int) -> None:
    if await get_live_booking(db, user_id, session_id) is not None:
        raise BookingError("You have already booked this session", 409)


async def reserve_seat(db: AsyncSession, session_id: int) -> bool:
    """Take one seat. False when the session is full or no longer active."""
    result = await db.execute(
        update(Session)
        .where(
            Session.id == session_id,
            Session.status == SessionStatus.ACTIVE,
            Session.booked_count < Session.max_players,
        )
        .values(booked_count=Session.booked_count + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def release_seat(db: AsyncSession, session_id: int, seats: int = 1) -> None:
    await db.execute(
        update(Session)
        .where(Session.id == session_id, Session.booked_count >= seats)
        .values(booked_count=Session.booked_count - seats)
        .execution_options(synchronize_session=False)
    )


async def record_paid_booking(
    db: AsyncSession,
    user_id: int,
    session: Session,
    payment_intent_id: str,
    amount_fils: int,
) -> Booking:
    """Create a completed booking and its payment row. The seat must already be held."""
    fee_fils, net_fils = split_payment(amount_fils)
    booking = Booking(
        user_id=user_id,
        session_id=session.id,
        payment_status=PaymentStatus.COMPLETED,
        cancellation_status=CancellationStatus.NONE,
    )
    db.add(booking)
    await db.flush()

    db.add(
        Payment(
            booking_id=booking.id,
            user_id=user_id,
            session_id=session.id,
            amount_fils=amount_fils,
            platform_fee_fils=fee_fils,
            net_amount_fils=net_fils,
            currency=settings.currency,
            payment_method="card",
            status=PaymentStatus.COMPLETED,
            stripe_payment_intent_id=payment_intent_id,
        )
    )
    await db.flush()
    logger.info("Booking %s created for user %s in session %s", booking.id, user_id, session.id)
    return booking


async def get_payment(db: AsyncSession, booking_id: int) -> Payment | None:
    result = await db.execute(select(Payment).where(Payment.booking_id == booking_id))
    return result.scalar_one_or_none()


def evaluate_cancellation(session: Session, force: bool = False, now: datetime | None = None) -> CancellationOutcome:
    """Decide how a booking may be cancelled.

    Inside the free-cancellation window the player is refunded straight away.
    Closer to the start the seat is offered to other players and the refund
    only happens once someone takes it.
    """
    hours = hours_until(session.scheduled_at, now)
    if hours >= session.free_cancellation_hours:
        return CancellationOutcome.REFUND
    if hours <= 0:
        raise BookingError("Cannot cancel a session that has already started")
    if not session.allow_conditional_cancellation and not force:
        raise BookingError(
            f"Free cancellation closed {session.free_cancellation_hours} hours before the session "
            "and this session does not allow conditional cancellation"
        )
    return CancellationOutcome.PENDING_REPLACEMENT


def mark_refunded(booking: Booking, payment: Payment | None, refund_id: str | None = None) -> None:
    """Close out a booking whose money has been returned."""
    now = utcnow()
    booking.payment_status = PaymentStatus.REFUNDED
    booking.cancellation_status = CancellationStatus.CANCELLED
    booking.cancelled_at = now
    booking.refund_amount_fils = payment.amount_fils if payment else 0
    if payment is not None:
        payment.status = PaymentStatus.REFUNDED
        payment.stripe_refund_id = refund_id
