"""Booking routes: paid booking (two-step and one-shot), listing, cancellation and spot takeover.

A booking row only exists once the card payment has succeeded. Any time a
payment succeeds but the seat cannot be given, the payment is refunded
before the error is returned.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from padel.core.config import settings
from padel.core.database import get_db
from padel.core.dependencies import get_current_user
from padel.models.booking import Booking, CancellationStatus, Payment
from padel.models.community import Community
from padel.models.session import Session
from padel.models.user import User
from padel.schemas import (
    BookingCreate,
    BookingDetailOut,
    BookingOut,
    CancelBookingResponse,
    ConfirmBookingRequest,
    PaymentIntentRequest,
    PaymentIntentResponse,
    TakeSpotRequest,
)
from padel.services.bookings import (
    BookingError,
    CancellationOutcome,
    check_bookable,
    check_open,
    ensure_not_booked,
    evaluate_cancellation,
    get_live_booking,
    get_payment,
    get_session,
    mark_refunded,
    record_paid_booking,
    release_seat,
    reserve_seat,
)
from padel.services.notifications import notify_refund_processed, notify_spot_available
from padel.services.stripe_service import (
    cancel_payment_intent,
    create_payment_intent,
    ensure_stripe_customer,
    refund_payment,
    retrieve_payment_intent,
)
from padel.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _http_error(exc: BookingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


def _already_booked() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="You have already booked this session. Your payment has been refunded",
    )


async def _refund_charge(payment_intent_id: str, community: Community):
    return await refund_payment(payment_intent_id, reverse_transfer=bool(community.stripe_account_id))


async def _load_bookable_session(db: AsyncSession, session_id: int, user_id: int) -> tuple[Session, Community]:
    try:
        session = await get_session(db, session_id)
        check_bookable(session)
        await ensure_not_booked(db, user_id, session.id)
    except BookingError as exc:
        raise _http_error(exc) from None
    community = await db.get(Community, session.community_id)
    return session, community


async def _book_paid_seat(
    db: AsyncSession,
    user: User,
    session: Session,
    community: Community,
    payment_intent_id: str,
    amount_fils: int,
) -> Booking:
    """Take a seat for an already-captured payment.

    The payment is refunded whenever it does not end up as a booking.
    """
    try:
        seated = await reserve_seat(db, session.id)
        booking = await record_paid_booking(db, user.id, session, payment_intent_id, amount_fils) if seated else None
    except IntegrityError:
        await _refund_charge(payment_intent_id, community)
        raise _already_booked() from None
    except Exception:
        await _refund_charge(payment_intent_id, community)
        logger.error("Booking for payment %s failed after the charge; refunded", payment_intent_id)
        raise

    if booking is None:
        await _refund_charge(payment_intent_id, community)
        logger.warning("Session %s filled before payment %s could be used; refunded", session.id, payment_intent_id)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="No seat is available in this session. Your payment has been refunded",
        )
    return booking


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


@router.get("", response_model=list[BookingDetailOut])
async def list_my_bookings(
    include_cancelled: bool = Query(default=False),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    query = (
        select(Booking)
        .options(selectinload(Booking.session), selectinload(Booking.payment))
        .join(Session, Session.id == Booking.session_id)
        .where(Booking.user_id == user.id)
        .order_by(Session.scheduled_at.desc())
    )
    if not include_cancelled:
        query = query.where(Booking.cancelled_at.is_(None))
    result = await db.execute(query)
    return result.scalars().all()


# ---------------------------------------------------------------------------
# Two-step payment: intent, then confirmation
# ---------------------------------------------------------------------------


@router.post("/create-payment-intent", response_model=PaymentIntentResponse)
async def create_booking_payment_intent(
    body: PaymentIntentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    session, community = await _load_bookable_session(db, body.session_id, user.id)

    customer_id = await ensure_stripe_customer(user, db)
    intent = await create_payment_intent(
        session.price_fils,
        session.id,
        user.id,
        customer_id=customer_id,
        destination_account=community.stripe_account_id,
    )
    return PaymentIntentResponse(
        client_secret=intent.client_secret,
        payment_intent_id=intent.id,
        publishable_key=settings.stripe_publishable_key,
        amount_fils=session.price_fils,
        currency=settings.currency,
    )


@router.post("/confirm-booking", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def confirm_booking(
    body: ConfirmBookingRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Turn a succeeded PaymentIntent into a booking."""
    intent = await retrieve_payment_intent(body.payment_intent_id)
    if intent.status != "succeeded":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Payment has not succeeded (status: {intent.status})",
        )
    metadata = intent.metadata or {}
    if metadata.get("session_id") != str(body.session_id) or metadata.get("user_id") != str(user.id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payment does not match this booking")

    # Confirming the same payment twice returns the original booking
    existing = await db.execute(
        select(Booking).join(Payment).where(Payment.stripe_payment_intent_id == intent.id)
    )
    booking = existing.scalar_one_or_none()
    if booking is not None:
        return booking

    try:
        session = await get_session(db, body.session_id)
    except BookingError as exc:
        raise _http_error(exc) from None
    community = await db.get(Community, session.community_id)

    try:
        check_open(session)
    except BookingError as exc:
        await _refund_charge(intent.id, community)
        raise HTTPException(
            status_code=exc.status_code,
            detail=f"{exc}. Your payment has been refunded",
        ) from None
    if await get_live_booking(db, user.id, session.id) is not None:
        await _refund_charge(intent.id, community)
        raise _already_booked()

    return await _book_paid_seat(db, user, session, community, intent.id, intent.amount)


# ---------------------------------------------------------------------------
# One-shot card payment
# ---------------------------------------------------------------------------


@router.post("", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def create_booking(
    body: BookingCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    session, community = await _load_bookable_session(db, body.session_id, user.id)

    customer_id = await ensure_stripe_customer(user, db)
    intent = await create_payment_intent(
        session.price_fils,
        session.id,
        user.id,
        customer_id=customer_id,
        destination_account=community.stripe_account_id,
        payment_method_id=body.payment_method_id,
    )
    if intent.status != "succeeded":
        cancel_payment_intent(intent.id)
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=f"Payment could not be completed (status: {intent.status})",
        )

    return await _book_paid_seat(db, user, session, community, intent.id, session.price_fils)


# ---------------------------------------------------------------------------
# Cancellation and replacement
# ---------------------------------------------------------------------------


@router.delete("/{booking_id}", response_model=CancelBookingResponse)
async def cancel_booking(
    booking_id: int,
    force: bool = Query(default=False),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a booking.

    Inside the free-cancellation window the payment is refunded and the seat
    freed. Later, the seat is offered to the community and the refund waits
    until another player takes it.
    """
    result = await db.execute(select(Booking).where(Booking.id == booking_id, Booking.user_id == user.id))
    booking = result.scalar_one_or_none()
    if booking is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    if not booking.is_live:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Booking is already cancelled")
    if booking.cancellation_status == CancellationStatus.PENDING_REPLACEMENT:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cancellation already requested")

    session = await db.get(Session, booking.session_id)
    try:
        outcome = evaluate_cancellation(session, force=force)
    except BookingError as exc:
        raise _http_error(exc) from None

    if outcome == CancellationOutcome.REFUND:
        payment = await get_payment(db, booking.id)
        refund_id = None
        if payment is not None and payment.stripe_payment_intent_id:
            community = await db.get(Community, session.community_id)
            refund = await refund_payment(
                payment.stripe_payment_intent_id,
                reverse_transfer=bool(community.stripe_account_id),
            )
            refund_id = refund.id
        mark_refunded(booking, payment, refund_id)
        await release_seat(db, session.id)
        await db.flush()
        await notify_spot_available(db, session, exclude_user_id=user.id)
        return CancelBookingResponse(
            outcome=outcome,
            message="Booking cancelled and refunded",
            refund_amount_fils=booking.refund_amount_fils or 0,
            booking=BookingOut.model_validate(booking),
        )

    booking.cancellation_status = CancellationStatus.PENDING_REPLACEMENT
    booking.cancellation_requested_at = utcnow()
    await db.flush()
    await notify_spot_available(db, session, exclude_user_id=user.id)
    return CancelBookingResponse(
        outcome=outcome,
        message="Your spot is offered to other players. You will be refunded once someone takes it",
        refund_amount_fils=0,
        booking=BookingOut.model_validate(booking),
    )


@router.post("/{booking_id}/take-spot", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def take_spot(
    booking_id: int,
    body: TakeSpotRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Pay for a seat someone is giving up. They are refunded; the seat count is unchanged."""
    result = await db.execute(select(Booking).where(Booking.id == booking_id).with_for_update())
    original = result.scalar_one_or_none()
    if (
        original is None
        or not original.is_live
        or original.cancellation_status != CancellationStatus.PENDING_REPLACEMENT
    ):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No spot available for this booking")
    if original.user_id == user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot take your own spot")

    session = await db.get(Session, original.session_id)
    try:
        check_open(session)
        await ensure_not_booked(db, user.id, session.id)
    except BookingError as exc:
        raise _http_error(exc) from None
    community = await db.get(Community, session.community_id)

    customer_id = await ensure_stripe_customer(user, db)
    intent = await create_payment_intent(
        session.price_fils,
        session.id,
        user.id,
        customer_id=customer_id,
        destination_account=community.stripe_account_id,
        payment_method_id=body.payment_method_id,
        extra_metadata={"replaces_booking_id": str(original.id)},
    )
    if intent.status != "succeeded":
        cancel_payment_intent(intent.id)
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=f"Payment could not be completed (status: {intent.status})",
        )

    # From here on the new player has paid; any failure refunds them
    try:
        new_booking = await record_paid_booking(db, user.id, session, intent.id, session.price_fils)
        original_payment = await get_payment(db, original.id)
        refund_id = None
        if original_payment is not None and original_payment.stripe_payment_intent_id:
            refund = await _refund_charge(original_payment.stripe_payment_intent_id, community)
            refund_id = refund.id
    except IntegrityError:
        await _refund_charge(intent.id, community)
        raise _already_booked() from None
    except Exception:
        await _refund_charge(intent.id, community)
        logger.error("Spot takeover of booking %s failed after the charge; refunded %s", original.id, intent.id)
        raise

    mark_refunded(original, original_payment, refund_id)
    original.replaced_by_user_id = user.id
    await db.flush()

    await notify_refund_processed(db, original.user_id, session, original.refund_amount_fils or 0)
    logger.info("User %s took booking %s's spot in session %s", user.id, original.id, session.id)
    return new_booking
