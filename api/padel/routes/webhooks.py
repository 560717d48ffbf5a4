"""Stripe webhook handler.

Bookings are created synchronously once a payment succeeds, so webhooks
only reconcile afterwards: late failures free the seat and refunds made
from the Stripe dashboard are mirrored onto the booking.
"""

import logging

from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy import select

from padel.core.database import async_session_factory
from padel.models.booking import Booking, CancellationStatus, Payment, PaymentStatus
from padel.services.bookings import release_seat
from padel.services.stripe_service import construct_webhook_event
from padel.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(request: Request):
    """Handle Stripe webhook events.

    Uses a dedicated DB session (not the request-scoped one) because webhook
    processing must commit independently of any ongoing request.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    try:
        event = construct_webhook_event(payload, sig_header)
    except Exception:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook signature") from None

    event_type = event["type"]
    data = event["data"]["object"]
    logger.info("Stripe event %s", event_type)

    if event_type == "payment_intent.payment_failed":
        await _handle_payment_failed(data)
    elif event_type == "charge.refunded":
        await _handle_charge_refunded(data)

    return {"status": "ok"}


async def _find_payment(db, payment_intent_id: str) -> tuple[Payment, Booking] | None:
    result = await db.execute(
        select(Payment, Booking)
        .join(Booking, Booking.id == Payment.booking_id)
        .where(Payment.stripe_payment_intent_id == payment_intent_id)
    )
    return result.first()


async def _handle_payment_failed(payment_intent: dict) -> None:
    """Cancel the booking and give its seat back."""
    async with async_session_factory() as db:
        row = await _find_payment(db, payment_intent["id"])
        if row is None:
            return

        payment, booking = row
        if booking.cancelled_at is not None:
            return

        payment.status = PaymentStatus.FAILED
        booking.payment_status = PaymentStatus.FAILED
        booking.cancellation_status = CancellationStatus.CANCELLED
        booking.cancelled_at = utcnow()
        await release_seat(db, booking.session_id)
        await db.commit()
        logger.warning("Booking %s cancelled after payment failure", booking.id)


async def _handle_charge_refunded(charge: dict) -> None:
    """Mirror a full refund issued outside the app."""
    payment_intent_id = charge.get("payment_intent")
    if not payment_intent_id or not charge.get("refunded"):
        return

    async with async_session_factory() as db:
        row = await _find_payment(db, payment_intent_id)
        if row is None:
            return

        payment, booking = row
        if payment.status == PaymentStatus.REFUNDED:
            return

        payment.status = PaymentStatus.REFUNDED
        booking.payment_status = PaymentStatus.REFUNDED
        booking.refund_amount_fils = charge.get("amount_refunded", payment.amount_fils)
        if booking.cancelled_at is None:
            booking.cancellation_status = CancellationStatus.CANCELLED
            booking.cancelled_at = utcnow()
            await release_seat(db, booking.session_id)
        await db.commit()
