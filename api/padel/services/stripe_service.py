"""Stripe integration service for payment processing.

Wraps the Stripe Python SDK. All amounts are in fils (AED minor units).
Session payments go to the community's connected account, minus the
platform fee, when the community has one.
"""

import contextlib
import logging

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from padel.core.config import settings
from padel.models.user import User
from padel.services.fees import split_payment

logger = logging.getLogger(__name__)


def _configure() -> None:
    """Set the Stripe API key from settings."""
    stripe.api_key = settings.stripe_secret_key


async def ensure_stripe_customer(user: User, db: AsyncSession) -> str:
    """Get or create a Stripe customer for the user.

    Stores the customer ID on the User model for future use.
    """
    _configure()

    if user.stripe_customer_id:
        return user.stripe_customer_id

    customer = stripe.Customer.create(
        email=user.email,
        phone=user.phone,
        name=user.display_name,
        metadata={"padel_user_id": str(user.id)},
    )
    user.stripe_customer_id = customer.id
    await db.flush()
    return customer.id


async def create_payment_intent(
    amount_fils: int,
    session_id: int,
    user_id: int,
    customer_id: str | None = None,
    destination_account: str | None = None,
    payment_method_id: str | None = None,
    extra_metadata: dict | None = None,
) -> stripe.PaymentIntent:
    """Create a PaymentIntent for a session seat.

    With ``payment_method_id`` the intent is confirmed immediately (one-shot
    card flow); otherwise the client confirms it with the returned secret.
    """
    _configure()

    fee_fils, net_fils = split_payment(amount_fils)
    params: dict = {
        "amount": amount_fils,
        "currency": settings.currency,
        "metadata": {
            "session_id": str(session_id),
            "user_id": str(user_id),
            "platform_fee": str(fee_fils),
            **(extra_metadata or {}),
        },
    }
    if customer_id:
        params["customer"] = customer_id
    if destination_account:
        params["transfer_data"] = {"destination": destination_account, "amount": net_fils}

    if payment_method_id:
        params.update(
            payment_method=payment_method_id,
            confirm=True,
            automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
        )
    else:
        params["automatic_payment_methods"] = {"enabled": True}

    return stripe.PaymentIntent.create(**params)


async def retrieve_payment_intent(payment_intent_id: str) -> stripe.PaymentIntent:
    _configure()
    return stripe.PaymentIntent.retrieve(payment_intent_id)


async def refund_payment(
    payment_intent_id: str,
    amount_fils: int | None = None,
    reverse_transfer: bool = False,
) -> stripe.Refund:
    """Refund a captured PaymentIntent (in full unless ``amount_fils`` is given).

    ``reverse_transfer`` pulls the community's share back from its connected account.
    """
    _configure()

    params: dict = {"payment_intent": payment_intent_id}
    if amount_fils is not None:
        params["amount"] = amount_fils
    if reverse_transfer:
        params["reverse_transfer"] = True
    refund = stripe.Refund.create(**params)
    logger.info("Refunded %s (%s)", payment_intent_id, refund.id)
    return refund


def cancel_payment_intent(payment_intent_id: str) -> None:
    """Cancel an unconfirmed PaymentIntent."""
    _configure()

    with contextlib.suppress(stripe.StripeError):
        stripe.PaymentIntent.cancel(payment_intent_id)


def construct_webhook_event(payload: bytes, sig_header: str) -> stripe.Event:
    """Verify and construct a Stripe webhook event."""
    return stripe.Webhook.construct_event(
        payload,
        sig_header,
        settings.stripe_webhook_secret,
    )
