"""Stripe service — all Stripe API calls and webhook handling.

Responsible for:
- Creating Stripe Checkout Sessions from a CheckoutIntent
- Verifying webhook signatures
- Dispatching typed events to settlement
- Idempotency via the stripe_events table (see idempotency_service)
"""

import json
import logging

import stripe
from sqlalchemy.exc import SQLAlchemyError

from slotpay.errors import PaymentProviderError
from slotpay.events import IgnoredEvent, PaymentCompleted, parse_event
from slotpay.services.idempotency_service import claim_event
from slotpay.services.settlement_service import settle_payment

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Checkout Sessions
# ──────────────────────────────────────────────

def _product_name(slot):
    name = slot.label or "Booking"
    if slot.starts_at:
        name = f"{name} ({slot.starts_at:%Y-%m-%d %H:%M})"
    return name


def create_checkout_session(intent, slot, app_config):
    """Create a one-off Stripe Checkout Session for a CheckoutIntent.

    The intent is stored on the session as metadata so the webhook can
    replay it; nothing is written to our own database.

    Returns (session_id, session_url).
    Raises PaymentProviderError on Stripe API failures.
    """
    stripe.api_key = app_config["STRIPE_SECRET_KEY"]

    try:
        session = stripe.checkout.Session.create(
            mode="payment",
            line_items=[
                {
                    "quantity": 1,
                    "price_data": {
                        "currency": intent.currency,
                        "unit_amount": intent.payable_minor_units,
                        "product_data": {"name": _product_name(slot)},
                    },
                }
            ],
            client_reference_id=intent.user_id,
            metadata=intent.to_metadata(),
            success_url=app_config["CHECKOUT_SUCCESS_URL"],
            cancel_url=app_config["CHECKOUT_CANCEL_URL"],
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout session failed for slot {intent.slot_id}: {e}")
        raise PaymentProviderError("Could not start checkout. Please try again.") from e

    logger.info(
        f"Checkout session {session.id} for user {intent.user_id} slot {intent.slot_id} "
        f"(payable={intent.payable_minor_units}, redeem={intent.redeem_amount})"
    )
    return session.id, session.url


# ──────────────────────────────────────────────
# Webhook Handling
# ──────────────────────────────────────────────

def verify_webhook_signature(payload, sig_header, webhook_secret):
    """Verify the Stripe webhook signature.

    Returns the event as plain JSON data (dicts and lists). Stripe's own
    Event objects are not dicts, so everything downstream works on the
    verified payload instead.
    Raises stripe.SignatureVerificationError on invalid signature and
    ValueError on an unparseable body.
    """
    stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
    return json.loads(payload)


def handle_webhook_event(session, event, app_config):
    """Process a verified Stripe webhook event.

    Idempotency: the event id is claimed inside the settlement
    transaction. A second delivery of the same event finds the claim
    taken and returns without writing.

    Raises ValidationError for a payment event with unusable metadata.
    Returns (success: bool, message: str). On failure the message is
    "transient_storage_error" or "internal_error"; details stay in the log.
    """
    typed = parse_event(event)

    if isinstance(typed, IgnoredEvent):
        logger.info(f"Ignoring webhook {typed.event_id} ({typed.event_type}): {typed.reason}")
        return True, "ignored"

    handlers = {
        PaymentCompleted: settle_payment,
    }
    handler = handlers[type(typed)]

    try:
        if not claim_event(session, typed.event_id, typed.event_type):
            return True, "already_processed"
        result = handler(session, typed, app_config)
        session.commit()
    except SQLAlchemyError as e:
        logger.error(
            f"Storage error settling {typed.event_id}, rolled back: {e}", exc_info=True
        )
        session.rollback()
        return False, "transient_storage_error"
    except Exception as e:
        logger.error(f"Error handling {typed.event_type} {typed.event_id}: {e}", exc_info=True)
        session.rollback()
        return False, "internal_error"

    if result is None:
        return True, "already_settled"
    return True, "processed"
