"""Typed webhook events.

parse_event() runs after the Stripe signature has been verified and turns
the raw event into one of two variants:

    PaymentCompleted — a checkout session has been paid; settle it.
    IgnoredEvent     — anything else; acknowledge and do nothing.

Unknown event types are always IgnoredEvent so that new Stripe event
shapes never make the webhook fail.
"""

from dataclasses import dataclass

from slotpay.errors import ValidationError

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_ASYNC_SUCCEEDED = "checkout.session.async_payment_succeeded"

# payment_status values on a completed session that mean money has moved.
SETTLED_PAYMENT_STATUSES = ("paid", "no_payment_required")


@dataclass(frozen=True)
class PaymentCompleted:
    event_id: str
    event_type: str
    checkout_session_id: str
    user_id: str
    listing_id: str
    slot_id: str
    price_minor_units: int
    redeem_amount: int
    amount_paid: int


@dataclass(frozen=True)
class IgnoredEvent:
    event_id: str
    event_type: str
    reason: str


def _required_str(metadata, key):
    value = metadata.get(key)
    if not value or not str(value).strip():
        raise ValidationError(f"Payment metadata is missing {key}")
    return str(value).strip()


def _non_negative_int(value, key, default=None):
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"Payment metadata is missing {key}")
        return default
    try:
        number = int(str(value))
    except ValueError:
        raise ValidationError(f"{key} must be an integer, got {value!r}")
    if number < 0:
        raise ValidationError(f"{key} must not be negative")
    return number


def _parse_payment(event_id, event_type, session):
    metadata = session.get("metadata") or {}

    # Checkout sets client_reference_id to the user id as well.
    user_id = metadata.get("user_id") or session.get("client_reference_id")
    if not user_id:
        raise ValidationError("Payment metadata is missing user_id")

    return PaymentCompleted(
        event_id=event_id,
        event_type=event_type,
        checkout_session_id=session.get("id"),
        user_id=str(user_id),
        listing_id=_required_str(metadata, "listing_id"),
        slot_id=_required_str(metadata, "slot_id"),
        price_minor_units=_non_negative_int(
            metadata.get("price_minor_units"), "price_minor_units"
        ),
        redeem_amount=_non_negative_int(
            metadata.get("redeem_amount"), "redeem_amount", default=0
        ),
        amount_paid=_non_negative_int(session.get("amount_total"), "amount_total"),
    )


def parse_event(event):
    """Turn a verified Stripe event into PaymentCompleted or IgnoredEvent.

    Raises ValidationError if a payment event carries unusable metadata.
    """
    event_id = event.get("id")
    event_type = event.get("type") or "unknown"
    if not event_id:
        raise ValidationError("Event has no id")

    if event_type not in (CHECKOUT_COMPLETED, CHECKOUT_ASYNC_SUCCEEDED):
        return IgnoredEvent(event_id, event_type, "unhandled_type")

    session = (event.get("data") or {}).get("object") or {}

    if event_type == CHECKOUT_COMPLETED:
        payment_status = session.get("payment_status")
        if payment_status not in SETTLED_PAYMENT_STATUSES:
            # Delayed payment methods finish with async_payment_succeeded.
            return IgnoredEvent(event_id, event_type, f"payment_status={payment_status}")

    return _parse_payment(event_id, event_type, session)
