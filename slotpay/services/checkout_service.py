"""Checkout service — builds the payment intent for a slot.

Read-only: looks up the slot and the caller's balance, works out how many
credits to redeem and what Stripe should charge. Safe to call any number
of times; abandoning the result leaves nothing behind.
"""

import logging
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from slotpay.errors import SlotFull, SlotNotFound, SlotNotOwnedByListing, ValidationError
from slotpay.services.ledger_service import get_balance
from slotpay.services.slot_service import get_slot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutIntent:
    """Snapshot of one checkout attempt.

    Carried through Stripe as session metadata and replayed verbatim by
    the settlement webhook.
    """

    user_id: str
    listing_id: str
    slot_id: str
    price_minor_units: int
    redeem_amount: int
    payable_minor_units: int
    balance_snapshot: int
    currency: str

    def to_metadata(self):
        """Stripe metadata values must be strings."""
        return {
            "user_id": self.user_id,
            "listing_id": self.listing_id,
            "slot_id": self.slot_id,
            "price_minor_units": str(self.price_minor_units),
            "redeem_amount": str(self.redeem_amount),
        }


def to_minor_units(price):
    """Convert a major-unit price (e.g. Decimal("20.00")) to an int, half-up."""
    return int(
        (Decimal(str(price)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )


def parse_requested_redeem(value):
    """Normalise the client-supplied redeem amount.

    Missing/None -> 0. Numbers (or numeric strings) are floored. Anything
    else is a ValidationError. Negative values are left for clamping.
    """
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValidationError("redeem_amount must be a number")
    if isinstance(value, int):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError("redeem_amount must be a number")
    if not math.isfinite(number):
        raise ValidationError("redeem_amount must be a finite number")
    return math.floor(number)


def compute_redeem(requested, price_minor_units, balance):
    """clamp(requested, 0, min(price, balance))."""
    ceiling = max(0, min(price_minor_units, balance))
    return max(0, min(requested, ceiling))


def compute_payable(price_minor_units, redeem, min_charge):
    """Amount Stripe charges, never below the processor's minimum charge."""
    return max(min_charge, price_minor_units - redeem)


def build_checkout_intent(session, user_id, listing_id, slot_id,
                          requested_redeem, app_config):
    """Validate the slot and price the checkout.

    Raises SlotNotFound, SlotNotOwnedByListing, SlotFull or ValidationError.
    The SlotFull check is advisory: the authoritative capacity check is
    the conditional increment at settlement time.

    Returns a CheckoutIntent.
    """
    if not listing_id or not slot_id:
        raise ValidationError("listing_id and slot_id are required")

    requested = parse_requested_redeem(requested_redeem)

    slot = get_slot(session, slot_id)
    if slot is None:
        raise SlotNotFound(f"Slot {slot_id} not found")
    if slot.listing_id != listing_id:
        raise SlotNotOwnedByListing(
            f"Slot {slot_id} does not belong to listing {listing_id}"
        )
    if slot.is_full:
        raise SlotFull("Slot is fully booked")

    balance = get_balance(session, user_id)
    price_minor_units = to_minor_units(slot.price)
    redeem = compute_redeem(requested, price_minor_units, balance)
    payable = compute_payable(
        price_minor_units, redeem, app_config["MIN_CHARGE_MINOR_UNITS"]
    )

    if redeem != requested:
        logger.info(
            f"Clamped redeem for {user_id} on slot {slot_id}: "
            f"requested={requested} balance={balance} price={price_minor_units} -> {redeem}"
        )

    return CheckoutIntent(
        user_id=user_id,
        listing_id=listing_id,
        slot_id=slot_id,
        price_minor_units=price_minor_units,
        redeem_amount=redeem,
        payable_minor_units=payable,
        balance_snapshot=balance,
        currency=app_config["CURRENCY"],
    )
