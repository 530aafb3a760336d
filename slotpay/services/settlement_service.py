"""Settlement service — applies a completed payment.

Everything here runs in the transaction opened by the webhook handler,
after the event id has been claimed:

    1. debit redeemed credits (redeem_checkout)
    2. award purchase credits (award_purchase)
    3. reserve one unit on the slot (conditional increment)
    4. record the booking + audit trail

Nothing commits here. If any statement fails the caller rolls the whole
transaction back, the event claim included, and Stripe redelivers.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select

from slotpay.errors import OversoldConflict
from slotpay.models.audit import AuditEvent
from slotpay.models.booking import Booking
from slotpay.models.ledger import LedgerSource
from slotpay.services.ledger_service import EntrySpec, append_entries, lock_account
from slotpay.services.slot_service import get_slot, try_reserve

logger = logging.getLogger(__name__)

CAPACITY_EXHAUSTED = "capacity_exhausted"
SLOT_NOT_FOUND = "slot_not_found"
CREDIT_SHORTFALL = "credit_shortfall"


@dataclass
class SettlementResult:
    booking: Booking
    redeemed: int
    awarded: int
    conflict: Optional[OversoldConflict] = None

    @property
    def reserved(self):
        return self.conflict is None


def compute_award(amount_paid, app_config):
    """floor(amount_paid * AWARD_RATE), or 0 below the award threshold."""
    if amount_paid < app_config["AWARD_MIN_AMOUNT_MINOR_UNITS"]:
        return 0
    return int(math.floor(amount_paid * app_config["AWARD_RATE"]))


def log_settlement_audit(session, user_id, action, metadata=None):
    """Log a settlement audit event. Actor-less: webhooks are system-initiated."""
    session.add(AuditEvent(
        user_id=user_id,
        action=action,
        metadata_=metadata or {},
    ))
    session.flush()


def _debit_amount(session, payment):
    """How much of the promised redemption can still be debited.

    The balance was only a snapshot at checkout time; another settlement
    for the same user may have spent it since. The account row is locked
    here, so the figure holds until commit.
    """
    if payment.redeem_amount <= 0:
        return 0
    account = lock_account(session, payment.user_id)
    return min(payment.redeem_amount, account.balance)


def find_settled_booking(session, checkout_session_id):
    """Booking already written for a checkout session, if any."""
    if not checkout_session_id:
        return None
    return session.execute(
        select(Booking).where(Booking.checkout_session_id == checkout_session_id)
    ).scalar_one_or_none()


def flag_for_reconciliation(session, payment, conflict, booking):
    """Record the oversold reconciliation signal: warning log + audit row."""
    logger.warning(
        f"Oversold conflict: event {payment.event_id} paid for slot "
        f"{payment.slot_id} but it could not be reserved ({conflict.reason}). "
        f"Booking {booking.id} needs reconciliation."
    )
    log_settlement_audit(session, payment.user_id, "booking.oversold_conflict", {
        "booking_id": booking.id,
        "slot_id": payment.slot_id,
        "listing_id": payment.listing_id,
        "stripe_event_id": payment.event_id,
        "reason": conflict.reason,
        "amount_paid": payment.amount_paid,
    })


def settle_payment(session, payment, app_config):
    """Apply the ledger and capacity effects of a PaymentCompleted event.

    The event must already be claimed in this transaction. Capacity
    shortfall does not abort: the payment is kept and the booking is
    stored as oversold_conflict for manual handling.

    A checkout session settles once. If another event already settled it
    (e.g. completed followed by async_payment_succeeded) nothing is written
    beyond the event claim.

    Returns a SettlementResult, or None for an already-settled session.
    """
    existing = find_settled_booking(session, payment.checkout_session_id)
    if existing is not None:
        logger.info(
            f"Checkout session {payment.checkout_session_id} already settled as "
            f"booking {existing.id}; event {payment.event_id} has no effect"
        )
        return None

    redeemed = _debit_amount(session, payment)
    awarded = compute_award(payment.amount_paid, app_config)

    entries = []
    if redeemed > 0:
        entries.append(EntrySpec(-redeemed, LedgerSource.REDEEM_CHECKOUT))
    if awarded > 0:
        entries.append(EntrySpec(awarded, LedgerSource.AWARD_PURCHASE))
    append_entries(session, payment.user_id, entries, stripe_event_id=payment.event_id)

    conflict = None
    if not try_reserve(session, payment.slot_id):
        reason = CAPACITY_EXHAUSTED if get_slot(session, payment.slot_id) else SLOT_NOT_FOUND
        conflict = OversoldConflict(payment.slot_id, reason)

    shortfall = payment.redeem_amount - redeemed
    conflict_reason = None
    if conflict is not None:
        conflict_reason = conflict.reason
    elif shortfall > 0:
        conflict_reason = CREDIT_SHORTFALL

    booking = Booking(
        stripe_event_id=payment.event_id,
        checkout_session_id=payment.checkout_session_id,
        user_id=payment.user_id,
        listing_id=payment.listing_id,
        slot_id=payment.slot_id,
        price_minor_units=payment.price_minor_units,
        amount_paid_minor_units=payment.amount_paid,
        redeem_amount=redeemed,
        award_amount=awarded,
        status=Booking.STATUS_CONFIRMED if conflict is None else Booking.STATUS_OVERSOLD,
        conflict_reason=conflict_reason,
    )
    session.add(booking)
    session.flush()

    log_settlement_audit(session, payment.user_id, "booking.settled", {
        "booking_id": booking.id,
        "slot_id": payment.slot_id,
        "stripe_event_id": payment.event_id,
        "redeemed": redeemed,
        "awarded": awarded,
        "status": booking.status,
    })

    if shortfall > 0:
        logger.warning(
            f"Credit shortfall on event {payment.event_id}: promised "
            f"{payment.redeem_amount}, debited {redeemed} for user {payment.user_id}"
        )
        log_settlement_audit(session, payment.user_id, "credits.shortfall", {
            "booking_id": booking.id,
            "stripe_event_id": payment.event_id,
            "promised": payment.redeem_amount,
            "debited": redeemed,
        })

    if conflict is not None:
        flag_for_reconciliation(session, payment, conflict, booking)
    else:
        logger.info(
            f"Settled event {payment.event_id}: booking {booking.id} on slot "
            f"{payment.slot_id} (redeemed={redeemed}, awarded={awarded})"
        )

    return SettlementResult(
        booking=booking,
        redeemed=redeemed,
        awarded=awarded,
        conflict=conflict,
    )
