"""Idempotency service — claim a Stripe event id exactly once.

claim_event() must be the first write of the settlement transaction. The
unique index on stripe_events.stripe_event_id is the only arbiter: when two
deliveries race, the loser's INSERT fails (on Postgres, after waiting for
the winner to commit) and that delivery becomes a no-op.
"""

import logging

from sqlalchemy.exc import IntegrityError

from slotpay.models.stripe_event import StripeEvent

logger = logging.getLogger(__name__)


def claim_event(session, event_id, event_type):
    """Insert the idempotency row for event_id.

    Returns True if this transaction now owns the event. Returns False if
    the id was already claimed; the transaction is rolled back in that case
    and the caller must not write anything else.
    """
    session.add(StripeEvent(stripe_event_id=event_id, event_type=event_type))
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        logger.info(f"Event {event_id} already claimed, skipping")
        return False
    return True


def is_processed(session, event_id):
    """Read-only check used by tooling and tests."""
    return (
        session.query(StripeEvent)
        .filter_by(stripe_event_id=event_id)
        .first()
        is not None
    )
