"""Slot service — reads and the atomic capacity reservation.

try_reserve() is the only code path that mutates slots.booked_count.
"""

import logging

from sqlalchemy import update

from slotpay.models.slot import Slot

logger = logging.getLogger(__name__)


def get_slot(session, slot_id):
    """Return the Slot or None. Plain read, no locking."""
    return session.get(Slot, slot_id)


def try_reserve(session, slot_id):
    """Take one unit of capacity on a slot.

    Issued as a single conditional UPDATE, so the capacity check and the
    increment happen in one statement on the database side. Concurrent
    callers can never push booked_count past capacity, whatever they read
    earlier.

    Runs inside the caller's transaction and does not commit.
    Returns True if a unit was reserved, False if the slot is full or
    does not exist.
    """
    result = session.execute(
        update(Slot)
        .where(Slot.id == slot_id, Slot.booked_count < Slot.capacity)
        .values(booked_count=Slot.booked_count + 1)
        .execution_options(synchronize_session=False)
    )
    reserved = result.rowcount == 1

    if reserved:
        # Anything already loaded in this session is now stale.
        slot = session.identity_map.get(session.identity_key(Slot, slot_id))
        if slot is not None:
            session.expire(slot, ["booked_count"])
    else:
        logger.info(f"try_reserve: no capacity left on slot {slot_id}")

    return reserved
