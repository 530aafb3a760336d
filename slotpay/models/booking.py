"""Booking model.

One row per settled payment. status is "confirmed" when the slot was
reserved, or "oversold_conflict" when the payment landed but the slot had
no capacity left (or no longer exists) — those rows need merchant or
manual reconciliation.
"""

import uuid

from slotpay.extensions import db


class Booking(db.Model):
    __tablename__ = "bookings"

    STATUS_CONFIRMED = "confirmed"
    STATUS_OVERSOLD = "oversold_conflict"
    STATUSES = [STATUS_CONFIRMED, STATUS_OVERSOLD]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    stripe_event_id = db.Column(db.String(255), unique=True, nullable=False)
    checkout_session_id = db.Column(
        db.String(255), nullable=True, unique=True, index=True
    )  # one settlement per Checkout Session
    user_id = db.Column(db.String(36), nullable=False, index=True)
    listing_id = db.Column(db.String(36), nullable=False)
    slot_id = db.Column(db.String(36), nullable=False, index=True)
    price_minor_units = db.Column(db.Integer, nullable=False)
    amount_paid_minor_units = db.Column(db.Integer, nullable=False)
    redeem_amount = db.Column(db.Integer, nullable=False, default=0)
    award_amount = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(
        db.String(50), nullable=False
    )  # confirmed | oversold_conflict
    conflict_reason = db.Column(
        db.String(50), nullable=True
    )  # capacity_exhausted | slot_not_found | credit_shortfall
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    @property
    def needs_reconciliation(self):
        return self.conflict_reason is not None

    def to_dict(self):
        return {
            "id": self.id,
            "listing_id": self.listing_id,
            "slot_id": self.slot_id,
            "status": self.status,
            "conflict_reason": self.conflict_reason,
            "price_minor_units": self.price_minor_units,
            "amount_paid_minor_units": self.amount_paid_minor_units,
            "redeem_amount": self.redeem_amount,
            "award_amount": self.award_amount,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Booking {self.id} slot={self.slot_id} ({self.status})>"
