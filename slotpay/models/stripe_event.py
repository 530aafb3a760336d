"""Stripe event model (idempotency table).

Every settled webhook event is recorded by its Stripe event ID. The row is
inserted as the first write of the settlement transaction; a unique-key
conflict means another delivery already owns the event, so the handler
returns 200 without writing anything else.
"""

import uuid

from slotpay.extensions import db


class StripeEvent(db.Model):
    __tablename__ = "stripe_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    stripe_event_id = db.Column(
        db.String(255), unique=True, nullable=False
    )  # e.g. "evt_1Abc..."
    event_type = db.Column(
        db.String(255), nullable=False
    )  # e.g. "checkout.session.completed"
    processed_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<StripeEvent {self.stripe_event_id} ({self.event_type})>"
