"""Slot model.

A bookable time window for a listing with a fixed capacity. Rows are
authored by merchant tooling; this service only reads them and bumps
booked_count through slot_service.try_reserve().
"""

import uuid

from slotpay.extensions import db


class Slot(db.Model):
    __tablename__ = "slots"
    __table_args__ = (
        db.CheckConstraint("capacity >= 1", name="ck_slots_capacity_positive"),
        db.CheckConstraint("booked_count >= 0", name="ck_slots_booked_nonnegative"),
        db.CheckConstraint(
            "booked_count <= capacity", name="ck_slots_booked_within_capacity"
        ),
        db.CheckConstraint("price > 0", name="ck_slots_price_positive"),
    )

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    listing_id = db.Column(db.String(36), nullable=False, index=True)
    label = db.Column(db.String(255), nullable=True)  # e.g. "Cut & finish"
    starts_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ends_at = db.Column(db.DateTime(timezone=True), nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=False)  # major units, e.g. 20.00
    capacity = db.Column(db.Integer, nullable=False, default=1)
    booked_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def is_full(self):
        return self.booked_count >= self.capacity

    @property
    def remaining(self):
        return max(0, self.capacity - self.booked_count)

    def __repr__(self):
        return f"<Slot {self.id} ({self.booked_count}/{self.capacity})>"
