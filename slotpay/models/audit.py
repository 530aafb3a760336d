"""Audit event model.

Logs settlement outcomes and reconciliation signals (oversold slots,
credit shortfalls) for operators and debugging.
"""

import uuid

from slotpay.extensions import db


class AuditEvent(db.Model):
    __tablename__ = "audit_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(db.String(36), nullable=True, index=True)
    action = db.Column(db.String(255), nullable=False)  # e.g. "booking.settled"
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # extra context, named metadata_ to avoid the SQLAlchemy attribute clash
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<AuditEvent {self.action}>"
