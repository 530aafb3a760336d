"""Credit ledger models.

- LedgerEntry: immutable signed credit movement (negative = redeem,
  positive = award/grant). Append-only — updates and deletes are refused.
- CreditAccount: running total per user, written only by
  ledger_service.append_entries() in the same transaction as the entries
  it summarises. The entries remain the audit source of truth.
"""

import uuid

from sqlalchemy import event

from slotpay.extensions import db


class LedgerSource:
    REDEEM_CHECKOUT = "redeem_checkout"
    AWARD_PURCHASE = "award_purchase"
    MANUAL_GRANT = "manual_grant"

    ALL = (REDEEM_CHECKOUT, AWARD_PURCHASE, MANUAL_GRANT)


class CreditAccount(db.Model):
    __tablename__ = "credit_accounts"
    __table_args__ = (
        db.CheckConstraint("balance >= 0", name="ck_credit_accounts_balance_nonnegative"),
    )

    user_id = db.Column(db.String(36), primary_key=True)
    balance = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self):
        return f"<CreditAccount {self.user_id} balance={self.balance}>"


class LedgerEntry(db.Model):
    __tablename__ = "credit_ledger_entries"
    __table_args__ = (
        db.CheckConstraint("amount <> 0", name="ck_credit_ledger_entries_amount_nonzero"),
        db.Index("ix_credit_ledger_entries_user_created", "user_id", "created_at"),
    )

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(db.String(36), nullable=False)
    amount = db.Column(db.Integer, nullable=False)  # signed, in credits
    source = db.Column(
        db.String(50), nullable=False
    )  # redeem_checkout | award_purchase | manual_grant
    stripe_event_id = db.Column(
        db.String(255), nullable=True, index=True
    )  # the settlement that wrote this entry, if any
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def to_dict(self):
        return {
            "id": self.id,
            "amount": self.amount,
            "source": self.source,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<LedgerEntry {self.user_id} {self.amount:+d} ({self.source})>"


@event.listens_for(LedgerEntry, "before_update")
def _refuse_update(mapper, connection, target):
    raise ValueError("Ledger entries are append-only and cannot be updated")


@event.listens_for(LedgerEntry, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise ValueError("Ledger entries are append-only and cannot be deleted")
