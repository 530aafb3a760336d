"""Ledger service — credit entries and balances.

Responsible for:
- Appending batches of signed entries atomically with the running total
- Reading the running balance (cheap path for checkout)
- Deriving the balance from the entries themselves (audit path)

Nothing in here commits; the caller owns the transaction boundary.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import func, select

from slotpay.errors import InsufficientCredits, ValidationError
from slotpay.models.ledger import CreditAccount, LedgerEntry, LedgerSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntrySpec:
    """A ledger movement waiting to be appended."""

    amount: int
    source: str


def get_balance(session, user_id):
    """Current credit balance for a user (0 if they have no account)."""
    balance = session.execute(
        select(CreditAccount.balance).where(CreditAccount.user_id == user_id)
    ).scalar_one_or_none()
    return balance or 0


def derive_balance(session, user_id):
    """Sum every ledger entry for a user."""
    total = session.execute(
        select(func.coalesce(func.sum(LedgerEntry.amount), 0))
        .where(LedgerEntry.user_id == user_id)
    ).scalar_one()
    return int(total)


def lock_account(session, user_id):
    """Load the user's CreditAccount with a row lock, creating it at 0.

    The lock serialises concurrent appends for one user on databases that
    support SELECT ... FOR UPDATE.
    """
    account = session.get(
        CreditAccount, user_id, with_for_update=True, populate_existing=True
    )
    if account is None:
        account = CreditAccount(user_id=user_id, balance=0)
        session.add(account)
        session.flush()
    return account


def append_entries(session, user_id, entries, stripe_event_id=None):
    """Append a batch of ledger entries for one user, all or nothing.

    Raises ValidationError for zero amounts or unknown sources and
    InsufficientCredits if the running balance would drop below zero at
    any point in the batch. Either way nothing is written.

    Returns the list of LedgerEntry rows (flushed, not committed).
    """
    entries = list(entries)
    if not entries:
        return []

    for spec in entries:
        if not isinstance(spec.amount, int) or isinstance(spec.amount, bool) or spec.amount == 0:
            raise ValidationError(f"Invalid ledger amount: {spec.amount!r}")
        if spec.source not in LedgerSource.ALL:
            raise ValidationError(f"Unknown ledger source: {spec.source!r}")

    account = lock_account(session, user_id)

    running = account.balance
    for spec in entries:
        running += spec.amount
        if running < 0:
            raise InsufficientCredits(
                f"Balance for {user_id} would drop to {running}"
            )

    rows = []
    for spec in entries:
        row = LedgerEntry(
            user_id=user_id,
            amount=spec.amount,
            source=spec.source,
            stripe_event_id=stripe_event_id,
        )
        session.add(row)
        rows.append(row)

    account.balance = running
    session.flush()

    logger.info(
        f"Ledger append for {user_id}: "
        f"{', '.join(f'{e.amount:+d} {e.source}' for e in entries)} -> balance {running}"
    )
    return rows


def list_entries(session, user_id, limit=50):
    """Newest-first ledger entries for a user."""
    return session.execute(
        select(LedgerEntry)
        .where(LedgerEntry.user_id == user_id)
        .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id)
        .limit(limit)
    ).scalars().all()


def find_drifted_accounts(session):
    """Return (user_id, running_balance, derived_balance) for every account
    whose running total disagrees with its entries.
    """
    sums = (
        select(
            LedgerEntry.user_id.label("user_id"),
            func.sum(LedgerEntry.amount).label("derived"),
        )
        .group_by(LedgerEntry.user_id)
        .subquery()
    )
    rows = session.execute(
        select(CreditAccount.user_id, CreditAccount.balance, sums.c.derived)
        .outerjoin(sums, sums.c.user_id == CreditAccount.user_id)
    ).all()

    drifted = []
    for user_id, balance, derived in rows:
        derived = int(derived or 0)
        if balance != derived:
            drifted.append((user_id, balance, derived))
    return drifted
