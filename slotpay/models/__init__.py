# Models package. Import all models here so Alembic can discover them.

from slotpay.models.slot import Slot  # noqa: F401
from slotpay.models.ledger import CreditAccount, LedgerEntry, LedgerSource  # noqa: F401
from slotpay.models.stripe_event import StripeEvent  # noqa: F401
from slotpay.models.booking import Booking  # noqa: F401
from slotpay.models.audit import AuditEvent  # noqa: F401
