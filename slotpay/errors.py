"""Error taxonomy for the settlement core.

Services raise these; blueprints (or the app-level error handler) turn
them into JSON responses using ``status_code`` and ``code``.
"""


class SlotPayError(Exception):
    status_code = 500
    code = "InternalError"

    def __init__(self, message=None):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self):
        return {"error": self.code, "message": self.message}


class ValidationError(SlotPayError):
    """Bad input shape. Rejected before any state is touched."""

    status_code = 400
    code = "ValidationError"


class AuthenticationError(SlotPayError):
    """Signature or identity is invalid."""

    status_code = 401
    code = "Unauthorized"


class NotFoundError(SlotPayError):
    status_code = 404
    code = "NotFound"


class SlotNotFound(NotFoundError):
    code = "SlotNotFound"


class SlotNotOwnedByListing(NotFoundError):
    code = "SlotNotOwnedByListing"


class ConflictError(SlotPayError):
    status_code = 409
    code = "Conflict"


class SlotFull(ConflictError):
    code = "SlotFull"


class InsufficientCredits(ConflictError):
    """A ledger batch would take the running balance below zero."""

    code = "InsufficientCredits"


class OversoldConflict(SlotPayError):
    """Capacity ran out between checkout and settlement.

    Never raised. settle_payment() builds one and returns it on the
    SettlementResult as the reconciliation signal; the payment effects
    are still committed and no HTTP error is produced.
    """

    status_code = 200
    code = "OversoldConflict"

    def __init__(self, slot_id, reason, message=None):
        super().__init__(message or f"Slot {slot_id} could not be reserved ({reason})")
        self.slot_id = slot_id
        self.reason = reason


class TransientStorageError(SlotPayError):
    """Database failure mid-settlement. The sender should redeliver."""

    status_code = 500
    code = "TransientStorageError"


class PaymentProviderError(SlotPayError):
    """Stripe rejected or failed a checkout call."""

    status_code = 502
    code = "PaymentProviderError"
