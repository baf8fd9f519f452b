"""Error taxonomy shared by the services and the HTTP layer.

Every error carries a stable ``code`` and a human readable ``message``; the
exception handlers registered in ``app.main`` render them as
``{"error": code, "message": message}``.
"""


class WalletError(Exception):
    status_code = 500
    code = "internal_error"
    message = "An unexpected error occurred"

    def __init__(self, message: str | None = None, *, code: str | None = None):
        self.message = message or self.message
        if code:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class Unauthenticated(WalletError):
    status_code = 401
    code = "unauthorized"
    message = "Authentication token or API key required"


class Forbidden(WalletError):
    status_code = 403
    code = "forbidden"
    message = "You don't have permission to perform this action"


class ValidationError(WalletError):
    status_code = 400
    code = "invalid_input"
    message = "Invalid request"


class NotFound(WalletError):
    status_code = 404
    code = "not_found"
    message = "Resource not found"


class Conflict(WalletError):
    status_code = 409
    code = "conflict"
    message = "Request conflicts with existing state"


class LimitExceeded(WalletError):
    status_code = 403
    code = "limit_exceeded"
    message = "Limit exceeded"


class UpstreamError(WalletError):
    status_code = 502
    code = "provider_error"
    message = "Upstream provider request failed"


class InternalError(WalletError):
    pass


class PaymentInitiationFailed(UpstreamError):
    status_code = 402
    code = "payment_initiation_failed"
    message = "Failed to initiate payment with Paystack"


class InvalidSignature(ValidationError):
    code = "invalid_signature"
    message = "Invalid webhook signature"


class TooManyActiveKeys(LimitExceeded):
    def __init__(self, limit: int):
        super().__init__(f"You can only have up to {limit} active API keys.")
        self.limit = limit


class NotYetExpired(ValidationError):
    code = "key_not_expired"
    message = "Key has not yet expired"


class TransferFailed(WalletError):
    """Business rejection of a transfer, reported as HTTP 200 with status=failed."""

    status_code = 200
    code = "transfer_failed"


class SelfTransferDenied(TransferFailed):
    code = "self_transfer"
    message = "You cannot transfer to yourself"


class InsufficientFunds(TransferFailed):
    code = "insufficient_funds"
    message = "Insufficient Balance"


class RecipientNotFound(TransferFailed):
    code = "recipient_not_found"
    message = "Wallet Number not found"
