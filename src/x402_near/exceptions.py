"""Exception hierarchy for x402-near.

Every error carries a stable machine-readable ``code`` alongside its
human-readable message. Verification and settlement errors are caught at the
facilitator boundary and turned into structured responses; they are never
meant to escape a protocol endpoint as an exception.
"""

from typing import Optional


class X402Error(Exception):
    """Base class for all x402-near errors."""

    code = "x402_error"

    def __init__(self, message: str = "", code: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)


class ConfigurationError(X402Error):
    """Raised at startup when a required identity or credential is missing."""

    code = "configuration_error"


class TransportError(X402Error):
    """Raised when a collaborator service (facilitator, NEAR RPC) is unreachable."""

    code = "transport_error"


# Client-side errors


class PaymentError(X402Error):
    """Base class for payment-related errors."""

    code = "payment_error"


class PaymentAmountExceededError(PaymentError):
    """Raised when payment amount exceeds maximum allowed value."""

    code = "payment_amount_exceeded"


class UnsupportedSchemeException(PaymentError):
    """Raised when no offered payment requirements use a supported scheme."""

    code = "unsupported_scheme"


class MalformedPaymentError(PaymentError):
    """Raised when an X-PAYMENT header cannot be decoded into a payload."""

    code = "malformed_payment"


class UnexpectedStatusError(PaymentError):
    """Raised when the unauthenticated request does not answer with 402."""

    code = "unexpected_status"

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"Expected 402, got: {status_code}")
        self.status_code = status_code
        self.body = body


class PaymentFailedError(PaymentError):
    """Raised when the paid retry does not answer with 200.

    ``body`` holds the server's error body verbatim.
    """

    code = "payment_failed"

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"Payment failed: {status_code}")
        self.status_code = status_code
        self.body = body


# Verification errors


class PaymentVerificationError(X402Error):
    """An authorization does not satisfy the payment requirements."""

    code = "verification_failed"


class MalformedAuthorizationError(PaymentVerificationError):
    code = "malformed_authorization"


class FieldMismatchError(PaymentVerificationError):
    code = "field_mismatch"


class AssetMismatchError(FieldMismatchError):
    code = "asset_mismatch"

    def __init__(self, message: str = "Asset mismatch"):
        super().__init__(message)


class RecipientMismatchError(FieldMismatchError):
    code = "recipient_mismatch"

    def __init__(self, message: str = "Recipient mismatch"):
        super().__init__(message)


class NetworkMismatchError(FieldMismatchError):
    code = "network_mismatch"

    def __init__(self, message: str = "Network mismatch"):
        super().__init__(message)


class WrongTargetError(PaymentVerificationError):
    code = "wrong_target"

    def __init__(self, message: str = "Delegate must target token contract"):
        super().__init__(message)


class InvalidSignatureError(PaymentVerificationError):
    code = "invalid_signature"

    def __init__(self, message: str = "Invalid delegate signature"):
        super().__init__(message)


class NoMatchingTransferError(PaymentVerificationError):
    code = "no_matching_transfer"

    def __init__(self, message: str = "No transfer to seller found"):
        super().__init__(message)


class AmbiguousTransferError(PaymentVerificationError):
    code = "ambiguous_transfer"

    def __init__(
        self, message: str = "Authorization contains more than one transfer action"
    ):
        super().__init__(message)


class AmountMismatchError(PaymentVerificationError):
    code = "amount_mismatch"

    def __init__(self, message: str = "Amount mismatch"):
        super().__init__(message)


# Settlement errors


class SettlementError(X402Error):
    """The ledger rejected a settlement. Never retried by this layer."""

    code = "settlement_failed"


class PaymentAlreadySettledError(SettlementError):
    code = "already_settled"

    def __init__(self, message: str = "Authorization already settled"):
        super().__init__(message)
