"""x402-near: pay-per-request HTTP payments settled with NEAR meta-transactions."""

# Clients
from x402_near.clients.base import decode_x_payment_response, x402Client

# Payment construction
from x402_near.exact import (
    create_payment_header,
    create_transfer_action,
    prepare_payment_payload,
)

# Errors
from x402_near.exceptions import (
    ConfigurationError,
    PaymentAmountExceededError,
    PaymentError,
    PaymentFailedError,
    PaymentVerificationError,
    SettlementError,
    TransportError,
    UnexpectedStatusError,
    UnsupportedSchemeException,
    X402Error,
)

# Verification and settlement
from x402_near.facilitator import NearFacilitator, RelayerConfig, verify_payment
from x402_near.facilitator_client import FacilitatorClient, FacilitatorConfig

# Resource server
from x402_near.server import x402ResourceServer
from x402_near.store import InMemorySettlementStore, SettlementStore

# Types
from x402_near.types import (
    Invoice,
    PaymentPayload,
    PaymentRequiredResponse,
    PaymentRequirements,
    SettlementReceipt,
    SupportedResponse,
    VerifyResponse,
)

__all__ = [
    "ConfigurationError",
    "FacilitatorClient",
    "FacilitatorConfig",
    "InMemorySettlementStore",
    "Invoice",
    "NearFacilitator",
    "PaymentAmountExceededError",
    "PaymentError",
    "PaymentFailedError",
    "PaymentPayload",
    "PaymentRequiredResponse",
    "PaymentRequirements",
    "PaymentVerificationError",
    "RelayerConfig",
    "SettlementError",
    "SettlementReceipt",
    "SettlementStore",
    "SupportedResponse",
    "TransportError",
    "UnexpectedStatusError",
    "UnsupportedSchemeException",
    "VerifyResponse",
    "X402Error",
    "create_payment_header",
    "create_transfer_action",
    "decode_x_payment_response",
    "prepare_payment_payload",
    "verify_payment",
    "x402Client",
    "x402ResourceServer",
]
