from __future__ import annotations

import time
import uuid
from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from x402_near.constants import (
    DEFAULT_MAX_TIMEOUT_SECONDS,
    DEFAULT_MIME_TYPE,
    MAX_ATOMIC_AMOUNT,
    MAX_ATOMIC_DIGITS,
    SCHEME_NEAR_DELEGATE_EXACT,
)

NearDelegateExact = Literal["near-delegate-exact"]


def is_atomic_amount(value: object) -> bool:
    """Whether ``value`` is a decimal string holding a u128 token amount."""
    return (
        isinstance(value, str)
        and value.isascii()
        and value.isdigit()
        and len(value) <= MAX_ATOMIC_DIGITS
        and int(value) <= MAX_ATOMIC_AMOUNT
    )


def _validate_atomic(v: str, field_name: str) -> str:
    if not is_atomic_amount(v):
        raise ValueError(
            f"{field_name} must be a non-negative u128 integer encoded as a string"
        )
    return v


class PaymentRequirements(BaseModel):
    """One entry of the ``accepts`` list in a 402 challenge."""

    scheme: NearDelegateExact = SCHEME_NEAR_DELEGATE_EXACT
    network: str
    asset: str
    pay_to: str
    amount_exact_atomic: str
    max_timeout_seconds: int = DEFAULT_MAX_TIMEOUT_SECONDS
    mime_type: str = DEFAULT_MIME_TYPE
    resource: str = ""
    description: str = ""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    @field_validator("amount_exact_atomic")
    def validate_amount(cls, v):
        return _validate_atomic(v, "amountExactAtomic")


class Invoice(BaseModel):
    """Opaque correlation token issued with every challenge."""

    id: str
    created_at: int

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    @classmethod
    def new(cls) -> "Invoice":
        return cls(id=str(uuid.uuid4()), created_at=int(time.time() * 1000))


# Returned by a server as json alongside a 402 response code
class PaymentRequiredResponse(BaseModel):
    message: str = "Payment Required"
    accepts: list[PaymentRequirements]
    invoice: Invoice
    error: Optional[str] = None
    details: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PaymentPayload(BaseModel):
    """Decoded form of the X-PAYMENT header."""

    scheme: NearDelegateExact
    network: str
    asset: str
    pay_to: str
    delegate_b64: str = Field(
        validation_alias=AliasChoices(
            "delegateB64", "delegate_b64", "authorizationBlob"
        ),
        serialization_alias="delegateB64",
    )
    invoice_id: Optional[str] = None
    max_amount_required: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    @field_validator("max_amount_required")
    def validate_max_amount(cls, v):
        if v is None:
            return v
        return _validate_atomic(v, "maxAmountRequired")


class VerifyRequest(BaseModel):
    payment_payload: PaymentPayload
    payment_details: PaymentRequirements

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class VerifyResponse(BaseModel):
    valid: bool
    sender: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class SettleRequest(BaseModel):
    authorization_blob: str = Field(
        validation_alias=AliasChoices(
            "authorizationBlob", "authorization_blob", "delegateB64"
        ),
        serialization_alias="authorizationBlob",
    )
    # When both are present the facilitator re-verifies before relaying
    payment_payload: Optional[PaymentPayload] = None
    payment_details: Optional[PaymentRequirements] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class SettlementReceipt(BaseModel):
    """Outcome of a settlement, round-tripped to the client as X-PAYMENT-RESPONSE."""

    ok: bool
    tx_hash: Optional[str] = None
    block_hash: Optional[str] = None
    status: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        frozen=True,
    )


class SupportedKind(BaseModel):
    scheme: str
    network: str


class SupportedResponse(BaseModel):
    kinds: list[SupportedKind]
