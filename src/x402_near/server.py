"""Framework-neutral resource server logic.

The FastAPI and Flask middlewares both delegate here: challenge issuance,
X-PAYMENT decoding, verification and settlement all happen in
``x402ResourceServer``; the adapters only translate to their framework's
request and response objects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, get_args

from pydantic import ValidationError

from x402_near.constants import (
    DEFAULT_MAX_TIMEOUT_SECONDS,
    DEFAULT_MIME_TYPE,
    ERR_PAYMENT_INVALID,
    ERR_PAYMENT_MALFORMED,
    ERR_PAYMENT_NOT_SETTLED,
    SCHEME_NEAR_DELEGATE_EXACT,
)
from x402_near.encoding import decode_payment_header, encode_payment_response_header
from x402_near.exceptions import MalformedPaymentError, NetworkMismatchError
from x402_near.facilitator_client import FacilitatorClient
from x402_near.networks import SupportedNetworks
from x402_near.types import (
    Invoice,
    PaymentPayload,
    PaymentRequiredResponse,
    PaymentRequirements,
    SettlementReceipt,
    VerifyResponse,
)

logger = logging.getLogger(__name__)


class Facilitator(Protocol):
    async def verify(
        self, payment: PaymentPayload, payment_requirements: PaymentRequirements
    ) -> VerifyResponse: ...

    async def settle(
        self, payment: PaymentPayload, payment_requirements: PaymentRequirements
    ) -> SettlementReceipt: ...


@dataclass
class PaymentVerification:
    """Result of checking a request's payment evidence.

    Exactly one of ``challenge`` (answer with 402) or ``verify_response``
    (let the handler run) is meaningful.
    """

    challenge: Optional[PaymentRequiredResponse] = None
    payment: Optional[PaymentPayload] = None
    requirements: Optional[PaymentRequirements] = None
    verify_response: Optional[VerifyResponse] = None

    @property
    def is_valid(self) -> bool:
        return self.challenge is None


@dataclass
class PaymentSettlement:
    receipt: SettlementReceipt
    header: Optional[str] = None
    challenge: Optional[PaymentRequiredResponse] = None


def find_matching_payment_requirements(
    payment_requirements: list[PaymentRequirements],
    payment: PaymentPayload,
) -> Optional[PaymentRequirements]:
    """Find the requirements entry a payment was built for.

    Only scheme and network select the entry; asset and recipient are left
    to the facilitator so their mismatches surface with specific reasons.
    """
    for requirements in payment_requirements:
        if (
            requirements.scheme == payment.scheme
            and requirements.network == payment.network
        ):
            return requirements
    return None


class x402ResourceServer:
    """Issues 402 challenges and gates a resource on verified payment.

    Example:
        ```python
        server = x402ResourceServer(
            asset="usdc.fakes.testnet",
            pay_to="seller.testnet",
            amount_exact_atomic="1000",
        )
        verification = await server.process_payment(header, "/weather")
        ```
    """

    def __init__(
        self,
        asset: str,
        pay_to: str,
        amount_exact_atomic: str,
        network: str = "testnet",
        facilitator: Optional[Facilitator] = None,
        description: str = "",
        mime_type: str = DEFAULT_MIME_TYPE,
        max_timeout_seconds: int = DEFAULT_MAX_TIMEOUT_SECONDS,
        resource: Optional[str] = None,
    ):
        supported_networks = get_args(SupportedNetworks)
        if network not in supported_networks:
            raise ValueError(
                f"Unsupported network: {network}. Must be one of: {supported_networks}"
            )
        try:
            # Validate once at construction rather than on every request
            PaymentRequirements(
                network=network,
                asset=asset,
                pay_to=pay_to,
                amount_exact_atomic=amount_exact_atomic,
            )
        except ValidationError as e:
            raise ValueError(f"Invalid price: {amount_exact_atomic}. Error: {e}")

        self.asset = asset
        self.pay_to = pay_to
        self.amount_exact_atomic = amount_exact_atomic
        self.network = network
        self.facilitator = facilitator or FacilitatorClient()
        self.description = description
        self.mime_type = mime_type
        self.max_timeout_seconds = max_timeout_seconds
        self.resource = resource

    def build_accepts(self, resource: str) -> list[PaymentRequirements]:
        """Requirements for ``resource``. Deterministic for a given resource."""
        return [
            PaymentRequirements(
                scheme=SCHEME_NEAR_DELEGATE_EXACT,
                network=self.network,
                asset=self.asset,
                pay_to=self.pay_to,
                amount_exact_atomic=self.amount_exact_atomic,
                max_timeout_seconds=self.max_timeout_seconds,
                mime_type=self.mime_type,
                resource=self.resource or resource,
                description=self.description,
            )
        ]

    def payment_required(
        self,
        resource: str,
        error: Optional[str] = None,
        details: Optional[str] = None,
    ) -> PaymentRequiredResponse:
        """Build a 402 body with a fresh invoice."""
        return PaymentRequiredResponse(
            accepts=self.build_accepts(resource),
            invoice=Invoice.new(),
            error=error,
            details=details,
        )

    async def process_payment(
        self, payment_header: Optional[str], resource: str
    ) -> PaymentVerification:
        """Decode and verify the X-PAYMENT header of a request.

        Args:
            payment_header: Raw X-PAYMENT header value, or None if absent
            resource: Path or URL of the requested resource

        Returns:
            PaymentVerification carrying either a 402 challenge or the
            verified payment
        """
        if not payment_header:
            return PaymentVerification(challenge=self.payment_required(resource))

        try:
            payment = decode_payment_header(payment_header)
        except MalformedPaymentError as e:
            logger.warning(f"Malformed X-PAYMENT header for {resource}: {e}")
            return PaymentVerification(
                challenge=self.payment_required(
                    resource, ERR_PAYMENT_MALFORMED, e.message
                )
            )

        requirements = find_matching_payment_requirements(
            self.build_accepts(resource), payment
        )
        if requirements is None:
            # The scheme is fixed by the payload model, so only the network can differ
            logger.warning(f"Payment for {resource} names network {payment.network}")
            return PaymentVerification(
                challenge=self.payment_required(
                    resource, ERR_PAYMENT_INVALID, NetworkMismatchError().message
                )
            )

        verify_response = await self.facilitator.verify(payment, requirements)
        if not verify_response.valid:
            return PaymentVerification(
                challenge=self.payment_required(
                    resource,
                    ERR_PAYMENT_INVALID,
                    verify_response.error or "Unknown error",
                )
            )

        return PaymentVerification(
            payment=payment,
            requirements=requirements,
            verify_response=verify_response,
        )

    async def settle_payment(
        self, verification: PaymentVerification, resource: str
    ) -> PaymentSettlement:
        """Settle a verified payment after the handler succeeded.

        A failed settlement yields a 402 challenge; the caller must discard
        the handler's response.
        """
        if verification.payment is None or verification.requirements is None:
            raise ValueError("Cannot settle a payment that was not verified")

        receipt = await self.facilitator.settle(
            verification.payment, verification.requirements
        )
        if not receipt.ok:
            logger.warning(f"Settlement failed for {resource}: {receipt.error}")
            return PaymentSettlement(
                receipt=receipt,
                challenge=self.payment_required(
                    resource,
                    ERR_PAYMENT_NOT_SETTLED,
                    receipt.error or "Unknown error",
                ),
            )

        return PaymentSettlement(
            receipt=receipt, header=encode_payment_response_header(receipt)
        )
