"""HTTP client used by resource servers to reach a remote facilitator."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from x402_near.exceptions import TransportError
from x402_near.types import (
    PaymentPayload,
    PaymentRequirements,
    SettlementReceipt,
    SupportedResponse,
    VerifyResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_FACILITATOR_URL = "http://localhost:4022"


@dataclass
class FacilitatorConfig:
    """Configuration for the HTTP facilitator client."""

    url: str = DEFAULT_FACILITATOR_URL
    timeout: float = 30.0


class FacilitatorClient:
    """Async client for the facilitator's ``/verify`` and ``/settle`` routes.

    Transport failures never raise: they come back as failed responses with
    ``errorCode="transport_error"`` so callers can answer with a repeated 402.
    """

    def __init__(
        self,
        config: Optional[FacilitatorConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        config = config or FacilitatorConfig()
        self.config = config
        self.url = config.url.rstrip("/")
        self.timeout = config.timeout
        self._transport = transport

    async def _post(self, route: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(f"{self.url}{route}", json=body)
        except httpx.HTTPError as e:
            raise TransportError(f"Facilitator unreachable: {e}") from e

        # 400 carries a structured failure; anything else is a transport problem
        if response.status_code not in (200, 400):
            raise TransportError(
                f"Facilitator {route} returned {response.status_code}: {response.text}"
            )
        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(f"Facilitator {route} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise TransportError(f"Facilitator {route} returned a non-object body")
        return data

    async def verify(
        self, payment: PaymentPayload, payment_requirements: PaymentRequirements
    ) -> VerifyResponse:
        """Verify a payment payload against requirements."""
        body = {
            "paymentPayload": payment.model_dump(by_alias=True, exclude_none=True),
            "paymentDetails": payment_requirements.model_dump(
                by_alias=True, exclude_none=True
            ),
        }
        try:
            data = await self._post("/verify", body)
            return VerifyResponse.model_validate(data)
        except TransportError as e:
            logger.error(f"Facilitator verify failed: {e}")
            return VerifyResponse(valid=False, error=e.message, error_code=e.code)
        except ValidationError as e:
            logger.error(f"Facilitator verify returned an invalid response: {e}")
            return VerifyResponse(
                valid=False,
                error="Invalid facilitator response",
                error_code=TransportError.code,
            )

    async def settle(
        self, payment: PaymentPayload, payment_requirements: PaymentRequirements
    ) -> SettlementReceipt:
        """Settle a verified payment.

        The payload and requirements travel with the authorization so the
        facilitator re-verifies before relaying.
        """
        body = {
            "authorizationBlob": payment.delegate_b64,
            "paymentPayload": payment.model_dump(by_alias=True, exclude_none=True),
            "paymentDetails": payment_requirements.model_dump(
                by_alias=True, exclude_none=True
            ),
        }
        try:
            data = await self._post("/settle", body)
            return SettlementReceipt.model_validate(data)
        except TransportError as e:
            logger.error(f"Facilitator settle failed: {e}")
            return SettlementReceipt(ok=False, error=e.message, error_code=e.code)
        except ValidationError as e:
            logger.error(f"Facilitator settle returned an invalid response: {e}")
            return SettlementReceipt(
                ok=False,
                error="Invalid facilitator response",
                error_code=TransportError.code,
            )

    async def supported(self) -> SupportedResponse:
        """Payment kinds the facilitator accepts.

        Raises:
            TransportError: If the facilitator cannot be reached
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(f"{self.url}/supported")
            response.raise_for_status()
            return SupportedResponse.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as e:
            raise TransportError(f"Facilitator /supported failed: {e}") from e
