import logging
from typing import Callable, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import validate_call

from x402_near.constants import (
    DEFAULT_MAX_TIMEOUT_SECONDS,
    DEFAULT_MIME_TYPE,
    X_PAYMENT_HEADER,
    X_PAYMENT_RESPONSE_HEADER,
)
from x402_near.facilitator_client import FacilitatorClient, FacilitatorConfig
from x402_near.path import path_is_match
from x402_near.server import x402ResourceServer
from x402_near.types import PaymentRequiredResponse

logger = logging.getLogger(__name__)


def _challenge_response(challenge: PaymentRequiredResponse) -> JSONResponse:
    return JSONResponse(
        content=challenge.model_dump(by_alias=True, exclude_none=True),
        status_code=402,
    )


@validate_call
def require_payment(
    amount_exact_atomic: str,
    asset: str,
    pay_to: str,
    path: str | list[str] = "*",
    description: str = "",
    mime_type: str = DEFAULT_MIME_TYPE,
    max_deadline_seconds: int = DEFAULT_MAX_TIMEOUT_SECONDS,
    facilitator_config: Optional[FacilitatorConfig] = None,
    network: str = "testnet",
    resource: Optional[str] = None,
):
    """Generate a FastAPI middleware that gates payments for an endpoint.

    Args:
        amount_exact_atomic (str): Exact price in the token's smallest unit
        asset (str): NEP-141 token contract account id
        pay_to (str): NEAR account receiving the payment
        path (str | list[str], optional): Path to gate with payments. Defaults to "*" for all paths.
        description (str, optional): Description of what is being purchased. Defaults to "".
        mime_type (str, optional): MIME type of the resource. Defaults to "application/json".
        max_deadline_seconds (int, optional): Maximum time allowed for payment. Defaults to 60.
        facilitator_config (Optional[FacilitatorConfig], optional): Where to reach the facilitator.
            Defaults to a facilitator on localhost:4022.
        network (str, optional): NEAR network. Defaults to "testnet".
        resource (Optional[str], optional): Resource URL. Defaults to None (uses request path).

    Returns:
        Callable: FastAPI middleware function that checks for valid payment before processing requests
    """
    server = x402ResourceServer(
        asset=asset,
        pay_to=pay_to,
        amount_exact_atomic=amount_exact_atomic,
        network=network,
        facilitator=FacilitatorClient(facilitator_config),
        description=description,
        mime_type=mime_type,
        max_timeout_seconds=max_deadline_seconds,
        resource=resource,
    )

    async def middleware(request: Request, call_next: Callable):
        # Skip if the path is not the same as the path in the middleware
        if not path_is_match(path, request.url.path):
            return await call_next(request)

        resource_path = request.url.path
        verification = await server.process_payment(
            request.headers.get(X_PAYMENT_HEADER), resource_path
        )
        if verification.challenge is not None:
            return _challenge_response(verification.challenge)

        request.state.payment_details = verification.requirements
        request.state.verify_response = verification.verify_response

        response = await call_next(request)

        # Early return without settling if the response is not a 2xx
        if response.status_code < 200 or response.status_code >= 300:
            return response

        settlement = await server.settle_payment(verification, resource_path)
        if settlement.challenge is not None:
            # Handler output is dropped so unpaid content never leaks
            return _challenge_response(settlement.challenge)

        response.headers[X_PAYMENT_RESPONSE_HEADER] = settlement.header
        logger.info(
            f"Payment settled for {resource_path}: {settlement.receipt.tx_hash}"
        )
        return response

    return middleware
