"""requests integration with automatic x402 NEAR payment handling."""

import copy
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests
from pydantic import ValidationError
from requests.adapters import HTTPAdapter

from x402_near.clients.base import PaymentSelectorCallable, x402Client
from x402_near.constants import X_PAYMENT_HEADER, X_PAYMENT_RESPONSE_HEADER
from x402_near.encoding import decode_payment_response_header
from x402_near.exceptions import (
    PaymentError,
    PaymentFailedError,
    UnexpectedStatusError,
)
from x402_near.near.rpc import NearRpcClient
from x402_near.near.wallet import Keypair
from x402_near.types import PaymentRequiredResponse, SettlementReceipt

logger = logging.getLogger(__name__)


def parse_payment_required(content: bytes) -> PaymentRequiredResponse:
    """Parse a 402 body.

    Raises:
        PaymentError: If the body is not a payment challenge
    """
    try:
        return PaymentRequiredResponse.model_validate(json.loads(content))
    except (ValueError, ValidationError) as e:
        raise PaymentError(f"Invalid 402 response body: {e}") from e


class x402HTTPAdapter(HTTPAdapter):
    """HTTP adapter that pays 402 Payment Required responses and retries once."""

    def __init__(self, client: x402Client, **kwargs):
        """Initialize the adapter.

        Args:
            client: x402Client used to sign payments
            **kwargs: Additional arguments to pass to HTTPAdapter
        """
        super().__init__(**kwargs)
        self.client = client
        self._is_retry = False

    def send(self, request, **kwargs):
        """Send a request, paying and retrying once on 402.

        Raises:
            PaymentError: If the challenge cannot be paid
        """
        if self._is_retry:
            self._is_retry = False
            return super().send(request, **kwargs)

        response = super().send(request, **kwargs)

        if response.status_code != 402:
            return response

        try:
            # Save the content before we parse it to avoid consuming it
            content = copy.deepcopy(response.content)
            challenge = parse_payment_required(content)

            selected = self.client.select_payment_requirements(challenge.accepts)
            payment_header = self.client.create_payment_header(
                selected, challenge.invoice.id
            )

            self._is_retry = True
            request.headers[X_PAYMENT_HEADER] = payment_header
            request.headers["Access-Control-Expose-Headers"] = X_PAYMENT_RESPONSE_HEADER

            retry_response = super().send(request, **kwargs)
            self._is_retry = False

            # Copy the retry response data to the original response
            response.status_code = retry_response.status_code
            response.headers = retry_response.headers
            response._content = retry_response.content
            return response

        except PaymentError:
            self._is_retry = False
            raise
        except Exception as e:
            self._is_retry = False
            raise PaymentError(f"Failed to handle payment: {e}") from e


def x402_http_adapter(
    account_id: str,
    keypair: Keypair,
    rpc: NearRpcClient,
    max_value: Optional[int] = None,
    payment_requirements_selector: Optional[PaymentSelectorCallable] = None,
    **kwargs,
) -> x402HTTPAdapter:
    """Create an HTTP adapter that handles 402 Payment Required responses.

    Args:
        account_id: NEAR account paying for requests
        keypair: Key of ``account_id``
        rpc: RPC client for the paying account's network
        max_value: Optional maximum allowed payment amount in atomic units
        payment_requirements_selector: Optional custom selector for payment requirements
        **kwargs: Additional arguments to pass to HTTPAdapter

    Returns:
        x402HTTPAdapter instance that can be mounted to a requests session
    """
    client = x402Client(
        account_id,
        keypair,
        rpc,
        max_value=max_value,
        payment_requirements_selector=payment_requirements_selector,
    )
    return x402HTTPAdapter(client, **kwargs)


def x402_requests(
    account_id: str,
    keypair: Keypair,
    rpc: NearRpcClient,
    max_value: Optional[int] = None,
    payment_requirements_selector: Optional[PaymentSelectorCallable] = None,
    **kwargs,
) -> requests.Session:
    """Create a requests session with x402 payment handling.

    Returns:
        Session with x402 payment handling mounted for http and https
    """
    session = requests.Session()
    adapter = x402_http_adapter(
        account_id,
        keypair,
        rpc,
        max_value=max_value,
        payment_requirements_selector=payment_requirements_selector,
        **kwargs,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


@dataclass(frozen=True)
class PaidResponse:
    body: Any
    receipt: Optional[SettlementReceipt]


def _body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def request_with_payment(
    client: x402Client,
    url: str,
    method: str = "GET",
    session: Optional[requests.Session] = None,
    **kwargs,
) -> PaidResponse:
    """Fetch a paid resource in exactly two requests.

    The first request must be answered with 402; the retry carries the
    X-PAYMENT header and must be answered with 200.

    Raises:
        UnexpectedStatusError: If the first response is not 402
        PaymentFailedError: If the paid retry is not 200; carries the
            server's status and body verbatim
        PaymentError: If the challenge cannot be paid
    """
    session = session or requests.Session()

    first = session.request(method, url, **kwargs)
    if first.status_code != 402:
        raise UnexpectedStatusError(first.status_code, first.text)

    challenge = parse_payment_required(first.content)
    logger.info(
        f"Payment required for {url}: invoice {challenge.invoice.id}, "
        f"{len(challenge.accepts)} option(s)"
    )
    payment_header = client.pay(challenge)

    headers = dict(kwargs.pop("headers", None) or {})
    headers[X_PAYMENT_HEADER] = payment_header
    paid = session.request(method, url, headers=headers, **kwargs)
    if paid.status_code != 200:
        raise PaymentFailedError(paid.status_code, paid.text)

    receipt = None
    receipt_header = paid.headers.get(X_PAYMENT_RESPONSE_HEADER)
    if receipt_header:
        try:
            receipt = decode_payment_response_header(receipt_header)
        except (ValueError, ValidationError) as e:
            logger.warning(f"Ignoring undecodable {X_PAYMENT_RESPONSE_HEADER}: {e}")

    return PaidResponse(body=_body(paid), receipt=receipt)
