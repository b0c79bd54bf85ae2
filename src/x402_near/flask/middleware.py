import asyncio
import json
import logging
from typing import Any, Dict, Optional, Union

from flask import Flask, g, request

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


def _run(coro):
    """Drive a facilitator coroutine from synchronous WSGI code."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class ResponseWrapper:
    """Wrapper to capture and buffer response for settlement logic."""

    def __init__(self, start_response):
        self.original_start_response = start_response
        self.status_code = None
        self.status = None
        self.headers = []
        self.write_callable_chunks = []

    def __call__(self, status, headers, exc_info=None):
        self.status = status
        self.status_code = int(status.split()[0])
        self.headers = list(headers)

        def buffered_write(data):
            if data:
                self.write_callable_chunks.append(data)

        return buffered_write

    def add_header(self, name, value):
        self.headers.append((name, value))

    def send_response(self, body_chunks):
        """Send the buffered response after settlement."""
        write = self.original_start_response(self.status, self.headers)
        for chunk in self.write_callable_chunks:
            write(chunk)
        for chunk in body_chunks:
            if chunk:
                write(chunk)


class PaymentMiddleware:
    """
    Flask middleware for x402 NEAR payment requirements.
    Allows multiple registrations with different path patterns and prices.

    Usage:
        middleware = PaymentMiddleware(app)
        middleware.add(path="/weather", amount_exact_atomic="1000",
                       asset="usdc.fakes.testnet", pay_to="seller.testnet")
        middleware.add(path="/premium/*", amount_exact_atomic="50000", ...)
    """

    def __init__(self, app: Flask):
        self.app = app
        self.middleware_configs = []
        self.original_wsgi_app = app.wsgi_app

    def add(
        self,
        amount_exact_atomic: str,
        asset: str,
        pay_to: str,
        path: Union[str, list[str]] = "*",
        description: str = "",
        mime_type: str = DEFAULT_MIME_TYPE,
        max_deadline_seconds: int = DEFAULT_MAX_TIMEOUT_SECONDS,
        facilitator_config: Optional[FacilitatorConfig] = None,
        network: str = "testnet",
        resource: Optional[str] = None,
    ):
        """
        Add a payment middleware configuration.

        Args:
            amount_exact_atomic (str): Exact price in the token's smallest unit
            asset (str): NEP-141 token contract account id
            pay_to (str): NEAR account receiving the payment
            path (str | list[str], optional): Path(s) to protect. Defaults to "*".
            description (str, optional): Description of the resource
            mime_type (str, optional): MIME type of the resource
            max_deadline_seconds (int, optional): Max time for payment
            facilitator_config (FacilitatorConfig, optional): Facilitator config
            network (str, optional): NEAR network. Defaults to "testnet".
            resource (str, optional): Resource URL
        """
        # Validated here so configuration errors surface at registration
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
        self.middleware_configs.append({"path": path, "server": server})

        self._apply_middleware()

    def _apply_middleware(self):
        """Apply all middleware configurations to the Flask app."""
        current_wsgi_app = self.original_wsgi_app

        for config in self.middleware_configs:
            current_wsgi_app = self._create_middleware(config, current_wsgi_app)

        self.app.wsgi_app = current_wsgi_app

    def _create_middleware(self, config: Dict[str, Any], next_app):
        """Create a WSGI middleware function for the given configuration."""
        server: x402ResourceServer = config["server"]

        def middleware(environ, start_response):
            with self.app.request_context(environ):
                if not path_is_match(config["path"], request.path):
                    return next_app(environ, start_response)

                resource_path = request.path

                def x402_response(challenge: PaymentRequiredResponse):
                    """Create a 402 response from a challenge."""
                    body = json.dumps(
                        challenge.model_dump(by_alias=True, exclude_none=True)
                    ).encode("utf-8")
                    headers = [
                        ("Content-Type", "application/json"),
                        ("Content-Length", str(len(body))),
                    ]
                    start_response("402 Payment Required", headers)
                    return [body]

                verification = _run(
                    server.process_payment(
                        request.headers.get(X_PAYMENT_HEADER), resource_path
                    )
                )
                if verification.challenge is not None:
                    return x402_response(verification.challenge)

                g.payment_details = verification.requirements
                g.verify_response = verification.verify_response
                # The handler runs in its own app context; environ carries through
                environ["x402.payment_details"] = verification.requirements
                environ["x402.verify_response"] = verification.verify_response

                response_wrapper = ResponseWrapper(start_response)

                # Buffer the handler's output until settlement decides its fate
                response_body_chunks = []
                app_iter = next_app(environ, response_wrapper)
                try:
                    for chunk in app_iter:
                        response_body_chunks.append(chunk)
                finally:
                    if hasattr(app_iter, "close"):
                        app_iter.close()

                if (
                    response_wrapper.status_code is not None
                    and 200 <= response_wrapper.status_code < 300
                ):
                    settlement = _run(server.settle_payment(verification, resource_path))
                    if settlement.challenge is not None:
                        return x402_response(settlement.challenge)

                    response_wrapper.add_header(
                        X_PAYMENT_RESPONSE_HEADER, settlement.header
                    )
                    logger.info(
                        f"Payment settled for {resource_path}: {settlement.receipt.tx_hash}"
                    )

                response_wrapper.send_response(response_body_chunks)
                return []

        return middleware
