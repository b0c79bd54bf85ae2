"""
HTTP client integrations for x402 NEAR payment handling.

Core exports:
    - x402Client: Signs delegate-action payments for 402 challenges
    - decode_x_payment_response: Decode X-PAYMENT-RESPONSE header

requests integration:
    from x402_near.clients.requests import x402_requests, request_with_payment
"""

from x402_near.clients.base import decode_x_payment_response, x402Client

__all__ = [
    "x402Client",
    "decode_x_payment_response",
]
