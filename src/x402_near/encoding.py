import base64
import binascii
import json
from typing import Union

from pydantic import ValidationError

from x402_near.exceptions import MalformedPaymentError
from x402_near.types import PaymentPayload, SettlementReceipt


def safe_base64_encode(data: Union[str, bytes]) -> str:
    """Safely encode string or bytes to base64 string.

    Args:
        data: String or bytes to encode

    Returns:
        Base64 encoded string
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.b64encode(data).decode("utf-8")


def safe_base64_decode(data: str) -> str:
    """Safely decode base64 string to bytes and then to utf-8 string.

    Args:
        data: Base64 encoded string

    Returns:
        Decoded utf-8 string
    """
    return base64.b64decode(data, validate=True).decode("utf-8")


def encode_payment_header(payload: PaymentPayload) -> str:
    """Encode a payment payload to an X-PAYMENT header value.

    Args:
        payload: Payment payload object

    Returns:
        Base64 encoded JSON string
    """
    return safe_base64_encode(
        json.dumps(payload.model_dump(by_alias=True, exclude_none=True))
    )


def decode_payment_header(header: str) -> PaymentPayload:
    """Decode an X-PAYMENT header value.

    Args:
        header: Base64 encoded payment header

    Returns:
        Decoded PaymentPayload object

    Raises:
        MalformedPaymentError: If the header is not base64 JSON matching the
            payload schema
    """
    try:
        payload_data = json.loads(safe_base64_decode(header))
        return PaymentPayload.model_validate(payload_data)
    except (binascii.Error, UnicodeDecodeError, ValueError, ValidationError) as e:
        raise MalformedPaymentError(f"Invalid payment header: {e}") from e


def encode_payment_response_header(receipt: SettlementReceipt) -> str:
    """Encode a settlement receipt to an X-PAYMENT-RESPONSE header value."""
    return safe_base64_encode(
        json.dumps(receipt.model_dump(by_alias=True, exclude_none=True))
    )


def decode_payment_response_header(header: str) -> SettlementReceipt:
    """Decode an X-PAYMENT-RESPONSE header value.

    Args:
        header: Base64 encoded settlement receipt

    Returns:
        Decoded SettlementReceipt object
    """
    return SettlementReceipt.model_validate_json(safe_base64_decode(header))
