"""Construction of ``near-delegate-exact`` payments."""

import json
from typing import Optional

from x402_near.constants import (
    DEFAULT_BLOCK_HEIGHT_TTL,
    FT_TRANSFER,
    FT_TRANSFER_DEPOSIT,
    FT_TRANSFER_GAS,
)
from x402_near.encoding import encode_payment_header
from x402_near.near.actions import FunctionCallAction, encode_signed_delegate_b64
from x402_near.near.rpc import NearRpcClient
from x402_near.near.transaction import create_signed_meta_transaction
from x402_near.near.wallet import Keypair
from x402_near.types import PaymentPayload, PaymentRequirements


def payment_memo(invoice_id: Optional[str]) -> str:
    return f"x402 payment {invoice_id}" if invoice_id else "x402 payment"


def create_transfer_action(
    pay_to: str, amount_exact_atomic: str, memo: Optional[str] = None
) -> FunctionCallAction:
    """NEP-141 ``ft_transfer`` of an exact amount to ``pay_to``."""
    args = {"receiver_id": pay_to, "amount": amount_exact_atomic}
    if memo is not None:
        args["memo"] = memo
    return FunctionCallAction(
        method_name=FT_TRANSFER,
        args=json.dumps(args).encode("utf-8"),
        gas=FT_TRANSFER_GAS,
        deposit=FT_TRANSFER_DEPOSIT,
    )


def prepare_payment_payload(
    rpc: NearRpcClient,
    keypair: Keypair,
    account_id: str,
    payment_requirements: PaymentRequirements,
    invoice_id: Optional[str] = None,
    block_height_ttl: int = DEFAULT_BLOCK_HEIGHT_TTL,
) -> PaymentPayload:
    """Sign a delegate action paying ``payment_requirements`` exactly.

    The delegate targets the token contract and carries a single
    ``ft_transfer``; the relayer pays gas when it is settled.

    Raises:
        NearRpcError: If the sender's access key is unknown to the ledger
        TransportError: If the RPC node cannot be reached
    """
    transfer = create_transfer_action(
        payment_requirements.pay_to,
        payment_requirements.amount_exact_atomic,
        memo=payment_memo(invoice_id),
    )
    signed_delegate = create_signed_meta_transaction(
        rpc,
        keypair,
        sender_id=account_id,
        receiver_id=payment_requirements.asset,
        actions=[transfer],
        block_height_ttl=block_height_ttl,
    )
    return PaymentPayload(
        scheme=payment_requirements.scheme,
        network=payment_requirements.network,
        asset=payment_requirements.asset,
        pay_to=payment_requirements.pay_to,
        delegate_b64=encode_signed_delegate_b64(signed_delegate),
        invoice_id=invoice_id,
        max_amount_required=payment_requirements.amount_exact_atomic,
    )


def create_payment_header(
    rpc: NearRpcClient,
    keypair: Keypair,
    account_id: str,
    payment_requirements: PaymentRequirements,
    invoice_id: Optional[str] = None,
    block_height_ttl: int = DEFAULT_BLOCK_HEIGHT_TTL,
) -> str:
    """Build and encode an X-PAYMENT header value."""
    payload = prepare_payment_payload(
        rpc,
        keypair,
        account_id,
        payment_requirements,
        invoice_id=invoice_id,
        block_height_ttl=block_height_ttl,
    )
    return encode_payment_header(payload)
