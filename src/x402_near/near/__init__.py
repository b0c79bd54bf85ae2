"""NEAR ledger support: borsh structures, keys, RPC and meta-transactions."""

from x402_near.near.actions import (
    BorshError,
    DelegateAction,
    FunctionCallAction,
    PublicKey,
    Signature,
    SignedDelegateAction,
    SignedTransaction,
    Transaction,
    TransferAction,
    decode_signed_delegate,
    decode_signed_delegate_b64,
    encode_signed_delegate,
    encode_signed_delegate_b64,
)
from x402_near.near.rpc import NearRpcClient, NearRpcError
from x402_near.near.transaction import (
    NearRelayer,
    RelayOutcome,
    create_signed_delegate,
    create_signed_meta_transaction,
)
from x402_near.near.wallet import (
    Keypair,
    create_keypair_from_secret_key,
    generate_keypair,
    verify_signature,
)

__all__ = [
    "BorshError",
    "DelegateAction",
    "FunctionCallAction",
    "Keypair",
    "NearRelayer",
    "NearRpcClient",
    "NearRpcError",
    "PublicKey",
    "RelayOutcome",
    "Signature",
    "SignedDelegateAction",
    "SignedTransaction",
    "Transaction",
    "TransferAction",
    "create_keypair_from_secret_key",
    "create_signed_delegate",
    "create_signed_meta_transaction",
    "decode_signed_delegate",
    "decode_signed_delegate_b64",
    "encode_signed_delegate",
    "encode_signed_delegate_b64",
    "generate_keypair",
    "verify_signature",
]
