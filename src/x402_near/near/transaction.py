"""Meta-transaction construction (client side) and relaying (facilitator side)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import base58

from x402_near.near.actions import (
    DelegateAction,
    SignedDelegateAction,
    SignedTransaction,
    Transaction,
)
from x402_near.near.rpc import NearRpcClient
from x402_near.near.wallet import Keypair

logger = logging.getLogger(__name__)


def create_signed_delegate(
    keypair: Keypair,
    sender_id: str,
    receiver_id: str,
    actions: Sequence[Any],
    nonce: int,
    max_block_height: int,
) -> SignedDelegateAction:
    """Sign a delegate action without touching the network.

    Args:
        keypair: Sender's full-access or function-call key
        sender_id: Account the actions are executed as
        receiver_id: Account (contract) the actions are addressed to
        actions: Actions to execute
        nonce: Access key nonce to consume, strictly above the current one
        max_block_height: Last block height at which the delegate is valid

    Returns:
        Signed delegate action
    """
    delegate_action = DelegateAction(
        sender_id=sender_id,
        receiver_id=receiver_id,
        actions=tuple(actions),
        nonce=nonce,
        max_block_height=max_block_height,
        public_key=keypair.public_key,
    )
    signature = keypair.sign(delegate_action.signable_hash())
    return SignedDelegateAction(delegate_action=delegate_action, signature=signature)


def create_signed_meta_transaction(
    rpc: NearRpcClient,
    keypair: Keypair,
    sender_id: str,
    receiver_id: str,
    actions: Sequence[Any],
    block_height_ttl: int,
) -> SignedDelegateAction:
    """Sign a delegate action bound to the sender's next nonce.

    The validity window is measured in blocks: the delegate expires
    ``block_height_ttl`` blocks after the latest final block.

    Raises:
        NearRpcError: If the access key is unknown to the ledger.
        TransportError: If the RPC node cannot be reached.
    """
    access_key = rpc.view_access_key(sender_id, keypair.public_key)
    block = rpc.latest_block()
    height = int(block["header"]["height"])
    return create_signed_delegate(
        keypair,
        sender_id=sender_id,
        receiver_id=receiver_id,
        actions=actions,
        nonce=int(access_key["nonce"]) + 1,
        max_block_height=height + block_height_ttl,
    )


def extract_failure(outcome: dict[str, Any]) -> Optional[str]:
    """Return a failure message from a final execution outcome, if any.

    Both the overall status and each receipt's status are checked: a relayed
    delegate can fail in an inner receipt while the outer transaction succeeds.
    """
    statuses = [outcome.get("status")]
    for receipt in outcome.get("receipts_outcome") or []:
        statuses.append((receipt.get("outcome") or {}).get("status"))

    for status in statuses:
        if isinstance(status, dict) and "Failure" in status:
            return json.dumps(status["Failure"], sort_keys=True)
    return None


@dataclass(frozen=True)
class RelayOutcome:
    tx_hash: str
    outcome_id: Optional[str]
    status: Any
    failure: Optional[str] = None


class NearRelayer:
    """Wraps client-signed delegate actions in relayer-signed transactions.

    The relayer pays for gas; the delegate's own signature authorizes the
    inner actions. The relayer identity is fixed at construction.
    """

    def __init__(self, account_id: str, keypair: Keypair, rpc: NearRpcClient):
        self.account_id = account_id
        self.keypair = keypair
        self.rpc = rpc

    def build_transaction(
        self, signed_delegate: SignedDelegateAction, nonce: int, block_hash: bytes
    ) -> SignedTransaction:
        transaction = Transaction(
            signer_id=self.account_id,
            public_key=self.keypair.public_key,
            nonce=nonce,
            receiver_id=signed_delegate.sender_id,
            block_hash=block_hash,
            actions=(signed_delegate,),
        )
        return SignedTransaction(
            transaction=transaction, signature=self.keypair.sign(transaction.hash())
        )

    def relay(self, signed_delegate: SignedDelegateAction) -> RelayOutcome:
        """Submit a signed delegate action to the ledger.

        Returns:
            RelayOutcome with the transaction hash, outcome id and status

        Raises:
            NearRpcError: If the ledger rejects the transaction
            TransportError: If the RPC node cannot be reached
        """
        access_key = self.rpc.view_access_key(self.account_id, self.keypair.public_key)
        block = self.rpc.latest_block()
        signed_tx = self.build_transaction(
            signed_delegate,
            nonce=int(access_key["nonce"]) + 1,
            block_hash=base58.b58decode(block["header"]["hash"]),
        )

        logger.info(
            f"Relaying delegate from {signed_delegate.sender_id} "
            f"to {signed_delegate.receiver_id} as {signed_tx.hash}"
        )
        result = self.rpc.send_tx(signed_tx)
        if not isinstance(result, dict) or "status" not in result:
            result = self.rpc.tx_status(signed_tx.hash, self.account_id)

        transaction = result.get("transaction") or {}
        transaction_outcome = result.get("transaction_outcome") or {}
        return RelayOutcome(
            tx_hash=transaction.get("hash") or signed_tx.hash,
            outcome_id=transaction_outcome.get("id"),
            status=result.get("status"),
            failure=extract_failure(result),
        )
