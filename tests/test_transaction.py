from unittest.mock import MagicMock

import base58

from x402_near.near.actions import SignedDelegateAction
from x402_near.near.transaction import (
    NearRelayer,
    create_signed_meta_transaction,
    extract_failure,
)
from x402_near.near.wallet import generate_keypair, verify_signature
from x402_near.exact import create_transfer_action

BLOCK_HASH = bytes(range(32))


def mock_rpc(nonce=7, height=100, send_result=None):
    rpc = MagicMock()
    rpc.view_access_key.return_value = {"nonce": nonce, "permission": "FullAccess"}
    rpc.latest_block.return_value = {
        "header": {"height": height, "hash": base58.b58encode(BLOCK_HASH).decode()}
    }
    rpc.send_tx.return_value = send_result
    return rpc


def success_outcome(tx_hash="TxHash111", receipts=None):
    return {
        "status": {"SuccessValue": ""},
        "transaction": {"hash": tx_hash},
        "transaction_outcome": {"id": "OutcomeId111"},
        "receipts_outcome": receipts or [],
    }


def test_meta_transaction_uses_next_nonce_and_block_ttl():
    keypair = generate_keypair()
    rpc = mock_rpc(nonce=7, height=100)

    signed = create_signed_meta_transaction(
        rpc,
        keypair,
        sender_id="buyer.testnet",
        receiver_id="tok",
        actions=[create_transfer_action("seller", "1000")],
        block_height_ttl=600,
    )

    delegate = signed.delegate_action
    assert delegate.nonce == 8
    assert delegate.max_block_height == 700
    assert delegate.receiver_id == "tok"
    assert delegate.public_key == keypair.public_key
    assert verify_signature(
        keypair.public_key, delegate.signable_hash(), signed.signature
    )
    rpc.view_access_key.assert_called_once_with("buyer.testnet", keypair.public_key)


def test_relay_wraps_delegate_in_relayer_transaction(sign_delegate):
    relayer_keypair = generate_keypair()
    rpc = mock_rpc(nonce=10, send_result=success_outcome())
    relayer = NearRelayer("relayer.testnet", relayer_keypair, rpc)
    signed_delegate = sign_delegate()

    outcome = relayer.relay(signed_delegate)

    signed_tx = rpc.send_tx.call_args[0][0]
    transaction = signed_tx.transaction
    assert transaction.signer_id == "relayer.testnet"
    assert transaction.receiver_id == "buyer.testnet"
    assert transaction.nonce == 11
    assert transaction.block_hash == BLOCK_HASH
    assert transaction.actions == (signed_delegate,)
    assert isinstance(transaction.actions[0], SignedDelegateAction)
    assert verify_signature(
        relayer_keypair.public_key, transaction.hash(), signed_tx.signature
    )

    assert outcome.tx_hash == "TxHash111"
    assert outcome.outcome_id == "OutcomeId111"
    assert outcome.status == {"SuccessValue": ""}
    assert outcome.failure is None


def test_relay_reports_failed_receipt(sign_delegate):
    failure = {"ActionError": {"kind": {"FunctionCallError": "not enough balance"}}}
    receipts = [{"outcome": {"status": {"Failure": failure}}}]
    rpc = mock_rpc(send_result=success_outcome(receipts=receipts))
    relayer = NearRelayer("relayer.testnet", generate_keypair(), rpc)

    outcome = relayer.relay(sign_delegate())

    assert outcome.failure is not None
    assert "not enough balance" in outcome.failure


def test_relay_queries_status_when_send_returns_no_outcome(sign_delegate):
    rpc = mock_rpc(send_result={})
    rpc.tx_status.return_value = success_outcome(tx_hash="LateHash")
    relayer = NearRelayer("relayer.testnet", generate_keypair(), rpc)

    outcome = relayer.relay(sign_delegate())

    signed_tx = rpc.send_tx.call_args[0][0]
    rpc.tx_status.assert_called_once_with(signed_tx.hash, "relayer.testnet")
    assert outcome.tx_hash == "LateHash"


def test_extract_failure_on_transaction_status():
    assert extract_failure({"status": {"SuccessValue": ""}}) is None
    assert extract_failure({"status": {"Failure": {"InvalidTxError": "Expired"}}}) == (
        '{"InvalidTxError": "Expired"}'
    )
