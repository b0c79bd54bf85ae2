import hashlib
import struct

import base58
import pytest
from borsh_construct import U8, U32, String

from x402_near.near.actions import (
    DELEGATE_ACTION_PREFIX,
    KEY_TYPE_ED25519,
    AccessKey,
    AddKeyAction,
    BorshError,
    CreateAccountAction,
    DelegateAction,
    FullAccessPermission,
    FunctionCallAction,
    FunctionCallPermission,
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

ZERO_KEY = PublicKey(KEY_TYPE_ED25519, bytes(32))
ZERO_SIGNATURE = Signature(KEY_TYPE_ED25519, bytes(64))


def test_public_key_string_form():
    key = PublicKey(KEY_TYPE_ED25519, bytes(range(32)))
    text = str(key)
    assert text.startswith("ed25519:")
    assert PublicKey.from_string(text) == key
    # Bare base58 defaults to ed25519
    assert PublicKey.from_string(text.split(":", 1)[1]) == key


def test_public_key_rejects_bad_length_and_curve():
    with pytest.raises(ValueError, match="length"):
        PublicKey.from_string("ed25519:" + base58.b58encode(b"short").decode())
    with pytest.raises(ValueError, match="Unknown key type"):
        PublicKey.from_string("rsa:abc")


def test_delegate_action_layout():
    delegate = DelegateAction(
        sender_id="a",
        receiver_id="b",
        actions=(TransferAction(deposit=1),),
        nonce=1,
        max_block_height=2,
        public_key=ZERO_KEY,
    )
    expected = (
        b"\x01\x00\x00\x00a"
        + b"\x01\x00\x00\x00b"
        + b"\x01\x00\x00\x00"
        + b"\x03"
        + (1).to_bytes(16, "little")
        + (1).to_bytes(8, "little")
        + (2).to_bytes(8, "little")
        + b"\x00"
        + bytes(32)
    )
    assert delegate.to_bytes() == expected


def test_function_call_layout():
    delegate = DelegateAction(
        "a",
        "b",
        (FunctionCallAction(method_name="m", args=b"{}", gas=7, deposit=1),),
        0,
        0,
        ZERO_KEY,
    )
    action_bytes = delegate.to_bytes()[14:-49]
    assert action_bytes == (
        b"\x02"
        + b"\x01\x00\x00\x00m"
        + b"\x02\x00\x00\x00{}"
        + (7).to_bytes(8, "little")
        + (1).to_bytes(16, "little")
    )


def test_signable_hash_uses_nep366_prefix():
    delegate = DelegateAction("a", "b", (), 1, 2, ZERO_KEY)
    assert DELEGATE_ACTION_PREFIX == 1073742190
    expected = hashlib.sha256(
        struct.pack("<I", DELEGATE_ACTION_PREFIX) + delegate.to_bytes()
    ).digest()
    assert delegate.signable_hash() == expected


def test_signed_delegate_transport_form(sign_delegate):
    signed = sign_delegate(
        actions=[
            FunctionCallAction(
                method_name="ft_transfer",
                args=b'{"receiver_id":"seller","amount":"1000"}',
                gas=30_000_000_000_000,
                deposit=1,
            ),
            AddKeyAction(
                public_key=ZERO_KEY,
                access_key=AccessKey(
                    nonce=0,
                    permission=FunctionCallPermission(
                        allowance=None, receiver_id="tok", method_names=["ft_transfer"]
                    ),
                ),
            ),
            AddKeyAction(
                public_key=ZERO_KEY,
                access_key=AccessKey(nonce=3, permission=FullAccessPermission()),
            ),
            CreateAccountAction(),
        ]
    )
    encoded = encode_signed_delegate_b64(signed)
    decoded = decode_signed_delegate_b64(encoded)

    assert decoded == signed
    assert encode_signed_delegate_b64(decoded) == encoded
    assert decoded.sender_id == "buyer.testnet"
    assert decoded.receiver_id == "tok"
    assert isinstance(decoded.delegate_action.actions[0], FunctionCallAction)
    assert decoded.delegate_action.actions[0].gas == 30_000_000_000_000


def test_decode_rejects_trailing_bytes(sign_delegate):
    data = encode_signed_delegate(sign_delegate())
    with pytest.raises(BorshError, match="trailing"):
        decode_signed_delegate(data + b"\x00")


def test_decode_rejects_truncated_data(sign_delegate):
    data = encode_signed_delegate(sign_delegate())
    with pytest.raises(BorshError):
        decode_signed_delegate(data[:-10])


def test_decode_rejects_invalid_base64():
    with pytest.raises(BorshError, match="base64"):
        decode_signed_delegate_b64("not base64!!")


def test_decode_rejects_unknown_action_tag():
    data = String.build("a") + String.build("b") + U32.build(1) + U8.build(42)
    with pytest.raises(BorshError):
        decode_signed_delegate(data)


def test_decode_rejects_unknown_key_type():
    delegate = DelegateAction("a", "b", (), 1, 2, ZERO_KEY)
    data = bytearray(encode_signed_delegate(SignedDelegateAction(delegate, ZERO_SIGNATURE)))
    # Signature curve tag sits right after the delegate action
    data[len(delegate.to_bytes())] = 7
    with pytest.raises(BorshError):
        decode_signed_delegate(bytes(data))


def test_nested_delegate_is_rejected():
    inner = SignedDelegateAction(
        DelegateAction("a", "b", (), 1, 2, ZERO_KEY), ZERO_SIGNATURE
    )
    outer = SignedDelegateAction(
        DelegateAction("a", "b", (inner,), 1, 2, ZERO_KEY), ZERO_SIGNATURE
    )
    with pytest.raises(BorshError, match="nested"):
        decode_signed_delegate(encode_signed_delegate(outer))


def test_signed_transaction_round_trip_and_hash(sign_delegate):
    signed_delegate = sign_delegate()
    transaction = Transaction(
        signer_id="relayer.testnet",
        public_key=ZERO_KEY,
        nonce=11,
        receiver_id=signed_delegate.sender_id,
        block_hash=bytes(range(32)),
        actions=(signed_delegate,),
    )
    signed = SignedTransaction(transaction, ZERO_SIGNATURE)

    raw = signed.to_bytes()
    # Action tag 8 marks the delegate inside the relayer's transaction
    assert raw[len(raw) - 65 - len(encode_signed_delegate(signed_delegate)) - 1] == 8
    assert SignedTransaction.from_bytes(raw) == signed
    assert transaction.hash() == hashlib.sha256(transaction.to_bytes()).digest()
    assert signed.hash == base58.b58encode(transaction.hash()).decode()
