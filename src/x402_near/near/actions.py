"""NEAR transaction, action and delegate-action structures.

Only the layouts needed to build, inspect and relay NEP-366 meta-transactions
are modelled. Wire layouts are declared with ``borsh_construct``; the
structures a caller touches are frozen dataclasses mapped onto them, while
individual actions are variants of the borsh ``Action`` enum.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import io
from dataclasses import dataclass, field, fields
from typing import Any

import base58
from borsh_construct import U8, U32, U64, U128, CStruct, Enum, Option, String, Vec
from borsh_construct import Bytes as ByteVec
from construct import Adapter, Construct, ConstructError, Error, LazyBound, Switch, this
from construct import Bytes as FixedBytes

# NEP-461 prefix for delegate action signatures: 2**30 + NEP number 366
DELEGATE_ACTION_PREFIX = (1 << 30) + 366

KEY_TYPE_ED25519 = 0
KEY_TYPE_SECP256K1 = 1

_KEY_TYPE_NAMES = {KEY_TYPE_ED25519: "ed25519", KEY_TYPE_SECP256K1: "secp256k1"}
_PUBLIC_KEY_SIZES = {KEY_TYPE_ED25519: 32, KEY_TYPE_SECP256K1: 64}
_SIGNATURE_SIZES = {KEY_TYPE_ED25519: 64, KEY_TYPE_SECP256K1: 65}


class BorshError(ValueError):
    """Bytes that do not decode to the expected structure."""


def _key_type_from_name(name: str) -> int:
    for key_type, key_name in _KEY_TYPE_NAMES.items():
        if key_name == name:
            return key_type
    raise ValueError(f"Unknown key type: {name}")


@dataclass(frozen=True)
class PublicKey:
    key_type: int
    data: bytes

    @classmethod
    def from_string(cls, value: str) -> PublicKey:
        """Parse a ``<curve>:<base58>`` public key, e.g. ``ed25519:8fWH...``."""
        name, _, encoded = value.partition(":")
        if not encoded:
            name, encoded = "ed25519", value
        key_type = _key_type_from_name(name)
        data = base58.b58decode(encoded)
        if len(data) != _PUBLIC_KEY_SIZES[key_type]:
            raise ValueError(f"Invalid {name} public key length: {len(data)}")
        return cls(key_type, data)

    def __str__(self) -> str:
        return f"{_KEY_TYPE_NAMES[self.key_type]}:{base58.b58encode(self.data).decode()}"


@dataclass(frozen=True)
class Signature:
    key_type: int
    data: bytes

    def __str__(self) -> str:
        return f"{_KEY_TYPE_NAMES[self.key_type]}:{base58.b58encode(self.data).decode()}"


@dataclass(frozen=True)
class AccessKey:
    nonce: int
    # FunctionCallPermission or FullAccessPermission
    permission: Any


@dataclass(frozen=True)
class DelegateAction:
    sender_id: str
    receiver_id: str
    actions: tuple[Any, ...]
    nonce: int
    max_block_height: int
    public_key: PublicKey

    def to_bytes(self) -> bytes:
        return _DELEGATE_ACTION.build(self)

    def signable_hash(self) -> bytes:
        """Hash the delegate signer signs: sha256 of the prefixed borsh encoding."""
        return hashlib.sha256(U32.build(DELEGATE_ACTION_PREFIX) + self.to_bytes()).digest()


@dataclass(frozen=True)
class SignedDelegateAction:
    delegate_action: DelegateAction
    signature: Signature

    @property
    def sender_id(self) -> str:
        return self.delegate_action.sender_id

    @property
    def receiver_id(self) -> str:
        return self.delegate_action.receiver_id


@dataclass(frozen=True)
class Transaction:
    signer_id: str
    public_key: PublicKey
    nonce: int
    receiver_id: str
    block_hash: bytes
    actions: tuple[Any, ...] = field(default_factory=tuple)

    def to_bytes(self) -> bytes:
        return _TRANSACTION.build(self)

    def hash(self) -> bytes:
        return hashlib.sha256(self.to_bytes()).digest()


@dataclass(frozen=True)
class SignedTransaction:
    transaction: Transaction
    signature: Signature

    def to_bytes(self) -> bytes:
        return _SIGNED_TRANSACTION.build(self)

    @classmethod
    def from_bytes(cls, data: bytes) -> SignedTransaction:
        return _parse_exact(_SIGNED_TRANSACTION, data, "signed transaction")

    @property
    def hash(self) -> str:
        """Base58 transaction hash, as reported by the ledger."""
        return base58.b58encode(self.transaction.hash()).decode()

    def to_base64(self) -> str:
        return base64.b64encode(self.to_bytes()).decode("utf-8")


# ============================================================================
# Borsh layouts
# ============================================================================


class _Record(Adapter):
    """Maps a borsh struct onto a dataclass with the same field names."""

    def __init__(self, record_type: type, subcon: Construct):
        super().__init__(subcon)
        self.record_type = record_type

    def _decode(self, obj, context, path):
        values = {}
        for f in fields(self.record_type):
            value = obj[f.name]
            values[f.name] = tuple(value) if isinstance(value, list) else value
        return self.record_type(**values)

    def _encode(self, obj, context, path):
        return {f.name: getattr(obj, f.name) for f in fields(self.record_type)}


def _key_layout(record_type: type, sizes: dict[int, int]) -> _Record:
    cases = {key_type: FixedBytes(size) for key_type, size in sizes.items()}
    return _Record(
        record_type,
        CStruct("key_type" / U8, "data" / Switch(this.key_type, cases, default=Error)),
    )


_PUBLIC_KEY = _key_layout(PublicKey, _PUBLIC_KEY_SIZES)
_SIGNATURE = _key_layout(Signature, _SIGNATURE_SIZES)

_ACCESS_KEY_PERMISSION = Enum(
    "FunctionCall"
    / CStruct(
        "allowance" / Option(U128),
        "receiver_id" / String,
        "method_names" / Vec(String),
    ),
    "FullAccess",
    enum_name="AccessKeyPermission",
)
_ACCESS_KEY = _Record(
    AccessKey, CStruct("nonce" / U64, "permission" / _ACCESS_KEY_PERMISSION)
)

_ACTION_ENUM = Enum(
    "CreateAccount",
    "DeployContract" / CStruct("code" / ByteVec),
    "FunctionCall"
    / CStruct(
        "method_name" / String,
        "args" / ByteVec,
        "gas" / U64,
        "deposit" / U128,
    ),
    "Transfer" / CStruct("deposit" / U128),
    "Stake" / CStruct("stake" / U128, "public_key" / _PUBLIC_KEY),
    "AddKey" / CStruct("public_key" / _PUBLIC_KEY, "access_key" / _ACCESS_KEY),
    "DeleteKey" / CStruct("public_key" / _PUBLIC_KEY),
    "DeleteAccount" / CStruct("beneficiary_id" / String),
    "Delegate"
    / CStruct(
        "delegate_action" / LazyBound(lambda: _DELEGATE_ACTION),
        "signature" / _SIGNATURE,
    ),
    enum_name="Action",
)


class _ActionAdapter(Adapter):
    """Surfaces the ``Delegate`` variant as a SignedDelegateAction."""

    def _decode(self, obj, context, path):
        if isinstance(obj, _ACTION_ENUM.enum.Delegate):
            return SignedDelegateAction(
                delegate_action=obj.delegate_action, signature=obj.signature
            )
        return obj

    def _encode(self, obj, context, path):
        if isinstance(obj, SignedDelegateAction):
            return _ACTION_ENUM.enum.Delegate(
                delegate_action=obj.delegate_action, signature=obj.signature
            )
        return obj


_ACTION = _ActionAdapter(_ACTION_ENUM)

_DELEGATE_ACTION = _Record(
    DelegateAction,
    CStruct(
        "sender_id" / String,
        "receiver_id" / String,
        "actions" / Vec(_ACTION),
        "nonce" / U64,
        "max_block_height" / U64,
        "public_key" / _PUBLIC_KEY,
    ),
)
_SIGNED_DELEGATE_ACTION = _Record(
    SignedDelegateAction,
    CStruct("delegate_action" / _DELEGATE_ACTION, "signature" / _SIGNATURE),
)
_TRANSACTION = _Record(
    Transaction,
    CStruct(
        "signer_id" / String,
        "public_key" / _PUBLIC_KEY,
        "nonce" / U64,
        "receiver_id" / String,
        "block_hash" / FixedBytes(32),
        "actions" / Vec(_ACTION),
    ),
)
_SIGNED_TRANSACTION = _Record(
    SignedTransaction,
    CStruct("transaction" / _TRANSACTION, "signature" / _SIGNATURE),
)

CreateAccountAction = _ACTION_ENUM.enum.CreateAccount
DeployContractAction = _ACTION_ENUM.enum.DeployContract
FunctionCallAction = _ACTION_ENUM.enum.FunctionCall
TransferAction = _ACTION_ENUM.enum.Transfer
StakeAction = _ACTION_ENUM.enum.Stake
AddKeyAction = _ACTION_ENUM.enum.AddKey
DeleteKeyAction = _ACTION_ENUM.enum.DeleteKey
DeleteAccountAction = _ACTION_ENUM.enum.DeleteAccount

FunctionCallPermission = _ACCESS_KEY_PERMISSION.enum.FunctionCall
FullAccessPermission = _ACCESS_KEY_PERMISSION.enum.FullAccess


def _parse_exact(layout: Construct, data: bytes, what: str) -> Any:
    stream = io.BytesIO(data)
    try:
        value = layout.parse_stream(stream)
    except (ConstructError, KeyError, IndexError, ValueError) as e:
        raise BorshError(f"Invalid {what}: {e}") from e
    if stream.tell() != len(data):
        raise BorshError(f"Unexpected trailing bytes after {what}")
    return value


# ============================================================================
# Transport encoding
# ============================================================================


def encode_signed_delegate(signed_delegate: SignedDelegateAction) -> bytes:
    """Borsh-encode a signed delegate action."""
    return _SIGNED_DELEGATE_ACTION.build(signed_delegate)


def decode_signed_delegate(data: bytes) -> SignedDelegateAction:
    """Decode a borsh-encoded signed delegate action.

    Raises:
        BorshError: If the bytes are not exactly one signed delegate action,
            or the delegate wraps another delegate.
    """
    signed_delegate = _parse_exact(_SIGNED_DELEGATE_ACTION, data, "signed delegate action")
    for action in signed_delegate.delegate_action.actions:
        if isinstance(action, SignedDelegateAction):
            raise BorshError("Delegate actions cannot be nested")
    return signed_delegate


def encode_signed_delegate_b64(signed_delegate: SignedDelegateAction) -> str:
    return base64.b64encode(encode_signed_delegate(signed_delegate)).decode("utf-8")


def decode_signed_delegate_b64(encoded: str) -> SignedDelegateAction:
    """Decode the base64 transport form of a signed delegate action.

    Raises:
        BorshError: If the text is not valid base64 or the bytes do not decode.
    """
    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise BorshError(f"Invalid base64: {e}") from e
    return decode_signed_delegate(raw)
