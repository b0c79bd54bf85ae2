"""Payment verification and settlement for the ``near-delegate-exact`` scheme.

``verify`` checks a client's signed delegate action against the resource
server's requirements without touching the ledger. ``settle`` relays the
delegate through a pre-configured relayer account that pays for gas.
Both return structured responses; validation and ledger errors never escape
as exceptions.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import base58

from x402_near.constants import SCHEME_NEAR_DELEGATE_EXACT, TRANSFER_METHODS
from x402_near.exceptions import (
    AmbiguousTransferError,
    AmountMismatchError,
    AssetMismatchError,
    ConfigurationError,
    InvalidSignatureError,
    MalformedAuthorizationError,
    NetworkMismatchError,
    NoMatchingTransferError,
    PaymentAlreadySettledError,
    PaymentVerificationError,
    RecipientMismatchError,
    SettlementError,
    TransportError,
    WrongTargetError,
)
from x402_near.near.actions import (
    BorshError,
    DelegateAction,
    FunctionCallAction,
    SignedDelegateAction,
    decode_signed_delegate_b64,
)
from x402_near.near.rpc import NearRpcClient, NearRpcError
from x402_near.near.transaction import NearRelayer, RelayOutcome
from x402_near.near.wallet import create_keypair_from_secret_key, verify_signature
from x402_near.networks import get_rpc_url
from x402_near.store import SettlementStore
from x402_near.types import (
    PaymentPayload,
    PaymentRequirements,
    SettlementReceipt,
    SupportedKind,
    SupportedResponse,
    VerifyResponse,
    is_atomic_amount,
)

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_TIMEOUT = 60.0


class Relayer(Protocol):
    """Submits a pre-signed delegate action to the ledger."""

    def relay(self, signed_delegate: SignedDelegateAction) -> RelayOutcome: ...


@dataclass(frozen=True)
class RelayerConfig:
    """Relayer identity and ledger endpoint injected into the facilitator."""

    account_id: str
    private_key: str
    network: str = "testnet"
    rpc_url: Optional[str] = None
    settle_timeout: float = DEFAULT_SETTLE_TIMEOUT


# ============================================================================
# Verification
# ============================================================================


def decode_authorization(delegate_b64: str) -> SignedDelegateAction:
    """Decode the transport form of a signed delegate action.

    Raises:
        MalformedAuthorizationError: If the blob is not base64 or does not
            decode to exactly one signed delegate action.
    """
    try:
        return decode_signed_delegate_b64(delegate_b64)
    except BorshError as e:
        raise MalformedAuthorizationError(f"Invalid delegate action: {e}") from e


def _parse_atomic_amount(value: object) -> int:
    if not is_atomic_amount(value):
        raise MalformedAuthorizationError(
            "Transfer amount must be a non-negative u128 integer string"
        )
    return int(value)


def find_transfer_amount(delegate_action: DelegateAction, pay_to: str) -> int:
    """Amount the delegate transfers to ``pay_to``.

    Every sub-action is scanned. More than one ``ft_transfer`` /
    ``ft_transfer_call`` is rejected as ambiguous, whoever the recipients are.

    Raises:
        AmbiguousTransferError: If more than one transfer action is present
        NoMatchingTransferError: If no transfer is addressed to ``pay_to``
        MalformedAuthorizationError: If transfer arguments cannot be parsed
    """
    transfers: list[tuple[Optional[str], object]] = []
    for action in delegate_action.actions:
        if not isinstance(action, FunctionCallAction):
            continue
        if action.method_name not in TRANSFER_METHODS:
            continue
        try:
            args = json.loads(action.args.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise MalformedAuthorizationError(
                f"Invalid {action.method_name} arguments: {e}"
            ) from e
        if not isinstance(args, dict):
            raise MalformedAuthorizationError(
                f"Invalid {action.method_name} arguments: expected an object"
            )
        recipient = args.get("receiver_id") or args.get("receiverId")
        transfers.append((recipient, args.get("amount")))

    if len(transfers) > 1:
        raise AmbiguousTransferError()

    for recipient, amount in transfers:
        if recipient == pay_to:
            return _parse_atomic_amount(amount)

    raise NoMatchingTransferError()


def verify_payment(
    payload: PaymentPayload, requirements: PaymentRequirements
) -> SignedDelegateAction:
    """Check a payment payload against requirements, failing on the first violation.

    Args:
        payload: Decoded X-PAYMENT header
        requirements: Requirements the resource server issued

    Returns:
        The decoded signed delegate action

    Raises:
        PaymentVerificationError: The first rule the payload violates
    """
    if payload.asset != requirements.asset:
        raise AssetMismatchError()
    if payload.pay_to != requirements.pay_to:
        raise RecipientMismatchError()
    if payload.network != requirements.network:
        raise NetworkMismatchError()

    signed_delegate = decode_authorization(payload.delegate_b64)
    delegate_action = signed_delegate.delegate_action

    if delegate_action.receiver_id != requirements.asset:
        raise WrongTargetError()

    if not verify_signature(
        delegate_action.public_key,
        delegate_action.signable_hash(),
        signed_delegate.signature,
    ):
        raise InvalidSignatureError()

    amount = find_transfer_amount(delegate_action, requirements.pay_to)
    if amount != int(requirements.amount_exact_atomic):
        raise AmountMismatchError()

    return signed_delegate


def authorization_key(signed_delegate: SignedDelegateAction) -> str:
    """Idempotency key of an authorization: its base58 signature."""
    return base58.b58encode(signed_delegate.signature.data).decode()


# ============================================================================
# NearFacilitator
# ============================================================================


class NearFacilitator:
    """Verifier/settler for NEAR delegate-action payments.

    Example:
        ```python
        facilitator = NearFacilitator.from_config(
            RelayerConfig(account_id="relayer.testnet", private_key="ed25519:...")
        )
        result = facilitator.verify(payload, requirements)
        if result.valid:
            receipt = facilitator.settle(payload.delegate_b64)
        ```
    """

    def __init__(
        self,
        relayer: Relayer,
        network: str = "testnet",
        settlement_store: Optional[SettlementStore] = None,
    ) -> None:
        self.relayer = relayer
        self.network = network
        self.settlement_store = settlement_store
        self.scheme = SCHEME_NEAR_DELEGATE_EXACT

    @classmethod
    def from_config(
        cls,
        config: RelayerConfig,
        settlement_store: Optional[SettlementStore] = None,
    ) -> NearFacilitator:
        """Build a facilitator relaying through the configured account.

        Raises:
            ConfigurationError: If the relayer identity is missing or invalid.
        """
        if not config.account_id or not config.private_key:
            raise ConfigurationError("RELAYER credentials not configured")
        try:
            keypair = create_keypair_from_secret_key(config.private_key)
            rpc_url = get_rpc_url(config.network, config.rpc_url)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        rpc = NearRpcClient(rpc_url, timeout=config.settle_timeout)
        relayer = NearRelayer(config.account_id, keypair, rpc)
        logger.info(f"Facilitator relaying as {config.account_id} via {rpc_url}")
        return cls(relayer, network=config.network, settlement_store=settlement_store)

    def supported(self) -> SupportedResponse:
        return SupportedResponse(
            kinds=[SupportedKind(scheme=self.scheme, network=self.network)]
        )

    def verify(
        self, payload: PaymentPayload, requirements: PaymentRequirements
    ) -> VerifyResponse:
        """Verify a payment payload. Never touches the ledger.

        Returns:
            VerifyResponse with the delegate's sender on success, or the
            first violated rule on failure.
        """
        try:
            signed_delegate = verify_payment(payload, requirements)
        except PaymentVerificationError as e:
            logger.warning(f"Payment verification failed ({e.code}): {e}")
            return VerifyResponse(valid=False, error=e.message, error_code=e.code)

        logger.info(
            f"Payment verified for {signed_delegate.sender_id} -> {requirements.pay_to}"
        )
        return VerifyResponse(valid=True, sender=signed_delegate.sender_id)

    def settle(
        self,
        authorization_blob: str,
        payload: Optional[PaymentPayload] = None,
        requirements: Optional[PaymentRequirements] = None,
    ) -> SettlementReceipt:
        """Relay a signed delegate action to the ledger.

        Args:
            authorization_blob: Base64 borsh-encoded signed delegate action
            payload: Optional payment payload to re-verify before relaying
            requirements: Requirements the payload must satisfy

        Returns:
            SettlementReceipt with ``ok=True`` and the transaction hash, or
            ``ok=False`` with the reason.
        """
        try:
            signed_delegate = decode_authorization(authorization_blob)
            if payload is not None and requirements is not None:
                if payload.delegate_b64 != authorization_blob:
                    raise MalformedAuthorizationError(
                        "Authorization does not match payment payload"
                    )
                verify_payment(payload, requirements)
        except PaymentVerificationError as e:
            logger.warning(f"Refusing to settle ({e.code}): {e}")
            return SettlementReceipt(ok=False, error=e.message, error_code=e.code)

        try:
            return self._settle(signed_delegate)
        except (SettlementError, TransportError) as e:
            logger.error(f"Settlement failed ({e.code}): {e}")
            return SettlementReceipt(ok=False, error=e.message, error_code=e.code)

    def _settle(self, signed_delegate: SignedDelegateAction) -> SettlementReceipt:
        key = authorization_key(signed_delegate)
        store = self.settlement_store
        if store is not None and not store.claim(key):
            raise PaymentAlreadySettledError()

        try:
            outcome = self.relayer.relay(signed_delegate)
            if outcome.failure is not None:
                raise SettlementError(
                    f"Transaction {outcome.tx_hash} failed: {outcome.failure}"
                )
        except NearRpcError as e:
            if store is not None:
                store.release(key)
            raise SettlementError(str(e)) from e
        except Exception:
            if store is not None:
                store.release(key)
            raise

        receipt = SettlementReceipt(
            ok=True,
            tx_hash=outcome.tx_hash,
            block_hash=outcome.outcome_id,
            status=outcome.status,
        )
        if store is not None:
            store.confirm(key, receipt)

        logger.info(
            f"Settled payment from {signed_delegate.sender_id}: {outcome.tx_hash}"
        )
        return receipt
