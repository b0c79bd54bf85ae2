import logging
from typing import Callable, List, Optional

from x402_near.constants import DEFAULT_BLOCK_HEIGHT_TTL, SCHEME_NEAR_DELEGATE_EXACT
from x402_near.encoding import decode_payment_response_header, encode_payment_header
from x402_near.exact import prepare_payment_payload
from x402_near.exceptions import PaymentAmountExceededError, UnsupportedSchemeException
from x402_near.near.rpc import NearRpcClient
from x402_near.near.wallet import Keypair
from x402_near.types import (
    PaymentPayload,
    PaymentRequiredResponse,
    PaymentRequirements,
    SettlementReceipt,
)

logger = logging.getLogger(__name__)

# Define type for the payment requirements selector
PaymentSelectorCallable = Callable[
    [List[PaymentRequirements], Optional[str], Optional[str], Optional[int]],
    PaymentRequirements,
]


def decode_x_payment_response(header: str) -> SettlementReceipt:
    """Decode the X-PAYMENT-RESPONSE header.

    Args:
        header: The X-PAYMENT-RESPONSE header to decode

    Returns:
        The settlement receipt containing ``ok``, ``txHash`` and the ledger
        ``status``
    """
    return decode_payment_response_header(header)


class x402Client:
    """Client for paying x402 NEAR challenges with delegate actions.

    Signs payments off-chain; the relayer behind the seller's facilitator
    pays gas when the payment is settled.
    """

    def __init__(
        self,
        account_id: str,
        keypair: Keypair,
        rpc: NearRpcClient,
        max_value: Optional[int] = None,
        payment_requirements_selector: Optional[PaymentSelectorCallable] = None,
        block_height_ttl: int = DEFAULT_BLOCK_HEIGHT_TTL,
    ):
        """Initialize the x402 client.

        Args:
            account_id: NEAR account paying for requests
            keypair: Key of ``account_id`` used to sign delegate actions
            rpc: RPC client used to read the access key nonce and block height
            max_value: Optional maximum allowed payment amount in atomic units
            payment_requirements_selector: Optional custom selector for payment requirements
            block_height_ttl: Blocks past the latest final block a delegate stays valid
        """
        self.account_id = account_id
        self.keypair = keypair
        self.rpc = rpc
        self.max_value = max_value
        self.block_height_ttl = block_height_ttl
        self._payment_requirements_selector = (
            payment_requirements_selector or self.default_payment_requirements_selector
        )

    @staticmethod
    def default_payment_requirements_selector(
        accepts: List[PaymentRequirements],
        network_filter: Optional[str] = None,
        scheme_filter: Optional[str] = None,
        max_value: Optional[int] = None,
    ) -> PaymentRequirements:
        """Select payment requirements from the list of accepted requirements.

        Args:
            accepts: List of accepted payment requirements
            network_filter: Optional network to filter by
            scheme_filter: Optional scheme to filter by
            max_value: Optional maximum allowed payment amount

        Returns:
            Selected payment requirements

        Raises:
            UnsupportedSchemeException: If no supported scheme is found
            PaymentAmountExceededError: If payment amount exceeds max_value
        """
        for payment_requirements in accepts:
            scheme = payment_requirements.scheme
            network = payment_requirements.network

            if scheme_filter and scheme != scheme_filter:
                continue

            if network_filter and network != network_filter:
                continue

            if scheme == SCHEME_NEAR_DELEGATE_EXACT:
                if max_value is not None:
                    amount = int(payment_requirements.amount_exact_atomic)
                    if amount > max_value:
                        raise PaymentAmountExceededError(
                            f"Payment amount {amount} exceeds maximum allowed value {max_value}"
                        )

                return payment_requirements

        raise UnsupportedSchemeException("No supported payment scheme found")

    def select_payment_requirements(
        self,
        accepts: List[PaymentRequirements],
        network_filter: Optional[str] = None,
        scheme_filter: Optional[str] = None,
    ) -> PaymentRequirements:
        """Select payment requirements using the configured selector."""
        return self._payment_requirements_selector(
            accepts, network_filter, scheme_filter, self.max_value
        )

    def create_payment_payload(
        self,
        payment_requirements: PaymentRequirements,
        invoice_id: Optional[str] = None,
    ) -> PaymentPayload:
        """Sign a delegate action paying the given requirements.

        Args:
            payment_requirements: Selected payment requirements
            invoice_id: Invoice of the challenge being answered, echoed in
                the transfer memo

        Returns:
            Payment payload ready to be encoded as an X-PAYMENT header
        """
        payload = prepare_payment_payload(
            self.rpc,
            self.keypair,
            self.account_id,
            payment_requirements,
            invoice_id=invoice_id,
            block_height_ttl=self.block_height_ttl,
        )
        logger.info(
            f"Signed payment of {payment_requirements.amount_exact_atomic} "
            f"{payment_requirements.asset} to {payment_requirements.pay_to}"
        )
        return payload

    def create_payment_header(
        self,
        payment_requirements: PaymentRequirements,
        invoice_id: Optional[str] = None,
    ) -> str:
        """Create an X-PAYMENT header value for the given requirements."""
        return encode_payment_header(
            self.create_payment_payload(payment_requirements, invoice_id)
        )

    def pay(self, challenge: PaymentRequiredResponse) -> str:
        """Answer a 402 challenge with an X-PAYMENT header value."""
        selected = self.select_payment_requirements(challenge.accepts)
        return self.create_payment_header(selected, challenge.invoice.id)
