import pytest

from x402_near.exact import create_transfer_action
from x402_near.near.actions import encode_signed_delegate_b64
from x402_near.near.transaction import RelayOutcome, create_signed_delegate
from x402_near.near.wallet import generate_keypair
from x402_near.types import PaymentPayload, PaymentRequirements

TOKEN = "tok"
SELLER = "seller"
BUYER = "buyer.testnet"
PRICE = "1000"


class FakeRelayer:
    """Records relayed delegates; returns a canned outcome or raises."""

    def __init__(self, outcome=None, error=None):
        self.outcome = outcome or RelayOutcome(
            tx_hash="9xQnT4r1uGvSx1y4NEAR",
            outcome_id="4dRtpMvR6kQ",
            status={"SuccessValue": ""},
        )
        self.error = error
        self.calls = []

    def relay(self, signed_delegate):
        self.calls.append(signed_delegate)
        if self.error is not None:
            raise self.error
        return self.outcome


@pytest.fixture
def buyer_keypair():
    return generate_keypair()


@pytest.fixture
def requirements():
    return PaymentRequirements(
        network="testnet",
        asset=TOKEN,
        pay_to=SELLER,
        amount_exact_atomic=PRICE,
    )


@pytest.fixture
def sign_delegate(buyer_keypair):
    def _sign(actions=None, receiver_id=TOKEN, sender_id=BUYER, keypair=None):
        if actions is None:
            actions = [create_transfer_action(SELLER, PRICE)]
        return create_signed_delegate(
            keypair or buyer_keypair,
            sender_id=sender_id,
            receiver_id=receiver_id,
            actions=actions,
            nonce=5,
            max_block_height=1_000,
        )

    return _sign


@pytest.fixture
def make_payload(sign_delegate):
    def _make(signed_delegate=None, **overrides):
        fields = {
            "scheme": "near-delegate-exact",
            "network": "testnet",
            "asset": TOKEN,
            "pay_to": SELLER,
            "delegate_b64": encode_signed_delegate_b64(
                signed_delegate or sign_delegate()
            ),
        }
        fields.update(overrides)
        return PaymentPayload(**fields)

    return _make


@pytest.fixture
def relayer():
    return FakeRelayer()


@pytest.fixture
def make_relayer():
    return FakeRelayer
