"""Buyer walkthrough: pay for the seller's weather report with a NEAR delegate action."""

import sys
import time

import requests
from dotenv import load_dotenv

from x402_near.clients.base import decode_x_payment_response, x402Client
from x402_near.clients.requests import parse_payment_required
from x402_near.config import BuyerSettings
from x402_near.constants import X_PAYMENT_HEADER, X_PAYMENT_RESPONSE_HEADER
from x402_near.exceptions import ConfigurationError, PaymentError
from x402_near.near.rpc import NearRpcClient
from x402_near.near.wallet import create_keypair_from_secret_key
from x402_near.networks import get_explorer_tx_url

# Load environment variables
load_dotenv()


def main() -> None:
    try:
        settings = BuyerSettings.from_env()
    except ConfigurationError as e:
        print(f"Error: {e}")
        print("Please copy .env-example to .env and fill in the values.")
        sys.exit(1)

    rpc = NearRpcClient(settings.rpc_url)
    keypair = create_keypair_from_secret_key(settings.buyer_private_key.get_secret_value())
    client = x402Client(settings.buyer_account_id, keypair, rpc)

    print("\nx402 Payment Demo - NEAR Meta-Transactions\n")

    # First call: expect 402 with payment requirements
    print("Requesting protected resource...")
    response = requests.get(settings.resource_url)
    if response.status_code != 402:
        print(f"Expected 402, got: {response.status_code} {response.text}")
        sys.exit(1)

    challenge = parse_payment_required(response.content)
    try:
        selected = client.select_payment_requirements(challenge.accepts)
    except PaymentError as e:
        print(f"Cannot pay: {e}")
        sys.exit(1)

    initial_balance = rpc.ft_balance_of(selected.asset, settings.buyer_account_id)
    print(f"  Your balance: {initial_balance} {selected.asset}")
    print(f"  Payment required: {selected.amount_exact_atomic} {selected.asset}")
    print(f"  Paying to: {selected.pay_to}\n")

    print("Signing meta-transaction (gasless)...")
    payment_header = client.create_payment_header(selected, challenge.invoice.id)

    print("Submitting payment to facilitator...\n")
    start = time.monotonic()
    response = requests.get(
        settings.resource_url, headers={X_PAYMENT_HEADER: payment_header}
    )
    duration = time.monotonic() - start

    if response.status_code != 200:
        print(f"Payment failed: {response.status_code}")
        print(response.text)
        sys.exit(1)

    print(f"Payment confirmed in {duration:.2f}s")
    receipt_header = response.headers.get(X_PAYMENT_RESPONSE_HEADER)
    if receipt_header:
        receipt = decode_x_payment_response(receipt_header)
        if receipt.tx_hash:
            print(f"  Transaction: {get_explorer_tx_url(selected.network, receipt.tx_hash)}\n")

    print("Resource unlocked:")
    print(f"  {response.json().get('report')}\n")

    final_balance = rpc.ft_balance_of(selected.asset, settings.buyer_account_id)
    print("Updated balance:")
    print(f"  Your balance: {final_balance} {selected.asset}")
    print(f"  Amount paid: {initial_balance - final_balance} {selected.asset}")


if __name__ == "__main__":
    main()
