"""Facilitator service: verifies NEAR delegate payments and relays them.

Requires RELAYER_ACCOUNT_ID and RELAYER_PRIVATE_KEY; the relayer pays gas for
every settled payment.
"""

import logging
import sys

import uvicorn
from dotenv import load_dotenv

from x402_near.config import FacilitatorSettings
from x402_near.exceptions import ConfigurationError
from x402_near.facilitator import NearFacilitator
from x402_near.facilitator_app import create_app
from x402_near.store import InMemorySettlementStore

# Load environment variables
load_dotenv()
logging.basicConfig(level=logging.INFO)


def main() -> None:
    try:
        settings = FacilitatorSettings.from_env()
        facilitator = NearFacilitator.from_config(
            settings.relayer_config(), settlement_store=InMemorySettlementStore()
        )
    except ConfigurationError as e:
        print(f"Error: {e}")
        print("Please copy .env-example to .env and fill in the values.")
        sys.exit(1)

    uvicorn.run(create_app(facilitator), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
