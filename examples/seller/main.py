import logging
import sys
from typing import Any, Dict

from dotenv import load_dotenv
from fastapi import FastAPI, Request

from x402_near.config import SellerSettings
from x402_near.exceptions import ConfigurationError
from x402_near.facilitator_client import FacilitatorConfig
from x402_near.fastapi.middleware import require_payment

# Load environment variables
load_dotenv()
logging.basicConfig(level=logging.INFO)

try:
    settings = SellerSettings.from_env()
except ConfigurationError as e:
    print(f"Error: {e}")
    sys.exit(1)

app = FastAPI()

app.middleware("http")(
    require_payment(
        path="/weather",
        amount_exact_atomic=settings.price_atomic,
        asset=settings.token_account_id,
        pay_to=settings.seller_account_id,
        network=settings.network,
        description="Weather report",
        facilitator_config=FacilitatorConfig(url=settings.facilitator_url),
    )
)


@app.get("/weather")
async def get_weather(request: Request, city: str = "San Jose") -> Dict[str, Any]:
    requirements = request.state.payment_details
    return {
        "report": {"city": city, "weather": "sunny", "temperatureF": 70},
        "paid": {
            "asset": requirements.asset,
            "amount": requirements.amount_exact_atomic,
            "payer": request.state.verify_response.sender,
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
