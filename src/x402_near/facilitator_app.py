"""FastAPI service exposing a NearFacilitator over HTTP.

Routes:
    GET  /           health
    GET  /supported  payment kinds this facilitator settles
    POST /verify     200 {valid: true, sender} or 400 {valid: false, error}
    POST /settle     200 receipt or 400 {ok: false, error}

Handlers are plain functions, so FastAPI runs them in its threadpool and a
blocking settlement never stalls the event loop.
"""

import logging
from typing import Any

import uvicorn
from dotenv import load_dotenv
from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from x402_near.config import FacilitatorSettings
from x402_near.facilitator import NearFacilitator
from x402_near.store import InMemorySettlementStore
from x402_near.types import SettleRequest, VerifyRequest

logger = logging.getLogger(__name__)

INVALID_REQUEST = "invalid_request"


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    if location:
        return f"Invalid request: {location}: {first.get('msg')}"
    return f"Invalid request: {first.get('msg')}"


def create_app(facilitator: NearFacilitator) -> FastAPI:
    """Build the facilitator HTTP app around an injected facilitator."""
    app = FastAPI(
        title="x402 NEAR Facilitator",
        description="Verifies and settles NEAR delegate-action payments",
        version="0.1.0",
    )
    app.state.facilitator = facilitator

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        return JSONResponse(
            {"error": "Invalid request body", "errorCode": INVALID_REQUEST},
            status_code=400,
        )

    @app.get("/")
    def health():
        return {
            "status": "ok",
            "service": "x402-near-facilitator",
            "network": facilitator.network,
        }

    @app.get("/supported")
    def supported():
        return facilitator.supported().model_dump(by_alias=True)

    @app.post("/verify")
    def verify(body: dict[str, Any] = Body(...)):
        try:
            request = VerifyRequest.model_validate(body)
        except ValidationError as e:
            logger.warning(f"Rejected verify request: {e.error_count()} error(s)")
            return JSONResponse(
                {"valid": False, "error": _describe(e), "errorCode": INVALID_REQUEST},
                status_code=400,
            )

        try:
            result = facilitator.verify(request.payment_payload, request.payment_details)
        except Exception:
            logger.exception("Unexpected error during verification")
            return JSONResponse(
                {"valid": False, "error": "Internal verification error"},
                status_code=400,
            )

        return JSONResponse(
            result.model_dump(by_alias=True, exclude_none=True),
            status_code=200 if result.valid else 400,
        )

    @app.post("/settle")
    def settle(body: dict[str, Any] = Body(...)):
        try:
            request = SettleRequest.model_validate(body)
        except ValidationError as e:
            logger.warning(f"Rejected settle request: {e.error_count()} error(s)")
            return JSONResponse(
                {"ok": False, "error": _describe(e), "errorCode": INVALID_REQUEST},
                status_code=400,
            )

        try:
            receipt = facilitator.settle(
                request.authorization_blob,
                payload=request.payment_payload,
                requirements=request.payment_details,
            )
        except Exception:
            logger.exception("Unexpected error during settlement")
            return JSONResponse(
                {"ok": False, "error": "Internal settlement error"},
                status_code=400,
            )

        return JSONResponse(
            receipt.model_dump(by_alias=True, exclude_none=True),
            status_code=200 if receipt.ok else 400,
        )

    return app


def main() -> None:
    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    settings = FacilitatorSettings.from_env()
    facilitator = NearFacilitator.from_config(
        settings.relayer_config(), settlement_store=InMemorySettlementStore()
    )
    app = create_app(facilitator)

    logger.info(f"Facilitator listening on http://0.0.0.0:{settings.port}")
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
