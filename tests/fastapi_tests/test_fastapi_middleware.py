from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI, HTTPException, Request
from fastapi.testclient import TestClient

from x402_near.encoding import decode_payment_response_header, encode_payment_header
from x402_near.fastapi.middleware import require_payment
from x402_near.types import SettlementReceipt, VerifyResponse

SECRET = {"forecast": "sunny", "secret": "paid content"}


@pytest.fixture
def facilitator():
    with patch("x402_near.fastapi.middleware.FacilitatorClient") as MockFacilitator:
        instance = MockFacilitator.return_value
        instance.verify = AsyncMock(
            return_value=VerifyResponse(valid=True, sender="buyer.testnet")
        )
        instance.settle = AsyncMock(
            return_value=SettlementReceipt(
                ok=True, tx_hash="Tx1", block_hash="Out1", status={"SuccessValue": ""}
            )
        )
        yield instance


@pytest.fixture
def client(facilitator):
    app = FastAPI()

    @app.get("/weather")
    async def weather(request: Request):
        return {**SECRET, "payer": request.state.verify_response.sender}

    @app.get("/weather/missing")
    async def missing():
        raise HTTPException(status_code=404, detail="no such city")

    @app.get("/free")
    async def free():
        return {"free": True}

    app.middleware("http")(
        require_payment(
            amount_exact_atomic="1000",
            asset="tok",
            pay_to="seller",
            path=["/weather", "/weather/*"],
            description="Weather report",
        )
    )
    return TestClient(app)


def test_unprotected_route(client, facilitator):
    response = client.get("/free")
    assert response.status_code == 200
    assert response.json() == {"free": True}
    facilitator.verify.assert_not_called()


def test_missing_payment_is_challenged(client):
    response = client.get("/weather")

    assert response.status_code == 402
    body = response.json()
    assert body["message"] == "Payment Required"
    assert body["invoice"]["id"]
    assert body["accepts"] == [
        {
            "scheme": "near-delegate-exact",
            "network": "testnet",
            "asset": "tok",
            "payTo": "seller",
            "amountExactAtomic": "1000",
            "maxTimeoutSeconds": 60,
            "mimeType": "application/json",
            "resource": "/weather",
            "description": "Weather report",
        }
    ]
    assert "error" not in body


def test_each_challenge_has_a_fresh_invoice(client):
    first = client.get("/weather").json()
    second = client.get("/weather").json()
    assert first["accepts"] == second["accepts"]
    assert first["invoice"]["id"] != second["invoice"]["id"]


def test_malformed_payment_header(client, facilitator):
    response = client.get("/weather", headers={"X-PAYMENT": "not base64!!"})

    assert response.status_code == 402
    assert response.json()["error"] == "PAYMENT_MALFORMED"
    facilitator.verify.assert_not_called()


def test_invalid_payment(client, facilitator, make_payload):
    facilitator.verify.return_value = VerifyResponse(
        valid=False, error="Amount mismatch", error_code="amount_mismatch"
    )
    response = client.get(
        "/weather", headers={"X-PAYMENT": encode_payment_header(make_payload())}
    )

    assert response.status_code == 402
    assert response.json()["error"] == "PAYMENT_INVALID"
    assert response.json()["details"] == "Amount mismatch"
    facilitator.settle.assert_not_called()


def test_paid_request_returns_resource_and_receipt(client, facilitator, make_payload):
    payload = make_payload()
    response = client.get(
        "/weather", headers={"X-PAYMENT": encode_payment_header(payload)}
    )

    assert response.status_code == 200
    assert response.json() == {**SECRET, "payer": "buyer.testnet"}
    receipt = decode_payment_response_header(response.headers["X-PAYMENT-RESPONSE"])
    assert receipt.ok is True
    assert receipt.tx_hash == "Tx1"
    facilitator.settle.assert_awaited_once()
    assert facilitator.settle.call_args[0][0] == payload


def test_settlement_failure_does_not_leak_content(client, facilitator, make_payload):
    facilitator.settle.return_value = SettlementReceipt(
        ok=False, error="INVALID_NONCE: nonce too low", error_code="settlement_failed"
    )
    response = client.get(
        "/weather", headers={"X-PAYMENT": encode_payment_header(make_payload())}
    )

    assert response.status_code == 402
    assert "paid content" not in response.text
    assert response.json()["error"] == "PAYMENT_NOT_SETTLED"
    assert response.json()["details"] == "INVALID_NONCE: nonce too low"
    assert "X-PAYMENT-RESPONSE" not in response.headers


def test_unreachable_facilitator_is_a_402(client, facilitator, make_payload):
    facilitator.verify.return_value = VerifyResponse(
        valid=False,
        error="Facilitator unreachable: connection refused",
        error_code="transport_error",
    )
    response = client.get(
        "/weather", headers={"X-PAYMENT": encode_payment_header(make_payload())}
    )
    assert response.status_code == 402
    assert response.json()["error"] == "PAYMENT_INVALID"


def test_failed_handler_is_not_settled(client, facilitator, make_payload):
    response = client.get(
        "/weather/missing",
        headers={"X-PAYMENT": encode_payment_header(make_payload())},
    )

    assert response.status_code == 404
    facilitator.verify.assert_awaited_once()
    facilitator.settle.assert_not_called()


def test_rejects_unsupported_network():
    with pytest.raises(ValueError, match="Unsupported network"):
        require_payment(
            amount_exact_atomic="1000", asset="tok", pay_to="seller", network="betanet"
        )
