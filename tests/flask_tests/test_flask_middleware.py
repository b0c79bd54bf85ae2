from unittest.mock import AsyncMock, patch

import pytest
from flask import Flask, abort, request

from x402_near.encoding import decode_payment_response_header, encode_payment_header
from x402_near.flask.middleware import PaymentMiddleware
from x402_near.types import SettlementReceipt, VerifyResponse


@pytest.fixture
def facilitator():
    with patch("x402_near.flask.middleware.FacilitatorClient") as MockFacilitator:
        instance = MockFacilitator.return_value
        instance.verify = AsyncMock(
            return_value=VerifyResponse(valid=True, sender="buyer.testnet")
        )
        instance.settle = AsyncMock(
            return_value=SettlementReceipt(ok=True, tx_hash="Tx1", block_hash="Out1")
        )
        yield instance


def create_app_with_middleware(configs):
    app = Flask(__name__)

    @app.route("/weather")
    def weather():
        verify_response = request.environ.get("x402.verify_response")
        payer = verify_response.sender if verify_response else None
        return {"forecast": "sunny", "secret": "paid content", "payer": payer}

    @app.route("/premium/missing")
    def missing():
        abort(404)

    @app.route("/free")
    def free():
        return {"free": True}

    middleware = PaymentMiddleware(app)
    for cfg in configs:
        middleware.add(**cfg)
    return app


@pytest.fixture
def app(facilitator):
    return create_app_with_middleware(
        [
            {
                "amount_exact_atomic": "1000",
                "asset": "tok",
                "pay_to": "seller",
                "path": "/weather",
            },
            {
                "amount_exact_atomic": "50000",
                "asset": "tok",
                "pay_to": "seller",
                "path": "/premium/*",
            },
        ]
    )


def test_unprotected_route(app, facilitator):
    with app.test_client() as client:
        resp = client.get("/free")
        assert resp.status_code == 200
        assert resp.json == {"free": True}
    facilitator.verify.assert_not_called()


def test_payment_required_for_protected_route(app):
    with app.test_client() as client:
        resp = client.get("/weather")
        assert resp.status_code == 402
        assert resp.json["accepts"][0]["amountExactAtomic"] == "1000"
        assert resp.json["accepts"][0]["payTo"] == "seller"
        assert resp.json["invoice"]["id"]


def test_each_registration_has_its_own_price(app):
    with app.test_client() as client:
        resp = client.get("/premium/report")
        assert resp.status_code == 402
        assert resp.json["accepts"][0]["amountExactAtomic"] == "50000"


def test_invalid_payment_header(app):
    with app.test_client() as client:
        resp = client.get("/weather", headers={"X-PAYMENT": "not_base64"})
        assert resp.status_code == 402
        assert resp.json["error"] == "PAYMENT_MALFORMED"


def test_paid_request(app, facilitator, make_payload):
    with app.test_client() as client:
        resp = client.get(
            "/weather", headers={"X-PAYMENT": encode_payment_header(make_payload())}
        )
        assert resp.status_code == 200
        assert resp.json["forecast"] == "sunny"
        assert resp.json["payer"] == "buyer.testnet"
        receipt = decode_payment_response_header(resp.headers["X-PAYMENT-RESPONSE"])
        assert receipt.tx_hash == "Tx1"
    facilitator.settle.assert_awaited_once()


def test_invalid_payment(app, facilitator, make_payload):
    facilitator.verify.return_value = VerifyResponse(
        valid=False, error="Recipient mismatch", error_code="recipient_mismatch"
    )
    with app.test_client() as client:
        resp = client.get(
            "/weather", headers={"X-PAYMENT": encode_payment_header(make_payload())}
        )
        assert resp.status_code == 402
        assert resp.json["error"] == "PAYMENT_INVALID"
        assert resp.json["details"] == "Recipient mismatch"
    facilitator.settle.assert_not_called()


def test_settlement_failure_discards_response(app, facilitator, make_payload):
    facilitator.settle.return_value = SettlementReceipt(
        ok=False, error="Transaction failed", error_code="settlement_failed"
    )
    with app.test_client() as client:
        resp = client.get(
            "/weather", headers={"X-PAYMENT": encode_payment_header(make_payload())}
        )
        assert resp.status_code == 402
        assert b"paid content" not in resp.data
        assert resp.json["error"] == "PAYMENT_NOT_SETTLED"


def test_error_responses_are_not_settled(app, facilitator, make_payload):
    with app.test_client() as client:
        resp = client.get(
            "/premium/missing",
            headers={"X-PAYMENT": encode_payment_header(make_payload())},
        )
        assert resp.status_code == 404
    facilitator.settle.assert_not_called()


def test_invalid_price_fails_at_registration():
    app = Flask(__name__)
    with pytest.raises(ValueError, match="Invalid price"):
        PaymentMiddleware(app).add(
            amount_exact_atomic="0.01", asset="tok", pay_to="seller"
        )
