"""
Flask middleware for x402 NEAR payment requirements.

Usage:   from x402_near.flask.middleware import PaymentMiddleware

Example:
    from flask import Flask
    from x402_near.flask.middleware import PaymentMiddleware

    app = Flask(__name__)
    middleware = PaymentMiddleware(app)
    middleware.add(
        path="/weather",
        amount_exact_atomic="1000",
        asset="usdc.fakes.testnet",
        pay_to="seller.testnet",
    )
"""
