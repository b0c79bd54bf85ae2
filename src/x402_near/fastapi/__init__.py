"""
FastAPI middleware for x402 NEAR payment requirements.

Usage:   from x402_near.fastapi.middleware import require_payment

Example:
    from fastapi import FastAPI
    from x402_near.fastapi.middleware import require_payment

    app = FastAPI()
    app.middleware("http")(
        require_payment(
            amount_exact_atomic="1000",
            asset="usdc.fakes.testnet",
            pay_to="seller.testnet",
            path="/weather",
        )
    )
"""
