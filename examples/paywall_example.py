#!/usr/bin/env python3
"""x402 paywall example - paid API endpoints served with FastAPI.

Run with a funded wallet on Base Sepolia:

    export AGENT_PRIVATE_KEY=0x...
    python examples/paywall_example.py

Then pay the advertised amount and retry with the transaction hash:

    curl -i http://localhost:8402/analysis
    curl -H "X-Payment-Tx: 0x<hash>" http://localhost:8402/analysis?symbol=ETH
"""

import logging
import os

from chaoschain_sdk import ChaosChainSDK

logging.basicConfig(level=logging.INFO)

sdk = ChaosChainSDK(
    agent_name="Alice",
    agent_domain="alice.example.com",
    agent_role="server",
    network="base-sepolia",
    private_key=os.environ.get("AGENT_PRIVATE_KEY"),
    enable_ap2=False,
)
server = sdk.create_x402_paywall_server(port=8402)


@server.require_payment(amount="1.0", description="Market analysis for one symbol")
def analysis(data):
    """Paid endpoint - 1 USDC per call."""
    symbol = data.get("symbol", "ETH")
    return {"symbol": symbol, "trend": "bullish", "confidence": 0.87}


@server.require_payment(amount="0.1", path="/quote")
async def quote(data):
    """Cheaper endpoint, POST a JSON body."""
    return {"symbol": data.get("symbol", "ETH"), "price": "3150.42"}


# The FastAPI app can also be mounted elsewhere or served with `uvicorn paywall_example:app`
app = server.app


if __name__ == "__main__":
    print(f"Paywall receiving payments at {sdk.get_address()}")
    for endpoint in server.get_server_stats()["endpoints"]:
        print(f"   - {endpoint['path']}: {endpoint['amount']} {endpoint['currency']}")
    server.serve()
