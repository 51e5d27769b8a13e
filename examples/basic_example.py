#!/usr/bin/env python3
"""
Basic example demonstrating the complete agent workflow on an in-memory chain:
1. Two agents register ERC-8004 identities
2. The client pays the server over x402 (with the protocol fee)
3. The client rates the server, attaching the payment proof
4. A validator scores the server's stored evidence
"""

import hashlib

from chaoschain_sdk import ChaosChainSDK, get_network_info
from chaoschain_sdk.core.crypto import keccak_hex
from chaoschain_sdk.core.models import StorageResult
from chaoschain_sdk.registry.mock_contract import MockWeb3
from chaoschain_sdk.storage.backends import StorageBackend

# Hardhat development accounts, never use on a real network
SERVER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
CLIENT_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
VALIDATOR_KEY = "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a"


class InMemoryStorage(StorageBackend):
    """Stand-in for IPFS so the example runs offline."""

    name = "in-memory"

    def __init__(self):
        super().__init__()
        self.blobs = {}

    def put(self, data: bytes, filename: str, mime_type: str) -> StorageResult:
        cid = "bafy" + hashlib.sha256(data).hexdigest()[:40]
        self.blobs[cid] = data
        return StorageResult(cid=cid, url=f"ipfs://{cid}", size=len(data), provider=self.name)

    def get(self, cid: str) -> bytes:
        return self.blobs[cid]

    def gateway_url(self, cid: str) -> str:
        return f"memory://{cid}"


def main():
    print("=== ChaosChain SDK - Basic Example ===\n")

    # ============================================================================
    # SETUP: Mock chain (in production, leave web3 unset to use the network RPC)
    # ============================================================================
    print("1. Setting up in-memory chain and storage...")
    web3 = MockWeb3.for_network(get_network_info("base-sepolia"))
    storage = InMemoryStorage()

    def make_agent(name, key, role):
        return ChaosChainSDK(
            agent_name=name,
            agent_domain=f"{name.lower()}.example.com",
            agent_role=role,
            network="base-sepolia",
            private_key=key,
            web3=web3,
            storage_backends=[storage],
        )

    server = make_agent("Alice", SERVER_KEY, "server")
    client = make_agent("Bob", CLIENT_KEY, "client")
    validator = make_agent("Carol", VALIDATOR_KEY, "validator")
    print(f"   ✓ Server: {server.get_address()}")
    print(f"   ✓ Client: {client.get_address()}")
    print(f"   ✓ Validator: {validator.get_address()}\n")

    # ============================================================================
    # STEP 1: Register identities
    # ============================================================================
    print("2. Registering agent identities...")
    server_id = server.register_identity().agent_id
    client_id = client.register_identity().agent_id
    print(f"   ✓ Alice is agent #{server_id}, Bob is agent #{client_id}\n")

    # ============================================================================
    # STEP 2: Client pays for a service
    # ============================================================================
    print("3. Bob paying Alice for market analysis...")
    web3.usdc.mint(client.get_address(), 100 * 10**6)

    cost = client.calculate_total_cost("10.0", "USDC")
    print(f"   - Amount: {cost.amount} USDC, fee: {cost.fee}, total: {cost.total}")

    request = client.create_x402_payment_request("Bob", "Alice", "10.0", "USDC", "Market analysis")
    proof = client.execute_x402_payment(request, server.get_address())
    print(f"   ✓ Settled ({proof.settlement_status.value})")
    print(f"   - Main tx: {proof.main_transaction_hash}")
    print(f"   - Fee tx: {proof.fee_transaction_hash}")
    print(f"   - Alice's USDC balance: {server.get_usdc_balance()}\n")

    # ============================================================================
    # STEP 3: Client rates the server
    # ============================================================================
    print("4. Bob leaving feedback with the payment proof...")
    auth = server.generate_feedback_authorization(server_id, client.get_address(), 1)
    feedback = client.submit_feedback_with_payment(
        server_id, 92, auth, {"comment": "Accurate and fast"}, proof
    )
    print(f"   ✓ Feedback stored at {feedback['feedback_uri']}")
    print(f"   - Reputation score: {server.get_reputation_score(server_id)}\n")

    # ============================================================================
    # STEP 4: Validator scores the evidence
    # ============================================================================
    print("5. Carol validating Alice's work...")
    cid = server.store_evidence({"analysis": "ETH bullish", "confidence": 0.87})
    request_uri = f"ipfs://{cid}"
    server.request_validation(validator.get_address(), server_id, request_uri)
    validator.respond_to_validation(keccak_hex(request_uri), 95)

    summary = server.get_validation_summary(server_id)
    print(f"   ✓ Validations: {summary.count}, average response: {summary.average_response}\n")

    print("=== Example Complete ===")


if __name__ == "__main__":
    main()
