#!/usr/bin/env python3
"""
Process integrity example.

Registers an analysis function, runs it with a proof, and shows how a
verifier checks the proof against the code and the recorded inputs.
"""

from chaoschain_sdk import ProcessIntegrity, integrity_checked


def analyze_market(symbol: str, window: int = 7) -> dict:
    return {"symbol": symbol, "window": window, "signal": "buy"}


def main():
    print("=== Process Integrity Example ===\n")

    # Storage is optional; without it proofs stay local
    integrity = ProcessIntegrity("Alice")
    code_hash = integrity.register_function(analyze_market)
    print(f"1. Registered analyze_market (code hash {code_hash[:16]}...)\n")

    inputs = {"symbol": "ETH", "window": 30}
    result, proof = integrity.execute_with_proof("analyze_market", inputs)
    print("2. Executed with proof")
    print(f"   - Result: {result}")
    print(f"   - Proof: {proof.proof_id}")
    print(f"   - Execution hash: {proof.execution_hash[:16]}...\n")

    print("3. Verifying...")
    print(f"   ✓ Code matches: {integrity.verify_proof(proof)}")
    print(f"   ✓ Inputs and result match: {integrity.verify_proof(proof, inputs, result)}")
    print(f"   ✗ Altered result rejected: {not integrity.verify_proof(proof, inputs, {'signal': 'sell'})}\n")

    policy = integrity.create_insurance_policy("analyze_market", "500", {"max_execution_seconds": 5})
    print(f"4. Insurance policy {policy.policy_id}: {policy.coverage_amount} USDC, premium {policy.premium}\n")

    @integrity_checked(integrity)
    def score_portfolio(holdings: dict) -> int:
        return sum(holdings.values())

    print(f"5. Decorated call: {score_portfolio({'ETH': 2, 'BTC': 1})}")
    print(f"   - Registered functions: {integrity.registered_functions}\n")

    print("=== Example Complete ===")


if __name__ == "__main__":
    main()
