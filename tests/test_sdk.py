"""End-to-end tests for the ChaosChainSDK facade on the in-memory chain."""

import json

import pytest
import yaml

from chaoschain_sdk import ChaosChainSDK, __version__
from chaoschain_sdk.core.crypto import keccak_hex
from chaoschain_sdk.core.errors import ConfigurationError, NetworkError
from chaoschain_sdk.core.settings import EnvironmentSettings

from conftest import (
    CLIENT_ADDRESS,
    CLIENT_KEY,
    OWNER_ADDRESS,
    OWNER_KEY,
    VALIDATOR_ADDRESS,
    VALIDATOR_KEY,
    MemoryStorage,
)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def make_sdk(mock_web3, storage, settings):
    def factory(name: str, key: str, role: str = "server", **kwargs) -> ChaosChainSDK:
        kwargs.setdefault("storage_backends", [storage])
        return ChaosChainSDK(
            agent_name=name,
            agent_domain=f"{name.lower()}.example.com",
            agent_role=role,
            private_key=key,
            web3=mock_web3,
            settings=settings,
            **kwargs,
        )

    return factory


@pytest.fixture
def alice(make_sdk):
    return make_sdk("Alice", OWNER_KEY)


@pytest.fixture
def bob(make_sdk):
    return make_sdk("Bob", CLIENT_KEY, role="client")


def test_sdk_initialization(alice):
    """Test wiring without any network calls."""
    assert alice.get_address() == OWNER_ADDRESS
    assert alice.network == "base-sepolia"
    assert alice.network_info.chain_id == 84532
    assert alice.get_agent_id() is None
    assert alice.get_version() == __version__ == "0.1.0"
    assert "base-sepolia" in ChaosChainSDK.get_supported_networks()


def test_unsupported_network(settings):
    """Test that unknown networks are rejected."""
    with pytest.raises(NetworkError):
        ChaosChainSDK("Alice", "alice.example.com", network="mars-mainnet", settings=settings)


def test_register_identity_defaults(alice):
    """Test registering with the default registration document."""
    registration = alice.register_identity()

    assert registration.agent_id == 1
    assert alice.get_agent_id() == 1

    metadata = alice.get_agent_metadata(1)
    assert metadata.name == "Alice"
    assert metadata.domain == "alice.example.com"
    assert metadata.supported_trust == ["reputation", "validation"]


def test_paid_feedback_flow(alice, bob, mock_web3, storage):
    """Test paying an agent, then rating it with the payment proof attached."""
    agent_id = alice.register_identity().agent_id
    mock_web3.usdc.mint(CLIENT_ADDRESS, 50 * 10**6)

    request = bob.create_x402_payment_request("Bob", "Alice", "10.0", "USDC", "Market analysis")
    proof = bob.execute_x402_payment(request, alice.get_address())
    assert alice.get_usdc_balance() == "10.0"
    assert bob.get_x402_payment_history()[0].payment_id == proof.payment_id

    auth = alice.generate_feedback_authorization(agent_id, CLIENT_ADDRESS, 5)
    result = bob.submit_feedback_with_payment(
        agent_id, 95, auth, {"comment": "Accurate analysis"}, proof
    )

    assert result["feedback_tx_hash"].startswith("0x")
    cid = result["feedback_uri"].removeprefix("ipfs://")
    document = json.loads(storage.blobs[cid])
    assert document["score"] == 95
    assert document["comment"] == "Accurate analysis"
    assert document["proof_of_payment"]["main_transaction_hash"] == proof.main_transaction_hash

    assert alice.get_reputation_score(agent_id) == 95
    assert alice.get_clients(agent_id) == [CLIENT_ADDRESS]
    assert len(alice.read_all_feedback(agent_id)) == 1


def test_validation_flow(alice, make_sdk):
    """Test requesting and answering a validation."""
    validator = make_sdk("Val", VALIDATOR_KEY, role="validator")
    agent_id = alice.register_identity().agent_id
    evidence_cid = alice.store_evidence({"analysis": "ETH up", "confidence": 0.8})

    request_uri = f"ipfs://{evidence_cid}"
    alice.request_validation(VALIDATOR_ADDRESS, agent_id, request_uri)
    request_hash = keccak_hex(request_uri)
    validator.respond_to_validation(request_hash, 88, tag="market")

    status = alice.get_validation_status(request_hash)
    assert status.response == 88
    assert status.validator_address == VALIDATOR_ADDRESS

    summary = alice.get_validation_summary(agent_id)
    assert summary.count == 1
    assert summary.average_response == 88


def test_payment_helpers(alice):
    """Test cost estimates and the 402 envelope."""
    cost = alice.calculate_total_cost("10.0", "USDC")
    assert (cost.amount, cost.fee, cost.total) == ("10.0", "0.25", "10.25")

    requirements = alice.create_x402_payment_requirements("5.0", "USDC", "Premium data")
    assert requirements.status_code == 402
    assert requirements.body["paymentRequired"]["amount"] == "5.0"
    assert requirements.body["paymentRequired"]["recipient"] == OWNER_ADDRESS

    result = alice.execute_traditional_payment("basic-card", "20", "USD")
    assert result.simulated
    assert alice.get_supported_payment_methods() == ["https://a2a.org/x402"]


def test_receipts_through_sdk(alice, bob, mock_web3):
    """Test receipts created by the payer and checked by the payee."""
    mock_web3.usdc.mint(CLIENT_ADDRESS, 5 * 10**6)
    request = bob.create_x402_payment_request("Bob", "Alice", "1", "USDC")
    proof = bob.execute_x402_payment(request, OWNER_ADDRESS)

    receipt = bob.create_receipt(proof)
    assert alice.verify_receipt(receipt)


def test_paywall_server(alice):
    """Test building a paywall that pays into the agent's wallet."""
    server = alice.create_x402_paywall_server(port=9000)

    assert server.port == 9000
    assert server.payment_manager is alice.x402_payment_manager


def test_upload_and_download(alice, storage):
    """Test storing JSON, text and bytes."""
    stored = alice.upload({"a": 1})
    assert stored.provider == "memory"
    assert alice.download(stored.cid) == {"a": 1}

    text = alice.upload("plain words", "note.txt", "text/plain")
    assert alice.download(text.cid) == "plain words"

    cid = alice.store_evidence({"kind": "evidence"})
    assert cid in storage.blobs


def test_integrity_and_ap2(alice):
    """Test integrity proofs and AP2 mandates through the facade."""

    def double(x: int) -> int:
        return x * 2

    alice.register_integrity_function(double)
    result, proof = alice.execute_with_integrity_proof("double", {"x": 21})

    assert result == 42
    assert proof.ipfs_cid is not None

    intent = alice.create_intent_mandate("Buy one market report")
    assert intent.natural_language_description == "Buy one market report"

    cart = alice.create_cart_mandate("cart-1", [{"name": "Report", "price": 3.0}], 3.0)
    assert alice.verify_jwt_token(cart.merchant_authorization)["sub"] == "cart-1"


def test_validation_stats(alice, make_sdk):
    """Test counting answered and pending validations."""
    validator = make_sdk("Val", VALIDATOR_KEY, role="validator")
    agent_id = alice.register_identity().agent_id

    answered_uri = "ipfs://bafyanswered"
    alice.request_validation(VALIDATOR_ADDRESS, agent_id, answered_uri)
    alice.request_validation(VALIDATOR_ADDRESS, agent_id, "ipfs://bafypending")
    validator.respond_to_validation(keccak_hex(answered_uri), 80)

    assert alice.get_validation_stats(agent_id) == {
        "total_requests": 2,
        "responded": 1,
        "pending": 1,
        "average_response": 80,
    }


def test_network_and_payment_status(alice, make_sdk):
    """Test network details and payment method status through the facade."""
    info = alice.get_network_info()
    assert info is alice.network_info
    assert info.chain_id == 84532

    status = alice.get_payment_methods_status()
    assert status["https://a2a.org/x402"]
    assert not status["basic-card"]

    sdk = make_sdk("Alice", OWNER_KEY, enable_payments=False)
    with pytest.raises(ConfigurationError, match="Payments not enabled"):
        sdk.get_payment_methods_status()


def test_verify_integrity_proof(alice):
    """Test checking integrity proofs through the facade."""

    def square(x: int) -> int:
        return x * x

    alice.register_integrity_function(square)
    result, proof = alice.execute_with_integrity_proof("square", {"x": 4})

    assert alice.verify_integrity_proof(proof)
    assert alice.verify_integrity_proof(proof, {"x": 4}, result)
    assert not alice.verify_integrity_proof(proof, {"x": 4}, 17)


def test_disabled_features(make_sdk):
    """Test that disabled components raise ConfigurationError."""
    sdk = make_sdk(
        "Alice",
        OWNER_KEY,
        enable_payments=False,
        enable_storage=False,
        enable_ap2=False,
        enable_process_integrity=False,
    )

    with pytest.raises(ConfigurationError, match="Payments not enabled"):
        sdk.calculate_total_cost("1")
    with pytest.raises(ConfigurationError, match="Payments not enabled"):
        sdk.get_supported_payment_methods()
    with pytest.raises(ConfigurationError, match="Storage not enabled"):
        sdk.upload({"a": 1})
    with pytest.raises(ConfigurationError, match="Process integrity not enabled"):
        sdk.register_integrity_function(len)
    with pytest.raises(ConfigurationError, match="AP2 not enabled"):
        sdk.create_intent_mandate("anything")

    features = sdk.get_capabilities()["features"]
    assert not any(
        features[key]
        for key in ("x402_crypto_payments", "storage", "process_integrity", "google_ap2_intents")
    )


def test_capabilities(alice, mock_web3):
    """Test the capability summary and balances."""
    mock_web3.chain.fund(OWNER_ADDRESS, 15 * 10**17)
    capabilities = alice.get_capabilities()

    assert capabilities["agent_role"] == "server"
    assert capabilities["chain_id"] == 84532
    assert capabilities["wallet_address"] == OWNER_ADDRESS
    assert capabilities["features"]["x402_crypto_payments"]
    assert capabilities["supported_payment_methods"] == ["https://a2a.org/x402"]
    assert capabilities["version"] == "0.1.0"
    assert alice.get_balance() == "1.5"


def test_from_config(tmp_path, mock_web3):
    """Test building the SDK from a YAML file."""
    config_file = tmp_path / "agent.yaml"
    config_file.write_text(
        yaml.safe_dump(
            {
                "agent_name": "Alice",
                "agent_domain": "alice.example.com",
                "agent_role": "validator",
                "network": "base-sepolia",
                "private_key": OWNER_KEY,
                "enable_ap2": False,
                "fee_percentage": 1.0,
            }
        )
    )

    sdk = ChaosChainSDK.from_config(
        config_file,
        web3=mock_web3,
        storage_backends=[MemoryStorage()],
        settings=EnvironmentSettings(_env_file=None),
    )

    assert sdk.agent_role.value == "validator"
    assert sdk.google_ap2 is None
    assert sdk.calculate_total_cost("10").fee == "0.1"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
