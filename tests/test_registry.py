"""Tests for the ERC-8004 registry client against the in-memory chain."""

import time

import pytest
from web3 import Web3

from chaoschain_sdk.core.crypto import keccak_hex
from chaoschain_sdk.core.errors import ConfigurationError, ContractError, ValidationError
from chaoschain_sdk.core.models import AgentMetadata, AgentRole
from chaoschain_sdk.registry.agent import ChaosAgent
from chaoschain_sdk.registry.feedback import AUTH_LENGTH, FeedbackAuthorization

from conftest import CLIENT_ADDRESS, OWNER_ADDRESS, VALIDATOR_ADDRESS


@pytest.fixture
def owner_agent(mock_web3, network_info, owner_wallet):
    return ChaosAgent(mock_web3, network_info, owner_wallet)


@pytest.fixture
def client_agent(mock_web3, network_info, client_wallet):
    return ChaosAgent(mock_web3, network_info, client_wallet)


@pytest.fixture
def validator_agent(mock_web3, network_info, validator_wallet):
    return ChaosAgent(mock_web3, network_info, validator_wallet)


def _metadata(name: str = "Alice") -> AgentMetadata:
    return AgentMetadata(
        name=name,
        domain=f"{name.lower()}.example.com",
        role=AgentRole.SERVER,
        supported_trust=["reputation"],
    )


def test_register_identity(owner_agent):
    """Test minting an agent identity with an embedded registration document."""
    registration = owner_agent.register_identity(metadata=_metadata())

    assert registration.agent_id == 1
    assert registration.owner == OWNER_ADDRESS
    assert registration.token_uri.startswith("data:application/json,")
    assert registration.transaction_hash.startswith("0x")
    assert owner_agent.agent_id == 1

    metadata = owner_agent.get_agent_metadata(1)
    assert metadata is not None
    assert metadata.name == "Alice"
    assert metadata.domain == "alice.example.com"
    assert metadata.supported_trust == ["reputation"]


def test_agent_ids_increase(owner_agent, client_agent):
    """Test that each registration gets the next id."""
    assert owner_agent.register_identity(metadata=_metadata("Alice")).agent_id == 1
    assert client_agent.register_identity(metadata=_metadata("Bob")).agent_id == 2

    assert owner_agent.get_total_agents() == 2
    assert owner_agent.get_agent_owner(2) == CLIENT_ADDRESS


def test_register_with_uri_and_extra_metadata(owner_agent):
    """Test registering with an explicit URI and on-chain metadata."""
    registration = owner_agent.register_identity(
        token_uri="ipfs://bafyregistration", extra_metadata={"agentName": b"Alice"}
    )

    assert registration.token_uri == "ipfs://bafyregistration"
    assert owner_agent.get_metadata(registration.agent_id, "agentName") == b"Alice"
    assert owner_agent.get_metadata(registration.agent_id, "unset") == b""


def test_metadata_updates(owner_agent):
    """Test on-chain metadata and registration document updates."""
    agent_id = owner_agent.register_identity(metadata=_metadata()).agent_id

    owner_agent.set_metadata(agent_id, "endpoint", "https://alice.example.com/a2a")
    assert owner_agent.get_metadata(agent_id, "endpoint") == b"https://alice.example.com/a2a"

    owner_agent.update_agent_metadata(agent_id, _metadata("Alice2"))
    assert owner_agent.get_agent_metadata(agent_id).name == "Alice2"


def test_only_owner_can_update(owner_agent, client_agent):
    """Test that writes by a non-owner are rejected."""
    agent_id = owner_agent.register_identity(metadata=_metadata()).agent_id

    with pytest.raises(ContractError):
        client_agent.set_metadata(agent_id, "endpoint", "https://evil.example.com")


def test_agent_lookup_of_missing_agent(owner_agent):
    """Test reading an agent that does not exist."""
    assert not owner_agent.agent_exists(42)
    assert owner_agent.get_agent_metadata(42) is None
    with pytest.raises(ContractError):
        owner_agent.get_agent_owner(42)


def test_transfer_agent(owner_agent):
    """Test transferring an identity to a new owner."""
    agent_id = owner_agent.register_identity(metadata=_metadata()).agent_id
    owner_agent.transfer_agent(agent_id, CLIENT_ADDRESS)

    assert owner_agent.get_agent_owner(agent_id) == CLIENT_ADDRESS


def test_writes_need_a_wallet(mock_web3, network_info):
    """Test that a read-only client refuses to send transactions."""
    reader = ChaosAgent(mock_web3, network_info)

    with pytest.raises(ConfigurationError):
        reader.register_identity(metadata=_metadata())
    assert reader.get_total_agents() == 0


def test_feedback_authorization_layout(owner_agent, network_info):
    """Test the 289-byte feedback authorization blob."""
    agent_id = owner_agent.register_identity(metadata=_metadata()).agent_id
    expiry = int(time.time()) + 600
    blob = owner_agent.generate_feedback_authorization(agent_id, CLIENT_ADDRESS, 5, expiry)

    raw = Web3.to_bytes(hexstr=blob)
    assert len(raw) == AUTH_LENGTH == 289

    auth = FeedbackAuthorization.decode(blob)
    assert auth.agent_id == agent_id
    assert auth.client_address == CLIENT_ADDRESS
    assert auth.index_limit == 5
    assert auth.expiry == expiry
    assert auth.chain_id == 84532
    assert auth.identity_registry == Web3.to_checksum_address(network_info.contracts.identity)
    assert auth.signer_address == OWNER_ADDRESS
    assert auth.recover_signer() == OWNER_ADDRESS


def test_feedback_authorization_wrong_length():
    """Test decoding a truncated authorization."""
    with pytest.raises(ValidationError):
        FeedbackAuthorization.decode(b"\x00" * 100)


def test_give_and_read_feedback(owner_agent, client_agent):
    """Test the feedback round trip through the reputation registry."""
    agent_id = owner_agent.register_identity(metadata=_metadata()).agent_id
    auth = owner_agent.generate_feedback_authorization(agent_id, CLIENT_ADDRESS, 2)

    client_agent.give_feedback(agent_id, 90, auth, tag1="quality")
    client_agent.give_feedback(agent_id, 71, auth, tag1="speed")

    assert client_agent.get_last_index(agent_id, CLIENT_ADDRESS) == 2
    assert client_agent.get_clients(agent_id) == [CLIENT_ADDRESS]

    first = client_agent.read_feedback(agent_id, CLIENT_ADDRESS, 1)
    assert first.score == 90
    assert first.feedback_index == 1
    assert not first.is_revoked

    summary = client_agent.get_summary(agent_id)
    assert summary.count == 2
    assert summary.average_score == 80  # (90 + 71) // 2

    quality = client_agent.get_summary(agent_id, tag1="quality")
    assert quality.count == 1
    assert quality.average_score == 90


def test_feedback_index_limit(owner_agent, client_agent):
    """Test that the authorization caps the number of feedback entries."""
    agent_id = owner_agent.register_identity(metadata=_metadata()).agent_id
    auth = owner_agent.generate_feedback_authorization(agent_id, CLIENT_ADDRESS, 1)

    client_agent.give_feedback(agent_id, 80, auth)
    with pytest.raises(ContractError):
        client_agent.give_feedback(agent_id, 80, auth)


def test_feedback_auth_for_another_client(owner_agent, validator_agent):
    """Test that an authorization only works for the client it names."""
    agent_id = owner_agent.register_identity(metadata=_metadata()).agent_id
    auth = owner_agent.generate_feedback_authorization(agent_id, CLIENT_ADDRESS, 3)

    with pytest.raises(ContractError):
        validator_agent.give_feedback(agent_id, 80, auth)


def test_expired_feedback_auth(owner_agent, client_agent):
    """Test that an expired authorization is rejected on-chain."""
    agent_id = owner_agent.register_identity(metadata=_metadata()).agent_id
    auth = owner_agent.generate_feedback_authorization(
        agent_id, CLIENT_ADDRESS, 3, expiry=int(time.time()) - 10
    )

    with pytest.raises(ContractError):
        client_agent.give_feedback(agent_id, 80, auth)


def test_feedback_score_range(client_agent):
    """Test that scores outside 0-100 fail before any transaction."""
    with pytest.raises(ValidationError):
        client_agent.give_feedback(1, 101, "0x00")
    with pytest.raises(ValidationError):
        client_agent.give_feedback(1, -1, "0x00")


def test_revoke_feedback(owner_agent, client_agent):
    """Test that revoked feedback drops out of summaries."""
    agent_id = owner_agent.register_identity(metadata=_metadata()).agent_id
    auth = owner_agent.generate_feedback_authorization(agent_id, CLIENT_ADDRESS, 2)
    client_agent.give_feedback(agent_id, 10, auth)
    client_agent.give_feedback(agent_id, 90, auth)

    client_agent.revoke_feedback(agent_id, 1)

    summary = client_agent.get_summary(agent_id)
    assert summary.count == 1
    assert summary.average_score == 90

    everything = client_agent.read_all_feedback(agent_id, include_revoked=True)
    assert [record.is_revoked for record in everything] == [True, False]
    assert len(client_agent.read_all_feedback(agent_id)) == 1


def test_append_response(owner_agent, client_agent):
    """Test that the agent owner can respond to feedback."""
    agent_id = owner_agent.register_identity(metadata=_metadata()).agent_id
    auth = owner_agent.generate_feedback_authorization(agent_id, CLIENT_ADDRESS, 1)
    client_agent.give_feedback(agent_id, 40, auth)

    tx_hash = owner_agent.append_response(agent_id, CLIENT_ADDRESS, 1, "ipfs://bafyresponse")
    assert tx_hash.startswith("0x")

    events = owner_agent.get_events("ResponseAppended")
    assert len(events) == 1
    assert events[0]["args"]["responseUri"] == "ipfs://bafyresponse"


def test_validation_flow(owner_agent, validator_agent):
    """Test requesting and answering a validation."""
    agent_id = owner_agent.register_identity(metadata=_metadata()).agent_id
    request_uri = "ipfs://bafyevidence"
    request_hash = keccak_hex(request_uri)

    owner_agent.request_validation(VALIDATOR_ADDRESS, agent_id, request_uri)

    pending = owner_agent.get_validation_status(request_hash)
    assert pending.validator_address == VALIDATOR_ADDRESS
    assert pending.agent_id == agent_id
    assert pending.response == 0
    assert owner_agent.get_validation_summary(agent_id).count == 0

    validator_agent.respond_to_validation(
        request_hash, 95, "ipfs://bafyreport", keccak_hex("report"), tag="audit"
    )

    status = owner_agent.get_validation_status(request_hash)
    assert status.response == 95
    assert status.response_hash == keccak_hex("report")

    summary = owner_agent.get_validation_summary(agent_id)
    assert summary.count == 1
    assert summary.average_response == 95
    assert owner_agent.get_agent_validations(agent_id) == [request_hash]
    assert owner_agent.get_validator_requests(VALIDATOR_ADDRESS) == [request_hash]


def test_only_validator_can_respond(owner_agent):
    """Test that a validation response must come from the named validator."""
    agent_id = owner_agent.register_identity(metadata=_metadata()).agent_id
    owner_agent.request_validation(VALIDATOR_ADDRESS, agent_id, "ipfs://bafyevidence")

    with pytest.raises(ContractError):
        owner_agent.respond_to_validation(keccak_hex("ipfs://bafyevidence"), 50)


def test_validation_request_needs_owner(owner_agent, client_agent):
    """Test that only the agent owner can request validation."""
    agent_id = owner_agent.register_identity(metadata=_metadata()).agent_id

    with pytest.raises(ContractError):
        client_agent.request_validation(VALIDATOR_ADDRESS, agent_id, "ipfs://bafyevidence")


def test_get_events(owner_agent):
    """Test querying past registry events."""
    owner_agent.register_identity(metadata=_metadata("Alice"))
    owner_agent.register_identity(metadata=_metadata("Alice2"))

    events = owner_agent.get_events("Registered")
    assert [event["args"]["agentId"] for event in events] == [1, 2]

    with pytest.raises(ValidationError):
        owner_agent.get_events("NotAnEvent")


def test_subscription_polls_new_events(owner_agent):
    """Test that a subscription delivers only events after it started."""
    owner_agent.register_identity(metadata=_metadata("Early"))

    received = []
    subscription = owner_agent.subscribe("Registered", received.append)
    assert subscription.poll() == 0

    owner_agent.register_identity(metadata=_metadata("Late"))
    assert subscription.poll() == 1
    assert received[0]["args"]["agentId"] == 2
    assert subscription.poll() == 0

    subscription.cancel()
    owner_agent.register_identity(metadata=_metadata("Ignored"))
    assert not subscription.active
    assert subscription.poll() == 0
    assert subscription.delivered == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
