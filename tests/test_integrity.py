"""Tests for process integrity proofs."""

import pytest

from chaoschain_sdk.core.errors import IntegrityVerificationError
from chaoschain_sdk.integrity.process import (
    ProcessIntegrity,
    compute_code_hash,
    integrity_checked,
)
from chaoschain_sdk.storage.manager import AutoStorageManager

from conftest import MemoryStorage


def analyze_market(symbol: str, window: int = 7) -> dict:
    return {"symbol": symbol, "window": window, "signal": "buy"}


def failing_analysis(symbol: str) -> dict:
    raise RuntimeError(f"no data for {symbol}")


class FakeComputeProvider:
    """Compute provider finishing jobs after a fixed number of polls."""

    name = "fake-tee"

    def __init__(self, polls_until_done: int = 1, succeed: bool = True, fail_job: bool = False):
        self.polls_until_done = polls_until_done
        self.succeed = succeed
        self.fail_job = fail_job
        self.tasks = []
        self.polls = 0

    def submit(self, task):
        self.tasks.append(task)
        return f"job-{len(self.tasks)}"

    def status(self, job_id):
        if self.fail_job:
            return {"state": "failed"}
        self.polls += 1
        return {"state": "completed" if self.polls >= self.polls_until_done else "running"}

    def result(self, job_id):
        if not self.succeed:
            return {"success": False, "error": "enclave crashed"}
        return {"success": True, "execution_hash": "0xfeed", "verification_method": "tee-ml"}

    def attestation(self, job_id):
        return {"quote": "0xabc", "job_id": job_id}


@pytest.fixture
def integrity():
    verifier = ProcessIntegrity("Alice")
    verifier.register_function(analyze_market)
    return verifier


def test_register_function(integrity):
    """Test that registration records the source hash."""
    code_hash = integrity.register_function(analyze_market, "analysis_v2")

    assert code_hash == compute_code_hash(analyze_market)
    assert len(code_hash) == 64
    assert integrity.registered_functions == ["analyze_market", "analysis_v2"]


def test_execute_with_proof(integrity):
    """Test executing a function and checking its proof."""
    inputs = {"symbol": "ETH", "window": 30}
    result, proof = integrity.execute_with_proof("analyze_market", inputs)

    assert result == {"symbol": "ETH", "window": 30, "signal": "buy"}
    assert proof.proof_id.startswith("proof_")
    assert proof.agent_name == "Alice"
    assert proof.ipfs_cid is None
    assert proof.tee_attestation is None

    assert integrity.verify_proof(proof)
    assert integrity.verify_proof(proof, inputs, result)
    assert not integrity.verify_proof(proof, inputs, {"signal": "sell"})
    assert not integrity.verify_proof(proof.model_copy(update={"code_hash": "00" * 32}))


def test_execute_without_proof(integrity):
    """Test running a function without building a proof."""
    result, proof = integrity.execute_with_proof(
        "analyze_market", {"symbol": "BTC"}, require_proof=False
    )

    assert result["window"] == 7
    assert proof is None


def test_execute_errors(integrity):
    """Test unregistered functions and functions that raise."""
    with pytest.raises(IntegrityVerificationError):
        integrity.execute_with_proof("unknown", {})

    integrity.register_function(failing_analysis)
    with pytest.raises(IntegrityVerificationError, match="no data for ETH"):
        integrity.execute_with_proof("failing_analysis", {"symbol": "ETH"})


def test_proof_stored(memory_storage):
    """Test that proofs are uploaded when storage is configured."""
    storage = AutoStorageManager(backends=[memory_storage])
    verifier = ProcessIntegrity("Alice", storage=storage)
    verifier.register_function(analyze_market)

    _, proof = verifier.execute_with_proof("analyze_market", {"symbol": "ETH"})

    assert proof.ipfs_cid in memory_storage.blobs
    document = storage.get_json(proof.ipfs_cid)
    assert document["type"] == "chaoschain_process_integrity_proof_v2"
    assert document["proof"]["proof_id"] == proof.proof_id
    assert document["verification_layers"] == {"local_code_hash": True, "tee_attestation": False}


def test_storage_failure_keeps_proof():
    """Test that a storage outage does not lose the proof."""
    storage = AutoStorageManager(backends=[MemoryStorage(fail=True)])
    verifier = ProcessIntegrity("Alice", storage=storage)
    verifier.register_function(analyze_market)

    _, proof = verifier.execute_with_proof("analyze_market", {"symbol": "ETH"})

    assert proof is not None
    assert proof.ipfs_cid is None


def test_tee_attestation():
    """Test attaching a remote attestation."""
    provider = FakeComputeProvider(polls_until_done=3)
    verifier = ProcessIntegrity("Alice", compute_provider=provider, tee_poll_interval=0)
    verifier.register_function(analyze_market)

    _, proof = verifier.execute_with_proof("analyze_market", {"symbol": "ETH"})

    assert proof.tee_provider == "fake-tee"
    assert proof.tee_job_id == "job-1"
    assert proof.tee_attestation["execution_hash"] == "0xfeed"
    assert proof.tee_attestation["attestation_data"] == {"quote": "0xabc", "job_id": "job-1"}
    assert provider.polls == 3
    assert provider.tasks[0]["function"] == "analyze_market"

    _, local_only = verifier.execute_with_proof("analyze_market", {"symbol": "ETH"}, use_tee=False)
    assert local_only.tee_attestation is None


@pytest.mark.parametrize(
    "provider",
    [FakeComputeProvider(succeed=False), FakeComputeProvider(fail_job=True)],
)
def test_tee_failure_falls_back_to_local(provider):
    """Test that TEE failures still produce a local proof."""
    verifier = ProcessIntegrity("Alice", compute_provider=provider, tee_poll_interval=0)
    verifier.register_function(analyze_market)

    _, proof = verifier.execute_with_proof("analyze_market", {"symbol": "ETH"})

    assert proof.tee_attestation is None
    assert verifier.verify_proof(proof)


def test_insurance_policy(integrity):
    """Test creating coverage for a registered function."""
    policy = integrity.create_insurance_policy(
        "analyze_market", "250", {"max_execution_seconds": 5, "requires_tee": True}
    )

    assert policy.coverage_amount == "250"
    assert policy.premium == "2.5"
    assert policy.conditions.requires_tee
    assert policy.status == "active"

    with pytest.raises(IntegrityVerificationError):
        integrity.create_insurance_policy("unknown", "10")


def test_autonomous_agent_config(integrity):
    """Test autonomous agent configuration."""
    config = integrity.configure_autonomous_agent(
        ["market_analysis"], {"max_payment_amount": "5", "allowed_currencies": ["USDC", "ETH"]}
    )

    assert config.agent_name == "Alice"
    assert config.registered_functions == ["analyze_market"]
    assert config.constraints.allowed_currencies == ["USDC", "ETH"]

    with pytest.raises(ValueError):
        integrity.configure_autonomous_agent([])


def test_integrity_checked_decorator():
    """Test the decorator with positional and keyword arguments."""
    verifier = ProcessIntegrity("Alice")

    @integrity_checked(verifier, name="scored")
    def score(a, b=2):
        return a * b

    assert score(3) == 6
    assert score(3, b=4) == 12
    assert verifier.registered_functions == ["scored"]

    @integrity_checked(None)
    def passthrough(x):
        return x

    assert passthrough("ok") == "ok"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
