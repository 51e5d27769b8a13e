"""Process integrity: code hashing, execution proofs and optional TEE attestation."""

import functools
import inspect
import logging
import secrets
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Optional, Protocol

from ..core.amounts import AmountLike, to_decimal
from ..core.crypto import canonical_json, sha256_hex
from ..core.errors import IntegrityVerificationError, StorageError
from ..core.models import (
    AgentConstraints,
    AutonomousAgentConfig,
    InsurancePolicy,
    IntegrityProof,
    PolicyConditions,
)

if TYPE_CHECKING:
    from ..storage.manager import AutoStorageManager

logger = logging.getLogger(__name__)

PROOF_DOCUMENT_TYPE = "chaoschain_process_integrity_proof_v2"
DEFAULT_TEE_MODEL = "gpt-oss-120b"
# Premium charged on coverage, in percent
PREMIUM_PERCENTAGE = 1


class ComputeProvider(Protocol):
    """Remote (TEE) compute service.

    ``status`` returns a dict with a ``state`` of ``pending``, ``running``,
    ``completed`` or ``failed``. ``result`` returns a dict with ``success``,
    ``execution_hash`` and ``verification_method``.
    """

    def submit(self, task: dict[str, Any]) -> str: ...

    def status(self, job_id: str) -> dict[str, Any]: ...

    def result(self, job_id: str) -> dict[str, Any]: ...

    def attestation(self, job_id: str) -> dict[str, Any]: ...


def _serializable(value: Any) -> Any:
    """Return value if it serializes to JSON, else its string form."""
    try:
        canonical_json(value)
    except (TypeError, ValueError):
        return str(value)
    return value


def compute_code_hash(func: Callable) -> str:
    """SHA-256 of a function's source (of its qualified name if no source)."""
    try:
        source = inspect.getsource(func)
    except (OSError, TypeError):
        source = getattr(func, "__qualname__", repr(func))
    return sha256_hex(source)


def compute_execution_hash(
    function_name: str, inputs: dict[str, Any], result: Any, timestamp: int, agent_name: str
) -> str:
    """SHA-256 of the canonical execution record."""
    return sha256_hex(
        canonical_json(
            {
                "function_name": function_name,
                "inputs": _serializable(inputs),
                "result": _serializable(result),
                "timestamp": timestamp,
                "agent": agent_name,
            }
        )
    )


class ProcessIntegrity:
    """Executes registered functions and proves what ran.

    Every proof carries the SHA-256 of the function's source and of the
    execution record. With a compute provider the function is also run
    remotely and the provider's attestation is attached.
    """

    def __init__(
        self,
        agent_name: str,
        storage: Optional["AutoStorageManager"] = None,
        compute_provider: Optional[ComputeProvider] = None,
        tee_timeout: float = 60.0,
        tee_poll_interval: float = 2.0,
    ):
        """Initialize integrity verifier.

        Args:
            agent_name: Agent the proofs are issued for
            storage: Storage manager proofs are uploaded to
            compute_provider: TEE compute provider for attestations
            tee_timeout: Seconds to wait for a remote job
            tee_poll_interval: Seconds between status polls
        """
        self.agent_name = agent_name
        self.storage = storage
        self.compute_provider = compute_provider
        self.tee_timeout = tee_timeout
        self.tee_poll_interval = tee_poll_interval
        self._functions: dict[str, Callable] = {}
        self._code_hashes: dict[str, str] = {}

        mode = "local + TEE attestation" if compute_provider else "local"
        logger.info(f"Process integrity initialized for {agent_name} ({mode})")

    @property
    def registered_functions(self) -> list[str]:
        return list(self._functions)

    def register_function(self, func: Callable, name: Optional[str] = None) -> str:
        """Register a function for proof generation.

        Returns:
            Hex SHA-256 of the function source
        """
        name = name or func.__name__
        code_hash = compute_code_hash(func)
        self._functions[name] = func
        self._code_hashes[name] = code_hash
        logger.debug(f"Registered {name} with code hash {code_hash}")
        return code_hash

    def execute_with_proof(
        self,
        function_name: str,
        inputs: dict[str, Any],
        require_proof: bool = True,
        use_tee: bool = True,
    ) -> tuple[Any, Optional[IntegrityProof]]:
        """Run a registered function as ``func(**inputs)``.

        Args:
            function_name: Name given at registration
            inputs: Keyword arguments for the function
            require_proof: Build a proof (otherwise only the result is returned)
            use_tee: Also request a TEE attestation when a provider is set

        Returns:
            Tuple of (result, proof or None)

        Raises:
            IntegrityVerificationError: If the function is not registered or raises
        """
        if function_name not in self._functions:
            raise IntegrityVerificationError(
                f"Function not registered: {function_name}",
                {"available_functions": self.registered_functions},
            )

        func = self._functions[function_name]
        try:
            result = func(**inputs)
        except Exception as e:
            raise IntegrityVerificationError(
                f"Function execution failed: {e}", {"function_name": function_name}
            )

        if not require_proof:
            return result, None

        attestation = None
        if use_tee and self.compute_provider is not None:
            attestation = self._get_tee_attestation(function_name, inputs)

        timestamp = int(time.time() * 1000)
        proof = IntegrityProof(
            proof_id=f"proof_{secrets.token_hex(8)}",
            function_name=function_name,
            code_hash=self._code_hashes[function_name],
            execution_hash=compute_execution_hash(
                function_name, inputs, result, timestamp, self.agent_name
            ),
            timestamp=timestamp,
            agent_name=self.agent_name,
            tee_attestation=attestation,
            tee_provider=attestation["provider"] if attestation else None,
            tee_job_id=attestation["job_id"] if attestation else None,
        )

        if self.storage is not None:
            proof = self._store_proof(proof)

        logger.info(
            f"Integrity proof {proof.proof_id} for {function_name} "
            f"({'local + TEE' if attestation else 'local'})"
        )
        return result, proof

    def _get_tee_attestation(
        self, function_name: str, inputs: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        provider = self.compute_provider
        task = {
            "function": function_name,
            "inputs": _serializable(inputs),
            "model": DEFAULT_TEE_MODEL,
            "prompt": f"Execute function: {function_name} with inputs: {canonical_json(_serializable(inputs))}",
        }
        try:
            job_id = provider.submit(task)
            deadline = time.monotonic() + self.tee_timeout
            while time.monotonic() < deadline:
                state = provider.status(job_id).get("state", "unknown")
                if state == "completed":
                    outcome = provider.result(job_id)
                    if not outcome.get("success"):
                        logger.warning(f"TEE job {job_id} failed: {outcome.get('error')}")
                        return None
                    method = outcome.get("verification_method")
                    return {
                        "job_id": job_id,
                        "provider": getattr(provider, "name", "0g-compute"),
                        "execution_hash": outcome.get("execution_hash"),
                        "verification_method": getattr(method, "value", method),
                        "model": DEFAULT_TEE_MODEL,
                        "attestation_data": provider.attestation(job_id),
                        "metadata": outcome.get("metadata"),
                        "timestamp": datetime.now(timezone.utc).isoformat(),
                    }
                if state == "failed":
                    logger.warning(f"TEE job {job_id} failed")
                    return None
                time.sleep(self.tee_poll_interval)
        except Exception as e:
            logger.warning(f"TEE attestation unavailable, continuing with local proof: {e}")
            return None

        logger.warning(f"TEE job {job_id} timed out after {self.tee_timeout}s")
        return None

    def _store_proof(self, proof: IntegrityProof) -> IntegrityProof:
        document = {
            "type": PROOF_DOCUMENT_TYPE,
            "proof": proof.model_dump(mode="json", exclude={"ipfs_cid"}),
            "verification_layers": {
                "local_code_hash": True,
                "tee_attestation": proof.tee_attestation is not None,
            },
            "agent_name": self.agent_name,
        }
        try:
            stored = self.storage.put_json(
                document, f"process_integrity_proof_{proof.proof_id}.json"
            )
        except StorageError as e:
            logger.warning(f"Could not store integrity proof {proof.proof_id}: {e}")
            return proof
        return proof.model_copy(update={"ipfs_cid": stored.cid})

    def verify_proof(
        self,
        proof: IntegrityProof,
        inputs: Optional[dict[str, Any]] = None,
        result: Any = None,
    ) -> bool:
        """Check a proof against the registered code.

        When ``inputs`` are given the execution hash is recomputed from them
        and ``result`` as well.
        """
        expected_code_hash = self._code_hashes.get(proof.function_name)
        if expected_code_hash is None or expected_code_hash != proof.code_hash:
            return False
        if proof.agent_name != self.agent_name:
            return False
        if inputs is None:
            return True
        return proof.execution_hash == compute_execution_hash(
            proof.function_name, inputs, result, proof.timestamp, proof.agent_name
        )

    def create_insurance_policy(
        self,
        function_name: str,
        coverage_amount: AmountLike,
        conditions: Optional[PolicyConditions | dict[str, Any]] = None,
        currency: str = "USDC",
    ) -> InsurancePolicy:
        """Create a coverage policy for a registered function.

        Raises:
            IntegrityVerificationError: If the function is not registered
        """
        if function_name not in self._functions:
            raise IntegrityVerificationError(f"Function not registered: {function_name}")
        if not isinstance(conditions, PolicyConditions):
            conditions = PolicyConditions(**(conditions or {}))

        coverage = to_decimal(coverage_amount)
        policy = InsurancePolicy(
            policy_id=f"policy_{secrets.token_hex(8)}",
            function_name=function_name,
            agent_name=self.agent_name,
            coverage_amount=str(coverage),
            currency=currency,
            premium=str(coverage * PREMIUM_PERCENTAGE / 100),
            conditions=conditions,
        )
        logger.info(f"Created insurance policy {policy.policy_id} for {function_name}")
        return policy

    def configure_autonomous_agent(
        self,
        capabilities: list[str],
        constraints: Optional[AgentConstraints | dict[str, Any]] = None,
    ) -> AutonomousAgentConfig:
        if not isinstance(constraints, AgentConstraints):
            constraints = AgentConstraints(**(constraints or {}))
        return AutonomousAgentConfig(
            agent_name=self.agent_name,
            capabilities=capabilities,
            constraints=constraints,
            registered_functions=self.registered_functions,
        )


def integrity_checked(verifier: Optional[ProcessIntegrity], name: Optional[str] = None):
    """Decorator running a function through ``verifier.execute_with_proof``.

    Positional arguments are bound to parameter names first. Without a
    verifier the function runs unchanged.

    Example:
        @integrity_checked(verifier)
        def analyze(symbol: str) -> dict:
            ...
    """

    def decorator(func: Callable) -> Callable:
        function_name = name or func.__name__
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            if verifier is None:
                return func(*args, **kwargs)
            if function_name not in verifier.registered_functions:
                verifier.register_function(func, function_name)
            inputs = dict(signature.bind(*args, **kwargs).arguments)
            result, _ = verifier.execute_with_proof(function_name, inputs)
            return result

        return wrapper

    return decorator
