"""ChaosChainSDK: one object for identity, payments, storage and proofs."""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Optional

from web3 import Web3

from . import __version__
from .ap2.google import GoogleAP2Integration
from .core.amounts import AmountLike, format_units
from .core.config import SDKConfig
from .core.context import SDKContext
from .core.crypto import keccak_hex
from .core.errors import ConfigurationError
from .core.models import (
    AgentMetadata,
    AgentRegistration,
    AgentRole,
    CartItem,
    CartMandate,
    CostBreakdown,
    FeedbackRecord,
    FeedbackSummary,
    IntegrityProof,
    IntentMandate,
    PaymentProof,
    PaymentReceipt,
    PaymentRequirementsResponse,
    PaymentResult,
    StorageResult,
    ValidationStatus,
    ValidationSummary,
    X402PaymentRequest,
)
from .core.networks import (
    NetworkConfig,
    NetworkInfo,
    get_network_info,
    get_supported_networks,
)
from .core.settings import EnvironmentSettings
from .integrations.paywall import X402Server
from .integrity.process import ComputeProvider, ProcessIntegrity
from .payments.a2a import A2AX402Extension
from .payments.methods import PaymentManager, PaymentMethod, PaymentMethodCredentials
from .payments.x402 import DEFAULT_FEE_PERCENTAGE, X402PaymentManager
from .registry.agent import ChaosAgent
from .storage.backends import StorageBackend
from .storage.manager import AutoStorageManager
from .wallet.manager import WalletManager

logger = logging.getLogger(__name__)


class ChaosChainSDK:
    """Entry point for an agent on a ChaosChain network.

    Construction only wires components together; no RPC, storage or
    processor calls are made until an operation needs them.

    Example:
        sdk = ChaosChainSDK(
            agent_name="Alice",
            agent_domain="alice.example.com",
            agent_role="server",
            network="base-sepolia",
            private_key=os.environ["AGENT_PRIVATE_KEY"],
        )
        registration = sdk.register_identity()
    """

    def __init__(
        self,
        agent_name: str,
        agent_domain: str,
        agent_role: AgentRole | str = AgentRole.SERVER,
        network: NetworkConfig | str = NetworkConfig.BASE_SEPOLIA,
        private_key: Optional[str] = None,
        mnemonic: Optional[str] = None,
        wallet_file: Optional[str] = None,
        wallet_password: Optional[str] = None,
        rpc_url: Optional[str] = None,
        enable_payments: bool = True,
        enable_storage: bool = True,
        enable_ap2: bool = True,
        enable_process_integrity: bool = True,
        web3: Optional[Web3] = None,
        storage_backends: Optional[list[StorageBackend]] = None,
        settings: Optional[EnvironmentSettings] = None,
        fee_percentage: float = DEFAULT_FEE_PERCENTAGE,
        treasury_address: Optional[str] = None,
        ap2_key_dir: Optional[str] = None,
        compute_provider: Optional[ComputeProvider] = None,
    ):
        """Initialize the SDK.

        Args:
            agent_name: Agent name
            agent_domain: Domain the agent serves from
            agent_role: server, client or validator
            network: Network identifier (e.g. "base-sepolia")
            private_key: Hex private key
            mnemonic: BIP-39 phrase
            wallet_file: Wallet file or V3 keystore
            wallet_password: Password for an encrypted wallet file
            rpc_url: RPC URL override
            enable_payments: Enable x402 and traditional payments
            enable_storage: Enable evidence storage
            enable_ap2: Enable AP2 mandates
            enable_process_integrity: Enable integrity proofs
            web3: Pre-built Web3 instance (skips provider construction)
            storage_backends: Explicit storage backends, in preference order
            settings: Environment settings (read from the environment by default)
            fee_percentage: Protocol fee for x402 payments
            treasury_address: Protocol fee recipient
            ap2_key_dir: Directory to persist the AP2 RSA key in
            compute_provider: TEE compute provider for integrity proofs

        Raises:
            NetworkError: If the network is not supported
            ConfigurationError: If the wallet cannot be loaded
        """
        self.agent_name = agent_name
        self.agent_domain = agent_domain
        self.agent_role = AgentRole(agent_role)
        self.settings = settings or EnvironmentSettings()
        self.network_info = get_network_info(network, self.settings)
        self.network = self.network_info.network.value
        if rpc_url:
            self.network_info = self.network_info.model_copy(update={"rpc_url": rpc_url})

        self.web3 = web3 or Web3(Web3.HTTPProvider(self.network_info.rpc_url))
        self.wallet = WalletManager(
            private_key=private_key,
            mnemonic=mnemonic,
            wallet_file=wallet_file,
            password=wallet_password,
            web3=self.web3,
        )

        self.storage: Optional[AutoStorageManager] = None
        if enable_storage:
            self.storage = AutoStorageManager(backends=storage_backends, settings=self.settings)
        self.context = SDKContext(storage=self.storage)

        self.agent = ChaosAgent(self.web3, self.network_info, self.wallet)

        self.x402_payment_manager: Optional[X402PaymentManager] = None
        self.payment_manager: Optional[PaymentManager] = None
        self.a2a_extension: Optional[A2AX402Extension] = None
        if enable_payments:
            self.x402_payment_manager = X402PaymentManager(
                self.web3,
                self.wallet,
                self.network_info,
                context=self.context,
                fee_percentage=fee_percentage,
                treasury_address=treasury_address,
            )
            self.payment_manager = PaymentManager(
                agent_name,
                self.network,
                self.wallet,
                credentials=PaymentMethodCredentials.from_settings(self.settings),
                x402_manager=self.x402_payment_manager,
            )
            self.a2a_extension = A2AX402Extension(agent_name, self.network, self.payment_manager)

        self.google_ap2: Optional[GoogleAP2Integration] = None
        if enable_ap2:
            self.google_ap2 = GoogleAP2Integration(
                agent_name,
                merchant_private_key=self.settings.google_ap2_merchant_private_key,
                key_dir=ap2_key_dir,
            )

        self.process_integrity: Optional[ProcessIntegrity] = None
        if enable_process_integrity:
            self.process_integrity = ProcessIntegrity(
                agent_name, storage=self.storage, compute_provider=compute_provider
            )

        logger.info(f"ChaosChain SDK ready: {agent_name} ({self.agent_role.value}) on {self.network}")

    @classmethod
    def from_config(cls, config: SDKConfig | str | Path, **kwargs) -> "ChaosChainSDK":
        """Build an SDK from an SDKConfig or a YAML file.

        Extra keyword arguments (``web3``, ``storage_backends``, ``settings``,
        ``compute_provider``) are passed through.
        """
        if not isinstance(config, SDKConfig):
            config = SDKConfig.from_yaml(config)
        return cls(
            agent_name=config.agent_name,
            agent_domain=config.agent_domain,
            agent_role=config.agent_role,
            network=config.network,
            private_key=config.private_key,
            mnemonic=config.mnemonic,
            wallet_file=config.wallet_file,
            wallet_password=config.wallet_password,
            rpc_url=config.rpc_url,
            enable_payments=config.enable_payments,
            enable_storage=config.enable_storage,
            enable_ap2=config.enable_ap2,
            enable_process_integrity=config.enable_process_integrity,
            fee_percentage=config.fee_percentage,
            treasury_address=config.treasury_address,
            ap2_key_dir=config.ap2_key_dir,
            **kwargs,
        )

    @staticmethod
    def _require(component: Any, feature: str) -> Any:
        if component is None:
            raise ConfigurationError(f"{feature} not enabled")
        return component

    @property
    def _x402(self) -> X402PaymentManager:
        return self._require(self.x402_payment_manager, "Payments")

    @property
    def _storage(self) -> AutoStorageManager:
        return self._require(self.storage, "Storage")

    @property
    def _integrity(self) -> ProcessIntegrity:
        return self._require(self.process_integrity, "Process integrity")

    @property
    def _ap2(self) -> GoogleAP2Integration:
        return self._require(self.google_ap2, "AP2")

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def _default_metadata(self) -> AgentMetadata:
        return AgentMetadata(
            name=self.agent_name,
            domain=self.agent_domain,
            role=self.agent_role,
            supported_trust=["reputation", "validation"],
        )

    def register_identity(
        self, metadata: Optional[AgentMetadata] = None, token_uri: Optional[str] = None
    ) -> AgentRegistration:
        """Register this agent; the document defaults to name, domain and role."""
        return self.agent.register_identity(
            metadata=metadata or self._default_metadata(), token_uri=token_uri
        )

    def get_agent_metadata(self, agent_id: int) -> Optional[AgentMetadata]:
        return self.agent.get_agent_metadata(agent_id)

    def update_agent_metadata(self, agent_id: int, metadata: AgentMetadata) -> str:
        return self.agent.update_agent_metadata(agent_id, metadata)

    def get_agent_id(self) -> Optional[int]:
        """Id assigned by the last successful registration."""
        return self.agent.agent_id

    # ------------------------------------------------------------------
    # Reputation
    # ------------------------------------------------------------------

    def generate_feedback_authorization(
        self,
        agent_id: int,
        client_address: str,
        index_limit: int,
        expiry: Optional[int] = None,
    ) -> str:
        return self.agent.generate_feedback_authorization(
            agent_id, client_address, index_limit, expiry
        )

    def give_feedback(
        self,
        agent_id: int,
        score: int,
        feedback_auth: str | bytes,
        tag1: Optional[str | bytes] = None,
        tag2: Optional[str | bytes] = None,
        feedback_uri: str = "",
        feedback_hash: Optional[str | bytes] = None,
    ) -> str:
        return self.agent.give_feedback(
            agent_id, score, feedback_auth, tag1, tag2, feedback_uri, feedback_hash
        )

    def submit_feedback_with_payment(
        self,
        agent_id: int,
        score: int,
        feedback_auth: str | bytes,
        feedback_data: dict[str, Any],
        payment_proof: PaymentProof | dict[str, Any],
    ) -> dict[str, str]:
        """Store feedback together with its payment proof, then rate the agent.

        The stored document's keccak256 is submitted as the feedback hash.

        Returns:
            Dict with ``feedback_tx_hash`` and ``feedback_uri``
        """
        if isinstance(payment_proof, PaymentProof):
            payment_proof = payment_proof.model_dump(mode="json")
        document = dict(feedback_data, score=score, proof_of_payment=payment_proof)
        content = json.dumps(document, sort_keys=True, default=str)

        stored = self._storage.put(content, f"feedback_{agent_id}.json", "application/json")
        tx_hash = self.agent.give_feedback(
            agent_id,
            score,
            feedback_auth,
            feedback_uri=stored.url,
            feedback_hash=keccak_hex(content),
        )
        return {"feedback_tx_hash": tx_hash, "feedback_uri": stored.url}

    def get_reputation_score(self, agent_id: int) -> int:
        """Average score across all non-revoked feedback."""
        return self.agent.get_summary(agent_id).average_score

    def read_all_feedback(
        self,
        agent_id: int,
        client_addresses: Optional[list[str]] = None,
        tag1: Optional[str | bytes] = None,
        tag2: Optional[str | bytes] = None,
        include_revoked: bool = False,
    ) -> list[FeedbackRecord]:
        return self.agent.read_all_feedback(agent_id, client_addresses, tag1, tag2, include_revoked)

    def get_feedback_summary(
        self,
        agent_id: int,
        client_addresses: Optional[list[str]] = None,
        tag1: Optional[str | bytes] = None,
        tag2: Optional[str | bytes] = None,
    ) -> FeedbackSummary:
        return self.agent.get_summary(agent_id, client_addresses, tag1, tag2)

    def get_clients(self, agent_id: int) -> list[str]:
        return self.agent.get_clients(agent_id)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def request_validation(
        self,
        validator_address: str,
        agent_id: int,
        request_uri: str,
        request_hash: Optional[str | bytes] = None,
    ) -> str:
        return self.agent.request_validation(validator_address, agent_id, request_uri, request_hash)

    def respond_to_validation(
        self,
        request_hash: str | bytes,
        response: int,
        response_uri: str = "",
        response_hash: Optional[str | bytes] = None,
        tag: Optional[str | bytes] = None,
    ) -> str:
        return self.agent.respond_to_validation(
            request_hash, response, response_uri, response_hash, tag
        )

    def get_validation_status(self, request_hash: str | bytes) -> ValidationStatus:
        return self.agent.get_validation_status(request_hash)

    def get_validation_summary(
        self,
        agent_id: int,
        validator_addresses: Optional[list[str]] = None,
        tag: Optional[str | bytes] = None,
    ) -> ValidationSummary:
        return self.agent.get_validation_summary(agent_id, validator_addresses, tag)

    def get_validation_stats(self, agent_id: int) -> dict[str, int]:
        """Request and response counts for an agent's validations."""
        total = len(self.agent.get_agent_validations(agent_id))
        summary = self.agent.get_validation_summary(agent_id)
        return {
            "total_requests": total,
            "responded": summary.count,
            "pending": total - summary.count,
            "average_response": summary.average_response,
        }

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def calculate_total_cost(self, amount: AmountLike, currency: str = "USDC") -> CostBreakdown:
        return self._x402.calculate_total_cost(amount, currency)

    def create_x402_payment_request(
        self,
        from_agent: str,
        to_agent: str,
        amount: AmountLike,
        currency: str = "USDC",
        service_description: str = "AI Agent Service",
    ) -> X402PaymentRequest:
        return self._x402.create_payment_request(
            from_agent, to_agent, amount, currency, service_description
        )

    def execute_x402_payment(
        self, payment_request: X402PaymentRequest, recipient_address: str
    ) -> PaymentProof:
        return self._x402.execute_payment(payment_request, recipient_address)

    def create_x402_payment_requirements(
        self,
        amount: AmountLike,
        currency: str = "USDC",
        description: Optional[str] = None,
    ) -> PaymentRequirementsResponse:
        return self._x402.create_payment_requirements(amount, currency, description)

    def create_receipt(self, payment: PaymentProof) -> PaymentReceipt:
        return self._x402.create_receipt(payment)

    def verify_receipt(self, receipt: PaymentReceipt) -> bool:
        return self._x402.verify_receipt(receipt)

    def get_x402_payment_history(self, limit: Optional[int] = None) -> list[PaymentProof]:
        return self._x402.get_payment_history(limit)

    def get_eth_balance(self) -> str:
        return self._x402.get_eth_balance()

    def get_usdc_balance(self) -> str:
        return self._x402.get_usdc_balance()

    def create_x402_paywall_server(
        self, port: int = 8402, host: str = "0.0.0.0", default_currency: str = "USDC"
    ) -> X402Server:
        """Paywall server receiving payments into this wallet."""
        return X402Server(
            self._x402, self.context, host=host, port=port, default_currency=default_currency
        )

    def execute_traditional_payment(
        self,
        method: PaymentMethod | str,
        amount: AmountLike,
        currency: str = "USD",
        payment_data: Optional[dict[str, Any]] = None,
    ) -> PaymentResult:
        manager = self._require(self.payment_manager, "Payments")
        return manager.execute_traditional_payment(method, amount, currency, payment_data)

    def get_supported_payment_methods(self) -> list[str]:
        return self._require(self.payment_manager, "Payments").get_supported_payment_methods()

    def get_payment_methods_status(self) -> dict[str, bool]:
        return self._require(self.payment_manager, "Payments").get_payment_methods_status()

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def upload(
        self,
        data: Any,
        filename: str = "data.json",
        mime_type: str = "application/json",
    ) -> StorageResult:
        """Store data; anything but bytes and str is serialized as JSON."""
        if not isinstance(data, (bytes, str)):
            data = json.dumps(data, default=str)
        return self._storage.put(data, filename, mime_type)

    def download(self, cid: str) -> Any:
        """Fetch content, parsed as JSON when it is JSON."""
        raw = self._storage.get(cid)
        try:
            return json.loads(raw)
        except ValueError:
            return raw.decode("utf-8", errors="replace")

    def store_evidence(self, evidence: dict[str, Any], filename: Optional[str] = None) -> str:
        """Store an evidence document and return its content id."""
        result = self._storage.put_json(evidence, filename or f"evidence_{self.agent_name}.json")
        logger.info(f"Stored evidence {result.cid} via {result.provider}")
        return result.cid

    # ------------------------------------------------------------------
    # Process integrity
    # ------------------------------------------------------------------

    def register_integrity_function(self, func: Callable, name: Optional[str] = None) -> str:
        return self._integrity.register_function(func, name)

    def execute_with_integrity_proof(
        self,
        function_name: str,
        inputs: dict[str, Any],
        require_proof: bool = True,
        use_tee: bool = True,
    ) -> tuple[Any, Optional[IntegrityProof]]:
        return self._integrity.execute_with_proof(function_name, inputs, require_proof, use_tee)

    def verify_integrity_proof(
        self,
        proof: IntegrityProof,
        inputs: Optional[dict[str, Any]] = None,
        result: Any = None,
    ) -> bool:
        return self._integrity.verify_proof(proof, inputs, result)

    # ------------------------------------------------------------------
    # AP2
    # ------------------------------------------------------------------

    def create_intent_mandate(
        self,
        user_description: str,
        merchants: Optional[list[str]] = None,
        skus: Optional[list[str]] = None,
        requires_refundability: bool = False,
        expiry_minutes: int = 60,
    ) -> IntentMandate:
        return self._ap2.create_intent_mandate(
            user_description, merchants, skus, requires_refundability, expiry_minutes
        )

    def create_cart_mandate(
        self,
        cart_id: str,
        items: list[CartItem | dict[str, Any]],
        total_amount: float,
        currency: str = "USD",
        merchant_name: Optional[str] = None,
        expiry_minutes: int = 15,
    ) -> CartMandate:
        return self._ap2.create_cart_mandate(
            cart_id, items, total_amount, currency, merchant_name, expiry_minutes
        )

    def verify_jwt_token(self, token: str) -> dict[str, Any]:
        return self._ap2.verify_jwt_token(token)

    # ------------------------------------------------------------------
    # Wallet and network
    # ------------------------------------------------------------------

    def get_address(self) -> str:
        return self.wallet.address

    def get_network_info(self) -> NetworkInfo:
        return self.network_info

    def get_balance(self) -> str:
        """Native balance as a decimal string."""
        return format_units(
            self.wallet.get_balance(), self.network_info.native_currency.decimals
        )

    def sign_message(self, message: str | bytes) -> str:
        return self.wallet.sign_message(message)

    def get_capabilities(self) -> dict[str, Any]:
        """Summary of what this SDK instance can do."""
        return {
            "agent_name": self.agent_name,
            "agent_domain": self.agent_domain,
            "agent_role": self.agent_role.value,
            "network": self.network,
            "chain_id": self.network_info.chain_id,
            "wallet_address": self.wallet.address,
            "agent_id": self.agent.agent_id,
            "features": {
                "erc_8004_identity": True,
                "erc_8004_reputation": True,
                "erc_8004_validation": True,
                "x402_crypto_payments": self.x402_payment_manager is not None,
                "traditional_payments": self.payment_manager is not None,
                "google_ap2_intents": self.google_ap2 is not None,
                "process_integrity": self.process_integrity is not None,
                "storage": self.storage is not None,
            },
            "supported_payment_methods": (
                self.payment_manager.get_supported_payment_methods()
                if self.payment_manager
                else []
            ),
            "version": __version__,
        }

    @staticmethod
    def get_version() -> str:
        return __version__

    @staticmethod
    def get_supported_networks() -> list[str]:
        return get_supported_networks()
