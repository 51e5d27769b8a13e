"""ERC-8004 identity, reputation and validation registry client."""

import json
import logging
import time
from typing import Any, Optional
from urllib.parse import unquote

import httpx
from web3 import Web3
from web3.logs import DISCARD

from ..core.crypto import keccak_hex, to_bytes32
from ..core.errors import (
    AgentRegistrationError,
    ConfigurationError,
    ContractError,
    ValidationError,
)
from ..core.models import (
    AgentIdentity,
    AgentMetadata,
    AgentRegistration,
    FeedbackRecord,
    FeedbackSummary,
    ValidationStatus,
    ValidationSummary,
)
from ..core.networks import NetworkInfo
from ..wallet.manager import WalletManager
from ..wallet.transactions import send_transaction
from .abis import (
    IDENTITY_REGISTRY_ABI,
    REGISTRY_EVENTS,
    REPUTATION_REGISTRY_ABI,
    VALIDATION_REGISTRY_ABI,
)
from .events import EventCallback, EventSubscription
from .feedback import build_feedback_authorization

logger = logging.getLogger(__name__)

DATA_URI_PREFIX = "data:application/json,"
DEFAULT_IPFS_GATEWAY = "https://ipfs.io/ipfs"
DEFAULT_AUTH_TTL_SECONDS = 3600


def _score(value: int, what: str) -> int:
    if not 0 <= value <= 100:
        raise ValidationError(f"{what} must be between 0 and 100, got {value}")
    return value


class ChaosAgent:
    """Client for the three ERC-8004 registries of one network.

    Read operations work without a wallet; write operations sign with
    the configured wallet and wait for one confirmation.
    """

    def __init__(
        self,
        web3: Web3,
        network_info: NetworkInfo,
        wallet: Optional[WalletManager] = None,
        http_client: Optional[httpx.Client] = None,
        ipfs_gateway: str = DEFAULT_IPFS_GATEWAY,
    ):
        """Initialize registry client.

        Args:
            web3: Web3 instance connected to the network
            network_info: Network addresses and chain id
            wallet: Wallet used for write operations
            http_client: Client for fetching off-chain metadata
            ipfs_gateway: Gateway used to resolve ipfs:// token URIs
        """
        self.web3 = web3
        self.network_info = network_info
        self.wallet = wallet
        self.http = http_client or httpx.Client(timeout=30.0, follow_redirects=True)
        self.ipfs_gateway = ipfs_gateway.rstrip("/")
        self.agent_id: Optional[int] = None

        contracts = network_info.contracts
        self.identity_registry = self.web3.eth.contract(
            address=Web3.to_checksum_address(contracts.identity), abi=IDENTITY_REGISTRY_ABI
        )
        self.reputation_registry = self.web3.eth.contract(
            address=Web3.to_checksum_address(contracts.reputation), abi=REPUTATION_REGISTRY_ABI
        )
        self.validation_registry = self.web3.eth.contract(
            address=Web3.to_checksum_address(contracts.validation), abi=VALIDATION_REGISTRY_ABI
        )

    @property
    def chain_id(self) -> int:
        return self.network_info.chain_id

    def _require_wallet(self, action: str) -> WalletManager:
        if self.wallet is None:
            raise ConfigurationError(f"A wallet is required to {action}")
        return self.wallet

    def _transact(self, function: Any, action: str, error_cls=ContractError) -> dict[str, Any]:
        wallet = self._require_wallet(action)
        return send_transaction(
            self.web3, wallet, self.chain_id, action, function=function, error_cls=error_cls
        )

    def _call(self, function: Any, action: str) -> Any:
        try:
            return function.call()
        except Exception as e:
            raise ContractError(f"Failed to {action}: {e}")

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def register_identity(
        self,
        metadata: Optional[AgentMetadata] = None,
        token_uri: Optional[str] = None,
        extra_metadata: Optional[dict[str, bytes]] = None,
    ) -> AgentRegistration:
        """Mint a new agent identity.

        Args:
            metadata: Registration document, embedded as a data: URI
            token_uri: Explicit URI (e.g. ipfs://...), takes precedence over metadata
            extra_metadata: On-chain key/value metadata set at mint time

        Returns:
            AgentRegistration with the new agent id

        Raises:
            AgentRegistrationError: If the transaction fails
            ContractError: If the receipt has no Registered event
        """
        uri = token_uri or (self._data_uri(metadata) if metadata else "")
        functions = self.identity_registry.functions
        if extra_metadata:
            entries = [(key, bytes(value)) for key, value in extra_metadata.items()]
            function = functions.register(uri, entries)
        elif uri:
            function = functions.register(uri)
        else:
            function = functions.register()

        receipt = self._transact(function, "register agent", AgentRegistrationError)
        events = self.identity_registry.events.Registered().process_receipt(
            receipt, errors=DISCARD
        )
        if not events:
            raise ContractError(
                "Registered event not found in receipt",
                {"transaction_hash": Web3.to_hex(receipt["transactionHash"])},
            )

        args = events[0]["args"]
        self.agent_id = int(args["agentId"])
        logger.info(f"Registered agent #{self.agent_id} owned by {args['owner']}")
        return AgentRegistration(
            agent_id=self.agent_id,
            owner=args["owner"],
            token_uri=uri,
            transaction_hash=Web3.to_hex(receipt["transactionHash"]),
        )

    @staticmethod
    def _data_uri(metadata: AgentMetadata) -> str:
        return DATA_URI_PREFIX + json.dumps(metadata.to_json_dict(), separators=(",", ":"))

    def get_agent_uri(self, agent_id: int) -> str:
        return self._call(self.identity_registry.functions.tokenURI(agent_id), "read token URI")

    def get_agent_metadata(self, agent_id: int) -> Optional[AgentMetadata]:
        """Resolve and parse an agent's registration document.

        Supports data:, ipfs:// and http(s) URIs.

        Args:
            agent_id: Agent id

        Returns:
            AgentMetadata, or None if the URI is empty, unreachable or not a
            valid registration document
        """
        try:
            uri = self.get_agent_uri(agent_id)
            if not uri:
                return None

            if uri.startswith(DATA_URI_PREFIX):
                payload = uri[len(DATA_URI_PREFIX) :]
                try:
                    data = json.loads(payload)
                except json.JSONDecodeError:
                    data = json.loads(unquote(payload))
            else:
                if uri.startswith("ipfs://"):
                    uri = f"{self.ipfs_gateway}/{uri[len('ipfs://'):]}"
                response = self.http.get(uri)
                response.raise_for_status()
                data = response.json()

            return AgentMetadata.model_validate(data)

        except Exception as e:
            logger.warning(f"Could not load metadata for agent #{agent_id}: {e}")
            return None

    def get_agent_identity(self, agent_id: int) -> AgentIdentity:
        """Owner, URI and parsed metadata of an agent."""
        return AgentIdentity(
            agent_id=agent_id,
            owner=self.get_agent_owner(agent_id),
            token_uri=self.get_agent_uri(agent_id),
            metadata=self.get_agent_metadata(agent_id),
        )

    def set_agent_uri(self, agent_id: int, uri: str) -> str:
        """Point an agent at a new registration document.

        Returns:
            Transaction hash
        """
        receipt = self._transact(
            self.identity_registry.functions.setAgentUri(agent_id, uri), "set agent URI"
        )
        return Web3.to_hex(receipt["transactionHash"])

    def update_agent_metadata(self, agent_id: int, metadata: AgentMetadata) -> str:
        """Replace the registration document with an embedded data: URI."""
        return self.set_agent_uri(agent_id, self._data_uri(metadata))

    def set_metadata(self, agent_id: int, key: str, value: bytes | str) -> str:
        """Set one on-chain metadata entry.

        Returns:
            Transaction hash
        """
        if isinstance(value, str):
            value = value.encode("utf-8")
        receipt = self._transact(
            self.identity_registry.functions.setMetadata(agent_id, key, value), "set metadata"
        )
        return Web3.to_hex(receipt["transactionHash"])

    def get_metadata(self, agent_id: int, key: str) -> bytes:
        """Read one on-chain metadata entry (empty bytes when unset)."""
        return bytes(
            self._call(self.identity_registry.functions.getMetadata(agent_id, key), "read metadata")
        )

    def get_agent_owner(self, agent_id: int) -> str:
        return self._call(self.identity_registry.functions.ownerOf(agent_id), "read agent owner")

    def agent_exists(self, agent_id: int) -> bool:
        try:
            self.get_agent_owner(agent_id)
            return True
        except ContractError:
            return False

    def get_total_agents(self) -> int:
        return self._call(self.identity_registry.functions.totalAgents(), "read total agents")

    def transfer_agent(self, agent_id: int, to: str) -> str:
        """Transfer an agent to a new owner.

        Returns:
            Transaction hash
        """
        wallet = self._require_wallet("transfer agent")
        receipt = self._transact(
            self.identity_registry.functions.transferFrom(
                wallet.address, Web3.to_checksum_address(to), agent_id
            ),
            "transfer agent",
        )
        return Web3.to_hex(receipt["transactionHash"])

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
        """Sign an authorization letting a client leave feedback for an agent.

        Args:
            agent_id: Agent receiving feedback (the wallet must own it)
            client_address: Client allowed to give feedback
            index_limit: Highest feedback index the client may reach
            expiry: Unix seconds; defaults to one hour from now

        Returns:
            0x-hex authorization blob (289 bytes)
        """
        wallet = self._require_wallet("sign feedback authorization")
        if expiry is None:
            expiry = int(time.time()) + DEFAULT_AUTH_TTL_SECONDS
        try:
            return build_feedback_authorization(
                wallet,
                agent_id=agent_id,
                client_address=client_address,
                index_limit=index_limit,
                expiry=expiry,
                chain_id=self.chain_id,
                identity_registry=self.network_info.contracts.identity,
            )
        except ValidationError:
            raise
        except Exception as e:
            raise ValidationError(f"Failed to generate feedback authorization: {e}")

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
        """Submit feedback for an agent.

        Args:
            agent_id: Agent being rated
            score: 0-100
            feedback_auth: Authorization blob from the agent owner
            tag1: Optional bytes32 tag (hex or short text)
            tag2: Optional bytes32 tag
            feedback_uri: URI of an off-chain feedback document
            feedback_hash: bytes32 hash of that document

        Returns:
            Transaction hash
        """
        _score(score, "Score")
        if isinstance(feedback_auth, str):
            feedback_auth = Web3.to_bytes(hexstr=feedback_auth)
        function = self.reputation_registry.functions.giveFeedback(
            agent_id,
            score,
            to_bytes32(tag1),
            to_bytes32(tag2),
            feedback_uri,
            to_bytes32(feedback_hash),
            feedback_auth,
        )
        receipt = self._transact(function, "give feedback")
        return Web3.to_hex(receipt["transactionHash"])

    def revoke_feedback(self, agent_id: int, feedback_index: int) -> str:
        receipt = self._transact(
            self.reputation_registry.functions.revokeFeedback(agent_id, feedback_index),
            "revoke feedback",
        )
        return Web3.to_hex(receipt["transactionHash"])

    def append_response(
        self,
        agent_id: int,
        client_address: str,
        feedback_index: int,
        response_uri: str,
        response_hash: Optional[str | bytes] = None,
    ) -> str:
        """Attach a response to an existing feedback entry."""
        receipt = self._transact(
            self.reputation_registry.functions.appendResponse(
                agent_id,
                Web3.to_checksum_address(client_address),
                feedback_index,
                response_uri,
                to_bytes32(response_hash),
            ),
            "append response",
        )
        return Web3.to_hex(receipt["transactionHash"])

    def read_feedback(self, agent_id: int, client_address: str, index: int) -> FeedbackRecord:
        client = Web3.to_checksum_address(client_address)
        score, tag1, tag2, revoked = self._call(
            self.reputation_registry.functions.readFeedback(agent_id, client, index),
            "read feedback",
        )
        return FeedbackRecord(
            agent_id=agent_id,
            client_address=client,
            feedback_index=index,
            score=score,
            tag1=Web3.to_hex(tag1),
            tag2=Web3.to_hex(tag2),
            is_revoked=revoked,
        )

    def read_all_feedback(
        self,
        agent_id: int,
        client_addresses: Optional[list[str]] = None,
        tag1: Optional[str | bytes] = None,
        tag2: Optional[str | bytes] = None,
        include_revoked: bool = False,
    ) -> list[FeedbackRecord]:
        """Read every feedback entry matching the filters."""
        clients = [Web3.to_checksum_address(c) for c in client_addresses or []]
        result = self._call(
            self.reputation_registry.functions.readAllFeedback(
                agent_id, clients, to_bytes32(tag1), to_bytes32(tag2), include_revoked
            ),
            "read all feedback",
        )
        return [
            FeedbackRecord(
                agent_id=agent_id,
                client_address=client,
                score=score,
                tag1=Web3.to_hex(t1),
                tag2=Web3.to_hex(t2),
                is_revoked=revoked,
            )
            for client, score, t1, t2, revoked in zip(*result)
        ]

    def get_summary(
        self,
        agent_id: int,
        client_addresses: Optional[list[str]] = None,
        tag1: Optional[str | bytes] = None,
        tag2: Optional[str | bytes] = None,
    ) -> FeedbackSummary:
        """Count and average score of non-revoked feedback."""
        clients = [Web3.to_checksum_address(c) for c in client_addresses or []]
        count, average = self._call(
            self.reputation_registry.functions.getSummary(
                agent_id, clients, to_bytes32(tag1), to_bytes32(tag2)
            ),
            "read feedback summary",
        )
        return FeedbackSummary(agent_id=agent_id, count=count, average_score=average)

    def get_clients(self, agent_id: int) -> list[str]:
        return list(self._call(self.reputation_registry.functions.getClients(agent_id), "read clients"))

    def get_last_index(self, agent_id: int, client_address: str) -> int:
        return self._call(
            self.reputation_registry.functions.getLastIndex(
                agent_id, Web3.to_checksum_address(client_address)
            ),
            "read last feedback index",
        )

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
        """Ask a validator to validate work referenced by ``request_uri``.

        Args:
            validator_address: Validator allowed to respond
            agent_id: Agent whose work is validated (the wallet must own it)
            request_uri: URI of the evidence
            request_hash: bytes32 identifying the request; defaults to
                keccak256(request_uri)

        Returns:
            Transaction hash
        """
        if request_hash is None:
            request_hash = keccak_hex(request_uri)
        receipt = self._transact(
            self.validation_registry.functions.validationRequest(
                Web3.to_checksum_address(validator_address),
                agent_id,
                request_uri,
                to_bytes32(request_hash),
            ),
            "request validation",
        )
        return Web3.to_hex(receipt["transactionHash"])

    def respond_to_validation(
        self,
        request_hash: str | bytes,
        response: int,
        response_uri: str = "",
        response_hash: Optional[str | bytes] = None,
        tag: Optional[str | bytes] = None,
    ) -> str:
        """Record a validator's 0-100 response to a request."""
        _score(response, "Validation response")
        receipt = self._transact(
            self.validation_registry.functions.validationResponse(
                to_bytes32(request_hash),
                response,
                response_uri,
                to_bytes32(response_hash),
                to_bytes32(tag),
            ),
            "respond to validation",
        )
        return Web3.to_hex(receipt["transactionHash"])

    def get_validation_status(self, request_hash: str | bytes) -> ValidationStatus:
        key = to_bytes32(request_hash)
        validator, agent_id, response, response_hash, tag, last_update = self._call(
            self.validation_registry.functions.getValidationStatus(key),
            "read validation status",
        )
        return ValidationStatus(
            request_hash=Web3.to_hex(key),
            validator_address=validator,
            agent_id=agent_id,
            response=response,
            response_hash=Web3.to_hex(response_hash),
            tag=Web3.to_hex(tag),
            last_update=last_update,
        )

    def get_validation_summary(
        self,
        agent_id: int,
        validator_addresses: Optional[list[str]] = None,
        tag: Optional[str | bytes] = None,
    ) -> ValidationSummary:
        validators = [Web3.to_checksum_address(v) for v in validator_addresses or []]
        count, average = self._call(
            self.validation_registry.functions.getSummary(agent_id, validators, to_bytes32(tag)),
            "read validation summary",
        )
        return ValidationSummary(agent_id=agent_id, count=count, average_response=average)

    def get_agent_validations(self, agent_id: int) -> list[str]:
        hashes = self._call(
            self.validation_registry.functions.getAgentValidations(agent_id),
            "read agent validations",
        )
        return [Web3.to_hex(h) for h in hashes]

    def get_validator_requests(self, validator_address: str) -> list[str]:
        hashes = self._call(
            self.validation_registry.functions.getValidatorRequests(
                Web3.to_checksum_address(validator_address)
            ),
            "read validator requests",
        )
        return [Web3.to_hex(h) for h in hashes]

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _event(self, event_name: str) -> Any:
        contracts = {
            "identity": self.identity_registry,
            "reputation": self.reputation_registry,
            "validation": self.validation_registry,
        }
        for registry, names in REGISTRY_EVENTS.items():
            if event_name in names:
                return getattr(contracts[registry].events, event_name)
        raise ValidationError(f"Unknown registry event: {event_name}")

    def get_events(
        self, event_name: str, from_block: int = 0, to_block: Optional[int] = None
    ) -> list[Any]:
        """Query past logs of a registry event."""
        event = self._event(event_name)
        try:
            return list(event().get_logs(from_block=from_block, to_block=to_block))
        except Exception as e:
            raise ContractError(f"Failed to query {event_name} logs: {e}")

    def subscribe(
        self,
        event_name: str,
        callback: EventCallback,
        from_block: Optional[int] = None,
    ) -> EventSubscription:
        """Follow a registry event; call ``poll()`` on the handle to deliver new logs."""
        return EventSubscription(self.web3, self._event(event_name), callback, from_block)
