"""Core data models for chaoschain-sdk."""

import time
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AgentRole(str, Enum):
    """Role an agent plays in a workflow."""

    SERVER = "server"
    CLIENT = "client"
    VALIDATOR = "validator"


class PaymentStatus(str, Enum):
    """On-chain status of a settled leg."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class SettlementStatus(str, Enum):
    """Outcome of a two-leg settlement."""

    COMPLETE = "complete"
    PARTIAL = "partial"


def _now_ms() -> int:
    return int(time.time() * 1000)


# Identity
class AgentMetadata(BaseModel):
    """Off-chain registration document referenced by an agent's token URI."""

    name: str = Field(description="Agent name")
    domain: str = Field(description="Domain the agent serves from")
    role: AgentRole = Field(default=AgentRole.SERVER, description="Agent role")
    description: Optional[str] = Field(default=None)
    capabilities: list[str] = Field(default_factory=list)
    supported_trust: list[str] = Field(
        default_factory=list,
        alias="supportedTrust",
        description="Trust models the agent supports (reputation, validation, ...)",
    )
    image: Optional[str] = Field(default=None, description="Avatar URL")

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with wire (camelCase) keys, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AgentRegistration(BaseModel):
    """Result of minting an agent identity."""

    agent_id: int = Field(description="Token id assigned by the identity registry")
    owner: str = Field(description="Owner address")
    token_uri: str = Field(default="", description="Registration document URI")
    transaction_hash: str = Field(description="Registration transaction hash")


class AgentIdentity(BaseModel):
    """An agent as currently recorded on-chain."""

    agent_id: int
    owner: str
    token_uri: str = ""
    metadata: Optional[AgentMetadata] = None


# Reputation and validation
class FeedbackRecord(BaseModel):
    """One feedback entry read from the reputation registry."""

    agent_id: int
    client_address: str
    feedback_index: Optional[int] = Field(default=None, description="1-based index per client")
    score: int = Field(ge=0, le=100)
    tag1: str = Field(default="0x" + "00" * 32)
    tag2: str = Field(default="0x" + "00" * 32)
    is_revoked: bool = False


class FeedbackSummary(BaseModel):
    """Aggregate reputation over a set of clients and tags."""

    agent_id: int
    count: int
    average_score: int


class ValidationStatus(BaseModel):
    """State of one validation request."""

    request_hash: str
    validator_address: str
    agent_id: int
    response: int = Field(description="0-100; 0 until the validator responds")
    response_hash: str
    tag: str
    last_update: int = Field(description="Block timestamp of the last change")


class ValidationSummary(BaseModel):
    """Aggregate validation responses for an agent."""

    agent_id: int
    count: int
    average_response: int


# Payments
class CostBreakdown(BaseModel):
    """Client-side cost estimate: amount plus protocol fee."""

    amount: str
    fee: str
    total: str
    currency: str


class X402PaymentRequest(BaseModel):
    """A payment the caller intends to settle."""

    payment_id: str = Field(description="Unique payment id (x402_...)")
    from_agent: str = Field(description="Payer agent name or address")
    to_agent: str = Field(description="Payee agent name or address")
    amount: str = Field(description="Amount paid to the payee")
    currency: str
    protocol_fee: str = Field(description="Fee paid to the treasury on top of amount")
    network: str
    service_description: str = ""
    created_at: int = Field(default_factory=_now_ms, description="Unix ms")
    expires_at: int = Field(description="Unix ms after which the request is stale")

    model_config = {"frozen": True}

    def is_expired(self, now_ms: Optional[int] = None) -> bool:
        return (now_ms if now_ms is not None else _now_ms()) > self.expires_at


class PaymentProof(BaseModel):
    """Evidence that a payment request was settled on-chain."""

    payment_id: str
    main_transaction_hash: str
    fee_transaction_hash: Optional[str] = None
    from_address: str
    to_address: str
    treasury_address: str
    amount: str
    currency: str
    protocol_fee: str
    network: str
    chain_id: int
    block_number: Optional[int] = None
    timestamp: int = Field(default_factory=_now_ms, description="Unix ms")
    status: PaymentStatus = PaymentStatus.CONFIRMED
    settlement_status: SettlementStatus = SettlementStatus.COMPLETE
    fee_error: Optional[str] = Field(
        default=None, description="Why the fee leg failed, for partial settlements"
    )

    @property
    def is_partial(self) -> bool:
        return self.settlement_status == SettlementStatus.PARTIAL


class X402Payment(BaseModel):
    """Payment record receipts are built from."""

    from_address: str
    to_address: str
    amount: str
    currency: str
    timestamp: int = Field(default_factory=_now_ms, description="Unix ms")
    tx_hash: str
    fee_amount: Optional[str] = None
    fee_tx_hash: Optional[str] = None

    @classmethod
    def from_proof(cls, proof: PaymentProof) -> "X402Payment":
        """Build a receipt-ready record from a settlement proof."""
        return cls(
            from_address=proof.from_address,
            to_address=proof.to_address,
            amount=proof.amount,
            currency=proof.currency,
            timestamp=proof.timestamp,
            tx_hash=proof.main_transaction_hash,
            fee_amount=proof.protocol_fee,
            fee_tx_hash=proof.fee_transaction_hash,
        )


class PaymentReceipt(BaseModel):
    """Signed, content-addressed receipt for a payment."""

    payment_id: str = Field(description="keccak256 of the canonical payment record")
    from_address: str
    to_address: str
    amount: str
    currency: str
    timestamp: int
    tx_hash: str
    signature: str = Field(default="", description="EIP-191 signature by the payer")


class PaymentRequired(BaseModel):
    """``paymentRequired`` object of the 402 envelope."""

    protocol: str = "x402"
    version: str = "1.0"
    amount: str
    currency: str
    recipient: str
    description: str
    network: str
    methods: list[str] = Field(default_factory=lambda: ["crypto"])


class PaymentRequirementsResponse(BaseModel):
    """An HTTP 402 response ready to be returned by any web framework."""

    status_code: int = 402
    headers: dict[str, str] = Field(
        default_factory=lambda: {
            "Content-Type": "application/json",
            "X-Payment-Required": "x402",
        }
    )
    body: dict[str, Any]

    @property
    def payment_required(self) -> PaymentRequired:
        return PaymentRequired(**self.body["paymentRequired"])


class PaymentResult(BaseModel):
    """Outcome of a traditional (non-crypto) payment."""

    payment_id: str
    method: str
    amount: str
    currency: str
    status: str
    transaction_id: Optional[str] = None
    simulated: bool = False
    processor_response: dict[str, Any] = Field(default_factory=dict)
    timestamp: int = Field(default_factory=_now_ms)


# Storage
class StorageResult(BaseModel):
    """Upload result from a storage backend."""

    cid: str = Field(description="Content identifier")
    url: str = Field(description="Retrieval URL (ipfs://, ar:// or gateway)")
    size: Optional[int] = Field(default=None, description="Size in bytes")
    provider: str = Field(description="Backend name")


# Process integrity
class IntegrityProof(BaseModel):
    """Proof that a registered function produced a result."""

    proof_id: str
    function_name: str
    code_hash: str
    execution_hash: str
    timestamp: int = Field(default_factory=_now_ms)
    agent_name: str
    verification_status: str = "verified"
    ipfs_cid: Optional[str] = None
    tee_attestation: Optional[dict[str, Any]] = None
    tee_provider: Optional[str] = None
    tee_job_id: Optional[str] = None


class PolicyConditions(BaseModel):
    """Conditions under which an insurance policy pays out."""

    max_execution_seconds: Optional[float] = Field(default=None, gt=0)
    min_success_rate: Optional[float] = Field(default=None, ge=0, le=1)
    requires_integrity_proof: bool = True
    requires_tee: bool = False

    model_config = ConfigDict(extra="forbid")


class InsurancePolicy(BaseModel):
    """Coverage bound to a registered function."""

    policy_id: str
    function_name: str
    agent_name: str
    coverage_amount: str
    currency: str = "USDC"
    premium: str
    conditions: PolicyConditions
    created_at: int = Field(default_factory=_now_ms)
    status: str = "active"


class AgentConstraints(BaseModel):
    """Limits applied to an autonomously operating agent."""

    max_payment_amount: Optional[str] = None
    allowed_currencies: list[str] = Field(default_factory=lambda: ["USDC"])
    max_daily_transactions: Optional[int] = Field(default=None, gt=0)
    require_integrity_proofs: bool = True
    allowed_networks: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class AutonomousAgentConfig(BaseModel):
    """Configuration for an agent acting without a human in the loop."""

    agent_name: str
    capabilities: list[str]
    constraints: AgentConstraints
    registered_functions: list[str] = Field(default_factory=list)
    created_at: int = Field(default_factory=_now_ms)

    @field_validator("capabilities")
    @classmethod
    def non_empty_capabilities(cls, v: list[str]) -> list[str]:
        """Require at least one capability."""
        if not v:
            raise ValueError("at least one capability is required")
        return v


# AP2
class IntentMandate(BaseModel):
    """A user's natural-language purchase intent."""

    user_cart_confirmation_required: bool = True
    natural_language_description: str
    merchants: Optional[list[str]] = None
    skus: Optional[list[str]] = None
    requires_refundability: bool = False
    intent_expiry: str = Field(description="ISO-8601 expiry")

    model_config = ConfigDict(extra="forbid")


class CartItem(BaseModel):
    """A line item in a cart mandate."""

    name: str
    price: float = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    sku: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class CartMandate(BaseModel):
    """A merchant-signed cart, authorized by an RS256 JWT."""

    cart_id: str
    items: list[CartItem]
    total_amount: float
    currency: str
    merchant_name: str
    cart_expiry: str
    payment_request: dict[str, Any] = Field(
        default_factory=dict, description="W3C PaymentRequest for the cart"
    )
    merchant_authorization: str = Field(description="RS256 JWT over the cart")
    created_at: int = Field(default_factory=_now_ms)
