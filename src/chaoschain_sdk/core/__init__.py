"""Core functionality for chaoschain-sdk."""

from .amounts import (
    calculate_fee_units,
    currency_decimals,
    format_units,
    parse_units,
)
from .config import SDKConfig
from .context import PaymentCache, SDKContext
from .crypto import canonical_json, keccak_hex, recover_text_signer, sha256_hex, sign_text
from .errors import (
    ChaosChainSDKError,
    AgentRegistrationError,
    PaymentError,
    StorageError,
    IntegrityVerificationError,
    NetworkError,
    ContractError,
    ValidationError,
    ConfigurationError,
    AuthenticationError,
)
from .models import (
    AgentIdentity,
    AgentMetadata,
    AgentRegistration,
    AgentRole,
    CostBreakdown,
    PaymentProof,
    PaymentReceipt,
    PaymentRequirementsResponse,
    SettlementStatus,
    StorageResult,
    X402Payment,
    X402PaymentRequest,
)
from .networks import (
    NetworkConfig,
    NetworkInfo,
    get_network_info,
    get_supported_networks,
    is_network_supported,
)
from .settings import EnvironmentSettings

__all__ = [
    # Amounts
    "calculate_fee_units",
    "currency_decimals",
    "format_units",
    "parse_units",
    # Config
    "SDKConfig",
    "EnvironmentSettings",
    # Context
    "PaymentCache",
    "SDKContext",
    # Crypto
    "canonical_json",
    "keccak_hex",
    "recover_text_signer",
    "sha256_hex",
    "sign_text",
    # Errors
    "ChaosChainSDKError",
    "AgentRegistrationError",
    "PaymentError",
    "StorageError",
    "IntegrityVerificationError",
    "NetworkError",
    "ContractError",
    "ValidationError",
    "ConfigurationError",
    "AuthenticationError",
    # Models
    "AgentIdentity",
    "AgentMetadata",
    "AgentRegistration",
    "AgentRole",
    "CostBreakdown",
    "PaymentProof",
    "PaymentReceipt",
    "PaymentRequirementsResponse",
    "SettlementStatus",
    "StorageResult",
    "X402Payment",
    "X402PaymentRequest",
    # Networks
    "NetworkConfig",
    "NetworkInfo",
    "get_network_info",
    "get_supported_networks",
    "is_network_supported",
]
