"""ChaosChain SDK - ERC-8004 identity, x402 payments and verifiable evidence for AI agents."""

import logging

__version__ = "0.1.0"

from .ap2 import GoogleAP2Integration
from .core import (
    AgentMetadata,
    AgentRegistration,
    AgentRole,
    AuthenticationError,
    ChaosChainSDKError,
    ConfigurationError,
    ContractError,
    IntegrityVerificationError,
    NetworkConfig,
    NetworkError,
    PaymentError,
    PaymentProof,
    SDKConfig,
    StorageError,
    ValidationError,
    get_network_info,
    get_supported_networks,
)
from .integrations import X402Server
from .integrity import ProcessIntegrity, integrity_checked
from .payments import A2AX402Extension, PaymentManager, PaymentMethod, X402PaymentManager
from .registry import ChaosAgent
from .sdk import ChaosChainSDK
from .storage import AutoStorageManager
from .wallet import WalletManager

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # SDK
    "ChaosChainSDK",
    "SDKConfig",
    # Identity and registries
    "ChaosAgent",
    "AgentMetadata",
    "AgentRegistration",
    "AgentRole",
    # Wallet and networks
    "WalletManager",
    "NetworkConfig",
    "get_network_info",
    "get_supported_networks",
    # Payments
    "X402PaymentManager",
    "PaymentManager",
    "PaymentMethod",
    "PaymentProof",
    "A2AX402Extension",
    "X402Server",
    # Storage, integrity and AP2
    "AutoStorageManager",
    "ProcessIntegrity",
    "integrity_checked",
    "GoogleAP2Integration",
    # Errors
    "ChaosChainSDKError",
    "AuthenticationError",
    "ConfigurationError",
    "ContractError",
    "IntegrityVerificationError",
    "NetworkError",
    "PaymentError",
    "StorageError",
    "ValidationError",
]
