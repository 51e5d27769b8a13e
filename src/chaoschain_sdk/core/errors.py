"""Exception hierarchy for chaoschain-sdk."""

from typing import Any, Optional


class ChaosChainSDKError(Exception):
    """Base exception for all chaoschain-sdk errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Identity errors
class AgentRegistrationError(ChaosChainSDKError):
    """Agent registration or identity update failed."""

    pass


# Payment errors
class PaymentError(ChaosChainSDKError):
    """Payment could not be created, executed or verified."""

    pass


# Storage errors
class StorageError(ChaosChainSDKError):
    """Storage backend failure or no backend available."""

    pass


# Integrity errors
class IntegrityVerificationError(ChaosChainSDKError):
    """Process integrity registration, execution or verification failed."""

    pass


# Chain errors
class NetworkError(ChaosChainSDKError):
    """Unsupported network or RPC failure."""

    pass


class ContractError(ChaosChainSDKError):
    """Contract call failed or a receipt lacked the expected event."""

    pass


# Input errors
class ValidationError(ChaosChainSDKError):
    """Invalid argument supplied to the SDK."""

    pass


class ConfigurationError(ChaosChainSDKError):
    """SDK is misconfigured or a required feature is disabled."""

    pass


class AuthenticationError(ChaosChainSDKError):
    """Credentials were rejected or could not be loaded."""

    pass
