"""Supported networks and their deployed ERC-8004 registry addresses."""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field

from .errors import NetworkError
from .settings import EnvironmentSettings

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

DEFAULT_TREASURY_ADDRESS = "0x20E7B2A2c8969725b88Dd3EF3a11Bc3353C83F70"


class NetworkConfig(str, Enum):
    """Network identifiers accepted by the SDK."""

    ETHEREUM_SEPOLIA = "ethereum-sepolia"
    BASE_SEPOLIA = "base-sepolia"
    LINEA_SEPOLIA = "linea-sepolia"
    HEDERA_TESTNET = "hedera-testnet"
    ZEROG_TESTNET = "0g-testnet"
    LOCAL = "local"


class NativeCurrency(BaseModel):
    """Gas token of a network."""

    name: str
    symbol: str
    decimals: int = 18


class ContractAddresses(BaseModel):
    """Registry contract addresses on one network."""

    identity: str = Field(description="Identity registry (ERC-721)")
    reputation: str = Field(description="Reputation registry")
    validation: str = Field(description="Validation registry")


class NetworkInfo(BaseModel):
    """Everything needed to talk to one network."""

    name: str = Field(description="Human-readable network name")
    network: NetworkConfig = Field(description="Network identifier")
    chain_id: int = Field(description="EIP-155 chain id")
    rpc_url: str = Field(description="JSON-RPC endpoint")
    contracts: ContractAddresses
    native_currency: NativeCurrency
    usdc_address: str = Field(default=ZERO_ADDRESS, description="USDC token contract")
    treasury_address: str = Field(default=DEFAULT_TREASURY_ADDRESS)

    @property
    def supports_usdc(self) -> bool:
        return self.usdc_address != ZERO_ADDRESS


def _eth(name: str) -> NativeCurrency:
    return NativeCurrency(name=name, symbol="ETH")


_NETWORKS: dict[NetworkConfig, dict] = {
    NetworkConfig.ETHEREUM_SEPOLIA: {
        "name": "Ethereum Sepolia Testnet",
        "chain_id": 11155111,
        "rpc_url": "https://rpc.sepolia.org",
        "contracts": {
            "identity": "0x8004a6090Cd10A7288092483047B097295Fb8847",
            "reputation": "0x8004B8FD1A363aa02fDC07635C0c5F94f6Af5B7E",
            "validation": "0x8004CB39f29c09145F24Ad9dDe2A108C1A2cdfC5",
        },
        "native_currency": _eth("Sepolia Ether"),
        "usdc_address": "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
    },
    NetworkConfig.BASE_SEPOLIA: {
        "name": "Base Sepolia Testnet",
        "chain_id": 84532,
        "rpc_url": "https://sepolia.base.org",
        "contracts": {
            "identity": "0x8004AA63c570c570eBF15376c0dB199918BFe9Fb",
            "reputation": "0x8004bd8daB57f14Ed299135749a5CB5c42d341BF",
            "validation": "0x8004C269D0A5647E51E121FeB226200ECE932d55",
        },
        "native_currency": _eth("Sepolia Ether"),
        "usdc_address": "0x036CbD53842c5426634e7929541eC2318f3dCF7e",
    },
    NetworkConfig.LINEA_SEPOLIA: {
        "name": "Linea Sepolia Testnet",
        "chain_id": 59141,
        "rpc_url": "https://rpc.sepolia.linea.build",
        "contracts": {
            "identity": "0x8004aa7C931bCE1233973a0C6A667f73F66282e7",
            "reputation": "0x8004bd8483b99310df121c46ED8858616b2Bba02",
            "validation": "0x8004c44d1EFdd699B2A26e781eF7F77c56A9a4EB",
        },
        "native_currency": _eth("Linea Ether"),
    },
    NetworkConfig.HEDERA_TESTNET: {
        "name": "Hedera Testnet",
        "chain_id": 296,
        "rpc_url": "https://testnet.hashio.io/api",
        "contracts": {
            "identity": "0x4c74ebd72921d537159ed2053f46c12a7d8e5923",
            "reputation": "0xc565edcba77e3abeade40bfd6cf6bf583b3293e0",
            "validation": "0x18df085d85c586e9241e0cd121ca422f571c2da6",
        },
        "native_currency": NativeCurrency(name="HBAR", symbol="HBAR"),
    },
    NetworkConfig.ZEROG_TESTNET: {
        "name": "0G Network Testnet",
        "chain_id": 16600,
        "rpc_url": "https://evmrpc-testnet.0g.ai",
        "contracts": {
            "identity": "0x80043ed9cf33a3472768dcd53175bb44e03a1e4a",
            "reputation": "0x80045d7b72c47bf5ff73737b780cb1a5ba8ee202",
            "validation": "0x80041728e0aadf1d1427f9be18d52b7f3afefafb",
        },
        "native_currency": NativeCurrency(name="A0GI", symbol="A0GI"),
    },
    NetworkConfig.LOCAL: {
        "name": "Local Network",
        "chain_id": 31337,
        "rpc_url": "http://localhost:8545",
        "contracts": {
            "identity": "0x5FbDB2315678afecb367f032d93F642f64180aa3",
            "reputation": "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512",
            "validation": "0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0",
        },
        "native_currency": _eth("Ether"),
    },
}


def _resolve(network: Union[str, NetworkConfig]) -> NetworkConfig:
    try:
        return NetworkConfig(network)
    except ValueError:
        raise NetworkError(f"Unsupported network: {network}")


def get_network_info(
    network: Union[str, NetworkConfig],
    settings: Optional[EnvironmentSettings] = None,
) -> NetworkInfo:
    """Look up a supported network.

    Args:
        network: Network identifier (e.g. "base-sepolia")
        settings: Environment settings supplying RPC overrides (read from the
            environment when not provided)

    Returns:
        NetworkInfo for the network

    Raises:
        NetworkError: If the network is not supported
    """
    key = _resolve(network)
    entry = dict(_NETWORKS[key])
    settings = settings or EnvironmentSettings()
    override = settings.rpc_url_for(key.value)
    if override:
        entry["rpc_url"] = override
    return NetworkInfo(network=key, **entry)


def is_network_supported(network: str) -> bool:
    """Check whether a network identifier is supported."""
    try:
        _resolve(network)
        return True
    except NetworkError:
        return False


def get_supported_networks() -> list[str]:
    """List all supported network identifiers."""
    return [network.value for network in NetworkConfig]


def get_usdc_address(network: Union[str, NetworkConfig]) -> str:
    """Get the USDC contract on a network (zero address when unavailable)."""
    return _NETWORKS[_resolve(network)].get("usdc_address", ZERO_ADDRESS)
