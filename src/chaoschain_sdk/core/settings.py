"""Environment-driven settings: RPC endpoints and third-party credentials."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentSettings(BaseSettings):
    """Values read from the process environment (and an optional ``.env`` file).

    Field names map to upper-case environment variables, e.g.
    ``base_sepolia_rpc_url`` is read from ``BASE_SEPOLIA_RPC_URL``.
    """

    # RPC endpoints
    ethereum_sepolia_rpc_url: Optional[str] = None
    base_sepolia_rpc_url: Optional[str] = None
    linea_sepolia_rpc_url: Optional[str] = None
    hedera_testnet_rpc_url: Optional[str] = None
    zerog_testnet_rpc_url: Optional[str] = None
    local_rpc_url: Optional[str] = None

    # Storage
    ipfs_api_url: str = Field(default="http://127.0.0.1:5001")
    ipfs_gateway_url: str = Field(default="http://127.0.0.1:8080/ipfs")
    pinata_jwt: Optional[str] = None
    pinata_api_key: Optional[str] = None
    pinata_api_secret: Optional[str] = None
    pinata_gateway_url: str = Field(default="https://gateway.pinata.cloud/ipfs")
    irys_wallet_key: Optional[str] = None
    irys_gateway_url: str = Field(default="https://gateway.irys.xyz")
    zerog_testnet_private_key: Optional[str] = None
    zerog_indexer_url: str = Field(default="https://indexer-storage-testnet-turbo.0g.ai")

    # Payment processors
    stripe_secret_key: Optional[str] = None
    google_pay_merchant_id: Optional[str] = None
    apple_pay_merchant_id: Optional[str] = None
    paypal_client_id: Optional[str] = None
    paypal_client_secret: Optional[str] = None
    paypal_sandbox: bool = True

    # AP2
    google_ap2_merchant_private_key: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def rpc_url_for(self, network: str) -> Optional[str]:
        """Get the RPC override configured for a network, if any."""
        field_name = network.replace("0g", "zerog").replace("-", "_") + "_rpc_url"
        return getattr(self, field_name, None)
