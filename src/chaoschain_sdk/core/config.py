"""SDK configuration: constructor options, loadable from YAML."""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ConfigurationError
from .models import AgentRole
from .networks import NetworkConfig

# Never written back to disk by to_yaml unless explicitly requested
_SECRET_FIELDS = {"private_key", "mnemonic", "wallet_password"}


class SDKConfig(BaseModel):
    """Options accepted by ChaosChainSDK."""

    agent_name: str = Field(description="Agent name")
    agent_domain: str = Field(description="Domain the agent serves from")
    agent_role: AgentRole = Field(default=AgentRole.SERVER)
    network: NetworkConfig = Field(default=NetworkConfig.BASE_SEPOLIA)

    # Wallet source (first one set wins: private_key, mnemonic, wallet_file)
    private_key: Optional[str] = Field(default=None)
    mnemonic: Optional[str] = Field(default=None)
    wallet_file: Optional[str] = Field(default=None)
    wallet_password: Optional[str] = Field(default=None)

    rpc_url: Optional[str] = Field(default=None, description="RPC URL override")

    # Feature toggles
    enable_payments: bool = True
    enable_storage: bool = True
    enable_ap2: bool = True
    enable_process_integrity: bool = True

    # Payments
    fee_percentage: float = Field(default=2.5, ge=0, le=100)
    treasury_address: Optional[str] = Field(default=None)

    # AP2
    ap2_key_dir: Optional[str] = Field(
        default=None, description="Directory to persist the AP2 RSA key in"
    )

    model_config = ConfigDict(extra="forbid")

    @field_validator("agent_name", "agent_domain")
    @classmethod
    def not_blank(cls, v: str) -> str:
        """Reject empty names."""
        if not v.strip():
            raise ValueError("must not be empty")
        return v

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> "SDKConfig":
        """Load configuration from a YAML file.

        Args:
            config_path: Path to YAML config file

        Returns:
            SDKConfig instance

        Raises:
            ConfigurationError: If the file cannot be loaded or is invalid
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
            return cls(**data)
        except Exception as e:
            raise ConfigurationError(f"Failed to load SDK config: {e}")

    def to_yaml(self, config_path: str | Path, include_secrets: bool = False) -> None:
        """Save configuration to a YAML file.

        Args:
            config_path: Path to save YAML config
            include_secrets: Also write the private key, mnemonic and password
        """
        exclude = None if include_secrets else _SECRET_FIELDS
        data = self.model_dump(mode="json", exclude=exclude, exclude_none=True)

        with open(Path(config_path), "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
