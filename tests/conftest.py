"""Shared fixtures: an in-memory chain, funded wallets and storage."""

import hashlib

import pytest

from chaoschain_sdk.core.errors import StorageError
from chaoschain_sdk.core.models import StorageResult
from chaoschain_sdk.core.networks import get_network_info
from chaoschain_sdk.core.settings import EnvironmentSettings
from chaoschain_sdk.registry.mock_contract import MockWeb3
from chaoschain_sdk.storage.backends import StorageBackend
from chaoschain_sdk.wallet.manager import WalletManager

# Well-known development keys (Hardhat/Anvil accounts 0-2)
OWNER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
OWNER_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
CLIENT_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
CLIENT_ADDRESS = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
VALIDATOR_KEY = "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a"
VALIDATOR_ADDRESS = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"

TEST_MNEMONIC = "test test test test test test test test test test test junk"


class MemoryStorage(StorageBackend):
    """Content-addressed storage kept in a dict."""

    name = "memory"

    def __init__(self, fail: bool = False):
        super().__init__()
        self.blobs: dict[str, bytes] = {}
        self.fail = fail

    def put(self, data: bytes, filename: str, mime_type: str) -> StorageResult:
        if self.fail:
            raise StorageError("memory backend is down")
        cid = "bafy" + hashlib.sha256(data).hexdigest()[:40]
        self.blobs[cid] = data
        return StorageResult(cid=cid, url=f"ipfs://{cid}", size=len(data), provider=self.name)

    def get(self, cid: str) -> bytes:
        if self.fail or cid not in self.blobs:
            raise StorageError(f"{cid} not found")
        return self.blobs[cid]

    def gateway_url(self, cid: str) -> str:
        return f"memory://{cid}"


@pytest.fixture
def settings():
    """Settings that ignore any local .env file."""
    return EnvironmentSettings(_env_file=None)


@pytest.fixture
def network_info(settings):
    return get_network_info("base-sepolia", settings)


@pytest.fixture
def mock_web3(network_info):
    return MockWeb3.for_network(network_info)


@pytest.fixture
def owner_wallet(mock_web3):
    return WalletManager(private_key=OWNER_KEY, web3=mock_web3)


@pytest.fixture
def client_wallet(mock_web3):
    return WalletManager(private_key=CLIENT_KEY, web3=mock_web3)


@pytest.fixture
def validator_wallet(mock_web3):
    return WalletManager(private_key=VALIDATOR_KEY, web3=mock_web3)


@pytest.fixture
def memory_storage():
    return MemoryStorage()
