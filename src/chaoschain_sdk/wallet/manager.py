"""Wallet management: keys, mnemonics and keystore files."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from eth_account import Account
from eth_account.hdaccount import generate_mnemonic as _generate_mnemonic
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3

from ..core.errors import ConfigurationError

logger = logging.getLogger(__name__)

Account.enable_unaudited_hdwallet_features()

DEFAULT_DERIVATION_PATH = "m/44'/60'/0'/0/0"


class WalletManager:
    """Holds the agent's signing key and signs on its behalf.

    The key comes from, in order of precedence, a private key, a BIP-39
    mnemonic or a wallet file. With none of them a fresh random wallet
    is created.
    """

    def __init__(
        self,
        private_key: Optional[str] = None,
        mnemonic: Optional[str] = None,
        wallet_file: Optional[str | Path] = None,
        password: Optional[str] = None,
        web3: Optional[Web3] = None,
    ):
        """Initialize wallet.

        Args:
            private_key: Hex private key
            mnemonic: BIP-39 phrase (first account on the default path)
            wallet_file: JSON wallet file or encrypted V3 keystore
            password: Password for encrypted wallet files
            web3: Web3 instance for balance and nonce lookups

        Raises:
            ConfigurationError: If the key material cannot be loaded
        """
        self.web3 = web3
        self._mnemonic: Optional[str] = None

        try:
            if private_key:
                self._account: LocalAccount = Account.from_key(private_key)
            elif mnemonic:
                self._account = Account.from_mnemonic(
                    mnemonic, account_path=DEFAULT_DERIVATION_PATH
                )
                self._mnemonic = mnemonic
            elif wallet_file:
                self._account = self._load_from_file(Path(wallet_file), password)
            else:
                self._account, self._mnemonic = Account.create_with_mnemonic()
                logger.info(f"Generated new wallet {self._account.address}")
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Failed to initialize wallet: {e}")

    def _load_from_file(self, path: Path, password: Optional[str]) -> LocalAccount:
        if not path.exists():
            raise ConfigurationError(f"Wallet file not found: {path}")

        with open(path, "r") as f:
            data = json.load(f)

        # V3 keystore
        if "crypto" in data or "Crypto" in data:
            if password is None:
                raise ConfigurationError("Encrypted wallet file requires a password")
            return Account.from_key(Account.decrypt(data, password))

        if data.get("encrypted"):
            raise ConfigurationError("Encrypted wallet file requires a password")

        self._mnemonic = data.get("mnemonic")
        return Account.from_key(data["privateKey"])

    @property
    def address(self) -> str:
        """Checksummed wallet address."""
        return self._account.address

    @property
    def private_key(self) -> str:
        """0x-prefixed private key (handle with care)."""
        return Web3.to_hex(self._account.key)

    @property
    def mnemonic(self) -> Optional[str]:
        """Mnemonic phrase, when the wallet was created from one."""
        return self._mnemonic

    @property
    def account(self) -> LocalAccount:
        return self._account

    def sign_message(self, message: str | bytes) -> str:
        """Sign a message with EIP-191 (personal_sign).

        Args:
            message: Text or raw bytes to sign

        Returns:
            0x-prefixed signature
        """
        if isinstance(message, bytes):
            signable = encode_defunct(primitive=message)
        else:
            signable = encode_defunct(text=message)
        return Web3.to_hex(self._account.sign_message(signable).signature)

    def sign_typed_data(
        self,
        domain: dict[str, Any],
        types: dict[str, list[dict[str, str]]],
        value: dict[str, Any],
    ) -> str:
        """Sign EIP-712 typed data.

        Args:
            domain: EIP-712 domain
            types: Type definitions, without EIP712Domain
            value: Message to sign

        Returns:
            0x-prefixed signature
        """
        signed = self._account.sign_typed_data(
            domain_data=domain, message_types=types, message_data=value
        )
        return Web3.to_hex(signed.signature)

    def sign_transaction(self, transaction: dict[str, Any]):
        """Sign a transaction dict; returns eth-account's SignedTransaction."""
        return self._account.sign_transaction(transaction)

    def save_to_file(self, path: str | Path, password: Optional[str] = None) -> None:
        """Write the wallet to disk.

        Args:
            path: Destination file
            password: When given, write an encrypted V3 keystore instead of
                plaintext JSON
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        if password:
            data = Account.encrypt(self._account.key, password)
        else:
            data = {
                "address": self.address,
                "privateKey": self.private_key,
                "mnemonic": self._mnemonic,
                "encrypted": False,
            }

        # Owner-only from creation; existing files are narrowed before writing
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        os.fchmod(fd, 0o600)
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)

    def _require_web3(self) -> Web3:
        if self.web3 is None:
            raise ConfigurationError("Wallet has no web3 provider")
        return self.web3

    def get_balance(self) -> int:
        """Native balance in wei."""
        return self._require_web3().eth.get_balance(self.address)

    def get_nonce(self) -> int:
        """Next transaction nonce, including pending transactions."""
        return self._require_web3().eth.get_transaction_count(self.address, "pending")

    def derive_child(self, index: int) -> "WalletManager":
        """Derive the account at ``m/44'/60'/0'/0/<index>`` from this wallet's mnemonic.

        Raises:
            ConfigurationError: If the wallet has no mnemonic
        """
        if not self._mnemonic:
            raise ConfigurationError("Wallet has no mnemonic to derive from")
        return WalletManager.derive_from_path(
            self._mnemonic, f"m/44'/60'/0'/0/{index}", web3=self.web3
        )

    @staticmethod
    def derive_from_path(
        mnemonic: str, path: str, web3: Optional[Web3] = None
    ) -> "WalletManager":
        """Create a wallet for an arbitrary HD path."""
        account = Account.from_mnemonic(mnemonic, account_path=path)
        return WalletManager(private_key=Web3.to_hex(account.key), web3=web3)

    @staticmethod
    def create_random(web3: Optional[Web3] = None) -> "WalletManager":
        """Create a wallet backed by a new mnemonic."""
        return WalletManager(mnemonic=_generate_mnemonic(12, "english"), web3=web3)

    @staticmethod
    def from_mnemonic(mnemonic: str, web3: Optional[Web3] = None) -> "WalletManager":
        return WalletManager(mnemonic=mnemonic, web3=web3)

    @staticmethod
    def from_private_key(private_key: str, web3: Optional[Web3] = None) -> "WalletManager":
        return WalletManager(private_key=private_key, web3=web3)

    @staticmethod
    def generate_mnemonic(num_words: int = 12) -> str:
        """Generate a new English BIP-39 phrase."""
        return _generate_mnemonic(num_words, "english")

    @staticmethod
    def is_valid_mnemonic(mnemonic: str) -> bool:
        try:
            Account.from_mnemonic(mnemonic)
            return True
        except Exception:
            return False

    @staticmethod
    def is_valid_private_key(private_key: str) -> bool:
        try:
            Account.from_key(private_key)
            return True
        except Exception:
            return False
