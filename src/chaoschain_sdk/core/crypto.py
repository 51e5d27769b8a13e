"""Hashing and EIP-191 signing helpers."""

import hashlib
import json
from typing import Any, Union

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3


def canonical_json(data: Any) -> str:
    """Serialize data as canonical JSON (sorted keys, no whitespace)."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def sha256_hex(data: Union[str, bytes]) -> str:
    """SHA-256 digest as lowercase hex (no prefix)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def keccak_hex(data: Union[str, bytes]) -> str:
    """Keccak-256 digest as 0x-prefixed hex."""
    if isinstance(data, str):
        return Web3.to_hex(Web3.keccak(text=data))
    return Web3.to_hex(Web3.keccak(data))


def to_bytes32(value: Union[str, bytes, None]) -> bytes:
    """Coerce a hex string, short text tag or bytes into a bytes32 value."""
    if value is None:
        return b"\x00" * 32
    if isinstance(value, str):
        if value.startswith("0x") and len(value) == 66:
            return bytes.fromhex(value[2:])
        value = value.encode("utf-8")
    if len(value) > 32:
        raise ValueError(f"Value does not fit in bytes32: {len(value)} bytes")
    return value.ljust(32, b"\x00")


def sign_text(private_key: Union[str, bytes], message: str) -> str:
    """Sign a text message (EIP-191 personal_sign).

    Returns:
        0x-prefixed 65-byte signature
    """
    signed = Account.sign_message(encode_defunct(text=message), private_key=private_key)
    return Web3.to_hex(signed.signature)


def recover_text_signer(message: str, signature: Union[str, bytes]) -> str:
    """Recover the checksummed address that signed a text message."""
    return Account.recover_message(encode_defunct(text=message), signature=signature)
