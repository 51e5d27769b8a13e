"""EIP-191 feedback authorizations consumed by the reputation registry.

The blob passed to ``giveFeedback`` is a 224-byte struct followed by a
65-byte signature:

    agentId (32) | clientAddress (32) | indexLimit (8 + 24 zero bytes) |
    expiry (32) | chainId (32) | identityRegistry (32) | signerAddress (32)

The signature is EIP-191 over the keccak256 of the tightly packed
fields, not over the struct itself.
"""

from eth_account import Account
from eth_account.messages import encode_defunct
from pydantic import BaseModel, Field
from web3 import Web3

from ..core.errors import ValidationError
from ..wallet.manager import WalletManager

FEEDBACK_AUTH_TYPES = [
    "uint256",  # agentId
    "address",  # clientAddress
    "uint64",  # indexLimit
    "uint256",  # expiry
    "uint256",  # chainId
    "address",  # identityRegistry
    "address",  # signerAddress
]

STRUCT_LENGTH = 224
SIGNATURE_LENGTH = 65
AUTH_LENGTH = STRUCT_LENGTH + SIGNATURE_LENGTH

MAX_UINT64 = 2**64 - 1


class FeedbackAuthorization(BaseModel):
    """Decoded feedback authorization."""

    agent_id: int = Field(ge=0)
    client_address: str
    index_limit: int = Field(ge=0, le=MAX_UINT64)
    expiry: int = Field(ge=0, description="Unix seconds")
    chain_id: int
    identity_registry: str
    signer_address: str
    signature: bytes = b""

    def _values(self) -> list:
        return [
            self.agent_id,
            Web3.to_checksum_address(self.client_address),
            self.index_limit,
            self.expiry,
            self.chain_id,
            Web3.to_checksum_address(self.identity_registry),
            Web3.to_checksum_address(self.signer_address),
        ]

    def message_hash(self) -> bytes:
        """keccak256 of the packed fields; this is what gets signed."""
        return bytes(Web3.solidity_keccak(FEEDBACK_AUTH_TYPES, self._values()))

    def encode_struct(self) -> bytes:
        """Fixed-width struct encoding (224 bytes)."""
        return b"".join(
            [
                self.agent_id.to_bytes(32, "big"),
                _address_word(self.client_address),
                self.index_limit.to_bytes(8, "big") + b"\x00" * 24,
                self.expiry.to_bytes(32, "big"),
                self.chain_id.to_bytes(32, "big"),
                _address_word(self.identity_registry),
                _address_word(self.signer_address),
            ]
        )

    def to_hex(self) -> str:
        """Struct plus signature as 0x-hex, ready for giveFeedback."""
        if len(self.signature) != SIGNATURE_LENGTH:
            raise ValidationError("Feedback authorization is not signed")
        return Web3.to_hex(self.encode_struct() + self.signature)

    def recover_signer(self) -> str:
        """Recover the address that signed this authorization."""
        return Account.recover_message(
            encode_defunct(primitive=self.message_hash()), signature=self.signature
        )

    @classmethod
    def decode(cls, blob: str | bytes) -> "FeedbackAuthorization":
        """Parse a feedback authorization blob.

        Raises:
            ValidationError: If the blob has the wrong length
        """
        data = Web3.to_bytes(hexstr=blob) if isinstance(blob, str) else bytes(blob)
        if len(data) != AUTH_LENGTH:
            raise ValidationError(
                f"Feedback authorization must be {AUTH_LENGTH} bytes, got {len(data)}"
            )

        def word(i: int) -> bytes:
            return data[i * 32 : (i + 1) * 32]

        return cls(
            agent_id=int.from_bytes(word(0), "big"),
            client_address=_word_address(word(1)),
            index_limit=int.from_bytes(word(2)[:8], "big"),
            expiry=int.from_bytes(word(3), "big"),
            chain_id=int.from_bytes(word(4), "big"),
            identity_registry=_word_address(word(5)),
            signer_address=_word_address(word(6)),
            signature=data[STRUCT_LENGTH:],
        )


def _address_word(address: str) -> bytes:
    return bytes.fromhex(Web3.to_checksum_address(address)[2:]).rjust(32, b"\x00")


def _word_address(word: bytes) -> str:
    return Web3.to_checksum_address(word[12:])


def build_feedback_authorization(
    wallet: WalletManager,
    agent_id: int,
    client_address: str,
    index_limit: int,
    expiry: int,
    chain_id: int,
    identity_registry: str,
) -> str:
    """Create and sign a feedback authorization.

    Args:
        wallet: Signer (normally the agent owner)
        agent_id: Agent receiving feedback
        client_address: Client allowed to give feedback
        index_limit: Highest feedback index the client may submit
        expiry: Unix seconds after which the authorization is void
        chain_id: Chain the registry lives on
        identity_registry: Identity registry address

    Returns:
        0x-hex blob (289 bytes)
    """
    auth = FeedbackAuthorization(
        agent_id=agent_id,
        client_address=client_address,
        index_limit=index_limit,
        expiry=expiry,
        chain_id=chain_id,
        identity_registry=identity_registry,
        signer_address=wallet.address,
    )
    signed = wallet.account.sign_message(encode_defunct(primitive=auth.message_hash()))
    auth.signature = bytes(signed.signature)
    return auth.to_hex()
