"""AP2 intent and cart mandates with RS256 merchant authorization."""

import logging
import os
import secrets
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ..core.crypto import canonical_json, sha256_hex
from ..core.errors import ConfigurationError
from ..core.models import CartItem, CartMandate, IntentMandate

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "RS256"
JWT_AUDIENCE = "chaoschain:payment_processor"
JWT_TTL_SECONDS = 15 * 60
RSA_KEY_SIZE = 2048


def _expiry(minutes: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(minutes=minutes)).isoformat()


class GoogleAP2Integration:
    """Issues AP2 mandates signed with the agent's RSA key.

    The key is loaded from ``merchant_private_key`` (PEM), else from
    ``key_dir`` if a key was saved there before, else generated. Generated
    keys are written to ``key_dir`` when one is given and are ephemeral
    otherwise.
    """

    def __init__(
        self,
        agent_name: str,
        merchant_private_key: Optional[str] = None,
        key_dir: Optional[str | Path] = None,
    ):
        self.agent_name = agent_name
        self.issuer = f"did:chaoschain:{agent_name}"
        self.key_dir = Path(key_dir) if key_dir else None
        self._private_key = self._load_or_generate_key(merchant_private_key)
        self._public_key = self._private_key.public_key()

    @property
    def key_id(self) -> str:
        return f"{self.issuer}#key-1"

    @property
    def public_key_pem(self) -> str:
        return self._public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode()

    def _load_or_generate_key(self, pem: Optional[str]) -> rsa.RSAPrivateKey:
        if pem:
            try:
                return serialization.load_pem_private_key(pem.encode(), password=None)
            except (ValueError, TypeError) as e:
                raise ConfigurationError(f"Invalid AP2 merchant private key: {e}")

        key_path = None
        if self.key_dir is not None:
            key_path = self.key_dir / f"{self.agent_name}_ap2_private.pem"
            if key_path.exists():
                try:
                    key = serialization.load_pem_private_key(key_path.read_bytes(), password=None)
                except (ValueError, TypeError) as e:
                    raise ConfigurationError(f"Failed to load AP2 key {key_path}: {e}")
                logger.info(f"Loaded AP2 key from {key_path}")
                return key

        key = rsa.generate_private_key(public_exponent=65537, key_size=RSA_KEY_SIZE)
        if key_path is not None:
            self.key_dir.mkdir(parents=True, exist_ok=True)
            key_path.write_bytes(
                key.private_bytes(
                    encoding=serialization.Encoding.PEM,
                    format=serialization.PrivateFormat.PKCS8,
                    encryption_algorithm=serialization.NoEncryption(),
                )
            )
            os.chmod(key_path, 0o600)
            (self.key_dir / f"{self.agent_name}_ap2_public.pem").write_bytes(
                key.public_key().public_bytes(
                    encoding=serialization.Encoding.PEM,
                    format=serialization.PublicFormat.SubjectPublicKeyInfo,
                )
            )
            logger.info(f"Generated AP2 key at {key_path}")
        return key

    def create_intent_mandate(
        self,
        user_description: str,
        merchants: Optional[list[str]] = None,
        skus: Optional[list[str]] = None,
        requires_refundability: bool = False,
        expiry_minutes: int = 60,
    ) -> IntentMandate:
        """Capture what the user asked the agent to buy."""
        return IntentMandate(
            natural_language_description=user_description,
            merchants=merchants,
            skus=skus,
            requires_refundability=requires_refundability,
            intent_expiry=_expiry(expiry_minutes),
        )

    def create_cart_mandate(
        self,
        cart_id: str,
        items: list[CartItem | dict[str, Any]],
        total_amount: float,
        currency: str = "USD",
        merchant_name: Optional[str] = None,
        expiry_minutes: int = 15,
    ) -> CartMandate:
        """Create a cart signed by this merchant.

        Args:
            cart_id: Cart identifier (JWT subject)
            items: Line items (``name`` and ``price``)
            total_amount: Cart total
            currency: ISO currency
            merchant_name: Merchant shown to the user (agent name by default)
            expiry_minutes: Minutes until the cart expires

        Returns:
            CartMandate whose ``merchant_authorization`` is an RS256 JWT
        """
        cart_items = [item if isinstance(item, CartItem) else CartItem(**item) for item in items]
        merchant_name = merchant_name or self.agent_name
        payment_request = {
            "method_data": [
                {"supported_methods": "basic-card", "data": {"supportedNetworks": ["visa", "mastercard"]}},
                {"supported_methods": "https://google.com/pay", "data": {"environment": "TEST"}},
                {"supported_methods": "crypto", "data": {"supportedCurrencies": ["USDC", "ETH"]}},
            ],
            "details": {
                "id": f"payment_{cart_id}",
                "display_items": [
                    {"label": item.name, "amount": {"currency": currency, "value": item.price}}
                    for item in cart_items
                ],
                "total": {"label": "Total", "amount": {"currency": currency, "value": total_amount}},
            },
        }
        mandate = CartMandate(
            cart_id=cart_id,
            items=cart_items,
            total_amount=total_amount,
            currency=currency,
            merchant_name=merchant_name,
            cart_expiry=_expiry(expiry_minutes),
            payment_request=payment_request,
            merchant_authorization="",
        )
        token = self._create_merchant_jwt(mandate)
        logger.info(f"Created cart mandate {cart_id}: {total_amount} {currency}")
        return mandate.model_copy(update={"merchant_authorization": token})

    @staticmethod
    def compute_cart_hash(mandate: CartMandate) -> str:
        """SHA-256 of the cart contents, excluding the authorization."""
        contents = mandate.model_dump(
            mode="json", exclude={"merchant_authorization", "created_at"}
        )
        return sha256_hex(canonical_json(contents))

    def _create_merchant_jwt(self, mandate: CartMandate) -> str:
        now = int(time.time())
        payload = {
            "iss": self.issuer,
            "sub": mandate.cart_id,
            "aud": JWT_AUDIENCE,
            "iat": now,
            "exp": now + JWT_TTL_SECONDS,
            "jti": f"jwt_{mandate.cart_id}_{secrets.token_hex(8)}",
            "cart_hash": self.compute_cart_hash(mandate),
            "merchant_name": mandate.merchant_name,
        }
        return jwt.encode(
            payload, self._private_key, algorithm=JWT_ALGORITHM, headers={"kid": self.key_id}
        )

    def verify_jwt_token(self, token: str) -> dict[str, Any]:
        """Verify a merchant JWT issued with this key.

        Returns:
            The claims, or an empty dict if the token is invalid or expired
        """
        try:
            return jwt.decode(
                token, self._public_key, algorithms=[JWT_ALGORITHM], audience=JWT_AUDIENCE
            )
        except jwt.ExpiredSignatureError:
            logger.warning("AP2 token has expired")
        except jwt.PyJWTError as e:
            logger.warning(f"AP2 token rejected: {e}")
        return {}

    def verify_cart_mandate(self, mandate: CartMandate) -> bool:
        """Check the mandate's JWT and that the cart was not altered."""
        claims = self.verify_jwt_token(mandate.merchant_authorization)
        if not claims:
            return False
        return (
            claims.get("sub") == mandate.cart_id
            and claims.get("cart_hash") == self.compute_cart_hash(mandate)
        )

    def get_integration_summary(self) -> dict[str, Any]:
        return {
            "integration_type": "Google AP2",
            "agent_name": self.agent_name,
            "issuer": self.issuer,
            "key_id": self.key_id,
            "supported_features": [
                "IntentMandate creation",
                "CartMandate creation with JWT signing",
                "W3C PaymentRequest API compliance",
                "Cart integrity verification",
            ],
            "cryptographic_features": [
                "JWT signing with RS256",
                "Cart content hashing",
                "Timestamp-based expiry",
                "Replay protection with JTI",
            ],
            "key_persisted": self.key_dir is not None,
        }
