"""A2A x402 extension: W3C payment methods with crypto settlement."""

import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..core.amounts import AmountLike, to_decimal
from ..core.crypto import canonical_json, sha256_hex
from ..core.errors import PaymentError
from .methods import PaymentManager, PaymentMethod
from .x402 import X402PaymentManager

logger = logging.getLogger(__name__)

EXTENSION_NAME = "a2a-x402-multi-payment"
EXTENSION_VERSION = "1.0.0"
PROTOCOL_VERSION = "x402-v1.0"
REQUEST_TTL_MINUTES = 30

SUPPORTED_CRYPTO_METHODS = ["usdc", "eth", "native"]
SUPPORTED_NETWORKS = ["base-sepolia", "ethereum-sepolia", "linea-sepolia", "0g-testnet"]


class W3CPaymentMethodData(BaseModel):
    """One entry of a W3C PaymentRequest ``methodData`` list."""

    supported_methods: str
    data: dict[str, Any] = Field(default_factory=dict)


class X402PaymentMethod(BaseModel):
    """Payment method descriptor advertised to other agents."""

    supported_methods: list[str]
    supported_networks: list[str]
    payment_endpoint: str
    verification_endpoint: str
    method_data: dict[str, Any] = Field(default_factory=dict)


class EnhancedPaymentRequest(BaseModel):
    """W3C payment request extended with x402 settlement details."""

    id: str
    total: dict[str, Any]
    display_items: list[dict[str, Any]]
    x402_methods: list[X402PaymentMethod]
    settlement_address: str
    network: str
    expires_at: str = Field(description="ISO-8601 expiry")


class X402PaymentResponse(BaseModel):
    """Result of a settled x402 payment."""

    payment_id: str
    transaction_hash: str
    fee_transaction_hash: Optional[str] = None
    network: str
    amount: str
    currency: str
    settlement_address: str
    confirmation_blocks: int = 1
    status: str
    settlement_status: str = "complete"
    timestamp: str
    protocol_fee: str


class TraditionalPaymentResponse(BaseModel):
    """Result of a card, wallet or PayPal payment."""

    payment_id: str
    method: str
    amount: str
    currency: str
    status: str
    transaction_id: Optional[str] = None
    authorization_code: Optional[str] = None
    simulated: bool = False
    timestamp: str
    receipt_data: dict[str, Any] = Field(default_factory=dict)


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class A2AX402Extension:
    """Multi-method payments for agent-to-agent commerce.

    Crypto payments settle through the x402 manager; everything else is
    routed through the traditional payment manager.
    """

    def __init__(self, agent_name: str, network: str, payment_manager: PaymentManager):
        self.agent_name = agent_name
        self.network = network
        self.payment_manager = payment_manager
        self.supported_crypto_methods = list(SUPPORTED_CRYPTO_METHODS)
        self.supported_networks = list(SUPPORTED_NETWORKS)
        self.w3c_payment_methods = self._build_w3c_methods()

    @property
    def x402_manager(self) -> X402PaymentManager:
        if self.payment_manager.x402_manager is None:
            raise PaymentError("x402 payments are not configured")
        return self.payment_manager.x402_manager

    def _build_w3c_methods(self) -> list[W3CPaymentMethodData]:
        return [
            W3CPaymentMethodData(
                supported_methods=PaymentMethod.BASIC_CARD.value,
                data={
                    "supportedNetworks": ["visa", "mastercard", "amex", "discover"],
                    "supportedTypes": ["credit", "debit"],
                },
            ),
            W3CPaymentMethodData(
                supported_methods=PaymentMethod.GOOGLE_PAY.value,
                data={
                    "environment": "TEST",
                    "apiVersion": 2,
                    "apiVersionMinor": 0,
                    "allowedPaymentMethods": [
                        {
                            "type": "CARD",
                            "parameters": {
                                "allowedAuthMethods": ["PAN_ONLY", "CRYPTOGRAM_3DS"],
                                "allowedCardNetworks": ["AMEX", "DISCOVER", "MASTERCARD", "VISA"],
                            },
                        }
                    ],
                },
            ),
            W3CPaymentMethodData(
                supported_methods=PaymentMethod.APPLE_PAY.value,
                data={
                    "version": 3,
                    "merchantIdentifier": f"merchant.chaoschain.{self.agent_name.lower()}",
                    "merchantCapabilities": ["supports3DS"],
                    "supportedNetworks": ["visa", "masterCard", "amex", "discover"],
                },
            ),
            W3CPaymentMethodData(
                supported_methods=PaymentMethod.A2A_X402.value,
                data={
                    "supportedCryptocurrencies": self.supported_crypto_methods,
                    "supportedNetworks": self.supported_networks,
                    "settlementAddress": "dynamic",
                    "protocolVersion": PROTOCOL_VERSION,
                },
            ),
            W3CPaymentMethodData(
                supported_methods=PaymentMethod.PAYPAL.value,
                data={"environment": "sandbox", "intent": "capture"},
            ),
        ]

    def create_x402_payment_method(self, settlement_address: str) -> X402PaymentMethod:
        """Describe the payment methods this agent accepts."""
        return X402PaymentMethod(
            supported_methods=[m.supported_methods for m in self.w3c_payment_methods],
            supported_networks=self.supported_networks,
            payment_endpoint=f"x402://{self.agent_name}.chaoschain.com/pay",
            verification_endpoint=f"https://{self.agent_name}.chaoschain.com/verify",
            method_data={
                "w3c_methods": [
                    {"supportedMethods": m.supported_methods, "data": m.data}
                    for m in self.w3c_payment_methods
                ],
                "crypto_settlement_address": settlement_address,
            },
        )

    def create_enhanced_payment_request(
        self,
        cart_id: str,
        total_amount: AmountLike,
        currency: str,
        items: list[dict[str, Any]],
        settlement_address: str,
    ) -> EnhancedPaymentRequest:
        """Build a payment request for a cart.

        Args:
            cart_id: Cart the request pays for
            total_amount: Decimal total
            currency: Currency of the total
            items: Cart items with ``name`` (or ``service``) and ``price``
            settlement_address: Wallet receiving crypto payments

        Returns:
            EnhancedPaymentRequest expiring in 30 minutes
        """
        total = to_decimal(total_amount)
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=REQUEST_TTL_MINUTES)
        request = EnhancedPaymentRequest(
            id=f"x402_{cart_id}_{secrets.token_hex(4)}",
            total={
                "amount": {"value": str(total), "currency": currency},
                "label": f"Payment for {len(items)} items",
            },
            display_items=[
                {
                    "label": item.get("name") or item.get("service") or "Item",
                    "amount": {"value": str(item.get("price", 0)), "currency": currency},
                }
                for item in items
            ],
            x402_methods=[self.create_x402_payment_method(settlement_address)],
            settlement_address=settlement_address,
            network=self.network,
            expires_at=expires_at.isoformat(),
        )
        logger.info(f"Created payment request {request.id} for cart {cart_id}: {total} {currency}")
        return request

    def execute_x402_payment(
        self,
        payment_request: EnhancedPaymentRequest,
        payer_agent: str,
        service_description: str = "A2A Service",
    ) -> X402PaymentResponse:
        """Settle an enhanced payment request in crypto.

        Raises:
            PaymentError: If x402 is not configured or settlement fails
        """
        if datetime.fromisoformat(payment_request.expires_at) < datetime.now(timezone.utc):
            raise PaymentError(f"Payment request {payment_request.id} has expired")

        amount = payment_request.total["amount"]["value"]
        currency = payment_request.total["amount"]["currency"]
        request = self.x402_manager.create_payment_request(
            payer_agent, self.agent_name, amount, currency, service_description
        )
        proof = self.x402_manager.execute_payment(request, payment_request.settlement_address)

        return X402PaymentResponse(
            payment_id=proof.payment_id,
            transaction_hash=proof.main_transaction_hash,
            fee_transaction_hash=proof.fee_transaction_hash,
            network=self.network,
            amount=proof.amount,
            currency=proof.currency,
            settlement_address=payment_request.settlement_address,
            status=proof.status.value,
            settlement_status=proof.settlement_status.value,
            timestamp=datetime.fromtimestamp(proof.timestamp / 1000, timezone.utc).isoformat(),
            protocol_fee=proof.protocol_fee,
        )

    def execute_traditional_payment(
        self,
        payment_method: str,
        amount: AmountLike,
        currency: str,
        payment_data: Optional[dict[str, Any]] = None,
    ) -> TraditionalPaymentResponse:
        """Pay with a W3C method; unknown methods yield a failed response."""
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            logger.warning(f"Unsupported payment method: {payment_method}")
            return TraditionalPaymentResponse(
                payment_id=f"trad_{int(time.time() * 1000):x}",
                method=payment_method,
                amount=str(amount),
                currency=currency,
                status="failed",
                timestamp=_iso_now(),
                receipt_data={"error": "Unsupported payment method"},
            )

        result = self.payment_manager.execute_traditional_payment(
            method, amount, currency, payment_data
        )
        return TraditionalPaymentResponse(
            payment_id=result.payment_id,
            method=payment_method,
            amount=result.amount,
            currency=result.currency,
            status=result.status,
            transaction_id=result.transaction_id,
            authorization_code=result.processor_response.get("authorization_code"),
            simulated=result.simulated,
            timestamp=datetime.fromtimestamp(result.timestamp / 1000, timezone.utc).isoformat(),
            receipt_data=result.processor_response,
        )

    def verify_x402_payment(self, payment_response: X402PaymentResponse) -> bool:
        """Check a payment response and its transaction on chain."""
        tx_hash = payment_response.transaction_hash
        if payment_response.status != "confirmed" or len(tx_hash) != 66:
            return False
        return self.x402_manager.verify_transaction(tx_hash)

    def create_payment_proof(
        self, payment_response: X402PaymentResponse, payer_agent: str = "unknown"
    ) -> dict[str, Any]:
        """Hash a payment response into a portable proof."""
        proof_data = {
            "payment_id": payment_response.payment_id,
            "transaction_hash": payment_response.transaction_hash,
            "network": payment_response.network,
            "amount": payment_response.amount,
            "currency": payment_response.currency,
            "settlement_address": payment_response.settlement_address,
            "timestamp": payment_response.timestamp,
            "agent_payer": payer_agent,
            "agent_payee": self.agent_name,
        }
        return {
            "proof_type": "a2a_x402_payment",
            "proof_hash": sha256_hex(canonical_json(proof_data)),
            "proof_data": proof_data,
            "verification_method": "on_chain_transaction",
            "created_at": _iso_now(),
        }

    def get_extension_capabilities(self) -> dict[str, Any]:
        return {
            "extension_name": EXTENSION_NAME,
            "version": EXTENSION_VERSION,
            "w3c_payment_methods": [m.supported_methods for m in self.w3c_payment_methods],
            "supported_crypto_methods": self.supported_crypto_methods,
            "supported_networks": self.supported_networks,
            "features": [
                "w3c_payment_request_api",
                "multi_payment_methods",
                "crypto_payments",
                "on_chain_verification",
                "protocol_fees",
                "multi_network_support",
            ],
            "compliance": [
                "W3C Payment Request API",
                "A2A-x402 Specification v0.1",
                "EIP-20 Token Standard",
            ],
        }
