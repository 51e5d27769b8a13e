"""Traditional payment methods (cards, wallets, PayPal) alongside x402."""

import logging
import secrets
from enum import Enum
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict

from ..core.amounts import AmountLike, format_units, parse_units
from ..core.errors import AuthenticationError, PaymentError
from ..core.models import PaymentResult, PaymentStatus
from ..core.settings import EnvironmentSettings
from ..wallet.manager import WalletManager
from .x402 import X402PaymentManager

logger = logging.getLogger(__name__)

STRIPE_API_URL = "https://api.stripe.com/v1"
PAYPAL_SANDBOX_URL = "https://api-m.sandbox.paypal.com"
PAYPAL_LIVE_URL = "https://api-m.paypal.com"

# Fiat amounts are sent to processors in cents
FIAT_DECIMALS = 2


class PaymentMethod(str, Enum):
    """W3C Payment Request method identifiers."""

    BASIC_CARD = "basic-card"
    GOOGLE_PAY = "https://google.com/pay"
    APPLE_PAY = "https://apple.com/apple-pay"
    PAYPAL = "https://paypal.com"
    A2A_X402 = "https://a2a.org/x402"


class PaymentMethodCredentials(BaseModel):
    """Processor credentials."""

    stripe_secret_key: Optional[str] = None
    google_pay_merchant_id: Optional[str] = None
    apple_pay_merchant_id: Optional[str] = None
    paypal_client_id: Optional[str] = None
    paypal_client_secret: Optional[str] = None
    paypal_sandbox: bool = True

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_settings(cls, settings: EnvironmentSettings) -> "PaymentMethodCredentials":
        return cls(
            stripe_secret_key=settings.stripe_secret_key,
            google_pay_merchant_id=settings.google_pay_merchant_id,
            apple_pay_merchant_id=settings.apple_pay_merchant_id,
            paypal_client_id=settings.paypal_client_id,
            paypal_client_secret=settings.paypal_client_secret,
            paypal_sandbox=settings.paypal_sandbox,
        )


class PaymentManager:
    """Routes payments to Stripe, PayPal, wallet pay or x402.

    Processors without credentials are simulated; simulated results carry
    ``simulated=True``.
    """

    def __init__(
        self,
        agent_name: str,
        network: str,
        wallet: WalletManager,
        credentials: Optional[PaymentMethodCredentials] = None,
        x402_manager: Optional[X402PaymentManager] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        """Initialize payment manager.

        Args:
            agent_name: Agent the payments are made for
            network: Network used for x402 payments
            wallet: Agent wallet
            credentials: Processor credentials (none means simulate everything)
            x402_manager: Manager used for A2A x402 payments
            http_client: HTTP client for processor APIs
        """
        self.agent_name = agent_name
        self.network = network
        self.wallet = wallet
        self.credentials = credentials or PaymentMethodCredentials()
        self.x402_manager = x402_manager
        self.http = http_client or httpx.Client(timeout=30.0)
        self._paypal_token: Optional[str] = None

        if self.credentials.stripe_secret_key:
            logger.info("Stripe integration enabled")
        if self.credentials.paypal_client_id and self.credentials.paypal_client_secret:
            logger.info("PayPal integration enabled")

    @property
    def _paypal_url(self) -> str:
        return PAYPAL_SANDBOX_URL if self.credentials.paypal_sandbox else PAYPAL_LIVE_URL

    def execute_traditional_payment(
        self,
        method: PaymentMethod | str,
        amount: AmountLike,
        currency: str = "USD",
        payment_data: Optional[dict[str, Any]] = None,
    ) -> PaymentResult:
        """Execute a payment with the given method.

        Args:
            method: Payment method identifier
            amount: Decimal amount in major units
            currency: ISO currency (or crypto currency for x402)
            payment_data: Method-specific data, e.g. ``payment_method`` for
                Stripe or ``recipient`` for x402

        Returns:
            PaymentResult

        Raises:
            PaymentError: If the method is unsupported or the processor fails
        """
        try:
            method = PaymentMethod(method)
        except ValueError:
            raise PaymentError(f"Unsupported payment method: {method}")

        payment_data = payment_data or {}
        logger.info(f"Processing {method.value} payment: {amount} {currency}")

        if method == PaymentMethod.BASIC_CARD:
            return self._process_basic_card(amount, currency, payment_data)
        if method == PaymentMethod.GOOGLE_PAY:
            return self._process_wallet_pay(
                method, self.credentials.google_pay_merchant_id, amount, currency, payment_data
            )
        if method == PaymentMethod.APPLE_PAY:
            return self._process_wallet_pay(
                method, self.credentials.apple_pay_merchant_id, amount, currency, payment_data
            )
        if method == PaymentMethod.PAYPAL:
            return self._process_paypal(amount, currency, payment_data)
        return self._process_a2a_x402(amount, currency, payment_data)

    # Stripe
    def _process_basic_card(
        self, amount: AmountLike, currency: str, payment_data: dict[str, Any]
    ) -> PaymentResult:
        if not self.credentials.stripe_secret_key or "payment_method" not in payment_data:
            return self._simulate(PaymentMethod.BASIC_CARD, amount, currency)

        form = {
            "amount": str(parse_units(amount, FIAT_DECIMALS)),
            "currency": currency.lower(),
            "payment_method": payment_data["payment_method"],
            "confirm": "true",
            "automatic_payment_methods[enabled]": "true",
            "automatic_payment_methods[allow_redirects]": "never",
            "description": payment_data.get("description", f"{self.agent_name} payment"),
        }
        try:
            response = self.http.post(
                f"{STRIPE_API_URL}/payment_intents",
                data=form,
                headers={"Authorization": f"Bearer {self.credentials.stripe_secret_key}"},
            )
            response.raise_for_status()
            intent = response.json()
        except httpx.HTTPError as e:
            raise PaymentError(f"Stripe payment failed: {e}")

        status = "completed" if intent.get("status") == "succeeded" else intent.get("status", "unknown")
        return PaymentResult(
            payment_id=f"stripe_{intent['id']}",
            method=PaymentMethod.BASIC_CARD.value,
            amount=format_units(parse_units(amount, FIAT_DECIMALS), FIAT_DECIMALS),
            currency=currency.upper(),
            status=status,
            transaction_id=intent["id"],
            processor_response={"processor": "stripe", "intent_status": intent.get("status")},
        )

    # Google Pay / Apple Pay
    def _process_wallet_pay(
        self,
        method: PaymentMethod,
        merchant_id: Optional[str],
        amount: AmountLike,
        currency: str,
        payment_data: dict[str, Any],
    ) -> PaymentResult:
        result = self._simulate(method, amount, currency)
        if merchant_id:
            result.processor_response["merchant_id"] = merchant_id
            result.processor_response["token_received"] = "token" in payment_data
        return result

    # PayPal
    def _paypal_access_token(self) -> str:
        if self._paypal_token:
            return self._paypal_token
        try:
            response = self.http.post(
                f"{self._paypal_url}/v1/oauth2/token",
                data={"grant_type": "client_credentials"},
                auth=(self.credentials.paypal_client_id, self.credentials.paypal_client_secret),
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise AuthenticationError(f"PayPal authentication failed: {e}")
        self._paypal_token = response.json()["access_token"]
        return self._paypal_token

    def _process_paypal(
        self, amount: AmountLike, currency: str, payment_data: dict[str, Any]
    ) -> PaymentResult:
        if not (self.credentials.paypal_client_id and self.credentials.paypal_client_secret):
            return self._simulate(PaymentMethod.PAYPAL, amount, currency)

        value = format_units(parse_units(amount, FIAT_DECIMALS), FIAT_DECIMALS)
        order = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "amount": {"currency_code": currency.upper(), "value": f"{float(value):.2f}"},
                    "description": payment_data.get("description", f"{self.agent_name} payment"),
                }
            ],
        }
        try:
            response = self.http.post(
                f"{self._paypal_url}/v2/checkout/orders",
                json=order,
                headers={"Authorization": f"Bearer {self._paypal_access_token()}"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise PaymentError(f"PayPal order failed: {e}")

        approve_url = next(
            (link["href"] for link in data.get("links", []) if link.get("rel") == "approve"),
            None,
        )
        return PaymentResult(
            payment_id=f"paypal_{data['id']}",
            method=PaymentMethod.PAYPAL.value,
            amount=value,
            currency=currency.upper(),
            status="pending_approval" if data.get("status") == "CREATED" else data.get("status", "unknown").lower(),
            transaction_id=data["id"],
            processor_response={"processor": "paypal", "approve_url": approve_url},
        )

    # x402
    def _process_a2a_x402(
        self, amount: AmountLike, currency: str, payment_data: dict[str, Any]
    ) -> PaymentResult:
        if self.x402_manager is None:
            raise PaymentError("x402 payments are not configured")

        tx_hash = payment_data.get("transaction_hash")
        if tx_hash:
            confirmed = self.x402_manager.verify_transaction(tx_hash)
            return PaymentResult(
                payment_id=f"a2a_x402_{secrets.token_hex(6)}",
                method=PaymentMethod.A2A_X402.value,
                amount=str(amount),
                currency=currency.upper(),
                status=PaymentStatus.CONFIRMED.value if confirmed else PaymentStatus.FAILED.value,
                transaction_id=tx_hash,
                processor_response={"network": self.network, "settlement_type": "crypto"},
            )

        recipient = payment_data.get("recipient")
        if not recipient:
            raise PaymentError("x402 payments need a recipient or a transaction_hash")

        proof = self.x402_manager.pay(
            recipient, amount, currency, payment_data.get("description", "A2A x402 payment")
        )
        return PaymentResult(
            payment_id=proof.payment_id,
            method=PaymentMethod.A2A_X402.value,
            amount=proof.amount,
            currency=proof.currency,
            status=proof.status.value,
            transaction_id=proof.main_transaction_hash,
            processor_response={
                "network": self.network,
                "settlement_type": "crypto",
                "settlement_status": proof.settlement_status.value,
                "fee_transaction_hash": proof.fee_transaction_hash,
            },
        )

    def _simulate(self, method: PaymentMethod, amount: AmountLike, currency: str) -> PaymentResult:
        payment_id = f"sim_{secrets.token_hex(6)}"
        logger.warning(f"{method.value} not configured, simulating payment {payment_id}")
        return PaymentResult(
            payment_id=payment_id,
            method=method.value,
            amount=format_units(parse_units(amount, FIAT_DECIMALS), FIAT_DECIMALS),
            currency=currency.upper(),
            status="completed",
            transaction_id=f"txn_{payment_id}",
            simulated=True,
            processor_response={
                "authorization_code": f"AUTH_{secrets.token_hex(4).upper()}",
                "network": "visa" if method == PaymentMethod.BASIC_CARD else method.value,
            },
        )

    def get_payment_methods_status(self) -> dict[str, bool]:
        """Which methods have real (non-simulated) processors configured."""
        creds = self.credentials
        return {
            PaymentMethod.BASIC_CARD.value: bool(creds.stripe_secret_key),
            PaymentMethod.GOOGLE_PAY.value: bool(creds.google_pay_merchant_id),
            PaymentMethod.APPLE_PAY.value: bool(creds.apple_pay_merchant_id),
            PaymentMethod.PAYPAL.value: bool(creds.paypal_client_id and creds.paypal_client_secret),
            PaymentMethod.A2A_X402.value: self.x402_manager is not None,
        }

    def get_supported_payment_methods(self) -> list[str]:
        return [method for method, enabled in self.get_payment_methods_status().items() if enabled]

    def is_payment_method_available(self, method: PaymentMethod | str) -> bool:
        return self.get_payment_methods_status().get(PaymentMethod(method).value, False)

    def validate_credentials(self) -> dict[str, bool]:
        """Check configured credentials against the processors."""
        results: dict[str, bool] = {}
        if self.credentials.stripe_secret_key:
            try:
                response = self.http.get(
                    f"{STRIPE_API_URL}/balance",
                    headers={"Authorization": f"Bearer {self.credentials.stripe_secret_key}"},
                )
                results["stripe"] = response.status_code == 200
            except httpx.HTTPError as e:
                logger.warning(f"Stripe credential check failed: {e}")
                results["stripe"] = False
        if self.credentials.paypal_client_id:
            try:
                self._paypal_access_token()
                results["paypal"] = True
            except AuthenticationError as e:
                logger.warning(str(e))
                results["paypal"] = False
        results["google_pay"] = bool(self.credentials.google_pay_merchant_id)
        results["apple_pay"] = bool(self.credentials.apple_pay_merchant_id)
        results["crypto"] = self.x402_manager is not None
        return results

    def create_payment_request(
        self,
        items: list[dict[str, Any]],
        currency: str = "USD",
        request_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """Build a W3C PaymentRequest for the available methods.

        Args:
            items: Display items, each ``{"label": str, "amount": str}``
            currency: Currency of the items
            request_id: Request id (generated when omitted)

        Returns:
            Dict with ``methodData`` and ``details``
        """
        total = sum(parse_units(item["amount"], FIAT_DECIMALS) for item in items)
        display_items = [
            {"label": item["label"], "amount": {"currency": currency, "value": str(item["amount"])}}
            for item in items
        ]
        return {
            "methodData": [
                {"supportedMethods": method} for method in self.get_supported_payment_methods()
            ]
            or [{"supportedMethods": PaymentMethod.BASIC_CARD.value}],
            "details": {
                "id": request_id or f"req_{secrets.token_hex(6)}",
                "displayItems": display_items,
                "total": {
                    "label": "Total",
                    "amount": {"currency": currency, "value": format_units(total, FIAT_DECIMALS)},
                },
            },
        }

    def get_payment_stats(self) -> dict[str, Any]:
        return {
            "agent_name": self.agent_name,
            "network": self.network,
            "wallet_address": self.wallet.address,
            "supported_methods": len(self.get_supported_payment_methods()),
            "payment_methods_status": self.get_payment_methods_status(),
        }
