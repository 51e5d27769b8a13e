"""Tests for traditional payment methods."""

from decimal import Decimal

import httpx
import pytest

from chaoschain_sdk.core.errors import AuthenticationError, PaymentError
from chaoschain_sdk.payments.methods import (
    PaymentManager,
    PaymentMethod,
    PaymentMethodCredentials,
)
from chaoschain_sdk.payments.x402 import X402PaymentManager

from conftest import CLIENT_ADDRESS, OWNER_ADDRESS


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def x402(mock_web3, network_info, owner_wallet):
    return X402PaymentManager(mock_web3, owner_wallet, network_info)


def test_unconfigured_methods_are_simulated(owner_wallet):
    """Test that every method works in simulation without credentials."""
    manager = PaymentManager("Alice", "base-sepolia", owner_wallet)

    for method in (PaymentMethod.BASIC_CARD, PaymentMethod.GOOGLE_PAY, PaymentMethod.PAYPAL):
        result = manager.execute_traditional_payment(method, "25.50", "usd")
        assert result.simulated
        assert result.status == "completed"
        assert result.payment_id.startswith("sim_")
        assert result.currency == "USD"
        assert Decimal(result.amount) == Decimal("25.50")
        assert result.processor_response["authorization_code"].startswith("AUTH_")


def test_unsupported_method(owner_wallet):
    """Test that unknown method identifiers raise PaymentError."""
    manager = PaymentManager("Alice", "base-sepolia", owner_wallet)

    with pytest.raises(PaymentError):
        manager.execute_traditional_payment("https://example.com/bitcoin-pay", "1")


def test_stripe_without_payment_method_is_simulated(owner_wallet):
    """Test that Stripe needs a payment method token to charge."""
    manager = PaymentManager(
        "Alice",
        "base-sepolia",
        owner_wallet,
        credentials=PaymentMethodCredentials(stripe_secret_key="sk_test_123"),
        http_client=_client(lambda r: pytest.fail("no request expected")),
    )

    result = manager.execute_traditional_payment(PaymentMethod.BASIC_CARD, "10")
    assert result.simulated


def test_stripe_payment_intent(owner_wallet):
    """Test a confirmed Stripe payment intent."""

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/payment_intents"
        assert request.headers["Authorization"] == "Bearer sk_test_123"
        form = dict(httpx.QueryParams(request.content.decode()))
        assert form["amount"] == "1050"
        assert form["currency"] == "usd"
        assert form["payment_method"] == "pm_card_visa"
        return httpx.Response(200, json={"id": "pi_123", "status": "succeeded"})

    manager = PaymentManager(
        "Alice",
        "base-sepolia",
        owner_wallet,
        credentials=PaymentMethodCredentials(stripe_secret_key="sk_test_123"),
        http_client=_client(handler),
    )
    result = manager.execute_traditional_payment(
        "basic-card", "10.50", "USD", {"payment_method": "pm_card_visa"}
    )

    assert not result.simulated
    assert result.status == "completed"
    assert result.payment_id == "stripe_pi_123"
    assert result.transaction_id == "pi_123"


def test_stripe_failure(owner_wallet):
    """Test that a declined Stripe call raises PaymentError."""
    manager = PaymentManager(
        "Alice",
        "base-sepolia",
        owner_wallet,
        credentials=PaymentMethodCredentials(stripe_secret_key="sk_test_123"),
        http_client=_client(lambda r: httpx.Response(402, json={"error": "card_declined"})),
    )

    with pytest.raises(PaymentError):
        manager.execute_traditional_payment(
            "basic-card", "10", "USD", {"payment_method": "pm_card_chargeDeclined"}
        )


def test_paypal_order(owner_wallet):
    """Test PayPal OAuth followed by order creation."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        assert request.url.host == "api-m.sandbox.paypal.com"
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "A21AA", "expires_in": 3600})
        assert request.headers["Authorization"] == "Bearer A21AA"
        return httpx.Response(
            201,
            json={
                "id": "ORDER-1",
                "status": "CREATED",
                "links": [{"rel": "approve", "href": "https://paypal.test/approve/ORDER-1"}],
            },
        )

    manager = PaymentManager(
        "Alice",
        "base-sepolia",
        owner_wallet,
        credentials=PaymentMethodCredentials(paypal_client_id="id", paypal_client_secret="secret"),
        http_client=_client(handler),
    )
    result = manager.execute_traditional_payment(PaymentMethod.PAYPAL, "12.5", "usd")

    assert calls == ["/v1/oauth2/token", "/v2/checkout/orders"]
    assert result.status == "pending_approval"
    assert result.payment_id == "paypal_ORDER-1"
    assert result.processor_response["approve_url"] == "https://paypal.test/approve/ORDER-1"

    # The access token is reused
    manager.execute_traditional_payment(PaymentMethod.PAYPAL, "1", "usd")
    assert calls.count("/v1/oauth2/token") == 1


def test_paypal_bad_credentials(owner_wallet):
    """Test that rejected PayPal credentials raise AuthenticationError."""
    manager = PaymentManager(
        "Alice",
        "base-sepolia",
        owner_wallet,
        credentials=PaymentMethodCredentials(paypal_client_id="id", paypal_client_secret="bad"),
        http_client=_client(lambda r: httpx.Response(401, json={"error": "invalid_client"})),
    )

    with pytest.raises(AuthenticationError):
        manager.execute_traditional_payment(PaymentMethod.PAYPAL, "1", "USD")
    assert manager.validate_credentials()["paypal"] is False


def test_a2a_x402_payment(owner_wallet, x402, mock_web3):
    """Test routing the x402 method to the crypto payment manager."""
    mock_web3.usdc.mint(OWNER_ADDRESS, 10 * 10**6)
    manager = PaymentManager("Alice", "base-sepolia", owner_wallet, x402_manager=x402)

    result = manager.execute_traditional_payment(
        PaymentMethod.A2A_X402, "2", "USDC", {"recipient": CLIENT_ADDRESS}
    )
    assert result.status == "confirmed"
    assert result.processor_response["settlement_status"] == "complete"
    assert not result.simulated

    verified = manager.execute_traditional_payment(
        PaymentMethod.A2A_X402, "2", "USDC", {"transaction_hash": result.transaction_id}
    )
    assert verified.status == "confirmed"

    with pytest.raises(PaymentError):
        manager.execute_traditional_payment(PaymentMethod.A2A_X402, "2", "USDC")


def test_a2a_x402_needs_manager(owner_wallet):
    """Test that x402 is refused when no crypto manager is configured."""
    manager = PaymentManager("Alice", "base-sepolia", owner_wallet)

    with pytest.raises(PaymentError):
        manager.execute_traditional_payment(
            PaymentMethod.A2A_X402, "1", "USDC", {"recipient": CLIENT_ADDRESS}
        )


def test_methods_status(owner_wallet, x402):
    """Test reporting of configured payment methods."""
    manager = PaymentManager(
        "Alice",
        "base-sepolia",
        owner_wallet,
        credentials=PaymentMethodCredentials(google_pay_merchant_id="merchant-1"),
        x402_manager=x402,
    )

    assert manager.get_supported_payment_methods() == [
        PaymentMethod.GOOGLE_PAY.value,
        PaymentMethod.A2A_X402.value,
    ]
    assert manager.is_payment_method_available("https://google.com/pay")
    assert not manager.is_payment_method_available(PaymentMethod.BASIC_CARD)

    result = manager.execute_traditional_payment(
        PaymentMethod.GOOGLE_PAY, "3", "USD", {"token": "gpay-token"}
    )
    assert result.processor_response["merchant_id"] == "merchant-1"
    assert result.processor_response["token_received"] is True


def test_w3c_payment_request(owner_wallet):
    """Test building a W3C PaymentRequest."""
    manager = PaymentManager("Alice", "base-sepolia", owner_wallet)
    request = manager.create_payment_request(
        [{"label": "Analysis", "amount": "1.25"}, {"label": "Report", "amount": "2.50"}],
        request_id="req-1",
    )

    assert request["details"]["id"] == "req-1"
    assert request["details"]["total"]["amount"]["value"] == "3.75"
    assert request["methodData"] == [{"supportedMethods": "basic-card"}]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
