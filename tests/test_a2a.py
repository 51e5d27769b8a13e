"""Tests for the A2A x402 multi-method payment extension."""

from datetime import datetime, timedelta, timezone

import pytest

from chaoschain_sdk.core.errors import PaymentError
from chaoschain_sdk.payments.a2a import A2AX402Extension
from chaoschain_sdk.payments.methods import PaymentManager
from chaoschain_sdk.payments.x402 import X402PaymentManager

from conftest import CLIENT_ADDRESS, OWNER_ADDRESS

ITEMS = [{"name": "Market analysis", "price": 2.0}, {"service": "Report", "price": 0.5}]


@pytest.fixture
def extension(mock_web3, network_info, owner_wallet):
    x402 = X402PaymentManager(mock_web3, owner_wallet, network_info)
    manager = PaymentManager("Alice", "base-sepolia", owner_wallet, x402_manager=x402)
    return A2AX402Extension("Alice", "base-sepolia", manager)


def test_enhanced_payment_request(extension):
    """Test building a cart payment request."""
    request = extension.create_enhanced_payment_request(
        "cart-1", "2.5", "USDC", ITEMS, CLIENT_ADDRESS
    )

    assert request.id.startswith("x402_cart-1_")
    assert request.total["amount"] == {"value": "2.5", "currency": "USDC"}
    assert request.total["label"] == "Payment for 2 items"
    assert [item["label"] for item in request.display_items] == ["Market analysis", "Report"]
    assert request.settlement_address == CLIENT_ADDRESS

    expires_at = datetime.fromisoformat(request.expires_at)
    remaining = expires_at - datetime.now(timezone.utc)
    assert timedelta(minutes=29) < remaining <= timedelta(minutes=30)

    method = request.x402_methods[0]
    assert method.method_data["crypto_settlement_address"] == CLIENT_ADDRESS
    assert method.payment_endpoint == "x402://Alice.chaoschain.com/pay"


def test_execute_and_verify_x402_payment(extension, mock_web3):
    """Test settling a request in USDC and proving it."""
    mock_web3.usdc.mint(OWNER_ADDRESS, 10 * 10**6)
    request = extension.create_enhanced_payment_request(
        "cart-2", "2.5", "USDC", ITEMS, CLIENT_ADDRESS
    )

    response = extension.execute_x402_payment(request, "Bob", "Analysis bundle")

    assert response.status == "confirmed"
    assert response.settlement_status == "complete"
    assert response.amount == "2.5"
    assert response.protocol_fee == "0.0625"
    assert response.settlement_address == CLIENT_ADDRESS
    assert mock_web3.usdc.call_balanceOf(CLIENT_ADDRESS) == 2_500_000
    assert extension.verify_x402_payment(response)

    proof = extension.create_payment_proof(response, "Bob")
    assert proof["proof_type"] == "a2a_x402_payment"
    assert len(proof["proof_hash"]) == 64
    assert proof["proof_data"]["agent_payer"] == "Bob"
    assert proof["proof_data"]["agent_payee"] == "Alice"


def test_verify_rejects_unconfirmed(extension, mock_web3):
    """Test that failed or malformed responses do not verify."""
    mock_web3.usdc.mint(OWNER_ADDRESS, 10 * 10**6)
    request = extension.create_enhanced_payment_request("cart-3", "1", "USDC", ITEMS, CLIENT_ADDRESS)
    response = extension.execute_x402_payment(request, "Bob")

    assert not extension.verify_x402_payment(response.model_copy(update={"status": "failed"}))
    assert not extension.verify_x402_payment(response.model_copy(update={"transaction_hash": "0x1"}))


def test_expired_request_is_refused(extension):
    """Test that expired payment requests are not settled."""
    request = extension.create_enhanced_payment_request("cart-4", "1", "USDC", ITEMS, CLIENT_ADDRESS)
    past = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()

    with pytest.raises(PaymentError):
        extension.execute_x402_payment(request.model_copy(update={"expires_at": past}), "Bob")


def test_traditional_payment(extension):
    """Test routing card payments through the payment manager."""
    response = extension.execute_traditional_payment("basic-card", "12.00", "USD")

    assert response.status == "completed"
    assert response.simulated
    assert response.authorization_code.startswith("AUTH_")
    assert response.receipt_data["network"] == "visa"


def test_unsupported_traditional_method(extension):
    """Test that unknown methods produce a failed response instead of raising."""
    response = extension.execute_traditional_payment("https://example.com/pay", "1", "USD")

    assert response.status == "failed"
    assert response.payment_id.startswith("trad_")
    assert response.receipt_data == {"error": "Unsupported payment method"}


def test_x402_requires_manager(owner_wallet):
    """Test that crypto settlement needs an x402 manager."""
    extension = A2AX402Extension(
        "Alice", "base-sepolia", PaymentManager("Alice", "base-sepolia", owner_wallet)
    )
    request = extension.create_enhanced_payment_request("cart-5", "1", "USDC", ITEMS, CLIENT_ADDRESS)

    with pytest.raises(PaymentError):
        extension.execute_x402_payment(request, "Bob")


def test_extension_capabilities(extension):
    """Test the advertised capabilities."""
    capabilities = extension.get_extension_capabilities()

    assert capabilities["extension_name"] == "a2a-x402-multi-payment"
    assert len(capabilities["w3c_payment_methods"]) == 5
    assert "https://a2a.org/x402" in capabilities["w3c_payment_methods"]
    assert "usdc" in capabilities["supported_crypto_methods"]
    assert "base-sepolia" in capabilities["supported_networks"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
