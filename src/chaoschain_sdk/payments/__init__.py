"""x402 crypto payments, receipts and traditional payment methods."""

from .a2a import A2AX402Extension
from .methods import PaymentManager, PaymentMethod, PaymentMethodCredentials
from .receipts import compute_payment_id, create_receipt, sign_receipt, verify_receipt
from .x402 import X402PaymentManager

__all__ = [
    "A2AX402Extension",
    "PaymentManager",
    "PaymentMethod",
    "PaymentMethodCredentials",
    "X402PaymentManager",
    "compute_payment_id",
    "create_receipt",
    "sign_receipt",
    "verify_receipt",
]
