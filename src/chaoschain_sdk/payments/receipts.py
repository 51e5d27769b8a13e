"""Content-addressed payment receipts signed with EIP-191."""

import json
import logging

from ..core.crypto import keccak_hex, recover_text_signer
from ..core.models import PaymentReceipt, X402Payment
from ..wallet.manager import WalletManager

logger = logging.getLogger(__name__)


def _record(receipt: PaymentReceipt | X402Payment) -> str:
    # Key order and compact separators are part of the payment id
    record = {
        "from": receipt.from_address,
        "to": receipt.to_address,
        "amount": receipt.amount,
        "currency": receipt.currency,
        "timestamp": receipt.timestamp,
        "txHash": receipt.tx_hash,
    }
    return json.dumps(record, separators=(",", ":"), ensure_ascii=False)


def compute_payment_id(payment: PaymentReceipt | X402Payment) -> str:
    """keccak256 of the canonical payment record, 0x-hex."""
    return keccak_hex(_record(payment))


def receipt_message(receipt: PaymentReceipt) -> str:
    """Text the payer signs for a receipt."""
    return (
        "Payment Receipt\n"
        f"ID: {receipt.payment_id}\n"
        f"From: {receipt.from_address}\n"
        f"To: {receipt.to_address}\n"
        f"Amount: {receipt.amount} {receipt.currency}\n"
        f"Tx: {receipt.tx_hash}"
    )


def create_receipt(payment: X402Payment) -> PaymentReceipt:
    """Build an unsigned receipt for a payment."""
    return PaymentReceipt(
        payment_id=compute_payment_id(payment),
        from_address=payment.from_address,
        to_address=payment.to_address,
        amount=payment.amount,
        currency=payment.currency,
        timestamp=payment.timestamp,
        tx_hash=payment.tx_hash,
    )


def sign_receipt(receipt: PaymentReceipt, wallet: WalletManager) -> PaymentReceipt:
    """Return a copy of the receipt signed by ``wallet``."""
    signature = wallet.sign_message(receipt_message(receipt))
    return receipt.model_copy(update={"signature": signature})


def verify_receipt(receipt: PaymentReceipt) -> bool:
    """Check a receipt's id and signature.

    The id must match the receipt's fields and the signature must recover
    to ``from_address``. Never raises.
    """
    try:
        if compute_payment_id(receipt) != receipt.payment_id:
            return False
        signer = recover_text_signer(receipt_message(receipt), receipt.signature)
        return signer.lower() == receipt.from_address.lower()
    except Exception as e:
        logger.debug(f"Receipt verification failed: {e}")
        return False
