"""x402 crypto payments: fees, two-leg settlement and the 402 envelope."""

import logging
import secrets
import time
from decimal import Decimal
from typing import Any, Optional

from web3 import Web3
from web3.exceptions import TransactionNotFound

from ..core.amounts import (
    AmountLike,
    calculate_fee_units,
    currency_decimals,
    format_units,
    is_native_currency,
    parse_units,
    to_decimal,
    validate_fee_percentage,
)
from ..core.context import SDKContext
from ..core.errors import PaymentError, ValidationError
from ..core.models import (
    CostBreakdown,
    PaymentProof,
    PaymentReceipt,
    PaymentRequired,
    PaymentRequirementsResponse,
    PaymentStatus,
    SettlementStatus,
    X402Payment,
    X402PaymentRequest,
)
from ..core.networks import NetworkInfo
from ..registry.abis import ERC20_ABI
from ..wallet.manager import WalletManager
from ..wallet.transactions import send_transaction
from . import receipts

logger = logging.getLogger(__name__)

DEFAULT_FEE_PERCENTAGE = 2.5
DEFAULT_REQUEST_TTL_SECONDS = 300
DEFAULT_DESCRIPTION = "Payment required for service"


class X402PaymentManager:
    """Creates, settles and verifies x402 payments for one wallet.

    The protocol fee is charged on top of the amount: the recipient
    receives the full amount and the treasury receives the fee in a
    second transfer.
    """

    def __init__(
        self,
        web3: Web3,
        wallet: WalletManager,
        network_info: NetworkInfo,
        context: Optional[SDKContext] = None,
        fee_percentage: float = DEFAULT_FEE_PERCENTAGE,
        treasury_address: Optional[str] = None,
    ):
        """Initialize payment manager.

        Args:
            web3: Web3 instance connected to the network
            wallet: Paying wallet
            network_info: Network the payments settle on
            context: Shared SDK context (payment ledger)
            fee_percentage: Protocol fee, 0-100
            treasury_address: Fee recipient (network treasury by default)
        """
        self.web3 = web3
        self.wallet = wallet
        self.network_info = network_info
        self.context = context or SDKContext()
        self._fee_percentage = validate_fee_percentage(fee_percentage)
        self._treasury_address = Web3.to_checksum_address(
            treasury_address or network_info.treasury_address
        )
        self._usdc = None

    @property
    def network(self) -> str:
        return self.network_info.network.value

    # ------------------------------------------------------------------
    # Fees
    # ------------------------------------------------------------------

    def get_fee_percentage(self) -> float:
        return float(self._fee_percentage)

    def set_fee_percentage(self, percentage: float) -> None:
        """Set the protocol fee.

        Raises:
            ValidationError: If the percentage is outside [0, 100]
        """
        self._fee_percentage = validate_fee_percentage(percentage)
        logger.info(f"Protocol fee set to {percentage}%")

    @property
    def treasury_address(self) -> str:
        return self._treasury_address

    def set_treasury_address(self, address: str) -> None:
        if not Web3.is_address(address):
            raise ValidationError(f"Invalid treasury address: {address}")
        self._treasury_address = Web3.to_checksum_address(address)

    def _decimals(self, currency: str) -> int:
        return currency_decimals(currency, self.network_info.native_currency.symbol)

    def _is_native(self, currency: str) -> bool:
        return is_native_currency(currency, self.network_info.native_currency.symbol)

    def calculate_fee(self, amount: AmountLike, currency: str = "USDC") -> str:
        """Protocol fee for an amount, as a decimal string."""
        decimals = self._decimals(currency)
        fee = calculate_fee_units(parse_units(amount, decimals), self._fee_percentage)
        return format_units(fee, decimals)

    def calculate_total_cost(self, amount: AmountLike, currency: str = "USDC") -> CostBreakdown:
        """Amount, fee and total the payer will spend.

        Args:
            amount: Decimal amount, e.g. "10.0"
            currency: "USDC", "ETH" or the network's native symbol

        Returns:
            CostBreakdown with decimal-string fields
        """
        decimals = self._decimals(currency)
        amount_units = parse_units(amount, decimals)
        fee_units = calculate_fee_units(amount_units, self._fee_percentage)
        return CostBreakdown(
            amount=format_units(amount_units, decimals),
            fee=format_units(fee_units, decimals),
            total=format_units(amount_units + fee_units, decimals),
            currency=currency,
        )

    # ------------------------------------------------------------------
    # Requests and settlement
    # ------------------------------------------------------------------

    def create_payment_request(
        self,
        from_agent: str,
        to_agent: str,
        amount: AmountLike,
        currency: str = "USDC",
        service_description: str = "AI Agent Service",
        expiry_seconds: int = DEFAULT_REQUEST_TTL_SECONDS,
    ) -> X402PaymentRequest:
        """Create a payment request; no chain access.

        Raises:
            ValidationError: If the amount is invalid or not positive
            PaymentError: If the currency is unsupported
        """
        cost = self.calculate_total_cost(amount, currency)
        if to_decimal(cost.amount) <= 0:
            raise ValidationError("Payment amount must be greater than zero")

        created_at = int(time.time() * 1000)
        request = X402PaymentRequest(
            payment_id=f"x402_{secrets.token_hex(8)}",
            from_agent=from_agent,
            to_agent=to_agent,
            amount=cost.amount,
            currency=currency.upper(),
            protocol_fee=cost.fee,
            network=self.network,
            service_description=service_description,
            created_at=created_at,
            expires_at=created_at + expiry_seconds * 1000,
        )
        logger.info(
            f"Created payment request {request.payment_id}: {request.amount} "
            f"{request.currency} + {request.protocol_fee} fee"
        )
        return request

    def _usdc_contract(self):
        if not self.network_info.supports_usdc:
            raise PaymentError(f"USDC is not available on {self.network}")
        if self._usdc is None:
            self._usdc = self.web3.eth.contract(
                address=Web3.to_checksum_address(self.network_info.usdc_address), abi=ERC20_ABI
            )
        return self._usdc

    def _transfer(self, currency: str, to: str, units: int, action: str) -> dict[str, Any]:
        to = Web3.to_checksum_address(to)
        if self._is_native(currency):
            return send_transaction(
                self.web3,
                self.wallet,
                self.network_info.chain_id,
                action,
                to=to,
                value=units,
                error_cls=PaymentError,
            )
        return send_transaction(
            self.web3,
            self.wallet,
            self.network_info.chain_id,
            action,
            function=self._usdc_contract().functions.transfer(to, units),
            error_cls=PaymentError,
        )

    def execute_payment(
        self, request: X402PaymentRequest, recipient_address: str
    ) -> PaymentProof:
        """Settle a payment request on-chain.

        The main leg (amount to recipient) is confirmed before the fee leg
        (fee to treasury) is sent. If only the fee leg fails the proof is
        returned with ``settlement_status == "partial"``.

        Args:
            request: Request from create_payment_request
            recipient_address: Payee wallet

        Returns:
            PaymentProof

        Raises:
            PaymentError: If the request expired, the currency is unsupported
                or the main leg fails
        """
        if request.is_expired():
            raise PaymentError(f"Payment request {request.payment_id} has expired")
        if not Web3.is_address(recipient_address):
            raise PaymentError(f"Invalid recipient address: {recipient_address}")

        decimals = self._decimals(request.currency)
        amount_units = parse_units(request.amount, decimals)
        fee_units = parse_units(request.protocol_fee, decimals)

        logger.info(
            f"Executing payment {request.payment_id} on {self.network} to {recipient_address}"
        )
        main_receipt = self._transfer(
            request.currency, recipient_address, amount_units, f"pay {request.payment_id}"
        )

        fee_tx_hash = None
        fee_error = None
        if fee_units > 0:
            try:
                fee_receipt = self._transfer(
                    request.currency,
                    self._treasury_address,
                    fee_units,
                    f"pay protocol fee for {request.payment_id}",
                )
                fee_tx_hash = Web3.to_hex(fee_receipt["transactionHash"])
            except PaymentError as e:
                fee_error = str(e)
                logger.warning(
                    f"Payment {request.payment_id} partially settled: fee leg failed: {e}"
                )

        proof = PaymentProof(
            payment_id=request.payment_id,
            main_transaction_hash=Web3.to_hex(main_receipt["transactionHash"]),
            fee_transaction_hash=fee_tx_hash,
            from_address=self.wallet.address,
            to_address=Web3.to_checksum_address(recipient_address),
            treasury_address=self._treasury_address,
            amount=request.amount,
            currency=request.currency,
            protocol_fee=request.protocol_fee,
            network=self.network,
            chain_id=self.network_info.chain_id,
            block_number=main_receipt["blockNumber"],
            status=PaymentStatus.CONFIRMED,
            settlement_status=(
                SettlementStatus.PARTIAL if fee_error else SettlementStatus.COMPLETE
            ),
            fee_error=fee_error,
        )
        self.context.record_payment(proof)
        return proof

    def pay(
        self,
        to_address: str,
        amount: AmountLike,
        currency: str = "USDC",
        service_description: str = "AI Agent Service",
    ) -> PaymentProof:
        """Create and immediately settle a payment to ``to_address``."""
        request = self.create_payment_request(
            self.wallet.address, to_address, amount, currency, service_description
        )
        return self.execute_payment(request, to_address)

    # ------------------------------------------------------------------
    # 402 envelope
    # ------------------------------------------------------------------

    def create_payment_requirements(
        self,
        amount: AmountLike,
        currency: str = "USDC",
        description: Optional[str] = None,
    ) -> PaymentRequirementsResponse:
        """Build the HTTP 402 response asking for payment to this wallet.

        Args:
            amount: Amount as given, echoed verbatim
            currency: Requested currency
            description: Human-readable description of the service

        Returns:
            PaymentRequirementsResponse
        """
        to_decimal(amount)
        payment_required = PaymentRequired(
            amount=str(amount),
            currency=currency,
            recipient=self.wallet.address,
            description=description or DEFAULT_DESCRIPTION,
            network=self.network,
        )
        return PaymentRequirementsResponse(
            body={
                "error": "Payment Required",
                "paymentRequired": payment_required.model_dump(),
            }
        )

    # ------------------------------------------------------------------
    # Verification and balances
    # ------------------------------------------------------------------

    def verify_transaction(self, tx_hash: str) -> bool:
        """Check that a transaction was mined successfully."""
        try:
            receipt = self.web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return False
        except Exception as e:
            raise PaymentError(f"Failed to verify transaction {tx_hash}: {e}")
        return receipt is not None and receipt["status"] == 1

    def verify_payment(self, proof: PaymentProof) -> bool:
        """Check a proof's main leg against chain state.

        The transaction must have succeeded and target the recipient (native
        payments) or the USDC contract (token payments).
        """
        if not self.verify_transaction(proof.main_transaction_hash):
            return False
        try:
            tx = self.web3.eth.get_transaction(proof.main_transaction_hash)
        except TransactionNotFound:
            return False

        target = Web3.to_checksum_address(tx["to"])
        if self._is_native(proof.currency):
            return target == Web3.to_checksum_address(proof.to_address)
        return target == Web3.to_checksum_address(self.network_info.usdc_address)

    def get_eth_balance(self, address: Optional[str] = None) -> str:
        """Native balance as a decimal string."""
        wei = self.web3.eth.get_balance(Web3.to_checksum_address(address or self.wallet.address))
        return format_units(wei, self.network_info.native_currency.decimals)

    def get_usdc_balance(self, address: Optional[str] = None) -> str:
        """USDC balance as a decimal string."""
        account = Web3.to_checksum_address(address or self.wallet.address)
        try:
            units = self._usdc_contract().functions.balanceOf(account).call()
        except PaymentError:
            raise
        except Exception as e:
            raise PaymentError(f"Failed to read USDC balance: {e}")
        return format_units(units, self._decimals("USDC"))

    def approve_usdc(self, spender: str, amount: AmountLike) -> str:
        """Approve ``spender`` to move USDC from this wallet.

        Returns:
            Transaction hash
        """
        units = parse_units(amount, self._decimals("USDC"))
        receipt = send_transaction(
            self.web3,
            self.wallet,
            self.network_info.chain_id,
            "approve USDC",
            function=self._usdc_contract().functions.approve(
                Web3.to_checksum_address(spender), units
            ),
            error_cls=PaymentError,
        )
        return Web3.to_hex(receipt["transactionHash"])

    # ------------------------------------------------------------------
    # Receipts and history
    # ------------------------------------------------------------------

    def create_receipt(self, payment: X402Payment | PaymentProof) -> PaymentReceipt:
        """Create a receipt for a payment and sign it with this wallet."""
        if isinstance(payment, PaymentProof):
            payment = X402Payment.from_proof(payment)
        return receipts.sign_receipt(receipts.create_receipt(payment), self.wallet)

    def verify_receipt(self, receipt: PaymentReceipt) -> bool:
        return receipts.verify_receipt(receipt)

    def get_payment_history(self, limit: Optional[int] = None) -> list[PaymentProof]:
        """Payments settled through this client, newest first."""
        history = list(reversed(self.context.payments))
        return history[:limit] if limit is not None else history

    def get_payment_stats(self) -> dict[str, Any]:
        payments = self.context.payments
        volume: dict[str, Decimal] = {}
        for proof in payments:
            volume[proof.currency] = volume.get(proof.currency, Decimal(0)) + Decimal(proof.amount)
        return {
            "network": self.network,
            "wallet_address": self.wallet.address,
            "treasury_address": self._treasury_address,
            "protocol_fee_percentage": self.get_fee_percentage(),
            "supported_currencies": ["ETH", "USDC"] if self.network_info.supports_usdc else ["ETH"],
            "total_payments": len(payments),
            "partial_settlements": sum(1 for p in payments if p.is_partial),
            "volume": {currency: str(total) for currency, total in volume.items()},
        }
