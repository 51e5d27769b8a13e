"""Per-client shared state passed to every component that needs it."""

from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field

from .amounts import to_decimal
from .models import PaymentProof

if TYPE_CHECKING:
    from ..storage.manager import AutoStorageManager


class CachedPayment(BaseModel):
    """A payment identifier that has already been verified."""

    identifier: str
    amount: str
    currency: str
    verified_at: int


class PaymentCache:
    """Append-only map of verified payment identifiers.

    Lives as long as the owning context; there is no eviction.
    """

    def __init__(self):
        self._entries: dict[str, CachedPayment] = {}

    def add(self, identifier: str, amount: str, currency: str, verified_at: int) -> None:
        self._entries[identifier] = CachedPayment(
            identifier=identifier,
            amount=amount,
            currency=currency.upper(),
            verified_at=verified_at,
        )

    def get(self, identifier: str) -> Optional[CachedPayment]:
        return self._entries.get(identifier)

    def covers(self, identifier: str, amount: str, currency: str) -> bool:
        """Check whether a cached payment pays at least ``amount`` in ``currency``."""
        entry = self._entries.get(identifier)
        if entry is None:
            return False
        if entry.currency != currency.upper():
            return False
        return Decimal(entry.amount) >= to_decimal(amount)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._entries


class SDKContext:
    """State owned by one ChaosChainSDK instance.

    Holds the storage manager (backend list), the payment verification
    cache and the ledger of payments this client settled.
    """

    def __init__(self, storage: Optional["AutoStorageManager"] = None):
        self.storage = storage
        self.payment_cache = PaymentCache()
        self.payments: list[PaymentProof] = []

    def record_payment(self, proof: PaymentProof) -> None:
        self.payments.append(proof)
