"""
Payment processor interface.
Lets the checkout and reconciliation paths run against Mercado Pago in
production and an in-memory fake in tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional


@dataclass
class PaymentItem:
    title: str
    unit_price: Decimal
    currency: str
    quantity: int = 1


@dataclass
class ReturnUrls:
    success: str
    failure: str
    pending: Optional[str] = None


@dataclass
class PaymentIntent:
    id: str
    checkout_url: str


@dataclass
class PaymentDetails:
    id: str
    status: Optional[str]
    metadata: dict[str, Any] = field(default_factory=dict)
    amount: Optional[Decimal] = None


class PaymentProcessor(ABC):
    """
    Interface for the external payment processor.

    Both calls are blocking network round-trips and must never be made
    while a database transaction holding row locks is open.
    """

    @abstractmethod
    async def create_payment_intent(
        self,
        items: list[PaymentItem],
        metadata: dict[str, Any],
        return_urls: ReturnUrls,
        external_reference: Optional[str] = None,
    ) -> PaymentIntent:
        """
        Create a checkout for the given items.

        Args:
            items: Line items shown to the payer
            metadata: Opaque correlation data echoed back on notifications
            return_urls: Browser redirect targets after payment
            external_reference: Merchant-side reference (group correlation id)

        Raises:
            UpstreamProcessorError: on transport failure or error response
        """

    @abstractmethod
    async def get_payment_by_id(self, payment_id: str) -> PaymentDetails:
        """
        Fetch the full payment resource including metadata.

        Raises:
            UpstreamProcessorError: on transport failure or error response
        """

    async def aclose(self) -> None:
        """Release network resources."""
