"""
Payment gateway interface.
Allows swapping the redirect-payment provider without touching the
payment orchestrator.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class IntentRequest:
    booking_id: int
    provider_order_id: str
    amount: int
    description: str


class PaymentGateway(ABC):
    """
    Interface for redirect-payment providers.

    Implementations:
    - SandboxGateway: builds a local checkout URL, no network
    - HttpPaymentGateway: signed create-payment call to the provider's API
    """

    name: str = "gateway"

    @abstractmethod
    async def create_intent(self, request: IntentRequest) -> str:
        """
        Ask the provider for a payment page for one order.

        Returns:
            The URL the payer must be redirected to.

        Raises:
            GatewayError: the provider refused or could not be reached.
        """
        pass
