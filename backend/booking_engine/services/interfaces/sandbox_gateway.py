"""
Sandbox gateway - no provider call.
Used in development and tests; the callback is simulated by signing a
notification with the shared secret.
"""

from typing import Optional
from urllib.parse import urlencode

from booking_engine.core.config import get_settings
from booking_engine.services.interfaces.gateway import IntentRequest, PaymentGateway


class SandboxGateway(PaymentGateway):
    """
    Always issues a local checkout link.

    Use when:
    - Running locally without provider credentials
    - Tests that drive callbacks themselves
    """

    name = "sandbox"

    def __init__(self, checkout_url: Optional[str] = None):
        self.checkout_url = checkout_url or get_settings().SANDBOX_CHECKOUT_URL

    async def create_intent(self, request: IntentRequest) -> str:
        query = urlencode({"orderId": request.provider_order_id, "amount": request.amount})
        return f"{self.checkout_url}?{query}"
