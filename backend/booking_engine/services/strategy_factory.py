"""
Payment gateway factory.
Configures which redirect-payment provider the orchestrator talks to.
"""

from typing import Optional

from booking_engine.core.config import get_settings
from booking_engine.services.gateway_service import HttpPaymentGateway
from booking_engine.services.interfaces.gateway import PaymentGateway
from booking_engine.services.interfaces.sandbox_gateway import SandboxGateway


def build_payment_gateway() -> PaymentGateway:
    """
    Gateway selected by PAYMENT_GATEWAY:
    - sandbox: local checkout links, no provider (default)
    - http: the real provider API
    """
    strategy = get_settings().PAYMENT_GATEWAY

    if strategy == 'http':
        return HttpPaymentGateway()
    return SandboxGateway()


# Singleton instance
_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """Gateway singleton; also the FastAPI dependency tests override."""
    global _gateway
    if _gateway is None:
        _gateway = build_payment_gateway()
    return _gateway
