"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .gateway import IntentRequest, PaymentGateway
from .sandbox_gateway import SandboxGateway

__all__ = ['IntentRequest', 'PaymentGateway', 'SandboxGateway']
