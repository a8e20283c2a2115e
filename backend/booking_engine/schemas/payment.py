"""
Pydantic schemas for payments and provider callbacks.
"""

from typing import Optional, Union

from pydantic import BaseModel

from booking_engine.models.booking import PaymentMethod, PaymentStatus


class PaymentIntentResponse(BaseModel):
    booking_id: int
    provider_order_id: str
    pay_url: str
    amount: int


class PaymentStateResponse(BaseModel):
    booking_id: int
    payment_method: Optional[PaymentMethod]
    payment_status: Optional[PaymentStatus]

    model_config = {"from_attributes": True}


class GatewayCallback(BaseModel):
    """Provider notification (IPN). Field names follow the provider's wire format."""

    orderId: str
    requestId: Optional[str] = None
    amount: int
    transId: Union[int, str]
    resultCode: int
    message: str = ""
    signature: str

    model_config = {"extra": "allow"}


class CallbackResult(BaseModel):
    status: str  # ok | rejected
    reason: Optional[str] = None
