"""
Pydantic schemas for booking request/response validation.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from booking_engine.models.booking import BookingStatus, PaymentMethod, PaymentStatus


class BookingCreate(BaseModel):
    tour_id: int
    start_date: date
    headcount: int = Field(default=1, gt=0, le=10)
    transport_name: Optional[str] = Field(None, max_length=100)
    payment_method: Optional[PaymentMethod] = None
    note: Optional[str] = Field(None, max_length=1000)

    # Guest contact bundle, required when booking without an identity
    contact_name: Optional[str] = Field(None, min_length=1, max_length=255)
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(None, min_length=6, max_length=32)

    @property
    def has_contact(self) -> bool:
        return any((self.contact_name, self.contact_email, self.contact_phone))


class BookingResponse(BaseModel):
    id: int
    tour_id: int
    start_date: date
    headcount: int
    transport_name: Optional[str]
    transport_price: int
    total_price: int
    note: Optional[str]
    user_id: Optional[str]
    contact_name: Optional[str]
    contact_email: Optional[str]
    contact_phone: Optional[str]
    status: BookingStatus
    reason: Optional[str]
    payment_method: Optional[PaymentMethod]
    payment_status: Optional[PaymentStatus]
    paid_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingCreatedResponse(BookingResponse):
    # Only returned once, at creation; guests need it to request cancellation
    guest_token: Optional[str] = None
    payment_url: Optional[str] = None


class ReasonRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class BookingPage(BaseModel):
    items: list[BookingResponse]
    total: int
    page: int
    page_size: int


class BookingStats(BaseModel):
    pending: int = 0
    confirmed: int = 0
    rejected: int = 0
    cancel_requested: int = 0
    cancelled: int = 0
    completed: int = 0
    deleted: int = 0


class PurgeResponse(BaseModel):
    purged: int
