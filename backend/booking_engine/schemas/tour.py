"""
Pydantic schemas for the tour catalog read model.
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


class TransportCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    price: int = Field(0, ge=0)


class TourCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    price: int = Field(..., ge=0)
    max_participants: int = Field(..., gt=0, le=10000)
    start_dates: list[date] = Field(default_factory=list)
    transports: list[TransportCreate] = Field(default_factory=list)


class TransportResponse(BaseModel):
    name: str
    price: int

    model_config = {"from_attributes": True}


class TourResponse(BaseModel):
    id: int
    name: str
    price: int
    max_participants: int
    start_dates: list[date]
    transports: list[TransportResponse]


class StartDateAvailability(BaseModel):
    date: date
    remaining_seats: int
    available: bool
    cached: Optional[bool] = None
