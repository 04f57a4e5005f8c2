"""
Pydantic schemas for booking-related request/response validation.

Quantity and attendee fields are deliberately loose here: the booking
coordinator owns those rules and reports violations as INVALID_INPUT (400),
the same way for HTTP callers and in-process callers.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


class BookingCreate(BaseModel):
    event_id: int
    quantity: int
    name: str = ""
    email: str = ""
    mobile: str = ""


class BookingConfirmation(BaseModel):
    booking_id: int = Field(validation_alias="id")
    event_id: int
    quantity: int
    total_amount: Decimal
    status: str
    created_at: datetime

    model_config = {"from_attributes": True, "populate_by_name": True}


class BookingResponse(BaseModel):
    id: int
    event_id: int
    user_id: Optional[int]
    name: str
    email: str
    mobile: str
    quantity: int
    total_amount: Decimal
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}
