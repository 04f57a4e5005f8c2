"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, model_validator


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=255)
    date: datetime
    img: Optional[str] = Field(None, max_length=1024)
    total_seats: int = Field(..., ge=0, le=1_000_000)
    # Defaults to total_seats
    available_seats: Optional[int] = Field(None, ge=0)
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)

    @model_validator(mode="after")
    def _available_within_total(self):
        if self.available_seats is not None and self.available_seats > self.total_seats:
            raise ValueError("available_seats cannot exceed total_seats")
        return self


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=255)
    date: Optional[datetime] = None
    img: Optional[str] = Field(None, max_length=1024)
    total_seats: Optional[int] = Field(None, ge=0, le=1_000_000)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)


class EventResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    location: Optional[str]
    date: datetime
    img: Optional[str]
    total_seats: int
    available_seats: int
    price: Decimal
    created_by: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False


class AvailabilityResponse(BaseModel):
    event_id: int
    available_seats: int
