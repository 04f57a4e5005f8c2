from ticketing.schemas.user import UserCreate, UserResponse, UserLogin, RoleUpdate, Token
from ticketing.schemas.event import (
    EventCreate, EventUpdate, EventResponse, EventListResponse, AvailabilityResponse,
)
from ticketing.schemas.booking import BookingCreate, BookingConfirmation, BookingResponse

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "RoleUpdate", "Token",
    "EventCreate", "EventUpdate", "EventResponse", "EventListResponse", "AvailabilityResponse",
    "BookingCreate", "BookingConfirmation", "BookingResponse",
]
