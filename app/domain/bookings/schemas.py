"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator


class EventType(str, Enum):
    WEDDING = "wedding"
    ENGAGEMENT = "engagement"
    CONSULTATION = "consultation"
    INTRO_MEETING = "intro_meeting"
    CEREMONY = "ceremony"
    BLOCKED = "blocked"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class BookingCreate(BaseModel):
    """Schema for booking a vendor together with its blocked-time event.

    Required fields are checked by the service so a missing one is reported as a
    validation error naming every missing field, before anything is written.
    """

    couple_id: Optional[str] = None
    vendor_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    venue_id: Optional[str] = None
    amount: int = 0
    initial_payment: Optional[int] = None
    status: BookingStatus = BookingStatus.PENDING
    service_type: Optional[str] = None
    event_type: EventType = EventType.WEDDING
    package_id: Optional[str] = None

    @field_validator("service_type")
    @classmethod
    def strip_service_type(cls, v):
        if v is not None:
            return v.strip() or None
        return v


class BookingResponse(BaseModel):
    """Schema for booking response"""

    id: str
    couple_id: str
    vendor_id: str
    status: str
    amount: int
    initial_payment: Optional[int] = None
    service_type: Optional[str] = None
    event_type: Optional[str] = None
    package_id: Optional[str] = None
    venue_id: Optional[str] = None
    event_id: Optional[str] = None
    created_at: Optional[datetime] = None


class EventResponse(BaseModel):
    """Schema for calendar event response"""

    id: str
    couple_id: Optional[str] = None
    vendor_id: Optional[str] = None
    start_time: datetime
    end_time: datetime
    type: str
    title: Optional[str] = None
    is_blocked_time: bool
    created_at: Optional[datetime] = None
