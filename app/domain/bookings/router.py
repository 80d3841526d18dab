"""Booking router - FastAPI endpoints for the booking saga"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query

from ...auth import StaffIdentity, get_current_staff
from ...store import DataStore, get_store
from .schemas import BookingCreate, BookingResponse, EventResponse
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_booking_service(store: DataStore = Depends(get_store)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(store)


@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    data: BookingCreate,
    current_staff: StaffIdentity = Depends(get_current_staff),
    service: BookingService = Depends(get_booking_service),
):
    """Book a vendor and block the time on the calendar"""
    logger.info(f"📥 Booking requested by staff {current_staff.id}")
    booking = await service.create_booking_with_event(data)
    return BookingResponse(**booking)


@router.get("/orphaned-events", response_model=list[EventResponse])
async def get_orphaned_events(
    couple_id: str = Query(...),
    vendor_id: str = Query(...),
    start_time: datetime = Query(...),
    end_time: datetime = Query(...),
    current_staff: StaffIdentity = Depends(get_current_staff),
    service: BookingService = Depends(get_booking_service),
):
    """Blocked-time events in a slot with no booking, to check before retrying a failed booking"""
    events = await service.find_orphaned_events(couple_id, vendor_id, start_time, end_time)
    return [EventResponse(**e) for e in events]
