"""Booking service - Books a vendor together with its blocked-time calendar event.

The data store has no transaction spanning two tables, so the pair is written as
a saga: the event (safe to delete on its own) goes first, the booking that
references it goes last. If the booking write fails or is cancelled, the event is
deleted again. A booking row therefore never exists without its event, and an
event left behind is always reported.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Optional

from ...shared.validators import as_utc, missing_fields
from ...store import DataStore, DataStoreError, Row
from ..errors import (
    BookingCreationFailed,
    CompensationFailed,
    EventCreationFailed,
    StoreUnavailable,
    ValidationError,
)
from ..ledger import apply_package_to_booking
from .repository import BookingRepository
from .schemas import BookingCreate

logger = logging.getLogger(__name__)


def couple_display_name(couple: Optional[Row]) -> Optional[str]:
    if not couple:
        return None
    if couple.get("name"):
        return couple["name"]
    partners = [p for p in (couple.get("partner1_name"), couple.get("partner2_name")) if p]
    return " & ".join(partners) or None


def event_title(couple: Optional[Row], service_type: Optional[str]) -> str:
    """Calendar title: "{couple name} - {service type}", or just the service type"""
    label = service_type or "Booking"
    name = couple_display_name(couple)
    return f"{name} - {label}" if name else label


class BookingService:
    """Service layer for the booking saga"""

    def __init__(self, store: DataStore):
        self.store = store
        self.repo = BookingRepository(store)

    def validate(self, data: BookingCreate) -> tuple[datetime, datetime]:
        """Reject bad input before anything is written"""
        missing = missing_fields(
            couple_id=data.couple_id,
            vendor_id=data.vendor_id,
            start_time=data.start_time,
            end_time=data.end_time,
            venue_id=data.venue_id,
        )
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing_fields=missing)

        start_time, end_time = as_utc(data.start_time), as_utc(data.end_time)
        if start_time >= end_time:
            raise ValidationError(
                "Event end time must be after its start time",
                start_time=start_time.isoformat(),
                end_time=end_time.isoformat(),
            )
        if data.amount < 0:
            raise ValidationError("Booking amount cannot be negative", amount=data.amount)
        if data.initial_payment is not None and data.initial_payment < 0:
            raise ValidationError("Initial payment cannot be negative", initial_payment=data.initial_payment)
        return start_time, end_time

    async def _booking_values(self, data: BookingCreate) -> dict[str, Any]:
        values = {
            "couple_id": data.couple_id,
            "vendor_id": data.vendor_id,
            "status": data.status.value,
            "amount": data.amount,
            "initial_payment": data.initial_payment,
            "service_type": data.service_type,
            "event_type": data.event_type.value,
            "package_id": data.package_id,
            "venue_id": data.venue_id,
        }
        if not data.package_id:
            return values

        try:
            package = await self.repo.get_package(data.package_id)
        except DataStoreError as e:
            logger.error(f"❌ Could not read service package {data.package_id}: {e}")
            raise StoreUnavailable("Could not read the selected service package", package_id=data.package_id) from e
        if not package:
            raise ValidationError("Selected service package does not exist", package_id=data.package_id)

        logger.info(f"📦 Package {package['id']} selected: amount and service type taken from the package")
        return apply_package_to_booking(values, package)

    async def _couple(self, couple_id: str) -> Optional[Row]:
        try:
            return await self.repo.get_couple(couple_id)
        except DataStoreError as e:
            # Only used for the event title
            logger.warning(f"⚠️ Could not read couple {couple_id} for the event title: {e}")
            return None

    async def create_booking_with_event(self, data: BookingCreate) -> Row:
        """Create the blocked-time event, then the booking referencing it"""
        start_time, end_time = self.validate(data)
        values = await self._booking_values(data)
        couple = await self._couple(data.couple_id)

        logger.info(f"📥 Booking vendor {data.vendor_id} for couple {data.couple_id}")

        try:
            event = await self.repo.create_event(
                couple_id=data.couple_id,
                vendor_id=data.vendor_id,
                start_time=start_time,
                end_time=end_time,
                type=values["event_type"],
                title=event_title(couple, values["service_type"]),
                is_blocked_time=True,
            )
        except DataStoreError as e:
            logger.error(f"❌ Event creation failed, no booking attempted: {e}")
            raise EventCreationFailed(e) from e

        event_id = event["id"]
        try:
            booking = await self.repo.create_booking(**values, event_id=event_id)
        except DataStoreError as e:
            logger.error(f"❌ Booking creation failed after event {event_id} was created: {e}")
            await self._compensate(event_id, e)
            raise  # _compensate always raises
        except asyncio.CancelledError:
            logger.warning(f"⚠️ Booking cancelled after event {event_id} was created, removing it")
            await self._compensate_cancelled(event_id)
            raise

        logger.info(f"✅ Booking {booking['id']} created with event {event_id}")
        return booking

    async def _compensate(self, event_id: str, cause: Exception) -> None:
        try:
            await self.repo.delete_event(event_id)
        except DataStoreError as compensation_error:
            logger.critical(
                f"🚨 ORPHANED EVENT {event_id}: booking failed ({cause}) and the event could not be "
                f"deleted ({compensation_error}). Manual cleanup required"
            )
            raise CompensationFailed(cause, event_id, compensation_error) from cause

        logger.warning(f"↩️ Event {event_id} deleted after booking failure")
        raise BookingCreationFailed(cause, event_id) from cause

    async def _compensate_cancelled(self, event_id: str) -> None:
        try:
            await asyncio.shield(self.repo.delete_event(event_id))
        except DataStoreError as e:
            logger.critical(
                f"🚨 ORPHANED EVENT {event_id}: booking was cancelled and the event could not be "
                f"deleted ({e}). Manual cleanup required"
            )
            return
        logger.warning(f"↩️ Event {event_id} deleted after booking was cancelled")

    async def find_orphaned_events(
        self, couple_id: str, vendor_id: str, start_time: datetime, end_time: datetime
    ) -> list[Row]:
        """Blocked-time events overlapping the slot that no booking references.

        Check this before retrying a booking that failed with an orphaned event,
        so the retry does not leave a second blocked-time entry.
        """
        start_time, end_time = as_utc(start_time), as_utc(end_time)
        if start_time >= end_time:
            raise ValidationError("Slot end time must be after its start time")

        try:
            events = await self.repo.get_blocked_events(couple_id, vendor_id)
            in_slot = [
                e
                for e in events
                if as_utc(e["start_time"]) < end_time and as_utc(e["end_time"]) > start_time
            ]
            bookings = await self.repo.get_bookings_for_events([e["id"] for e in in_slot])
        except DataStoreError as e:
            logger.error(f"❌ Orphaned event lookup failed: {e}")
            raise StoreUnavailable("Could not look up calendar events") from e

        booked = {b["event_id"] for b in bookings}
        orphans = [e for e in in_slot if e["id"] not in booked]
        if orphans:
            logger.warning(f"⚠️ {len(orphans)} orphaned event(s) for vendor {vendor_id} in slot")
        return orphans
