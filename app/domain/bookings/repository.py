"""Booking repository - Row operations for events, bookings and their lookups"""

from typing import Optional

from ...store import DataStore, Row

EVENTS = "events"
BOOKINGS = "bookings"
COUPLES = "couples"
SERVICE_PACKAGES = "service_packages"


class BookingRepository:
    """Repository for booking and calendar event rows"""

    def __init__(self, store: DataStore):
        self.store = store

    async def get_couple(self, couple_id: str) -> Optional[Row]:
        return await self.store.get(COUPLES, couple_id)

    async def get_package(self, package_id: str) -> Optional[Row]:
        return await self.store.get(SERVICE_PACKAGES, package_id)

    async def create_event(self, **values) -> Row:
        return await self.store.insert(EVENTS, values)

    async def delete_event(self, event_id: str) -> None:
        await self.store.delete(EVENTS, event_id)

    async def create_booking(self, **values) -> Row:
        return await self.store.insert(BOOKINGS, values)

    async def get_blocked_events(self, couple_id: str, vendor_id: str) -> list[Row]:
        """All blocked-time events for a couple/vendor pair"""
        return await self.store.select(
            EVENTS, order_by="start_time", couple_id=couple_id, vendor_id=vendor_id, is_blocked_time=True
        )

    async def get_bookings_for_events(self, event_ids: list[str]) -> list[Row]:
        if not event_ids:
            return []
        return await self.store.select(BOOKINGS, event_id=event_ids)
