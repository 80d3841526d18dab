"""Payment repository - Append-only payment rows and the targets they pay"""

from typing import Optional

from ...store import DataStore, Row

PAYMENTS = "payments"
INVOICES = "invoices"
BOOKINGS = "bookings"
VENDORS = "vendors"


class PaymentRepository:
    """Repository for payment rows. Payments are only ever inserted."""

    def __init__(self, store: DataStore):
        self.store = store

    async def create_payment(self, **values) -> Row:
        return await self.store.insert(PAYMENTS, values)

    async def get_invoice(self, invoice_id: str) -> Optional[Row]:
        return await self.store.get(INVOICES, invoice_id)

    async def get_booking(self, booking_id: str) -> Optional[Row]:
        return await self.store.get(BOOKINGS, booking_id)

    async def get_vendor(self, vendor_id: str) -> Optional[Row]:
        return await self.store.get(VENDORS, vendor_id)

    async def get_succeeded_payment(self, gateway_payment_id: str) -> Optional[Row]:
        rows = await self.store.select(PAYMENTS, gateway_payment_id=gateway_payment_id, status="succeeded")
        return rows[0] if rows else None
