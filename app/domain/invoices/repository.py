"""Invoice repository - Row operations for invoices, line items and their catalog lookups"""

from typing import Any, Optional

from ...store import DataStore, Row

INVOICES = "invoices"
LINE_ITEMS = "invoice_line_items"
PAYMENTS = "payments"
BOOKINGS = "bookings"
VENDORS = "vendors"
COUPLES = "couples"
SERVICE_PACKAGES = "service_packages"
STORE_PRODUCTS = "store_products"


class InvoiceRepository:
    """Repository for invoice rows"""

    def __init__(self, store: DataStore):
        self.store = store

    async def get_invoice(self, invoice_id: str) -> Optional[Row]:
        return await self.store.get(INVOICES, invoice_id)

    async def get_invoices(self, status: Optional[str] = None) -> list[Row]:
        """All invoices, largest total first"""
        filters: dict[str, Any] = {"status": status} if status else {}
        return await self.store.select(INVOICES, order_by="-total_amount", **filters)

    async def create_invoice(self, **values) -> Row:
        return await self.store.insert(INVOICES, values)

    async def update_invoice(self, invoice_id: str, **values) -> Row:
        return await self.store.update(INVOICES, invoice_id, values)

    async def create_line_item(self, **values) -> Row:
        return await self.store.insert(LINE_ITEMS, values)

    async def delete_line_item(self, line_item_id: str) -> None:
        await self.store.delete(LINE_ITEMS, line_item_id)

    async def delete_invoice(self, invoice_id: str) -> None:
        await self.store.delete(INVOICES, invoice_id)

    async def get_line_items(self, invoice_id: str) -> list[Row]:
        return await self.store.select(LINE_ITEMS, order_by="position", invoice_id=invoice_id)

    async def get_payments(self, invoice_id: Optional[str] = None, booking_ids: Optional[list[str]] = None) -> list[Row]:
        if booking_ids is not None:
            if not booking_ids:
                return []
            return await self.store.select(PAYMENTS, order_by="created_at", booking_id=booking_ids)
        return await self.store.select(PAYMENTS, order_by="created_at", invoice_id=invoice_id)

    async def get_package(self, package_id: str) -> Optional[Row]:
        return await self.store.get(SERVICE_PACKAGES, package_id)

    async def get_product(self, product_id: str) -> Optional[Row]:
        return await self.store.get(STORE_PRODUCTS, product_id)

    async def get_booking(self, booking_id: str) -> Optional[Row]:
        return await self.store.get(BOOKINGS, booking_id)

    async def get_vendor(self, vendor_id: str) -> Optional[Row]:
        return await self.store.get(VENDORS, vendor_id)

    async def get_couple(self, couple_id: str) -> Optional[Row]:
        return await self.store.get(COUPLES, couple_id)
