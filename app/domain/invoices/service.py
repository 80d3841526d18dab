"""Invoice service - Invoice lifecycle (draft -> sent -> paid) and its ledger.

Amounts are always produced by the ledger calculator. The remaining balance is
recomputed from the full set of succeeded payments every time a payment lands,
never decremented in place, so concurrent payments converge on the same value.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Awaitable, Optional

from ...config import PAYMENT_LINK_BASE_URL
from ...services.invoice_delivery import InvoiceEmailSender, build_payment_link
from ...store import DataStore, DataStoreError, Row
from ..errors import InvalidPrice, InvalidTransition, NotFoundError, StoreUnavailable, ValidationError
from ..ledger import (
    CUSTOM,
    LINE_ITEM_TYPES,
    SERVICE_PACKAGE,
    STORE_PRODUCT,
    DiscountMode,
    DiscountSpec,
    LineAmount,
    PaymentAmount,
    PricedLineItem,
    compute_ledger,
    overpayment_flag,
    remaining_balance,
    select_booking,
    select_service_package,
    select_store_product,
)
from ..ledger.calculator import SUCCEEDED
from .repository import InvoiceRepository
from .schemas import InvoiceCreate, InvoiceStatus, LineItemCreate, RecipientType

logger = logging.getLogger(__name__)

MAX_BOOKING_LINE_ITEMS = 3
DEPOSIT = "deposit"


def _payment_amounts(payments: list[Row]) -> list[PaymentAmount]:
    return [PaymentAmount(p["amount"], p["status"], p.get("payment_type")) for p in payments]


def _discount_spec(invoice: Row) -> DiscountSpec:
    if invoice.get("is_discount_percentage"):
        return DiscountSpec.percentage(invoice.get("discount_percentage") or 0)
    return DiscountSpec.dollar(invoice.get("discount_amount") or 0)


class InvoiceService:
    """Service layer for invoice business logic"""

    def __init__(
        self,
        store: DataStore,
        email_sender: Optional[InvoiceEmailSender] = None,
        link_base_url: str = PAYMENT_LINK_BASE_URL,
    ):
        self.store = store
        self.repo = InvoiceRepository(store)
        self.email_sender = email_sender or InvoiceEmailSender()
        self.link_base_url = link_base_url

    async def _guard(self, awaitable: Awaitable, action: str) -> Any:
        """Await a store call, translating store failures into StoreUnavailable"""
        try:
            return await awaitable
        except DataStoreError as e:
            logger.error(f"❌ Could not {action}: {e}")
            raise StoreUnavailable(f"Could not {action}", table=e.table, operation=e.operation) from e

    async def _require(self, invoice_id: str) -> Row:
        invoice = await self._guard(self.repo.get_invoice(invoice_id), "read invoice")
        if not invoice:
            raise NotFoundError("invoice", invoice_id)
        return invoice

    # ========================================================================
    # CREATION
    # ========================================================================

    def validate(self, data: InvoiceCreate) -> None:
        """Reject bad input before any read or write"""
        missing = [name for name in ("couple_id", "vendor_id") if not getattr(data, name)]
        if not data.line_items:
            missing.append("line_items")
        if missing:
            raise ValidationError(
                "Please select a recipient and add at least one line item", missing_fields=missing
            )

        booking_items = [item for item in data.line_items if item.booking_id]
        if data.recipient_type == RecipientType.COUPLE and len(booking_items) > MAX_BOOKING_LINE_ITEMS:
            raise ValidationError(
                f"Maximum of {MAX_BOOKING_LINE_ITEMS} booking-related line items per invoice",
                booking_line_items=len(booking_items),
            )

        for position, item in enumerate(data.line_items):
            self._validate_line_item(item, position)

        for name in ("discount_percentage", "deposit_percentage"):
            value = getattr(data, name)
            if not math.isfinite(value):
                # NaN passes every range comparison
                raise ValidationError(f"Invalid {name}: {value}", **{name: str(value)})
        if data.is_discount_percentage and data.discount_percentage < 0:
            raise ValidationError(
                "Discount percentage cannot be negative", discount_percentage=data.discount_percentage
            )
        if not data.is_discount_percentage and data.discount_amount < 0:
            raise ValidationError("Discount amount cannot be negative", discount_amount=data.discount_amount)
        if not 0 <= data.deposit_percentage <= 100:
            raise ValidationError(
                "Deposit percentage must be between 0 and 100", deposit_percentage=data.deposit_percentage
            )

    @staticmethod
    def _validate_line_item(item: LineItemCreate, position: int) -> None:
        if item.type not in LINE_ITEM_TYPES:
            raise ValidationError(f"Invalid line item type: {item.type}", position=position, type=item.type)
        if item.type == SERVICE_PACKAGE and not (item.reference_id or item.booking_id):
            raise ValidationError(
                "Select a service package or booking for every service package line item", position=position
            )
        if item.type == STORE_PRODUCT and not item.reference_id and not item.booking_id:
            raise ValidationError("Select a store product for every store product line item", position=position)
        if item.type == CUSTOM and not item.booking_id:
            if item.unit_price < 0:
                raise InvalidPrice(item.unit_price, position)
            if not item.custom_description or item.unit_price <= 0:
                raise ValidationError(
                    "Custom line items need a description and a price above zero", position=position
                )

    async def _price_line_item(self, item: LineItemCreate, deposit_percent: float, position: int) -> PricedLineItem:
        """Apply catalog or booking selection; the selected price replaces the entered one"""
        priced = PricedLineItem(
            type=item.type,
            unit_price=item.unit_price,
            quantity=item.quantity,
            reference_id=item.reference_id,
            booking_id=item.booking_id,
            custom_description=item.custom_description,
        )

        if item.booking_id:
            booking = await self._guard(self.repo.get_booking(item.booking_id), "read booking")
            if not booking:
                raise ValidationError("Selected booking does not exist", position=position, booking_id=item.booking_id)
            vendor = None
            if booking.get("vendor_id"):
                vendor = await self._guard(self.repo.get_vendor(booking["vendor_id"]), "read vendor")
            return select_booking(priced, booking, vendor, deposit_percent)

        if item.type == SERVICE_PACKAGE:
            package = await self._guard(self.repo.get_package(item.reference_id), "read service package")
            if not package:
                raise ValidationError(
                    "Selected service package does not exist", position=position, reference_id=item.reference_id
                )
            return select_service_package(priced, package)

        if item.type == STORE_PRODUCT:
            product = await self._guard(self.repo.get_product(item.reference_id), "read store product")
            if not product:
                raise ValidationError(
                    "Selected store product does not exist", position=position, reference_id=item.reference_id
                )
            return select_store_product(priced, product)

        return priced

    async def create_invoice(self, data: InvoiceCreate) -> Row:
        """Compute the ledger, then persist the invoice followed by its line items"""
        self.validate(data)

        items = [
            await self._price_line_item(item, data.deposit_percentage, position)
            for position, item in enumerate(data.line_items)
        ]
        mode = DiscountMode.PERCENTAGE if data.is_discount_percentage else DiscountMode.DOLLAR
        discount = DiscountSpec(mode, data.discount_amount, data.discount_percentage).normalized()
        ledger = compute_ledger(items, discount, data.deposit_percentage)

        logger.info(
            f"🧾 Creating invoice for couple {data.couple_id}: subtotal {ledger.subtotal}, "
            f"discount {ledger.discount}, total {ledger.total}"
        )

        invoice = await self._guard(
            self.repo.create_invoice(
                recipient_type=data.recipient_type.value,
                couple_id=data.couple_id,
                vendor_id=data.vendor_id,
                is_discount_percentage=discount.mode == DiscountMode.PERCENTAGE,
                discount_amount=discount.amount_cents,
                discount_percentage=float(discount.percent),
                deposit_percentage=data.deposit_percentage,
                total_amount=ledger.total.cents,
                deposit_amount=ledger.deposit.cents,
                remaining_balance=ledger.total.cents,
                status=InvoiceStatus.DRAFT.value,
            ),
            "create invoice",
        )

        line_items = []
        try:
            for position, item in enumerate(items):
                line_items.append(
                    await self.repo.create_line_item(
                        invoice_id=invoice["id"],
                        type=item.type,
                        reference_id=item.reference_id,
                        booking_id=item.booking_id,
                        custom_description=item.custom_description,
                        unit_price=item.unit_price,
                        quantity=item.quantity,
                        position=position,
                        vendor_id=item.vendor_id,
                        stripe_account_id=item.stripe_account_id,
                    )
                )
        except DataStoreError as e:
            leftover = await self._discard_invoice(invoice["id"], line_items)
            if leftover:
                raise StoreUnavailable(
                    "Could not save the invoice line items, and the partially saved invoice "
                    "could not be removed. Delete it manually",
                    invoice_id=invoice["id"],
                    discarded=False,
                    leftover_invoice_id=leftover["invoice_id"],
                    leftover_line_item_ids=leftover["line_item_ids"],
                    cause=str(e),
                ) from e
            raise StoreUnavailable(
                "Could not save the invoice line items; the invoice was discarded",
                invoice_id=invoice["id"],
                discarded=True,
                cause=str(e),
            ) from e

        logger.info(f"✅ Invoice {invoice['id']} created with {len(line_items)} line items")
        return {**invoice, "line_items": line_items}

    async def _discard_invoice(self, invoice_id: str, line_items: list[Row]) -> Optional[dict]:
        """Delete a partially saved invoice. Returns the rows left behind, or None once it is gone."""
        remaining = [line_item["id"] for line_item in line_items]
        try:
            while remaining:
                await self.repo.delete_line_item(remaining[0])
                remaining.pop(0)
            await self.repo.delete_invoice(invoice_id)
        except DataStoreError as e:
            logger.critical(
                f"🚨 Partially saved invoice {invoice_id} could not be removed "
                f"(line items left: {remaining}): {e}"
            )
            return {"invoice_id": invoice_id, "line_item_ids": remaining}
        logger.warning(f"↩️ Invoice {invoice_id} removed after its line items failed to save")
        return None

    # ========================================================================
    # READS
    # ========================================================================

    async def get_invoice(self, invoice_id: str) -> Row:
        """Invoice with its line items in entry order"""
        invoice = await self._require(invoice_id)
        line_items = await self._guard(self.repo.get_line_items(invoice_id), "read line items")
        return {**invoice, "line_items": line_items}

    async def list_invoices(self, status: Optional[str] = None) -> list[Row]:
        """Invoices with the given status ("all" for every status), largest total first"""
        if status in (None, "", "all"):
            return await self._guard(self.repo.get_invoices(), "list invoices")
        try:
            status = InvoiceStatus(status).value
        except ValueError as e:
            raise ValidationError(f"Unknown invoice status: {status}", status=status) from e
        return await self._guard(self.repo.get_invoices(status), "list invoices")

    async def list_payments(self, invoice_id: str) -> list[Row]:
        """Payments on the invoice plus payments on the bookings it bills"""
        await self._require(invoice_id)
        payments = await self._guard(self.repo.get_payments(invoice_id=invoice_id), "read payments")
        line_items = await self._guard(self.repo.get_line_items(invoice_id), "read line items")
        booking_ids = sorted({item["booking_id"] for item in line_items if item.get("booking_id")})
        booking_payments = await self._guard(
            self.repo.get_payments(booking_ids=booking_ids), "read booking payments"
        )

        seen = {p["id"] for p in payments}
        payments.extend(p for p in booking_payments if p["id"] not in seen)
        return sorted(payments, key=lambda p: str(p.get("created_at") or ""))

    async def get_ledger(self, invoice_id: str) -> dict:
        """Total, deposit and remaining balance, recomputed from the invoice's rows"""
        invoice = await self._require(invoice_id)
        line_items = await self._guard(self.repo.get_line_items(invoice_id), "read line items")
        payments = _payment_amounts(
            await self._guard(self.repo.get_payments(invoice_id=invoice_id), "read payments")
        )

        ledger = compute_ledger(
            [LineAmount(item["unit_price"], item["quantity"]) for item in line_items],
            _discount_spec(invoice),
            invoice.get("deposit_percentage") or 0,
        )
        if ledger.total.cents != invoice["total_amount"]:
            logger.warning(
                f"⚠️ Invoice {invoice_id} stored total {invoice['total_amount']} differs from "
                f"line items total {ledger.total.cents}"
            )

        balance = remaining_balance(ledger.total, payments, invoice_id)
        deposits_paid = sum(p.amount for p in payments if p.status == SUCCEEDED and p.payment_type == DEPOSIT)
        flag = overpayment_flag(balance, invoice_id)

        return {
            "invoice_id": invoice_id,
            "status": invoice["status"],
            "subtotal": ledger.subtotal.cents,
            "discount": ledger.discount.cents,
            "total": ledger.total.cents,
            "deposit": ledger.deposit.cents,
            "remaining": balance.amount.cents,
            "deposits_paid": deposits_paid,
            "other_payments_paid": balance.paid.cents - deposits_paid,
            "overpayment": balance.overpayment.cents,
            "flags": [flag.to_dict()] if flag else [],
        }

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def mark_sent(self, invoice_id: str) -> Row:
        """draft -> sent. A sent invoice stays sent; a paid one cannot be sent."""
        invoice = await self._require(invoice_id)
        return await self._mark_sent(invoice)

    async def _mark_sent(self, invoice: Row) -> Row:
        if invoice["status"] == InvoiceStatus.PAID.value:
            raise InvalidTransition(invoice["id"], invoice["status"], InvoiceStatus.SENT.value)
        if invoice["status"] == InvoiceStatus.SENT.value:
            return invoice
        updated = await self._guard(
            self.repo.update_invoice(invoice["id"], status=InvoiceStatus.SENT.value), "update invoice"
        )
        logger.info(f"📤 Invoice {invoice['id']} marked sent")
        return updated

    async def apply_payment(self, invoice_id: str) -> Row:
        """Recompute the remaining balance from all succeeded payments.

        A draft that receives a payment is moved to sent first, so an invoice
        only ever reaches paid through sent. Marks the invoice paid (stamping
        paid_at) once nothing remains.
        """
        invoice = await self._require(invoice_id)
        if invoice["status"] == InvoiceStatus.DRAFT.value:
            invoice = await self._mark_sent(invoice)
        payments = await self._guard(self.repo.get_payments(invoice_id=invoice_id), "read payments")
        balance = remaining_balance(invoice["total_amount"], _payment_amounts(payments), invoice_id)

        values: dict[str, Any] = {"remaining_balance": balance.amount.cents}
        if balance.amount.cents == 0 and invoice["status"] != InvoiceStatus.PAID.value:
            values["status"] = InvoiceStatus.PAID.value
            values["paid_at"] = datetime.now(timezone.utc)

        updated = await self._guard(self.repo.update_invoice(invoice_id, **values), "update invoice balance")
        if values.get("status") == InvoiceStatus.PAID.value:
            logger.info(f"💰 Invoice {invoice_id} paid in full")
        else:
            logger.info(f"💳 Invoice {invoice_id} remaining balance now {balance.amount}")
        return updated

    # ========================================================================
    # DELIVERY
    # ========================================================================

    async def share_link(self, invoice_id: str) -> dict:
        """Payment link built from the invoice's token; sharing it sends the invoice"""
        invoice = await self._mark_sent(await self._require(invoice_id))
        return {
            "invoice_id": invoice_id,
            "status": invoice["status"],
            "payment_link": build_payment_link(invoice["payment_token"], self.link_base_url),
        }

    async def send_email(self, invoice_id: str, access_token: Optional[str] = None) -> dict:
        """Email the invoice to its recipient, then mark it sent"""
        invoice = await self._require(invoice_id)
        if invoice["status"] == InvoiceStatus.PAID.value:
            raise InvalidTransition(invoice_id, invoice["status"], InvoiceStatus.SENT.value)

        await self.email_sender.send(invoice_id, access_token)
        invoice = await self._mark_sent(invoice)
        return {
            "invoice_id": invoice_id,
            "status": invoice["status"],
            "recipient_email": await self._recipient_email(invoice),
        }

    async def _recipient_email(self, invoice: Row) -> Optional[str]:
        try:
            if invoice.get("recipient_type") == RecipientType.VENDOR.value:
                recipient = await self.repo.get_vendor(invoice["vendor_id"])
            else:
                recipient = await self.repo.get_couple(invoice["couple_id"])
        except DataStoreError as e:
            logger.warning(f"⚠️ Could not read recipient of invoice {invoice['id']}: {e}")
            return None
        return (recipient or {}).get("email")
