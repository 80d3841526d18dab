"""Invoice domain schemas - Pydantic models for validation"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import clean_text


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"


class RecipientType(str, Enum):
    COUPLE = "couple"
    VENDOR = "vendor"


class LineItemCreate(BaseModel):
    """A line item as entered. Catalog and booking selections overwrite the price."""

    type: str = "custom"
    reference_id: Optional[str] = None
    booking_id: Optional[str] = None
    custom_description: Optional[str] = None
    unit_price: int = 0
    quantity: int = 1

    @field_validator("custom_description")
    @classmethod
    def clean_description(cls, v):
        return clean_text(v)


class InvoiceCreate(BaseModel):
    """Schema for creating an invoice with its line items"""

    recipient_type: RecipientType = RecipientType.COUPLE
    couple_id: Optional[str] = None
    vendor_id: Optional[str] = None
    line_items: list[LineItemCreate] = []
    is_discount_percentage: bool = False
    discount_amount: int = 0
    discount_percentage: float = 0
    deposit_percentage: float = 0


class LineItemResponse(BaseModel):
    id: str
    type: str
    reference_id: Optional[str] = None
    booking_id: Optional[str] = None
    custom_description: Optional[str] = None
    unit_price: int
    quantity: int
    position: int = 0
    vendor_id: Optional[str] = None
    stripe_account_id: Optional[str] = None


class InvoiceResponse(BaseModel):
    """Schema for invoice response"""

    id: str
    recipient_type: str
    couple_id: Optional[str] = None
    vendor_id: Optional[str] = None
    is_discount_percentage: bool
    discount_amount: int
    discount_percentage: float
    deposit_percentage: float
    total_amount: int
    deposit_amount: int
    remaining_balance: int
    status: str
    payment_token: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    line_items: list[LineItemResponse] = []


class LedgerFlag(BaseModel):
    code: str
    detail: str
    context: dict = {}


class LedgerResponse(BaseModel):
    """Authoritative amounts for an invoice, recomputed from its rows"""

    invoice_id: str
    status: str
    subtotal: int
    discount: int
    total: int
    deposit: int
    remaining: int
    deposits_paid: int
    other_payments_paid: int
    overpayment: int
    flags: list[LedgerFlag] = []


class ShareLinkResponse(BaseModel):
    invoice_id: str
    status: str
    payment_link: str


class EmailSentResponse(BaseModel):
    invoice_id: str
    status: str
    recipient_email: Optional[str] = None
