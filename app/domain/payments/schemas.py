"""Payment domain schemas - Pydantic models for validation"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PaymentType(str, Enum):
    DEPOSIT = "deposit"
    FULL_PAYMENT = "full_payment"
    PARTIAL_PAYMENT = "partial_payment"


class IntentCreate(BaseModel):
    """Schema for creating a payment intent against an invoice or a booking"""

    invoice_id: Optional[str] = None
    booking_id: Optional[str] = None
    amount: int
    payment_type: PaymentType = PaymentType.FULL_PAYMENT
    routing_account: Optional[str] = None


class IntentConfirm(BaseModel):
    """Confirm an existing intent. Target, amount and routing are read from the intent;
    any given here must agree with it."""

    payment_method: str
    invoice_id: Optional[str] = None
    booking_id: Optional[str] = None
    amount: Optional[int] = None
    payment_type: Optional[PaymentType] = None
    routing_account: Optional[str] = None
    record_failures: bool = True


class PaymentAttemptCreate(BaseModel):
    """Create, confirm and reconcile a payment in one call"""

    invoice_id: Optional[str] = None
    booking_id: Optional[str] = None
    amount: int
    payment_type: PaymentType = PaymentType.FULL_PAYMENT
    routing_account: Optional[str] = None
    payment_method: str
    record_failures: bool = True


class ManualPaymentCreate(BaseModel):
    """Offline payment entered by staff (cash, check, bank transfer)"""

    invoice_id: Optional[str] = None
    booking_id: Optional[str] = None
    amount: int
    status: PaymentStatus = PaymentStatus.SUCCEEDED
    payment_type: PaymentType = PaymentType.FULL_PAYMENT
    paid_at: Optional[datetime] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v == PaymentStatus.PENDING:
            raise ValueError("Manual payments are recorded as succeeded or failed")
        return v


class IntentResponse(BaseModel):
    intent_id: str
    client_secret: Optional[str] = None
    invoice_id: Optional[str] = None
    booking_id: Optional[str] = None
    amount: int
    routing_account: Optional[str] = None


class PaymentResponse(BaseModel):
    """Schema for payment response"""

    id: str
    invoice_id: Optional[str] = None
    booking_id: Optional[str] = None
    amount: int
    status: str
    payment_type: Optional[str] = None
    to_platform: bool
    gateway_payment_id: Optional[str] = None
    created_at: Optional[datetime] = None


class PaymentOutcomeResponse(BaseModel):
    """A recorded payment and, for invoice payments, the invoice after it was applied"""

    payment: PaymentResponse
    invoice_status: Optional[str] = None
    remaining_balance: Optional[int] = None
