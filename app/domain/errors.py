"""Domain error codes for the booking, invoice and payment core.

Every failure kind carries a stable code, a user-safe message and the HTTP status
the API renders it with. Extra context (which step failed, ids involved) goes in
`context` so the operator sees exactly what state was left behind.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(Enum):
    """Domain error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    INVALID_PRICE = "INVALID_PRICE"
    NOT_FOUND = "NOT_FOUND"
    EVENT_CREATION_FAILED = "EVENT_CREATION_FAILED"
    BOOKING_CREATION_FAILED = "BOOKING_CREATION_FAILED"
    COMPENSATION_FAILED = "COMPENSATION_FAILED"
    GATEWAY_UNAVAILABLE = "GATEWAY_UNAVAILABLE"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    PAYMENT_NOT_CONFIRMED = "PAYMENT_NOT_CONFIRMED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    OVERPAYMENT = "OVERPAYMENT"
    INVOICE_DELIVERY_FAILED = "INVOICE_DELIVERY_FAILED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode = ErrorCode.VALIDATION_ERROR
    status_code: int = 400

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict:
        return {"code": self.code.value, "detail": self.message, "context": self.context}


class ValidationError(DomainError):
    """Bad input, rejected before anything is written."""

    code = ErrorCode.VALIDATION_ERROR
    status_code = 400


class InvalidQuantity(ValidationError):
    code = ErrorCode.INVALID_QUANTITY

    def __init__(self, quantity: Any, position: Optional[int] = None) -> None:
        super().__init__(
            f"Line item quantity must be a whole number of at least 1 (got {quantity})",
            quantity=quantity,
            position=position,
        )


class InvalidPrice(ValidationError):
    code = ErrorCode.INVALID_PRICE

    def __init__(self, unit_price: Any, position: Optional[int] = None) -> None:
        super().__init__(
            f"Line item price cannot be negative (got {unit_price})",
            unit_price=unit_price,
            position=position,
        )


class NotFoundError(DomainError):
    code = ErrorCode.NOT_FOUND
    status_code = 404

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity.capitalize()} not found", entity=entity, entity_id=entity_id)


class StoreUnavailable(DomainError):
    """A read or write against the data store failed outside any saga step."""

    code = ErrorCode.STORE_UNAVAILABLE
    status_code = 503


class EventCreationFailed(DomainError):
    code = ErrorCode.EVENT_CREATION_FAILED
    status_code = 502

    def __init__(self, cause: Exception) -> None:
        super().__init__(
            "Could not create the calendar event; no booking was created",
            step="create_event",
            cause=str(cause),
        )


class BookingCreationFailed(DomainError):
    code = ErrorCode.BOOKING_CREATION_FAILED
    status_code = 502

    def __init__(
        self,
        cause: Exception,
        event_id: str,
        message: Optional[str] = None,
        compensated: bool = True,
        **context: Any,
    ) -> None:
        super().__init__(
            message
            or "Could not create the booking; the calendar event created for it was removed",
            step="create_booking",
            cause=str(cause),
            event_id=event_id,
            compensated=compensated,
            **context,
        )
        self.event_id = event_id
        self.compensated = compensated


class CompensationFailed(BookingCreationFailed):
    """The booking failed AND the event created for it could not be deleted.

    Leaves an orphaned blocked-time event that staff must remove by hand.
    """

    code = ErrorCode.COMPENSATION_FAILED
    status_code = 500

    def __init__(self, cause: Exception, event_id: str, compensation_error: Exception) -> None:
        super().__init__(
            cause,
            event_id,
            message=(
                f"Booking failed and the blocked-time event {event_id} could not be removed. "
                "Delete it manually before retrying"
            ),
            compensated=False,
            compensation_error=str(compensation_error),
            orphaned_event_id=event_id,
        )


class GatewayUnavailable(DomainError):
    code = ErrorCode.GATEWAY_UNAVAILABLE
    status_code = 503


class InvalidAmount(DomainError):
    code = ErrorCode.INVALID_AMOUNT
    status_code = 400

    def __init__(self, amount: Any) -> None:
        super().__init__(f"Payment amount must be greater than zero (got {amount})", amount=amount)


class PaymentNotConfirmed(DomainError):
    code = ErrorCode.PAYMENT_NOT_CONFIRMED
    status_code = 402

    def __init__(
        self,
        gateway_status: str,
        intent_id: str,
        payment_id: Optional[str] = None,
    ) -> None:
        recorded = payment_id is not None
        super().__init__(
            f"Payment was not confirmed by the gateway (status: {gateway_status}). "
            + ("A failed payment was recorded" if recorded else "No payment was recorded"),
            gateway_status=gateway_status,
            intent_id=intent_id,
            payment_recorded=recorded,
            payment_id=payment_id,
        )
        self.gateway_status = gateway_status
        self.payment_id = payment_id


class InvalidTransition(DomainError):
    code = ErrorCode.INVALID_TRANSITION
    status_code = 409

    def __init__(self, entity_id: str, current: str, target: str) -> None:
        super().__init__(
            f"Invoice is {current} and cannot move to {target}",
            invoice_id=entity_id,
            current_status=current,
            target_status=target,
        )


class Overpayment(DomainError):
    """Informational: succeeded payments exceed the total. Reported, never raised."""

    code = ErrorCode.OVERPAYMENT
    status_code = 200

    def __init__(self, overpaid_cents: int, invoice_id: Optional[str] = None) -> None:
        super().__init__(
            f"Payments exceed the invoice total by {overpaid_cents} cents; balance shown as zero",
            overpaid_cents=overpaid_cents,
            invoice_id=invoice_id,
        )


class InvoiceDeliveryFailed(DomainError):
    code = ErrorCode.INVOICE_DELIVERY_FAILED
    status_code = 502
