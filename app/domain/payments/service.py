"""Payment service - Drives the gateway through intent creation and confirmation.

A payment row is written only once the gateway has given a terminal answer, so a
failed intent creation or an unreachable gateway never leaves a pending entry in
the ledger. Succeeded invoice payments are then applied to the invoice, which
recomputes its balance from every succeeded payment.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Optional

from ...services.stripe_gateway import GatewayStatus, PaymentGateway
from ...store import DataStore, DataStoreError, Row
from ..errors import (
    GatewayUnavailable,
    InvalidAmount,
    NotFoundError,
    PaymentNotConfirmed,
    StoreUnavailable,
    ValidationError,
)
from ..invoices.service import InvoiceService
from .repository import PaymentRepository
from .schemas import (
    IntentConfirm,
    IntentCreate,
    ManualPaymentCreate,
    PaymentAttemptCreate,
    PaymentStatus,
    PaymentType,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentTarget:
    """What a payment pays for and where its funds go"""

    invoice_id: Optional[str] = None
    booking_id: Optional[str] = None
    routing_account: Optional[str] = None

    @property
    def to_platform(self) -> bool:
        return self.routing_account is None

    @property
    def label(self) -> str:
        return f"invoice {self.invoice_id}" if self.invoice_id else f"booking {self.booking_id}"


class PaymentService:
    """Service layer for the payment workflow"""

    def __init__(
        self,
        store: DataStore,
        gateway: PaymentGateway,
        invoice_service: Optional[InvoiceService] = None,
    ):
        self.store = store
        self.repo = PaymentRepository(store)
        self.gateway = gateway
        self.invoices = invoice_service or InvoiceService(store)

    async def _guard(self, awaitable: Awaitable, action: str, **context: Any) -> Any:
        try:
            return await awaitable
        except DataStoreError as e:
            logger.error(f"❌ Could not {action}: {e}")
            raise StoreUnavailable(f"Could not {action}", **context) from e

    async def resolve_target(
        self,
        invoice_id: Optional[str],
        booking_id: Optional[str],
        routing_account: Optional[str] = None,
        route_to_vendor: bool = True,
    ) -> PaymentTarget:
        """Check the target exists and work out the funds routing.

        Invoice payments go to the platform unless an account is given. Booking
        payments default to the booked vendor's connected account, when it has one.
        """
        if bool(invoice_id) == bool(booking_id):
            raise ValidationError(
                "A payment needs exactly one of invoice_id or booking_id",
                invoice_id=invoice_id,
                booking_id=booking_id,
            )

        if invoice_id:
            invoice = await self._guard(self.repo.get_invoice(invoice_id), "read invoice")
            if not invoice:
                raise NotFoundError("invoice", invoice_id)
            return PaymentTarget(invoice_id=invoice_id, routing_account=routing_account or None)

        booking = await self._guard(self.repo.get_booking(booking_id), "read booking")
        if not booking:
            raise NotFoundError("booking", booking_id)
        if route_to_vendor and not routing_account and booking.get("vendor_id"):
            vendor = await self._guard(self.repo.get_vendor(booking["vendor_id"]), "read vendor")
            routing_account = (vendor or {}).get("stripe_account_id")
        return PaymentTarget(booking_id=booking_id, routing_account=routing_account or None)

    async def create_intent(self, data: IntentCreate) -> dict:
        """Step 1: create the gateway intent. Nothing is written."""
        if data.amount <= 0:
            raise InvalidAmount(data.amount)
        target = await self.resolve_target(data.invoice_id, data.booking_id, data.routing_account)
        intent = await self._create_gateway_intent(target, data.amount, data.payment_type)
        return {
            "intent_id": intent.intent_id,
            "client_secret": intent.client_secret,
            "invoice_id": target.invoice_id,
            "booking_id": target.booking_id,
            "amount": data.amount,
            "routing_account": target.routing_account,
        }

    async def _create_gateway_intent(self, target: PaymentTarget, amount: int, payment_type: PaymentType):
        try:
            return await self.gateway.create_intent(
                amount,
                routing_account=target.routing_account,
                metadata={
                    "invoice_id": target.invoice_id,
                    "booking_id": target.booking_id,
                    "payment_type": payment_type.value,
                },
            )
        except GatewayUnavailable as e:
            logger.error(f"❌ Intent creation for {target.label} failed, no payment recorded: {e}")
            e.context["payment_recorded"] = False
            raise

    async def record_payment_attempt(self, data: PaymentAttemptCreate) -> dict:
        """Create an intent, confirm it and reconcile the outcome"""
        if data.amount <= 0:
            raise InvalidAmount(data.amount)
        target = await self.resolve_target(data.invoice_id, data.booking_id, data.routing_account)
        intent = await self._create_gateway_intent(target, data.amount, data.payment_type)
        return await self._confirm_and_reconcile(
            intent.intent_id, target, data.amount, data.payment_type, data.payment_method, data.record_failures
        )

    async def confirm_intent(self, intent_id: str, data: IntentConfirm) -> dict:
        """Confirm an intent created earlier and reconcile the outcome.

        The amount, target and routing are the ones the gateway holds for the
        intent. A request naming different ones is rejected. An intent that
        already has a succeeded payment is reconciled again, never re-recorded.
        """
        try:
            details = await self.gateway.retrieve(intent_id)
        except GatewayUnavailable as e:
            logger.error(f"❌ Could not read intent {intent_id}, no payment recorded: {e}")
            e.context.update(intent_id=intent_id, payment_recorded=False)
            raise

        held = {
            "invoice_id": details.metadata.get("invoice_id") or None,
            "booking_id": details.metadata.get("booking_id") or None,
            "amount": details.amount,
            "payment_type": details.metadata.get("payment_type") or PaymentType.FULL_PAYMENT.value,
            "routing_account": details.routing_account,
        }
        given = data.model_dump(include=set(held), exclude_none=True, mode="json")
        mismatched = sorted(name for name, value in given.items() if value != held[name])
        if mismatched:
            logger.warning(f"⚠️ Confirmation of intent {intent_id} disagrees with the intent on {mismatched}")
            raise ValidationError(
                f"Request does not match payment intent {intent_id}: {', '.join(mismatched)}",
                intent_id=intent_id,
                mismatched_fields=mismatched,
                intent_amount=details.amount,
            )
        try:
            payment_type = PaymentType(held["payment_type"])
        except ValueError as e:
            raise ValidationError(
                f"Intent {intent_id} carries an unknown payment type", payment_type=held["payment_type"]
            ) from e

        target = await self.resolve_target(
            held["invoice_id"], held["booking_id"], details.routing_account, route_to_vendor=False
        )

        existing = await self._guard(
            self.repo.get_succeeded_payment(intent_id), "read payments", intent_id=intent_id
        )
        if existing:
            logger.info(f"🔁 Intent {intent_id} already recorded as payment {existing['id']}")
            return await self._apply(existing, target)

        status = details.outcome if details.outcome == GatewayStatus.SUCCEEDED else None
        return await self._confirm_and_reconcile(
            intent_id, target, details.amount, payment_type, data.payment_method, data.record_failures, status
        )

    async def _confirm_and_reconcile(
        self,
        intent_id: str,
        target: PaymentTarget,
        amount: int,
        payment_type: PaymentType,
        payment_method: str,
        record_failures: bool,
        status: Optional[GatewayStatus] = None,
    ) -> dict:
        if status is None:
            try:
                status = await self.gateway.confirm(intent_id, payment_method)
            except GatewayUnavailable as e:
                logger.error(f"❌ Confirmation of intent {intent_id} failed, no payment recorded: {e}")
                e.context.update(intent_id=intent_id, payment_recorded=False)
                raise

        if status == GatewayStatus.SUCCEEDED:
            payment = await self._record(
                target, amount, PaymentStatus.SUCCEEDED, payment_type, gateway_payment_id=intent_id
            )
            logger.info(f"✅ Payment {payment['id']} of {amount} cents succeeded for {target.label}")
            return await self._apply(payment, target)

        payment_id = None
        if record_failures:
            payment = await self._record(target, amount, PaymentStatus.FAILED, payment_type)
            payment_id = payment["id"]
        logger.warning(f"⚠️ Intent {intent_id} for {target.label} not confirmed: {status.value}")
        raise PaymentNotConfirmed(status.value, intent_id, payment_id)

    async def record_manual_payment(self, data: ManualPaymentCreate) -> dict:
        """Record an offline payment. Funds were collected by the platform."""
        if data.amount <= 0:
            raise InvalidAmount(data.amount)
        target = await self.resolve_target(data.invoice_id, data.booking_id, route_to_vendor=False)

        extra = {"created_at": data.paid_at} if data.paid_at else {}
        payment = await self._record(target, data.amount, data.status, data.payment_type, **extra)
        logger.info(f"🧾 Manual {data.status.value} payment {payment['id']} recorded for {target.label}")

        if data.status == PaymentStatus.SUCCEEDED:
            return await self._apply(payment, target)
        return {"payment": payment}

    async def _record(
        self,
        target: PaymentTarget,
        amount: int,
        status: PaymentStatus,
        payment_type: PaymentType,
        **extra: Any,
    ) -> Row:
        try:
            return await self.repo.create_payment(
                invoice_id=target.invoice_id,
                booking_id=target.booking_id,
                amount=amount,
                status=status.value,
                payment_type=payment_type.value,
                to_platform=target.to_platform,
                **extra,
            )
        except DataStoreError as e:
            if status == PaymentStatus.SUCCEEDED and extra.get("gateway_payment_id"):
                recorded = await self._recorded_elsewhere(extra["gateway_payment_id"])
                if recorded:
                    logger.info(f"🔁 Intent {extra['gateway_payment_id']} was recorded concurrently as {recorded['id']}")
                    return recorded
                logger.critical(
                    f"🚨 Gateway charged intent {extra['gateway_payment_id']} for {target.label} "
                    f"but the payment row could not be written: {e}"
                )
            else:
                logger.error(f"❌ Could not record {status.value} payment for {target.label}: {e}")
            raise StoreUnavailable(
                "Could not record the payment",
                payment_recorded=False,
                gateway_payment_id=extra.get("gateway_payment_id"),
                invoice_id=target.invoice_id,
                booking_id=target.booking_id,
            ) from e

    async def _recorded_elsewhere(self, gateway_payment_id: str) -> Optional[Row]:
        """A succeeded row another request wrote for the same intent, if the store can say"""
        try:
            return await self.repo.get_succeeded_payment(gateway_payment_id)
        except DataStoreError as e:
            logger.error(f"❌ Could not check for an existing payment for intent {gateway_payment_id}: {e}")
            return None

    async def _apply(self, payment: Row, target: PaymentTarget) -> dict:
        if not target.invoice_id:
            return {"payment": payment}
        try:
            invoice = await self.invoices.apply_payment(target.invoice_id)
        except StoreUnavailable as e:
            logger.error(f"❌ Payment {payment['id']} recorded but invoice {target.invoice_id} was not updated")
            raise StoreUnavailable(
                "Payment recorded but the invoice balance could not be updated",
                payment_recorded=True,
                payment_id=payment["id"],
                invoice_id=target.invoice_id,
            ) from e
        return {
            "payment": payment,
            "invoice_status": invoice["status"],
            "remaining_balance": invoice["remaining_balance"],
        }
