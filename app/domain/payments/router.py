"""Payment router - FastAPI endpoints for the payment workflow"""

import logging

from fastapi import APIRouter, Depends

from ...auth import StaffIdentity, get_current_staff
from ...services.invoice_delivery import InvoiceEmailSender, get_email_sender
from ...services.stripe_gateway import PaymentGateway, get_gateway
from ...store import DataStore, get_store
from ..invoices.service import InvoiceService
from .schemas import (
    IntentConfirm,
    IntentCreate,
    IntentResponse,
    ManualPaymentCreate,
    PaymentAttemptCreate,
    PaymentOutcomeResponse,
)
from .service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


def get_payment_service(
    store: DataStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_gateway),
    email_sender: InvoiceEmailSender = Depends(get_email_sender),
) -> PaymentService:
    """Dependency injection for PaymentService"""
    return PaymentService(store, gateway, InvoiceService(store, email_sender))


@router.post("/intents", response_model=IntentResponse, status_code=201)
async def create_payment_intent(
    data: IntentCreate,
    current_staff: StaffIdentity = Depends(get_current_staff),
    service: PaymentService = Depends(get_payment_service),
):
    """Create a gateway payment intent; the client confirms it with the returned secret"""
    return await service.create_intent(data)


@router.post("/attempts", response_model=PaymentOutcomeResponse)
async def record_payment_attempt(
    data: PaymentAttemptCreate,
    current_staff: StaffIdentity = Depends(get_current_staff),
    service: PaymentService = Depends(get_payment_service),
):
    """Create, confirm and reconcile a payment with a payment method collected client-side"""
    logger.info(f"📥 Payment attempt by staff {current_staff.id}")
    return await service.record_payment_attempt(data)


@router.post("/intents/{intent_id}/confirm", response_model=PaymentOutcomeResponse)
async def confirm_payment_intent(
    intent_id: str,
    data: IntentConfirm,
    current_staff: StaffIdentity = Depends(get_current_staff),
    service: PaymentService = Depends(get_payment_service),
):
    return await service.confirm_intent(intent_id, data)


@router.post("/manual", response_model=PaymentOutcomeResponse, status_code=201)
async def record_manual_payment(
    data: ManualPaymentCreate,
    current_staff: StaffIdentity = Depends(get_current_staff),
    service: PaymentService = Depends(get_payment_service),
):
    """Record a payment taken outside the gateway"""
    logger.info(f"📥 Manual payment entered by staff {current_staff.id}")
    return await service.record_manual_payment(data)
