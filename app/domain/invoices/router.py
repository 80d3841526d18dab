"""Invoice router - FastAPI endpoints for invoice lifecycle and ledger"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...auth import StaffIdentity, get_current_staff
from ...services.invoice_delivery import InvoiceEmailSender, get_email_sender
from ...store import DataStore, get_store
from ..payments.schemas import PaymentResponse
from .schemas import (
    EmailSentResponse,
    InvoiceCreate,
    InvoiceResponse,
    LedgerResponse,
    ShareLinkResponse,
)
from .service import InvoiceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["Invoices"])


def get_invoice_service(
    store: DataStore = Depends(get_store),
    email_sender: InvoiceEmailSender = Depends(get_email_sender),
) -> InvoiceService:
    """Dependency injection for InvoiceService"""
    return InvoiceService(store, email_sender)


@router.post("", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    data: InvoiceCreate,
    current_staff: StaffIdentity = Depends(get_current_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Create a draft invoice; totals are computed server-side from the line items"""
    logger.info(f"📥 Invoice requested by staff {current_staff.id}")
    return await service.create_invoice(data)


@router.get("", response_model=list[InvoiceResponse])
async def list_invoices(
    status: Optional[str] = Query("all"),
    current_staff: StaffIdentity = Depends(get_current_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    """List invoices filtered by status, largest total first"""
    return await service.list_invoices(status)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: str,
    current_staff: StaffIdentity = Depends(get_current_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    return await service.get_invoice(invoice_id)


@router.get("/{invoice_id}/ledger", response_model=LedgerResponse)
async def get_invoice_ledger(
    invoice_id: str,
    current_staff: StaffIdentity = Depends(get_current_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Total, deposit and remaining balance with the payment breakdown"""
    return await service.get_ledger(invoice_id)


@router.post("/{invoice_id}/send", response_model=InvoiceResponse)
async def mark_invoice_sent(
    invoice_id: str,
    current_staff: StaffIdentity = Depends(get_current_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    return await service.mark_sent(invoice_id)


@router.post("/{invoice_id}/share-link", response_model=ShareLinkResponse)
async def share_invoice_link(
    invoice_id: str,
    current_staff: StaffIdentity = Depends(get_current_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Payment link for the recipient; the invoice is marked sent"""
    return await service.share_link(invoice_id)


@router.post("/{invoice_id}/email", response_model=EmailSentResponse)
async def send_invoice_email(
    invoice_id: str,
    current_staff: StaffIdentity = Depends(get_current_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Email the invoice to its recipient and mark it sent"""
    return await service.send_email(invoice_id, current_staff.access_token)


@router.get("/{invoice_id}/payments", response_model=list[PaymentResponse])
async def list_invoice_payments(
    invoice_id: str,
    current_staff: StaffIdentity = Depends(get_current_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Payments on the invoice and on the bookings it bills"""
    return await service.list_payments(invoice_id)
