"""
Invoice delivery - shareable payment links and invoice emails.
The email itself is rendered and sent by the `send-invoice-email` edge function.
"""

import logging
from typing import Optional

import httpx

from ..config import PAYMENT_LINK_BASE_URL, SUPABASE_SERVICE_KEY, SUPABASE_URL
from ..domain.errors import InvoiceDeliveryFailed

logger = logging.getLogger(__name__)


def build_payment_link(payment_token: str, base_url: str = PAYMENT_LINK_BASE_URL) -> str:
    """Public URL where the recipient pays the invoice"""
    return f"{base_url.rstrip('/')}/invoice-payment/{payment_token}"


class InvoiceEmailSender:
    """Calls the edge function that emails an invoice to its recipient"""

    def __init__(
        self,
        base_url: Optional[str] = SUPABASE_URL,
        api_key: Optional[str] = SUPABASE_SERVICE_KEY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.function_url = f"{(base_url or '').rstrip('/')}/functions/v1/send-invoice-email"
        self.api_key = api_key
        self._transport = transport

    async def send(self, invoice_id: str, access_token: Optional[str] = None) -> None:
        token = access_token or self.api_key
        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as http_client:
                response = await http_client.post(
                    self.function_url,
                    json={"invoice_id": invoice_id},
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Invoice email for {invoice_id} could not be sent: {e}")
            raise InvoiceDeliveryFailed("Invoice email service is unreachable", invoice_id=invoice_id) from e

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {}
        if response.status_code >= 400 or (isinstance(data, dict) and data.get("error")):
            error = data.get("error") if isinstance(data, dict) else None
            logger.error(f"❌ Invoice email for {invoice_id} failed: HTTP {response.status_code} {error}")
            raise InvoiceDeliveryFailed(
                f"Failed to send invoice email: {error or response.text[:200]}",
                invoice_id=invoice_id,
                status_code=response.status_code,
            )

        logger.info(f"✅ Invoice email sent for {invoice_id}")


def get_email_sender() -> InvoiceEmailSender:
    return InvoiceEmailSender()
