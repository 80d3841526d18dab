from .router import router
from .service import InvoiceService

__all__ = ["router", "InvoiceService"]
