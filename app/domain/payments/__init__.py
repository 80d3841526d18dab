from .router import router
from .service import PaymentService

__all__ = ["router", "PaymentService"]
