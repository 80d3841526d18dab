from .router import router
from .service import BookingService

__all__ = ["router", "BookingService"]
