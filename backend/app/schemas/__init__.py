from app.schemas.pricing import (
    SelectedService, PriceQuoteRequest, DiscountResult, ServicePriceLine, PriceCalculation,
)
from app.schemas.booking import (
    BookingCreate, BookingStatusUpdate, PaymentRequest, OperationResult, BookingResult,
    StatusChangeResult, BookingResponse, PendingBookingResponse, BookingPaidResponse,
)
from app.schemas.promotion import PromotionCreate, PromotionResponse
from app.schemas.tour import InstanceResponse

__all__ = [
    "SelectedService", "PriceQuoteRequest", "DiscountResult", "ServicePriceLine", "PriceCalculation",
    "BookingCreate", "BookingStatusUpdate", "PaymentRequest", "OperationResult", "BookingResult",
    "StatusChangeResult", "BookingResponse", "PendingBookingResponse", "BookingPaidResponse",
    "PromotionCreate", "PromotionResponse",
    "InstanceResponse",
]
