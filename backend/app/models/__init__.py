from app.models.user import User
from app.models.tour import Category, Tour, TourInstance, InstanceStatus
from app.models.catalog import Service, TourService
from app.models.booking import Booking, BookingServiceLine, BookingStatus
from app.models.payment import Payment, PaymentStatus
from app.models.promotion import (
    Promotion, PromotionRule, PromotionTarget, Coupon, PromotionRedemption,
    PromotionType, RuleType, TargetType, RedemptionStatus,
)

__all__ = [
    "User",
    "Category", "Tour", "TourInstance", "InstanceStatus",
    "Service", "TourService",
    "Booking", "BookingServiceLine", "BookingStatus",
    "Payment", "PaymentStatus",
    "Promotion", "PromotionRule", "PromotionTarget", "Coupon", "PromotionRedemption",
    "PromotionType", "RuleType", "TargetType", "RedemptionStatus",
]
