"""
Pydantic schemas for booking requests, responses and operation results.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from pydantic import BaseModel, Field

from app.core.exceptions import BookingError
from app.schemas.pricing import SelectedService


class BookingCreate(BaseModel):
    instance_id: int
    seats: int = Field(..., gt=0)
    services: list[SelectedService] = Field(default_factory=list)
    coupon_code: Optional[str] = Field(None, max_length=100)
    special_requests: Optional[str] = Field(None, max_length=2000)


class BookingStatusUpdate(BaseModel):
    status: Literal["Pending", "Confirmed", "Completed", "Cancelled", "Rejected"]


class PaymentRequest(BaseModel):
    payment_method: str = Field(default="CreditCard", max_length=50)
    transaction_ref: Optional[str] = Field(None, max_length=200)


class OperationResult(BaseModel):
    success: bool
    message: str
    status_code: int = Field(default=200, exclude=True)

    @classmethod
    def failure(cls, error: BookingError, **extra) -> "OperationResult":
        return cls(success=False, message=error.message, status_code=error.status_code, **extra)


class BookingResult(OperationResult):
    booking_id: Optional[int] = None
    booking_ref: Optional[str] = None
    total_amount: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    warning: Optional[str] = None


class StatusChangeResult(OperationResult):
    booking_id: Optional[int] = None
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    rejected_booking_ids: list[int] = Field(default_factory=list)


class BookingServiceLineResponse(BaseModel):
    service_id: int
    quantity: int
    price_at_booking: Decimal
    currency: str

    model_config = {"from_attributes": True}


class RedemptionResponse(BaseModel):
    promotion_id: int
    coupon_id: Optional[int]
    discount_amount: Decimal
    currency: str
    status: str

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: int
    booking_ref: str
    user_id: int
    instance_id: int
    seats: int
    total_amount: Decimal
    discount_amount: Decimal
    currency: str
    status: str
    special_requests: Optional[str]
    services: list[BookingServiceLineResponse] = Field(default_factory=list)
    redemption: Optional[RedemptionResponse] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class PendingBookingResponse(BaseModel):
    tour_id: int
    booking_id: Optional[int]


class BookingPaidResponse(BaseModel):
    booking_id: int
    paid: bool
