"""
Pydantic schemas for price quotes and discount results.
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


class SelectedService(BaseModel):
    service_id: int
    quantity: int = Field(default=1, gt=0, le=100)  # per seat


class PriceQuoteRequest(BaseModel):
    instance_id: int
    seats: int = Field(..., gt=0)
    services: list[SelectedService] = Field(default_factory=list)
    coupon_code: Optional[str] = Field(None, max_length=100)


class DiscountResult(BaseModel):
    is_applied: bool = False
    discount_amount: Decimal = Decimal("0.00")
    promotion_id: Optional[int] = None
    promotion_name: Optional[str] = None
    coupon_id: Optional[int] = None
    coupon_code: Optional[str] = None
    message: str = ""


class ServicePriceLine(BaseModel):
    service_id: int
    service_name: str
    quantity: int  # per seat, as selected
    total_quantity: int  # quantity x seats
    unit_price: Decimal
    sub_total: Decimal
    currency: str


class PriceCalculation(BaseModel):
    instance_id: int
    seats: int
    base_price: Decimal
    base_price_total: Decimal
    services: list[ServicePriceLine]
    services_total: Decimal
    sub_total_before_discount: Decimal
    discount_amount: Decimal
    promotion_id: Optional[int] = None
    promotion_name: Optional[str] = None
    coupon_id: Optional[int] = None
    coupon_code: Optional[str] = None
    message: str = ""
    grand_total: Decimal
    currency: str
