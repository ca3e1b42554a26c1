"""
Pydantic schemas for promotion administration.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from pydantic import BaseModel, Field, model_validator


class PromotionRuleCreate(BaseModel):
    rule_type: Literal["Percent", "Fixed", "FreeSeat", "BuyXGetY", "FreeService"]
    value: Decimal = Field(..., ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, max_length=10)

    @model_validator(mode="after")
    def check_percent_range(self):
        if self.rule_type == "Percent" and self.value > 100:
            raise ValueError("Percent rule value must be between 0 and 100")
        return self


class PromotionTargetCreate(BaseModel):
    target_type: Literal["All", "Tour", "Instance", "Category"]
    target_id: Optional[int] = None

    @model_validator(mode="after")
    def check_target_id(self):
        if self.target_type != "All" and self.target_id is None:
            raise ValueError(f"target_id is required for {self.target_type} targets")
        return self


class CouponCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, gt=0)
    max_uses_per_user: Optional[int] = Field(None, gt=0)


class PromotionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    promotion_type: Literal["Automatic", "Coupon", "FlashSale"] = "Automatic"
    is_active: bool = True
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    priority: int = 100
    allow_stack: bool = False
    max_global_uses: Optional[int] = Field(None, gt=0)
    max_uses_per_user: Optional[int] = Field(None, gt=0)
    min_total_amount: Optional[Decimal] = Field(None, ge=0)
    min_seats: Optional[int] = Field(None, gt=0)
    rules: list[PromotionRuleCreate] = Field(default_factory=list)
    targets: list[PromotionTargetCreate] = Field(default_factory=list)
    coupons: list[CouponCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_window(self):
        if self.start_at and self.end_at and self.end_at < self.start_at:
            raise ValueError("end_at must not be before start_at")
        if self.promotion_type == "Coupon" and not self.coupons:
            raise ValueError("Coupon promotions need at least one coupon code")
        return self


class PromotionRuleResponse(BaseModel):
    id: int
    rule_type: str
    value: Decimal
    max_discount_amount: Optional[Decimal]

    model_config = {"from_attributes": True}


class PromotionTargetResponse(BaseModel):
    id: int
    target_type: str
    target_id: Optional[int]

    model_config = {"from_attributes": True}


class PromotionResponse(BaseModel):
    id: int
    name: str
    promotion_type: str
    is_active: bool
    start_at: Optional[datetime]
    end_at: Optional[datetime]
    priority: int
    allow_stack: bool
    max_global_uses: Optional[int]
    usage_count: int
    max_uses_per_user: Optional[int]
    min_total_amount: Optional[Decimal]
    min_seats: Optional[int]
    rules: list[PromotionRuleResponse]
    targets: list[PromotionTargetResponse]

    model_config = {"from_attributes": True}
