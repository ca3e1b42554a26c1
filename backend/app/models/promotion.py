"""
Promotion catalogue: promotions, their discount rules, targeting, coupon
codes and the redemption ledger.

A promotion with no targets (or an `All` target) applies everywhere.
Window bounds and usage limits are nullable; NULL means unbounded.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Numeric, Text,
    CheckConstraint, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin, utcnow


class PromotionType:
    AUTOMATIC = "Automatic"
    COUPON = "Coupon"
    FLASH_SALE = "FlashSale"

    ALL = (AUTOMATIC, COUPON, FLASH_SALE)


class RuleType:
    PERCENT = "Percent"
    FIXED = "Fixed"
    FREE_SEAT = "FreeSeat"
    BUY_X_GET_Y = "BuyXGetY"
    FREE_SERVICE = "FreeService"

    ALL = (PERCENT, FIXED, FREE_SEAT, BUY_X_GET_Y, FREE_SERVICE)


class TargetType:
    ALL = "All"
    TOUR = "Tour"
    INSTANCE = "Instance"
    CATEGORY = "Category"

    CHOICES = (ALL, TOUR, INSTANCE, CATEGORY)


class RedemptionStatus:
    APPLIED = "Applied"
    CONFIRMED = "Confirmed"
    VOIDED = "Voided"


class Promotion(Base, TimestampMixin):
    __tablename__ = "promotions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    promotion_type = Column(String(20), nullable=False, default=PromotionType.AUTOMATIC)
    is_active = Column(Boolean, nullable=False, default=True)
    start_at = Column(DateTime(timezone=True), nullable=True)
    end_at = Column(DateTime(timezone=True), nullable=True)
    priority = Column(Integer, nullable=False, default=100)
    allow_stack = Column(Boolean, nullable=False, default=False)
    max_global_uses = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    max_uses_per_user = Column(Integer, nullable=True)
    min_total_amount = Column(Numeric(14, 2), nullable=True)
    min_seats = Column(Integer, nullable=True)

    rules = relationship("PromotionRule", back_populates="promotion", lazy="selectin", cascade="all, delete-orphan")
    targets = relationship("PromotionTarget", back_populates="promotion", lazy="selectin", cascade="all, delete-orphan")
    coupons = relationship("Coupon", back_populates="promotion", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint(
            "promotion_type IN ('Automatic', 'Coupon', 'FlashSale')",
            name="check_promotion_type",
        ),
        CheckConstraint("usage_count >= 0", name="check_promotion_usage_non_negative"),
        Index("ix_promotions_active_window", "is_active", "start_at", "end_at"),
    )

    def __repr__(self) -> str:
        return f"<Promotion(id={self.id}, name={self.name}, type={self.promotion_type})>"


class PromotionRule(Base):
    __tablename__ = "promotion_rules"

    id = Column(Integer, primary_key=True, index=True)
    promotion_id = Column(Integer, ForeignKey("promotions.id"), nullable=False, index=True)
    rule_type = Column(String(20), nullable=False)
    value = Column(Numeric(18, 6), nullable=False, default=0)
    currency = Column(String(10), nullable=True)
    max_discount_amount = Column(Numeric(14, 2), nullable=True)

    promotion = relationship("Promotion", back_populates="rules")

    __table_args__ = (
        CheckConstraint(
            "rule_type IN ('Percent', 'Fixed', 'FreeSeat', 'BuyXGetY', 'FreeService')",
            name="check_promotion_rule_type",
        ),
    )


class PromotionTarget(Base):
    __tablename__ = "promotion_targets"

    id = Column(Integer, primary_key=True, index=True)
    promotion_id = Column(Integer, ForeignKey("promotions.id"), nullable=False, index=True)
    target_type = Column(String(20), nullable=False)
    target_id = Column(Integer, nullable=True)  # NULL for target_type All

    promotion = relationship("Promotion", back_populates="targets")

    __table_args__ = (
        CheckConstraint(
            "target_type IN ('All', 'Tour', 'Instance', 'Category')",
            name="check_promotion_target_type",
        ),
    )


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    promotion_id = Column(Integer, ForeignKey("promotions.id"), nullable=False, index=True)
    code = Column(String(100), nullable=False, unique=True, index=True)
    description = Column(String(500), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    max_uses = Column(Integer, nullable=True)
    max_uses_per_user = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    promotion = relationship("Promotion", back_populates="coupons")


class PromotionRedemption(Base):
    __tablename__ = "promotion_redemptions"

    id = Column(Integer, primary_key=True, index=True)
    promotion_id = Column(Integer, ForeignKey("promotions.id"), nullable=False, index=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    instance_id = Column(Integer, ForeignKey("tour_instances.id"), nullable=True)
    discount_amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(10), nullable=False)
    status = Column(String(20), nullable=False, default=RedemptionStatus.APPLIED)
    applied_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    __table_args__ = (
        # One redemption per booking
        UniqueConstraint("booking_id", name="uq_redemption_booking"),
        CheckConstraint(
            "status IN ('Applied', 'Confirmed', 'Voided')",
            name="check_redemption_status",
        ),
    )
