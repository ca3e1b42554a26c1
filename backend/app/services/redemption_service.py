"""
Redemption ledger: one row per discounted booking.

The row mirrors its booking's lifecycle:
  booking Pending    -> Applied
  booking Confirmed  -> Confirmed
  booking Cancelled / Rejected -> Voided

Usage counters on Promotion / Coupon are incremented on record and are not
decremented on void. Per-user limits ignore voided rows, so a voided
redemption frees the user's allowance but not the global one.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.money import to_money
from app.models.promotion import Coupon, Promotion, PromotionRedemption, RedemptionStatus

logger = get_logger(__name__)
settings = get_settings()


async def record_redemption(
    db: AsyncSession,
    booking_id: int,
    user_id: int,
    promotion_id: int,
    discount_amount: Decimal,
    coupon_id: Optional[int] = None,
    instance_id: Optional[int] = None,
    currency: Optional[str] = None,
) -> PromotionRedemption:
    redemption = PromotionRedemption(
        booking_id=booking_id,
        user_id=user_id,
        promotion_id=promotion_id,
        coupon_id=coupon_id,
        instance_id=instance_id,
        discount_amount=to_money(discount_amount),
        currency=currency or settings.DEFAULT_CURRENCY,
        status=RedemptionStatus.APPLIED,
    )
    db.add(redemption)

    # Relative increments so concurrent redemptions don't overwrite each other
    await db.execute(
        update(Promotion)
        .where(Promotion.id == promotion_id)
        .values(usage_count=Promotion.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    if coupon_id is not None:
        await db.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id)
            .values(usage_count=Coupon.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
    await db.flush()

    logger.info(
        "redemption_recorded",
        booking_id=booking_id,
        promotion_id=promotion_id,
        coupon_id=coupon_id,
        discount=redemption.discount_amount,
    )
    return redemption


async def get_redemption(db: AsyncSession, booking_id: int) -> Optional[PromotionRedemption]:
    result = await db.execute(
        select(PromotionRedemption).where(PromotionRedemption.booking_id == booking_id)
    )
    return result.scalar_one_or_none()


async def confirm_redemption(db: AsyncSession, booking_id: int) -> Optional[PromotionRedemption]:
    redemption = await get_redemption(db, booking_id)
    if redemption is None:
        return None
    if redemption.status == RedemptionStatus.APPLIED:
        redemption.status = RedemptionStatus.CONFIRMED
        logger.info("redemption_confirmed", booking_id=booking_id, redemption_id=redemption.id)
    return redemption


async def void_redemption(db: AsyncSession, booking_id: int) -> Optional[PromotionRedemption]:
    redemption = await get_redemption(db, booking_id)
    if redemption is None:
        return None
    if redemption.status != RedemptionStatus.VOIDED:
        redemption.status = RedemptionStatus.VOIDED
        logger.info("redemption_voided", booking_id=booking_id, redemption_id=redemption.id)
    return redemption


async def void_redemptions(db: AsyncSession, booking_ids: list[int]) -> int:
    """Bulk void for auto-rejected bookings. Returns rows changed."""
    if not booking_ids:
        return 0
    result = await db.execute(
        update(PromotionRedemption)
        .where(
            PromotionRedemption.booking_id.in_(booking_ids),
            PromotionRedemption.status != RedemptionStatus.VOIDED,
        )
        .values(status=RedemptionStatus.VOIDED)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount
