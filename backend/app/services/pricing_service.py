"""
Price calculation for a prospective booking.

    base_price_total   = price_base x seats
    service sub_total  = unit_price x quantity x seats   (quantity is per seat)
    sub_total          = base_price_total + services_total
    grand_total        = sub_total - best promotion discount

Unit prices come from the tour's override when one exists, else the
service list price. Side-effect free: the same call backs the checkout
preview and the authoritative charge at booking time.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationFailure
from app.core.logging import get_logger
from app.core.metrics import price_calculation_latency
from app.core.money import ZERO, to_money
from app.models.catalog import Service, TourService
from app.models.tour import TourInstance
from app.schemas.pricing import PriceCalculation, SelectedService, ServicePriceLine
from app.services.promotion_service import calculate_discount

logger = get_logger(__name__)


async def _price_service_line(
    db: AsyncSession,
    tour_id: int,
    selected: SelectedService,
    seats: int,
) -> Optional[ServicePriceLine]:
    service = await db.get(Service, selected.service_id)
    if service is None or not service.is_active:
        logger.warning("price_unknown_service", service_id=selected.service_id, tour_id=tour_id)
        return None

    result = await db.execute(
        select(TourService).where(
            TourService.tour_id == tour_id,
            TourService.service_id == selected.service_id,
        )
    )
    tour_service = result.scalar_one_or_none()

    unit_price = Decimal(service.price)
    currency = service.currency
    if tour_service is not None:
        if tour_service.price_override is not None:
            unit_price = Decimal(tour_service.price_override)
        currency = tour_service.currency or currency

    return ServicePriceLine(
        service_id=service.id,
        service_name=service.name,
        quantity=selected.quantity,
        total_quantity=selected.quantity * seats,
        unit_price=to_money(unit_price),
        sub_total=to_money(unit_price * selected.quantity * seats),
        currency=currency,
    )


async def build_price_calculation(
    db: AsyncSession,
    instance: TourInstance,
    seats: int,
    services: list[SelectedService],
    coupon_code: Optional[str] = None,
    user_id: Optional[int] = None,
) -> PriceCalculation:
    if seats <= 0:
        raise ValidationFailure("Number of seats must be greater than zero.")

    with price_calculation_latency.time():
        base_price = Decimal(instance.price_base)
        base_price_total = to_money(base_price * seats)

        lines = []
        for selected in services:
            line = await _price_service_line(db, instance.tour_id, selected, seats)
            if line is not None:
                lines.append(line)
        services_total = to_money(sum((line.sub_total for line in lines), ZERO))

        sub_total = base_price_total + services_total
        discount = await calculate_discount(
            db,
            user_id=user_id,
            tour_id=instance.tour_id,
            instance_id=instance.id,
            total_amount=sub_total,
            seat_count=seats,
            coupon_code=coupon_code,
        )

    return PriceCalculation(
        instance_id=instance.id,
        seats=seats,
        base_price=to_money(base_price),
        base_price_total=base_price_total,
        services=lines,
        services_total=services_total,
        sub_total_before_discount=sub_total,
        discount_amount=discount.discount_amount,
        promotion_id=discount.promotion_id,
        promotion_name=discount.promotion_name,
        coupon_id=discount.coupon_id,
        coupon_code=discount.coupon_code,
        message=discount.message,
        grand_total=to_money(sub_total - discount.discount_amount),
        currency=instance.currency,
    )


async def calculate_price(
    db: AsyncSession,
    instance_id: int,
    seats: int,
    services: list[SelectedService],
    coupon_code: Optional[str] = None,
    user_id: Optional[int] = None,
) -> Optional[PriceCalculation]:
    """Price breakdown for a departure, or None if it doesn't exist."""
    instance = await db.get(TourInstance, instance_id)
    if instance is None:
        return None
    return await build_price_calculation(db, instance, seats, services, coupon_code, user_id)
