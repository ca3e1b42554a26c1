"""
Promotion engine: picks the single best discount for a cart.

SELECTION POLICY
================

1. Load promotions that are active, inside their [start_at, end_at] window
   (NULL bound = unbounded) and not globally exhausted.
2. Keep those whose targets match the departure (no targets or an `All`
   target match everything; otherwise Tour or Category ids). Instance
   targets are stored but never match.
3. Apply cart constraints (min_seats, min_total_amount) and the per-user
   cap (prior non-voided redemptions by this user).
4. Automatic promotions are always candidates. FlashSale promotions are
   stored but never selected. Coupon promotions are candidates only when
   the supplied code belongs to them and the coupon passes its own window, global and per-user limits.
5. Each candidate's discount is the sum of its rule contributions, clamped
   to the cart total. The strictly largest discount wins.

Candidates are evaluated in (priority DESC, created_at ASC, id ASC) order,
so on equal discounts the higher-priority, older promotion wins.

Stacking (`allow_stack`) is stored but not applied: exactly one promotion
is ever selected.

Everything here is read-only; price previews may call it freely.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.core.money import ZERO, to_money
from app.models.promotion import (
    Coupon, Promotion, PromotionRedemption, PromotionRule, PromotionTarget, PromotionType,
    RedemptionStatus, RuleType, TargetType,
)
from app.models.tour import Tour
from app.schemas.pricing import DiscountResult
from app.schemas.promotion import PromotionCreate

logger = get_logger(__name__)

INVALID_COUPON_MESSAGE = "Coupon code is invalid or does not apply to this tour."
ZERO_DISCOUNT_COUPON_MESSAGE = "Coupon code is valid but gives no discount for this booking."

RuleEvaluator = Callable[[PromotionRule, Decimal, int], Decimal]


@dataclass
class Candidate:
    promotion: Promotion
    coupon: Optional[Coupon] = None


# ---------------------------------------------------------------------------
# Rule evaluation
# ---------------------------------------------------------------------------

def _percent_rule(rule: PromotionRule, total_amount: Decimal, seat_count: int) -> Decimal:
    discount = total_amount * Decimal(rule.value) / Decimal(100)
    if rule.max_discount_amount is not None and discount > rule.max_discount_amount:
        discount = Decimal(rule.max_discount_amount)
    return discount


def _fixed_rule(rule: PromotionRule, total_amount: Decimal, seat_count: int) -> Decimal:
    return Decimal(rule.value)


def _non_monetary_rule(rule: PromotionRule, total_amount: Decimal, seat_count: int) -> Decimal:
    # Free seats / services are fulfilled outside pricing
    return ZERO


RULE_EVALUATORS: dict[str, RuleEvaluator] = {
    RuleType.PERCENT: _percent_rule,
    RuleType.FIXED: _fixed_rule,
    RuleType.FREE_SEAT: _non_monetary_rule,
    RuleType.BUY_X_GET_Y: _non_monetary_rule,
    RuleType.FREE_SERVICE: _non_monetary_rule,
}


def evaluate_rule(rule: PromotionRule, total_amount: Decimal, seat_count: int) -> Decimal:
    evaluator = RULE_EVALUATORS.get(rule.rule_type, _non_monetary_rule)
    return evaluator(rule, total_amount, seat_count)


def promotion_discount(promotion: Promotion, total_amount: Decimal, seat_count: int) -> Decimal:
    """Sum of rule contributions, never more than the cart is worth."""
    total_amount = Decimal(total_amount)
    discount = sum(
        (evaluate_rule(rule, total_amount, seat_count) for rule in promotion.rules),
        ZERO,
    )
    if discount > total_amount:
        discount = total_amount
    return to_money(discount)


def matches_target(
    promotion: Promotion,
    tour_id: int,
    category_id: Optional[int],
) -> bool:
    targets = promotion.targets
    if not targets or any(t.target_type == TargetType.ALL for t in targets):
        return True
    for target in targets:
        if target.target_type == TargetType.TOUR and target.target_id == tour_id:
            return True
        if (
            target.target_type == TargetType.CATEGORY
            and category_id is not None
            and target.target_id == category_id
        ):
            return True
    return False


def passes_constraints(promotion: Promotion, total_amount: Decimal, seat_count: int) -> bool:
    if promotion.min_seats is not None and seat_count < promotion.min_seats:
        return False
    if promotion.min_total_amount is not None and total_amount < promotion.min_total_amount:
        return False
    return True


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def load_active_promotions(db: AsyncSession, now: datetime) -> list[Promotion]:
    """Active, in-window, not globally exhausted; in tie-break order."""
    result = await db.execute(
        select(Promotion)
        .where(
            Promotion.is_active.is_(True),
            or_(Promotion.start_at.is_(None), Promotion.start_at <= now),
            or_(Promotion.end_at.is_(None), Promotion.end_at >= now),
            or_(
                Promotion.max_global_uses.is_(None),
                Promotion.usage_count < Promotion.max_global_uses,
            ),
        )
        .order_by(Promotion.priority.desc(), Promotion.created_at.asc(), Promotion.id.asc())
    )
    return list(result.scalars().all())


async def count_user_redemptions(
    db: AsyncSession,
    user_id: Optional[int],
    promotion_id: Optional[int] = None,
    coupon_id: Optional[int] = None,
) -> int:
    """Non-voided redemptions by a user, scoped to a promotion or a coupon."""
    if user_id is None:
        return 0
    query = select(func.count(PromotionRedemption.id)).where(
        PromotionRedemption.user_id == user_id,
        PromotionRedemption.status != RedemptionStatus.VOIDED,
    )
    if promotion_id is not None:
        query = query.where(PromotionRedemption.promotion_id == promotion_id)
    if coupon_id is not None:
        query = query.where(PromotionRedemption.coupon_id == coupon_id)
    return (await db.execute(query)).scalar_one()


async def find_usable_coupon(
    db: AsyncSession,
    promotion_id: int,
    code: str,
    user_id: Optional[int],
    now: datetime,
) -> Optional[Coupon]:
    result = await db.execute(
        select(Coupon).where(
            Coupon.promotion_id == promotion_id,
            Coupon.code == code,
            Coupon.is_active.is_(True),
            or_(Coupon.starts_at.is_(None), Coupon.starts_at <= now),
            or_(Coupon.expires_at.is_(None), Coupon.expires_at >= now),
            or_(Coupon.max_uses.is_(None), Coupon.usage_count < Coupon.max_uses),
        )
    )
    coupon = result.scalar_one_or_none()
    if coupon is None:
        return None

    if coupon.max_uses_per_user is not None:
        used = await count_user_redemptions(db, user_id, coupon_id=coupon.id)
        if used >= coupon.max_uses_per_user:
            logger.info("coupon_user_limit_reached", coupon_id=coupon.id, user_id=user_id)
            return None
    return coupon


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

async def find_candidates(
    db: AsyncSession,
    user_id: Optional[int],
    tour: Tour,
    total_amount: Decimal,
    seat_count: int,
    coupon_code: Optional[str],
    now: datetime,
) -> list[Candidate]:
    candidates = []
    for promotion in await load_active_promotions(db, now):
        if not matches_target(promotion, tour.id, tour.category_id):
            continue
        if not passes_constraints(promotion, total_amount, seat_count):
            continue

        if promotion.max_uses_per_user is not None:
            used = await count_user_redemptions(db, user_id, promotion_id=promotion.id)
            if used >= promotion.max_uses_per_user:
                continue

        if promotion.promotion_type == PromotionType.AUTOMATIC:
            candidates.append(Candidate(promotion))
        elif promotion.promotion_type == PromotionType.COUPON and coupon_code:
            coupon = await find_usable_coupon(db, promotion.id, coupon_code, user_id, now)
            if coupon is not None:
                candidates.append(Candidate(promotion, coupon))
    return candidates


def select_best(
    candidates: list[Candidate],
    total_amount: Decimal,
    seat_count: int,
) -> tuple[Optional[Candidate], Decimal]:
    best, best_discount = None, ZERO
    for candidate in candidates:
        discount = promotion_discount(candidate.promotion, total_amount, seat_count)
        if discount > best_discount:
            best, best_discount = candidate, discount
    return best, best_discount


async def calculate_discount(
    db: AsyncSession,
    user_id: Optional[int],
    tour_id: int,
    instance_id: int,
    total_amount: Decimal,
    seat_count: int,
    coupon_code: Optional[str] = None,
) -> DiscountResult:
    """
    Best single-promotion discount for a cart. Never mutates state.
    `user_id` may be None for anonymous previews (per-user caps then count zero).
    """
    result = DiscountResult()
    coupon_code = coupon_code.strip() if coupon_code else None
    total_amount = Decimal(total_amount)
    now = datetime.now(timezone.utc)

    tour = await db.get(Tour, tour_id)
    if tour is None:
        return result

    candidates = await find_candidates(
        db, user_id, tour, total_amount, seat_count, coupon_code, now
    )
    if not candidates:
        if coupon_code:
            result.message = INVALID_COUPON_MESSAGE
        return result

    best, discount = select_best(candidates, total_amount, seat_count)
    if best is None:
        if coupon_code:
            result.message = ZERO_DISCOUNT_COUPON_MESSAGE
        return result

    result.is_applied = True
    result.discount_amount = discount
    result.promotion_id = best.promotion.id
    result.promotion_name = best.promotion.name
    if best.coupon is not None:
        result.coupon_id = best.coupon.id
        result.coupon_code = best.coupon.code
    result.message = f"Applied promotion: {best.promotion.name}"

    logger.debug(
        "promotion_selected",
        promotion_id=best.promotion.id,
        coupon_id=result.coupon_id,
        discount=discount,
        candidates=len(candidates),
    )
    return result


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------

async def create_promotion(db: AsyncSession, data: PromotionCreate) -> Promotion:
    """Create a promotion with its rules, targets and coupons."""
    promotion = Promotion(
        **data.model_dump(exclude={"rules", "targets", "coupons"}),
        rules=[PromotionRule(**rule.model_dump()) for rule in data.rules],
        targets=[PromotionTarget(**target.model_dump()) for target in data.targets],
        coupons=[Coupon(**coupon.model_dump()) for coupon in data.coupons],
    )
    db.add(promotion)
    await db.flush()
    await db.refresh(promotion, attribute_names=["rules", "targets"])

    logger.info(
        "promotion_created",
        promotion_id=promotion.id,
        promotion_type=promotion.promotion_type,
        rules=len(data.rules),
        coupons=len(data.coupons),
    )
    return promotion


async def list_active_promotions(db: AsyncSession) -> list[Promotion]:
    return await load_active_promotions(db, datetime.now(timezone.utc))
