"""
Booking lifecycle: creation, status transitions, payment.

STATE MACHINE
=============

    Pending ──> Confirmed ──> Completed
       │            │
       ├──> Rejected│
       └──> Cancelled <┘

Completed, Rejected and Cancelled are terminal. Anything else is refused
with a structured failure and no state change.

SEAT ACCOUNTING
===============

  create            seats_held   += seats  (no cap: pending may overbook)
  Pending->Confirmed seats_held   -= seats, seats_booked += seats
                     (conditional on seats_booked + seats <= capacity)
  Pending->Cancelled/Rejected  seats_held   -= seats
  Confirmed->Cancelled         seats_booked -= seats

All decrements floor at zero. See services.inventory for the UPDATEs.

AUTO-REJECTION
==============

After a confirmation, pending bookings that can no longer fit in the
remaining capacity are rejected, oldest first kept. This is a best-effort
cleanup: a pending booking created concurrently may survive it, but it
can still never be confirmed past capacity because the confirm UPDATE is
the hard gate.

Every status change is a conditional UPDATE on the expected old status, so
two requests racing on the same booking cannot both apply it: the loser
gets a refused transition before any counter moves.

Every public operation runs as one transaction and returns a result object;
domain errors and unexpected failures never propagate to the caller.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.core.config import get_settings
from app.core.exceptions import (
    GENERIC_FAILURE_MESSAGE,
    BookingError,
    CapacityExceeded,
    DuplicatePendingBooking,
    InstanceNotOpen,
    InvalidTransition,
    NotFoundError,
    PaymentNotAllowed,
    ValidationFailure,
)
from app.core.logging import get_logger
from app.core.metrics import (
    confirm_capacity_conflicts,
    record_auto_rejections,
    record_booking_attempt,
    record_discount,
    record_transition,
)
from app.models.booking import Booking, BookingServiceLine, BookingStatus
from app.models.payment import Payment, PaymentStatus
from app.models.promotion import Promotion
from app.models.tour import InstanceStatus, TourInstance
from app.schemas.booking import BookingCreate, BookingResult, OperationResult, StatusChangeResult
from app.services import inventory
from app.services.pricing_service import build_price_calculation
from app.services.redemption_service import (
    confirm_redemption,
    record_redemption,
    void_redemption,
    void_redemptions,
)

logger = get_logger(__name__)
settings = get_settings()

MAX_REF_ATTEMPTS = 10

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.REJECTED}
    ),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
}


def can_transition(old_status: str, new_status: str) -> bool:
    return new_status in ALLOWED_TRANSITIONS.get(old_status, frozenset())


def generate_booking_reference() -> str:
    """Format: BK-YYYYMMDD-XXXXX (e.g. BK-20251125-A3F9D)."""
    date_part = datetime.now(timezone.utc).strftime("%Y%m%d")
    random_part = uuid.uuid4().hex[:5].upper()
    return f"{settings.BOOKING_REF_PREFIX}-{date_part}-{random_part}"


async def _allocate_booking_reference(db: AsyncSession) -> str:
    for _ in range(MAX_REF_ATTEMPTS):
        ref = generate_booking_reference()
        exists = await db.execute(select(Booking.id).where(Booking.booking_ref == ref))
        if exists.scalar_one_or_none() is None:
            return ref
    raise RuntimeError("could not allocate booking reference")


async def _load_instance(db: AsyncSession, instance_id: int) -> Optional[TourInstance]:
    result = await db.execute(
        select(TourInstance)
        .where(TourInstance.id == instance_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _load_booking(db: AsyncSession, booking_id: int) -> Optional[Booking]:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _overbooking_warning(db: AsyncSession, instance: TourInstance, seats: int) -> Optional[str]:
    """Advisory only: pending demand far above what the departure can seat."""
    result = await db.execute(
        select(func.count(Booking.id), func.coalesce(func.sum(Booking.seats), 0)).where(
            Booking.instance_id == instance.id,
            Booking.status == BookingStatus.PENDING,
        )
    )
    pending_count, pending_seats = result.one()
    pending_count += 1
    pending_seats += seats

    if (
        pending_count >= settings.OVERBOOKING_WARN_PENDING_BOOKINGS
        or pending_seats > instance.capacity * settings.OVERBOOKING_WARN_SEAT_FACTOR
    ):
        logger.warning(
            "instance_heavily_overbooked",
            instance_id=instance.id,
            pending_bookings=pending_count,
            pending_seats=pending_seats,
            capacity=instance.capacity,
        )
        return (
            f"High demand: {pending_count} pending bookings for {pending_seats} seats "
            f"on a departure of {instance.capacity}. Confirmation is not guaranteed."
        )
    return None


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_pending_booking_id(db: AsyncSession, user_id: int, tour_id: int) -> Optional[int]:
    """The user's outstanding Pending booking on any departure of a tour."""
    result = await db.execute(
        select(Booking.id)
        .join(TourInstance, TourInstance.id == Booking.instance_id)
        .where(
            Booking.user_id == user_id,
            Booking.status == BookingStatus.PENDING,
            TourInstance.tour_id == tour_id,
        )
        .order_by(Booking.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def is_booking_paid(db: AsyncSession, booking_id: int) -> bool:
    result = await db.execute(
        select(func.count(Payment.id)).where(
            Payment.booking_id == booking_id,
            Payment.status == PaymentStatus.COMPLETED,
        )
    )
    return result.scalar_one() > 0


async def get_booking(db: AsyncSession, booking_id: int) -> Optional[Booking]:
    return await _load_booking(db, booking_id)


async def list_user_bookings(db: AsyncSession, user_id: int) -> list[Booking]:
    """All bookings of a user, newest first."""
    result = await db.execute(
        select(Booking)
        .where(Booking.user_id == user_id)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def list_bookings(db: AsyncSession, status: Optional[str] = None) -> list[Booking]:
    """Every booking, newest first, optionally narrowed to one status."""
    stmt = select(Booking)
    if status is not None:
        stmt = stmt.where(Booking.status == status)
    result = await db.execute(
        stmt.order_by(Booking.created_at.desc(), Booking.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

async def _create_booking(db: AsyncSession, booking_data: BookingCreate, user_id: int) -> BookingResult:
    if booking_data.seats <= 0:
        raise ValidationFailure("Number of seats must be greater than zero.")

    instance = await _load_instance(db, booking_data.instance_id)
    if instance is None:
        raise NotFoundError("Tour departure not found.")

    if await get_pending_booking_id(db, user_id, instance.tour_id) is not None:
        raise DuplicatePendingBooking(
            "You already have a pending booking for this tour. "
            "Please wait for it to be processed or cancel it first."
        )

    if instance.status != InstanceStatus.OPEN:
        raise InstanceNotOpen("This departure is not accepting bookings.")

    # Checked against total capacity, not remaining seats: pending may overbook
    if booking_data.seats > instance.capacity:
        raise CapacityExceeded(
            f"Requested {booking_data.seats} seats but this departure only has "
            f"{instance.capacity} seats in total."
        )

    warning = await _overbooking_warning(db, instance, booking_data.seats)

    price = await build_price_calculation(
        db,
        instance,
        booking_data.seats,
        booking_data.services,
        coupon_code=booking_data.coupon_code,
        user_id=user_id,
    )

    booking = Booking(
        user_id=user_id,
        instance_id=instance.id,
        booking_ref=await _allocate_booking_reference(db),
        seats=booking_data.seats,
        total_amount=price.grand_total,
        discount_amount=price.discount_amount,
        currency=price.currency,
        status=BookingStatus.PENDING,
        special_requests=booking_data.special_requests,
    )
    db.add(booking)
    await db.flush()

    if price.promotion_id is not None and price.discount_amount > 0:
        await record_redemption(
            db,
            booking_id=booking.id,
            user_id=user_id,
            promotion_id=price.promotion_id,
            discount_amount=price.discount_amount,
            coupon_id=price.coupon_id,
            instance_id=instance.id,
            currency=price.currency,
        )
        promotion = await db.get(Promotion, price.promotion_id)
        record_discount(promotion.promotion_type)

    for line in price.services:
        db.add(BookingServiceLine(
            booking_id=booking.id,
            service_id=line.service_id,
            quantity=line.quantity,
            price_at_booking=line.unit_price,
            currency=line.currency,
        ))

    await inventory.hold_seats(db, instance.id, booking.seats)
    await inventory.sync_instance_status(db, instance)

    return BookingResult(
        success=True,
        message="Booking created successfully.",
        status_code=201,
        booking_id=booking.id,
        booking_ref=booking.booking_ref,
        total_amount=price.grand_total,
        discount_amount=price.discount_amount,
        warning=warning,
    )


async def create_booking(db: AsyncSession, booking_data: BookingCreate, user_id: int) -> BookingResult:
    """
    Create a Pending booking and hold its seats.

    Not idempotent: a retry creates a second booking unless the duplicate
    pending check catches it. Callers should consult get_pending_booking_id.
    """
    try:
        result = await _create_booking(db, booking_data, user_id)
        await db.commit()
    except BookingError as e:
        await db.rollback()
        record_booking_attempt("rejected")
        logger.info(
            "booking_rejected",
            user_id=user_id,
            instance_id=booking_data.instance_id,
            seats=booking_data.seats,
            reason=e.message,
        )
        return BookingResult.failure(e)
    except Exception:
        await db.rollback()
        record_booking_attempt("error")
        logger.exception(
            "booking_create_failed",
            user_id=user_id,
            instance_id=booking_data.instance_id,
        )
        return BookingResult(success=False, message=GENERIC_FAILURE_MESSAGE, status_code=500)

    record_booking_attempt("success")
    logger.info(
        "booking_created",
        booking_id=result.booking_id,
        booking_ref=result.booking_ref,
        user_id=user_id,
        instance_id=booking_data.instance_id,
        seats=booking_data.seats,
        total=result.total_amount,
        discount=result.discount_amount,
    )
    return result


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

async def _compare_and_set_status(
    db: AsyncSession,
    booking: Booking,
    expected: str,
    new_status: str,
) -> bool:
    """
    UPDATE bookings SET status = :new WHERE id = :id AND status = :expected

    False when another request moved the booking first; nothing is written.
    """
    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.status == expected)
        .values(status=new_status)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    set_committed_value(booking, "status", new_status)
    return True


async def _claim_status(
    db: AsyncSession,
    booking: Booking,
    expected: str,
    new_status: str,
    error_cls: type[BookingError] = InvalidTransition,
) -> None:
    if not await _compare_and_set_status(db, booking, expected, new_status):
        logger.warning(
            "booking_status_changed_concurrently",
            booking_id=booking.id,
            expected_status=expected,
            new_status=new_status,
        )
        raise error_cls(
            f"Booking is no longer {expected}; it was changed by another request."
        )


async def auto_reject_overbooked(db: AsyncSession, instance: TourInstance) -> list[Booking]:
    """
    Reject pending bookings that no longer fit after a confirmation.

    Pending bookings are walked oldest first; each is kept if it fits in
    what the earlier kept ones leave of the remaining capacity, otherwise
    rejected. Only rejected bookings release their held seats. A booking
    confirmed or cancelled by a concurrent request meanwhile is skipped.
    """
    remaining = instance.capacity - instance.seats_booked

    result = await db.execute(
        select(Booking)
        .where(
            Booking.instance_id == instance.id,
            Booking.status == BookingStatus.PENDING,
        )
        .order_by(Booking.created_at.asc(), Booking.id.asc())
    )
    pending = list(result.scalars().all())
    if not pending:
        return []

    if remaining <= 0:
        overflow = pending
    else:
        overflow = []
        kept_seats = 0
        for booking in pending:
            if kept_seats + booking.seats <= remaining:
                kept_seats += booking.seats
            else:
                overflow.append(booking)

    rejected: list[Booking] = []
    for booking in overflow:
        if await _compare_and_set_status(db, booking, BookingStatus.PENDING, BookingStatus.REJECTED):
            rejected.append(booking)
            record_transition(BookingStatus.PENDING, BookingStatus.REJECTED)
    if not rejected:
        return []

    if remaining <= 0:
        await inventory.reset_held_seats(db, instance.id)
    else:
        await inventory.release_held_seats(db, instance.id, sum(b.seats for b in rejected))

    await void_redemptions(db, [b.id for b in rejected])
    await inventory.sync_instance_status(db, instance)

    record_auto_rejections(len(rejected))
    logger.info(
        "auto_rejection_completed",
        instance_id=instance.id,
        remaining_capacity=remaining,
        rejected=len(rejected),
        rejected_seats=sum(b.seats for b in rejected),
        kept=len(pending) - len(rejected),
    )
    return rejected


async def _confirm(db: AsyncSession, booking: Booking, instance: TourInstance) -> list[int]:
    available = instance.capacity - instance.seats_booked
    if available < booking.seats:
        confirm_capacity_conflicts.inc()
        raise CapacityExceeded(
            f"Not enough seats to confirm: {booking.seats} requested, {available} available."
        )

    # Status first: a second confirm of the same booking stops here
    await _claim_status(db, booking, BookingStatus.PENDING, BookingStatus.CONFIRMED)

    if not await inventory.confirm_seats(db, instance.id, booking.seats):
        # Another confirmation took the seats between our read and the update
        confirm_capacity_conflicts.inc()
        logger.warning(
            "booking_confirm_lost_race",
            booking_id=booking.id,
            instance_id=instance.id,
            seats=booking.seats,
        )
        raise CapacityExceeded("Not enough seats to confirm this booking.")

    await confirm_redemption(db, booking.id)
    await inventory.sync_instance_status(db, instance)

    rejected = await auto_reject_overbooked(db, instance)
    return [b.id for b in rejected]


async def _transition(db: AsyncSession, booking_id: int, new_status: str) -> StatusChangeResult:
    if new_status not in BookingStatus.ALL:
        raise ValidationFailure(f"Unknown booking status: {new_status}.")

    booking = await _load_booking(db, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found.")

    old_status = booking.status
    if not can_transition(old_status, new_status):
        raise InvalidTransition(f"Cannot change booking status from {old_status} to {new_status}.")

    instance = await _load_instance(db, booking.instance_id)
    if instance is None:
        raise NotFoundError("Tour departure not found.")

    rejected_ids: list[int] = []
    if new_status == BookingStatus.CONFIRMED:
        rejected_ids = await _confirm(db, booking, instance)
    elif new_status in (BookingStatus.CANCELLED, BookingStatus.REJECTED):
        await _claim_status(db, booking, old_status, new_status)
        if old_status == BookingStatus.PENDING:
            await inventory.release_held_seats(db, instance.id, booking.seats)
        else:
            await inventory.release_booked_seats(db, instance.id, booking.seats)
        await void_redemption(db, booking.id)
        await inventory.sync_instance_status(db, instance)
    elif new_status == BookingStatus.COMPLETED:
        await _claim_status(db, booking, old_status, new_status)
        await confirm_redemption(db, booking.id)

    record_transition(old_status, new_status)
    return StatusChangeResult(
        success=True,
        message=f"Booking status updated to {new_status}.",
        booking_id=booking.id,
        old_status=old_status,
        new_status=new_status,
        rejected_booking_ids=rejected_ids,
    )


async def update_booking_status(db: AsyncSession, booking_id: int, new_status: str) -> StatusChangeResult:
    try:
        result = await _transition(db, booking_id, new_status)
        await db.commit()
    except BookingError as e:
        await db.rollback()
        logger.info(
            "booking_status_change_refused",
            booking_id=booking_id,
            new_status=new_status,
            reason=e.message,
        )
        return StatusChangeResult.failure(e, booking_id=booking_id)
    except Exception:
        await db.rollback()
        logger.exception("booking_status_change_failed", booking_id=booking_id, new_status=new_status)
        return StatusChangeResult(
            success=False,
            message=GENERIC_FAILURE_MESSAGE,
            status_code=500,
            booking_id=booking_id,
        )

    logger.info(
        "booking_status_changed",
        booking_id=booking_id,
        old_status=result.old_status,
        new_status=result.new_status,
        auto_rejected=len(result.rejected_booking_ids),
    )
    return result


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------

async def _pay(
    db: AsyncSession,
    booking_id: int,
    payment_method: str,
    transaction_ref: Optional[str],
) -> OperationResult:
    booking = await _load_booking(db, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found.")

    if booking.status != BookingStatus.CONFIRMED:
        raise PaymentNotAllowed(
            f"Only confirmed bookings can be paid; this booking is {booking.status}."
        )
    if await is_booking_paid(db, booking_id):
        raise PaymentNotAllowed("This booking has already been paid.")

    # A concurrent payment or cancellation of the same booking fails here
    await _claim_status(
        db, booking, BookingStatus.CONFIRMED, BookingStatus.COMPLETED, PaymentNotAllowed
    )

    db.add(Payment(
        booking_id=booking.id,
        payment_method=payment_method,
        amount=booking.total_amount,
        currency=booking.currency,
        transaction_ref=transaction_ref,
        status=PaymentStatus.COMPLETED,
        paid_at=datetime.now(timezone.utc),
    ))
    await confirm_redemption(db, booking.id)
    await db.flush()

    record_transition(BookingStatus.CONFIRMED, BookingStatus.COMPLETED)
    return OperationResult(success=True, message="Payment completed.")


async def process_payment(
    db: AsyncSession,
    booking_id: int,
    payment_method: str = "CreditCard",
    transaction_ref: Optional[str] = None,
) -> OperationResult:
    try:
        result = await _pay(db, booking_id, payment_method, transaction_ref)
        await db.commit()
    except BookingError as e:
        await db.rollback()
        logger.info("payment_refused", booking_id=booking_id, reason=e.message)
        return OperationResult.failure(e)
    except Exception:
        await db.rollback()
        logger.exception("payment_failed", booking_id=booking_id)
        return OperationResult(success=False, message=GENERIC_FAILURE_MESSAGE, status_code=500)

    logger.info("booking_paid", booking_id=booking_id, payment_method=payment_method)
    return result
