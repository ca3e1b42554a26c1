"""
Seat inventory for tour departures.

CONCURRENCY STRATEGY: Relative and conditional UPDATEs
======================================================

Problem:
  Two staff members confirm the last pending bookings of a departure at the
  same time. Both read seats_booked=6/10, both see room for 4 seats, both
  write seats_booked=10. Result: 14 confirmed seats on a 10-seat departure.

Solution:
  Counters are never written from a value read in Python. Every mutation is
  a single UPDATE evaluated by the database:

    confirm:  UPDATE tour_instances
              SET seats_booked = seats_booked + :n,
                  seats_held   = CASE WHEN seats_held > :n THEN seats_held - :n ELSE 0 END,
                  version      = version + 1
              WHERE id = :id AND seats_booked + :n <= capacity

  If rows_affected == 0 the departure filled up in the meantime and the
  confirmation is refused. The CHECK constraint `seats_booked <= capacity`
  is the final safety net.

  Holds (`seats_held`) are deliberately uncapped: pending bookings may
  overbook. They only use relative increments so concurrent creations
  don't lose updates.

  Counters only move after the booking itself has been moved with a
  conditional UPDATE on its old status (see booking_service), so the same
  booking is never counted or released twice.

Status is derived, never set directly: `derive_status` is applied after
every counter mutation through `sync_instance_status`.
"""

from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.models.tour import InstanceStatus, TourInstance

logger = get_logger(__name__)


def derive_status(capacity: int, seats_booked: int, current_status: str) -> str:
    """
    SoldOut iff confirmed seats reach capacity; a SoldOut departure reopens
    once confirmed seats free up. Closed is set by staff and is sticky.
    """
    if current_status == InstanceStatus.CLOSED:
        return InstanceStatus.CLOSED
    if seats_booked >= capacity:
        return InstanceStatus.SOLD_OUT
    if current_status == InstanceStatus.SOLD_OUT:
        return InstanceStatus.OPEN
    return current_status


def _floored_decrement(column, seats: int):
    return case((column > seats, column - seats), else_=0)


async def hold_seats(db: AsyncSession, instance_id: int, seats: int) -> None:
    await db.execute(
        update(TourInstance)
        .where(TourInstance.id == instance_id)
        .values(
            seats_held=TourInstance.seats_held + seats,
            version=TourInstance.version + 1,
        )
        .execution_options(synchronize_session=False)
    )


async def release_held_seats(db: AsyncSession, instance_id: int, seats: int) -> None:
    await db.execute(
        update(TourInstance)
        .where(TourInstance.id == instance_id)
        .values(
            seats_held=_floored_decrement(TourInstance.seats_held, seats),
            version=TourInstance.version + 1,
        )
        .execution_options(synchronize_session=False)
    )


async def reset_held_seats(db: AsyncSession, instance_id: int) -> None:
    await db.execute(
        update(TourInstance)
        .where(TourInstance.id == instance_id)
        .values(seats_held=0, version=TourInstance.version + 1)
        .execution_options(synchronize_session=False)
    )


async def confirm_seats(db: AsyncSession, instance_id: int, seats: int) -> bool:
    """
    Move `seats` from held to booked if they still fit under capacity.
    Returns False (nothing written) when they don't.
    """
    result = await db.execute(
        update(TourInstance)
        .where(
            TourInstance.id == instance_id,
            TourInstance.seats_booked + seats <= TourInstance.capacity,
        )
        .values(
            seats_booked=TourInstance.seats_booked + seats,
            seats_held=_floored_decrement(TourInstance.seats_held, seats),
            version=TourInstance.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def release_booked_seats(db: AsyncSession, instance_id: int, seats: int) -> None:
    await db.execute(
        update(TourInstance)
        .where(TourInstance.id == instance_id)
        .values(
            seats_booked=_floored_decrement(TourInstance.seats_booked, seats),
            version=TourInstance.version + 1,
        )
        .execution_options(synchronize_session=False)
    )


async def sync_instance_status(db: AsyncSession, instance: TourInstance) -> str:
    """Reload counters and apply the derived status."""
    await db.refresh(instance)
    new_status = derive_status(instance.capacity, instance.seats_booked, instance.status)
    if new_status != instance.status:
        logger.info(
            "instance_status_changed",
            instance_id=instance.id,
            old_status=instance.status,
            new_status=new_status,
            seats_booked=instance.seats_booked,
            capacity=instance.capacity,
        )
        instance.status = new_status
        await db.flush()
    return new_status
