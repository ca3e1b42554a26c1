"""
Service-level tests for booking creation, status transitions, auto-rejection
and payment.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import CapacityExceeded, InvalidTransition, PaymentNotAllowed
from app.models.booking import Booking, BookingStatus
from app.models.payment import Payment
from app.models.promotion import Promotion, RedemptionStatus
from app.models.tour import InstanceStatus, TourInstance
from app.schemas.booking import BookingCreate
from app.services import booking_service
from app.services.redemption_service import get_redemption

from conftest import make_instance, make_promotion, make_user


async def book(db: AsyncSession, instance: TourInstance, user, seats: int, **extra):
    return await booking_service.create_booking(
        db, BookingCreate(instance_id=instance.id, seats=seats, **extra), user.id
    )


async def reload(db: AsyncSession, obj):
    await db.refresh(obj)
    return obj


def second_session(db: AsyncSession) -> AsyncSession:
    """Independent session on the same database, standing in for a parallel request."""
    return async_sessionmaker(db.bind, class_=AsyncSession, expire_on_commit=False)()


@pytest.mark.asyncio
async def test_create_booking_holds_seats(db_session, test_instance, test_user):
    result = await book(db_session, test_instance, test_user, 3)

    assert result.success is True
    assert result.status_code == 201
    assert result.booking_ref.startswith("BK-")
    assert result.total_amount == Decimal("300.00")

    booking = await booking_service.get_booking(db_session, result.booking_id)
    assert booking.status == BookingStatus.PENDING
    assert booking.currency == "VND"

    instance = await reload(db_session, test_instance)
    assert instance.seats_held == 3
    assert instance.seats_booked == 0
    assert instance.status == InstanceStatus.OPEN


@pytest.mark.asyncio
async def test_create_booking_more_seats_than_capacity(db_session, test_instance, test_user):
    result = await book(db_session, test_instance, test_user, 11)

    assert result.success is False
    assert result.status_code == 409
    assert "10" in result.message
    instance = await reload(db_session, test_instance)
    assert instance.seats_held == 0


@pytest.mark.asyncio
async def test_create_booking_unknown_instance(db_session, test_user):
    result = await booking_service.create_booking(
        db_session, BookingCreate(instance_id=999, seats=1), test_user.id
    )
    assert result.success is False
    assert result.status_code == 404


@pytest.mark.asyncio
async def test_create_booking_on_closed_instance(db_session, test_instance, test_user):
    test_instance.status = InstanceStatus.CLOSED
    await db_session.commit()

    result = await book(db_session, test_instance, test_user, 1)
    assert result.success is False
    assert result.status_code == 409


@pytest.mark.asyncio
async def test_duplicate_pending_booking_across_departures(
    db_session, test_instance, second_instance, test_user
):
    """One outstanding Pending booking per user per tour, whatever the departure."""
    first = await book(db_session, test_instance, test_user, 2)
    assert first.success is True

    second = await book(db_session, second_instance, test_user, 2)
    assert second.success is False
    assert second.status_code == 409
    assert "pending booking" in second.message

    assert await booking_service.get_pending_booking_id(
        db_session, test_user.id, test_instance.tour_id
    ) == first.booking_id


@pytest.mark.asyncio
async def test_new_booking_allowed_after_cancel(db_session, test_instance, test_user):
    first = await book(db_session, test_instance, test_user, 2)
    await booking_service.update_booking_status(db_session, first.booking_id, BookingStatus.CANCELLED)

    second = await book(db_session, test_instance, test_user, 2)
    assert second.success is True
    assert await booking_service.get_pending_booking_id(
        db_session, test_user.id, test_instance.tour_id
    ) == second.booking_id


@pytest.mark.asyncio
async def test_pending_bookings_may_overbook(db_session, test_instance, other_users):
    for user in other_users:
        result = await book(db_session, test_instance, user, 6)
        assert result.success is True

    instance = await reload(db_session, test_instance)
    assert instance.seats_held == 18
    assert instance.status == InstanceStatus.OPEN


@pytest.mark.asyncio
async def test_overbooking_warning(db_session, test_tour):
    instance = await make_instance(db_session, test_tour, capacity=2)
    users = [await make_user(db_session, f"rush{i}@example.com") for i in range(6)]

    results = [await book(db_session, instance, user, 2) for user in users]
    assert all(r.success for r in results)
    # 12 pending seats on a 2-seat departure crosses the 5x threshold
    assert results[4].warning is None
    assert results[5].warning is not None


@pytest.mark.asyncio
async def test_confirm_auto_rejects_overflow(db_session, test_instance, other_users):
    """capacity 10, pending 6/6/6: confirming the first rejects the other two."""
    ids = [(await book(db_session, test_instance, user, 6)).booking_id for user in other_users]

    result = await booking_service.update_booking_status(db_session, ids[0], BookingStatus.CONFIRMED)

    assert result.success is True
    assert result.old_status == BookingStatus.PENDING
    assert result.new_status == BookingStatus.CONFIRMED
    assert sorted(result.rejected_booking_ids) == sorted(ids[1:])

    instance = await reload(db_session, test_instance)
    assert instance.seats_booked == 6
    assert instance.seats_held == 0
    assert instance.status == InstanceStatus.OPEN

    statuses = (
        await db_session.execute(select(Booking.id, Booking.status).order_by(Booking.id))
    ).all()
    assert [s for _, s in statuses] == [
        BookingStatus.CONFIRMED,
        BookingStatus.REJECTED,
        BookingStatus.REJECTED,
    ]


@pytest.mark.asyncio
async def test_auto_rejection_keeps_oldest_that_fit(db_session, test_tour):
    instance = await make_instance(db_session, test_tour, capacity=10)
    users = [await make_user(db_session, f"u{i}@example.com") for i in range(4)]
    # Created in this order: 5, 3, 4, 2
    ids = [
        (await book(db_session, instance, user, seats)).booking_id
        for user, seats in zip(users, [5, 3, 4, 2])
    ]

    result = await booking_service.update_booking_status(db_session, ids[0], BookingStatus.CONFIRMED)

    # remaining 5: keep 3, reject 4, keep 2
    assert result.rejected_booking_ids == [ids[2]]
    instance = await reload(db_session, instance)
    assert instance.seats_booked == 5
    assert instance.seats_held == 5


@pytest.mark.asyncio
async def test_confirm_filling_departure_rejects_all_pending(db_session, test_instance, other_users):
    a = await book(db_session, test_instance, other_users[0], 10)
    b = await book(db_session, test_instance, other_users[1], 1)

    result = await booking_service.update_booking_status(db_session, a.booking_id, BookingStatus.CONFIRMED)

    assert result.rejected_booking_ids == [b.booking_id]
    instance = await reload(db_session, test_instance)
    assert instance.seats_booked == 10
    assert instance.seats_held == 0
    assert instance.status == InstanceStatus.SOLD_OUT


@pytest.mark.asyncio
async def test_confirm_without_room_leaves_counters(db_session, test_instance, other_users):
    a = await book(db_session, test_instance, other_users[0], 8)
    b = await book(db_session, test_instance, other_users[1], 4)

    # Confirming b first leaves no room for a
    await booking_service.update_booking_status(db_session, b.booking_id, BookingStatus.CONFIRMED)
    booking_a = await booking_service.get_booking(db_session, a.booking_id)
    assert booking_a.status == BookingStatus.REJECTED

    c = await book(db_session, test_instance, other_users[2], 7)
    before = await reload(db_session, test_instance)
    booked, held = before.seats_booked, before.seats_held

    result = await booking_service.update_booking_status(db_session, c.booking_id, BookingStatus.CONFIRMED)

    assert result.success is False
    assert result.status_code == 409
    instance = await reload(db_session, test_instance)
    assert (instance.seats_booked, instance.seats_held) == (booked, held)
    booking_c = await booking_service.get_booking(db_session, c.booking_id)
    assert booking_c.status == BookingStatus.PENDING


@pytest.mark.asyncio
async def test_cancel_confirmed_reopens_sold_out(db_session, test_instance, test_user):
    created = await book(db_session, test_instance, test_user, 10)
    await booking_service.update_booking_status(db_session, created.booking_id, BookingStatus.CONFIRMED)
    instance = await reload(db_session, test_instance)
    assert instance.status == InstanceStatus.SOLD_OUT

    result = await booking_service.update_booking_status(
        db_session, created.booking_id, BookingStatus.CANCELLED
    )

    assert result.success is True
    instance = await reload(db_session, test_instance)
    assert instance.seats_booked == 0
    assert instance.status == InstanceStatus.OPEN


@pytest.mark.asyncio
async def test_cancel_pending_releases_hold(db_session, test_instance, test_user):
    created = await book(db_session, test_instance, test_user, 4)

    result = await booking_service.update_booking_status(
        db_session, created.booking_id, BookingStatus.CANCELLED
    )

    assert result.success is True
    instance = await reload(db_session, test_instance)
    assert instance.seats_held == 0
    assert instance.seats_booked == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "path",
    [
        [BookingStatus.COMPLETED],
        [BookingStatus.CANCELLED, BookingStatus.CONFIRMED],
        [BookingStatus.REJECTED, BookingStatus.PENDING],
        [BookingStatus.CONFIRMED, BookingStatus.REJECTED],
    ],
)
async def test_invalid_transitions_are_refused(db_session, test_instance, test_user, path):
    created = await book(db_session, test_instance, test_user, 2)
    for status in path[:-1]:
        assert (await booking_service.update_booking_status(db_session, created.booking_id, status)).success

    before = await reload(db_session, test_instance)
    counters = (before.seats_booked, before.seats_held)
    result = await booking_service.update_booking_status(db_session, created.booking_id, path[-1])

    assert result.success is False
    assert result.status_code == 409
    instance = await reload(db_session, test_instance)
    assert (instance.seats_booked, instance.seats_held) == counters


@pytest.mark.asyncio
async def test_unknown_status_and_booking(db_session, test_instance, test_user):
    created = await book(db_session, test_instance, test_user, 1)

    unknown = await booking_service.update_booking_status(db_session, created.booking_id, "Archived")
    assert unknown.success is False
    assert unknown.status_code == 422

    missing = await booking_service.update_booking_status(db_session, 12345, BookingStatus.CONFIRMED)
    assert missing.success is False
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_payment_completes_confirmed_booking(db_session, test_instance, test_user):
    created = await book(db_session, test_instance, test_user, 2)
    await booking_service.update_booking_status(db_session, created.booking_id, BookingStatus.CONFIRMED)
    assert await booking_service.is_booking_paid(db_session, created.booking_id) is False

    result = await booking_service.process_payment(
        db_session, created.booking_id, payment_method="BankTransfer", transaction_ref="TX-1"
    )

    assert result.success is True
    assert await booking_service.is_booking_paid(db_session, created.booking_id) is True
    booking = await booking_service.get_booking(db_session, created.booking_id)
    assert booking.status == BookingStatus.COMPLETED

    again = await booking_service.process_payment(db_session, created.booking_id)
    assert again.success is False
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_payment_requires_confirmed(db_session, test_instance, test_user):
    created = await book(db_session, test_instance, test_user, 2)

    result = await booking_service.process_payment(db_session, created.booking_id)

    assert result.success is False
    assert "Pending" in result.message
    assert await booking_service.is_booking_paid(db_session, created.booking_id) is False


@pytest.mark.asyncio
async def test_redemption_follows_booking(db_session, test_instance, other_users):
    promotion = await make_promotion(db_session, "Early bird", [("Percent", 10)])
    a = await book(db_session, test_instance, other_users[0], 2)
    b = await book(db_session, test_instance, other_users[1], 2)
    assert a.discount_amount == Decimal("20.00")

    await booking_service.update_booking_status(db_session, a.booking_id, BookingStatus.CONFIRMED)
    await booking_service.update_booking_status(db_session, b.booking_id, BookingStatus.CANCELLED)

    assert (await get_redemption(db_session, a.booking_id)).status == RedemptionStatus.CONFIRMED
    assert (await get_redemption(db_session, b.booking_id)).status == RedemptionStatus.VOIDED

    # Counters are not rolled back on void
    promotion = await db_session.get(Promotion, promotion.id, populate_existing=True)
    assert promotion.usage_count == 2


@pytest.mark.asyncio
async def test_list_user_bookings_newest_first(db_session, test_instance, test_user):
    first = await book(db_session, test_instance, test_user, 1)
    await booking_service.update_booking_status(db_session, first.booking_id, BookingStatus.CANCELLED)
    second = await book(db_session, test_instance, test_user, 1)

    bookings = await booking_service.list_user_bookings(db_session, test_user.id)
    assert [b.id for b in bookings] == [second.booking_id, first.booking_id]


@pytest.mark.asyncio
async def test_list_bookings_all_users_with_status_filter(db_session, test_instance, other_users):
    first = await book(db_session, test_instance, other_users[0], 1)
    second = await book(db_session, test_instance, other_users[1], 2)
    third = await book(db_session, test_instance, other_users[2], 3)
    await booking_service.update_booking_status(db_session, second.booking_id, BookingStatus.CANCELLED)

    everything = await booking_service.list_bookings(db_session)
    cancelled = await booking_service.list_bookings(db_session, BookingStatus.CANCELLED)
    pending = await booking_service.list_bookings(db_session, status=BookingStatus.PENDING)

    assert [b.id for b in everything] == [third.booking_id, second.booking_id, first.booking_id]
    assert [b.id for b in cancelled] == [second.booking_id]
    assert [b.id for b in pending] == [third.booking_id, first.booking_id]


def test_allowed_transitions():
    assert booking_service.can_transition(BookingStatus.PENDING, BookingStatus.REJECTED)
    assert booking_service.can_transition(BookingStatus.CONFIRMED, BookingStatus.COMPLETED)
    assert not booking_service.can_transition(BookingStatus.COMPLETED, BookingStatus.CANCELLED)
    assert not booking_service.can_transition(BookingStatus.PENDING, BookingStatus.PENDING)


@pytest.mark.asyncio
async def test_stale_second_confirm_does_not_count_seats_twice(db_session, test_instance, test_user):
    created = await book(db_session, test_instance, test_user, 3)

    db_b = second_session(db_session)
    try:
        # Request B reads the booking while it is still Pending
        stale_booking = await db_b.get(Booking, created.booking_id)
        stale_instance = await db_b.get(TourInstance, test_instance.id)
        assert stale_booking.status == BookingStatus.PENDING

        # Request A confirms and commits first
        result = await booking_service.update_booking_status(
            db_session, created.booking_id, BookingStatus.CONFIRMED
        )
        assert result.success is True

        with pytest.raises(InvalidTransition):
            await booking_service._confirm(db_b, stale_booking, stale_instance)
        await db_b.rollback()
    finally:
        await db_b.close()

    instance = await reload(db_session, test_instance)
    assert instance.seats_booked == 3
    assert instance.seats_held == 0


@pytest.mark.asyncio
async def test_confirm_on_stale_counters_is_refused(db_session, test_instance, other_users):
    """capacity 10: A confirms 6 seats while B still sees 0 booked and tries 5 more."""
    first = await book(db_session, test_instance, other_users[0], 6)

    db_b = second_session(db_session)
    try:
        stale_instance = await db_b.get(TourInstance, test_instance.id)
        assert stale_instance.seats_booked == 0

        await booking_service.update_booking_status(db_session, first.booking_id, BookingStatus.CONFIRMED)
        late = await book(db_session, test_instance, other_users[1], 5)

        late_booking = await db_b.get(Booking, late.booking_id)
        with pytest.raises(CapacityExceeded):
            await booking_service._confirm(db_b, late_booking, stale_instance)
        await db_b.rollback()
    finally:
        await db_b.close()

    booking = await booking_service.get_booking(db_session, late.booking_id)
    assert booking.status == BookingStatus.PENDING
    instance = await reload(db_session, test_instance)
    assert instance.seats_booked == 6
    assert instance.seats_held == 5


@pytest.mark.asyncio
async def test_stale_second_cancel_does_not_release_twice(db_session, test_instance, other_users):
    a = await book(db_session, test_instance, other_users[0], 4)
    b = await book(db_session, test_instance, other_users[1], 3)
    for booking_id in (a.booking_id, b.booking_id):
        await booking_service.update_booking_status(db_session, booking_id, BookingStatus.CONFIRMED)

    db_b = second_session(db_session)
    try:
        stale_booking = await db_b.get(Booking, a.booking_id)
        assert stale_booking.status == BookingStatus.CONFIRMED

        await booking_service.update_booking_status(db_session, a.booking_id, BookingStatus.CANCELLED)

        moved = await booking_service._compare_and_set_status(
            db_b, stale_booking, BookingStatus.CONFIRMED, BookingStatus.CANCELLED
        )
        assert moved is False
        assert stale_booking.status == BookingStatus.CONFIRMED
        await db_b.rollback()
    finally:
        await db_b.close()

    instance = await reload(db_session, test_instance)
    assert instance.seats_booked == 3


@pytest.mark.asyncio
async def test_status_claim_refuses_payment_of_moved_booking(db_session, test_instance, test_user):
    created = await book(db_session, test_instance, test_user, 2)
    await booking_service.update_booking_status(db_session, created.booking_id, BookingStatus.CONFIRMED)

    db_b = second_session(db_session)
    try:
        stale_booking = await db_b.get(Booking, created.booking_id)

        paid = await booking_service.process_payment(db_session, created.booking_id)
        assert paid.success is True

        with pytest.raises(PaymentNotAllowed):
            await booking_service._claim_status(
                db_b,
                stale_booking,
                BookingStatus.CONFIRMED,
                BookingStatus.COMPLETED,
                PaymentNotAllowed,
            )
        await db_b.rollback()
    finally:
        await db_b.close()

    payments = (
        await db_session.execute(select(Payment).where(Payment.booking_id == created.booking_id))
    ).scalars().all()
    assert len(payments) == 1
