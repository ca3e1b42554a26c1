"""
Booking endpoints.

Services return structured results; unsuccessful results are turned into
HTTP errors here. Booking events are published after a successful commit.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.models.booking import BookingStatus
from app.schemas.booking import (
    BookingCreate,
    BookingPaidResponse,
    BookingResponse,
    BookingResult,
    BookingStatusUpdate,
    OperationResult,
    PaymentRequest,
    PendingBookingResponse,
    StatusChangeResult,
)
from app.services import booking_service
from app.services.notification_service import (
    BOOKING_CREATED,
    BOOKING_PAID,
    BOOKING_STATUS_CHANGED,
    publish_booking_event,
)
from app.core.security import get_current_user_id, require_staff
from app.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["Bookings"])


def _raise_for_failure(result: OperationResult) -> None:
    if not result.success:
        raise HTTPException(status_code=result.status_code, detail=result.message)


async def _get_owned_booking(db: AsyncSession, booking_id: int, user_id: int):
    booking = await booking_service.get_booking(db, booking_id)
    if not booking or booking.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return booking


@router.post("/", response_model=BookingResult, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Book seats on a tour departure.

    The booking starts Pending and holds its seats; pending bookings may
    exceed capacity. A `warning` is included when demand is far above it.
    """
    result = await booking_service.create_booking(db, booking_data, user_id)
    _raise_for_failure(result)
    await publish_booking_event(
        BOOKING_CREATED,
        booking_id=result.booking_id,
        booking_ref=result.booking_ref,
        user_id=user_id,
        instance_id=booking_data.instance_id,
        seats=booking_data.seats,
    )
    return result


@router.get("/", response_model=list[BookingResponse])
async def list_user_bookings(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Get all bookings for the authenticated user."""
    return await booking_service.list_user_bookings(db, user_id)


@router.get("/all", response_model=list[BookingResponse])
async def list_all_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    staff_id: int = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Every booking, newest first (staff only). `?status=` narrows the list."""
    if status_filter is not None and status_filter not in BookingStatus.ALL:
        raise HTTPException(status_code=422, detail=f"Unknown booking status: {status_filter}.")
    return await booking_service.list_bookings(db, status_filter)


@router.get("/pending", response_model=PendingBookingResponse)
async def get_pending_booking(
    tour_id: int = Query(..., gt=0),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """The caller's outstanding pending booking for a tour, if any."""
    booking_id = await booking_service.get_pending_booking_id(db, user_id, tour_id)
    return PendingBookingResponse(tour_id=tour_id, booking_id=booking_id)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await _get_owned_booking(db, booking_id, user_id)


@router.patch("/{booking_id}/status", response_model=StatusChangeResult)
async def update_booking_status(
    booking_id: int,
    update: BookingStatusUpdate,
    staff_id: int = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """
    Move a booking through its lifecycle (staff only).
    Confirming may auto-reject other pending bookings of the departure.
    """
    result = await booking_service.update_booking_status(db, booking_id, update.status)
    _raise_for_failure(result)
    await publish_booking_event(
        BOOKING_STATUS_CHANGED,
        booking_id=booking_id,
        old_status=result.old_status,
        new_status=result.new_status,
        changed_by=staff_id,
    )
    for rejected_id in result.rejected_booking_ids:
        await publish_booking_event(
            BOOKING_STATUS_CHANGED,
            booking_id=rejected_id,
            old_status="Pending",
            new_status="Rejected",
            reason="auto_rejected",
        )
    return result


@router.post("/{booking_id}/payment", response_model=OperationResult)
async def pay_booking(
    booking_id: int,
    payment: PaymentRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Pay a confirmed booking; the booking becomes Completed."""
    await _get_owned_booking(db, booking_id, user_id)
    result = await booking_service.process_payment(
        db, booking_id, payment.payment_method, payment.transaction_ref
    )
    _raise_for_failure(result)
    await publish_booking_event(BOOKING_PAID, booking_id=booking_id, user_id=user_id)
    return result


@router.get("/{booking_id}/paid", response_model=BookingPaidResponse)
async def booking_paid(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await _get_owned_booking(db, booking_id, user_id)
    paid = await booking_service.is_booking_paid(db, booking_id)
    return BookingPaidResponse(booking_id=booking_id, paid=paid)
