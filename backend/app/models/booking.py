"""
Booking model representing a user's reservation on a tour departure.

Key design decisions:
- Status field drives the lifecycle; bookings are never deleted.
- `booking_ref` is a unique human-readable code (BK-YYYYMMDD-XXXXX).
- Line items snapshot `price_at_booking` so later catalogue price changes
  never alter an existing booking's total.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, Text, CheckConstraint, Index
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin


class BookingStatus:
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    REJECTED = "Rejected"

    ALL = (PENDING, CONFIRMED, COMPLETED, CANCELLED, REJECTED)
    TERMINAL = (COMPLETED, CANCELLED, REJECTED)


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    instance_id = Column(Integer, ForeignKey("tour_instances.id"), nullable=False, index=True)
    booking_ref = Column(String(50), nullable=False, unique=True, index=True)
    seats = Column(Integer, nullable=False)
    total_amount = Column(Numeric(14, 2), nullable=False)
    discount_amount = Column(Numeric(14, 2), nullable=False, default=0)
    currency = Column(String(10), nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING)
    special_requests = Column(Text, nullable=True)

    user = relationship("User", back_populates="bookings")
    instance = relationship("TourInstance", back_populates="bookings")
    services = relationship("BookingServiceLine", back_populates="booking", lazy="selectin")
    redemption = relationship("PromotionRedemption", uselist=False, lazy="selectin", viewonly=True)

    __table_args__ = (
        CheckConstraint("seats > 0", name="check_booking_seats_positive"),
        CheckConstraint(
            "status IN ('Pending', 'Confirmed', 'Completed', 'Cancelled', 'Rejected')",
            name="check_booking_status",
        ),
        # Auto-rejection scans pending bookings of one departure, oldest first
        Index("ix_bookings_instance_status_created", "instance_id", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, ref={self.booking_ref}, seats={self.seats}, status={self.status})>"


class BookingServiceLine(Base, TimestampMixin):
    __tablename__ = "booking_services"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price_at_booking = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(10), nullable=False)

    booking = relationship("Booking", back_populates="services")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_booking_service_quantity_positive"),
    )
