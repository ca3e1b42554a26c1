"""
Tour catalogue and bookable departures.

Key design decisions:
- `seats_booked` counts Confirmed/Completed seats and is capped by
  `capacity` at the DB level.
- `seats_held` counts seats of Pending bookings and is NOT capped:
  pending bookings may overbook a departure.
- `status` is derived from `seats_booked` (see services.inventory).
- `version` is bumped on every counter mutation.
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Numeric, Text, Boolean,
    CheckConstraint, Index,
)
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin


class InstanceStatus:
    OPEN = "Open"
    SOLD_OUT = "SoldOut"
    CLOSED = "Closed"

    ALL = (OPEN, SOLD_OUT, CLOSED)


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    tours = relationship("Tour", back_populates="category")


class Tour(Base, TimestampMixin):
    __tablename__ = "tours"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    is_published = Column(Boolean, nullable=False, default=True)

    category = relationship("Category", back_populates="tours")
    instances = relationship("TourInstance", back_populates="tour")

    def __repr__(self) -> str:
        return f"<Tour(id={self.id}, name={self.name})>"


class TourInstance(Base, TimestampMixin):
    __tablename__ = "tour_instances"

    id = Column(Integer, primary_key=True, index=True)
    tour_id = Column(Integer, ForeignKey("tours.id"), nullable=False, index=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    capacity = Column(Integer, nullable=False)
    seats_booked = Column(Integer, nullable=False, default=0)
    seats_held = Column(Integer, nullable=False, default=0)
    # Reserved for hold expiry; no sweep reads it yet.
    hold_expires = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, default=InstanceStatus.OPEN)
    price_base = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(10), nullable=False, default="VND")
    version = Column(Integer, nullable=False, default=1)

    tour = relationship("Tour", back_populates="instances")
    bookings = relationship("Booking", back_populates="instance")

    __table_args__ = (
        CheckConstraint("capacity >= 0", name="check_instance_capacity_non_negative"),
        CheckConstraint("seats_booked >= 0", name="check_instance_booked_non_negative"),
        CheckConstraint("seats_held >= 0", name="check_instance_held_non_negative"),
        CheckConstraint("seats_booked <= capacity", name="check_instance_booked_lte_capacity"),
        CheckConstraint("status IN ('Open', 'SoldOut', 'Closed')", name="check_instance_status"),
        Index("ix_tour_instances_tour_start", "tour_id", "start_date"),
    )

    @property
    def seats_available(self) -> int:
        return max(0, self.capacity - self.seats_booked)

    def __repr__(self) -> str:
        return (
            f"<TourInstance(id={self.id}, booked={self.seats_booked}, "
            f"held={self.seats_held}/{self.capacity}, status={self.status})>"
        )
