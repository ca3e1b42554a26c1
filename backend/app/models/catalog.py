"""
Add-on services and per-tour price overrides.
"""

from sqlalchemy import Column, Integer, String, Numeric, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin


class Service(Base, TimestampMixin):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    code = Column(String(50), nullable=True)
    price = Column(Numeric(14, 2), nullable=False, default=0)
    currency = Column(String(10), nullable=False, default="VND")
    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name={self.name}, price={self.price})>"


class TourService(Base, TimestampMixin):
    __tablename__ = "tour_services"

    id = Column(Integer, primary_key=True, index=True)
    tour_id = Column(Integer, ForeignKey("tours.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False, index=True)
    price_override = Column(Numeric(14, 2), nullable=True)
    currency = Column(String(10), nullable=True)
    is_included = Column(Boolean, nullable=False, default=False)

    service = relationship("Service")

    __table_args__ = (
        UniqueConstraint("tour_id", "service_id", name="uq_tour_service"),
    )
