from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, DateTime

from app.db.base import Base, TimestampMixin


class PaymentStatus:
    COMPLETED = "Completed"
    FAILED = "Failed"
    REFUNDED = "Refunded"


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    payment_method = Column(String(50), nullable=False, default="CreditCard")
    amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(10), nullable=False)
    transaction_ref = Column(String(200), nullable=True)
    status = Column(String(20), nullable=False, default=PaymentStatus.COMPLETED)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, booking={self.booking_id}, status={self.status})>"
