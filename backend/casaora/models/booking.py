# backend/casaora/models/booking.py
"""
Booking model for the Casaora platform.

A booking moves to ``in_progress`` when the professional checks in and to
``completed`` only through a successful check-out (or webhook
reconciliation of a captured payment). ``checked_out_at`` and
``amount_captured`` are set exactly when the booking is completed.
"""

from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from ..database import Base


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    PAYMENT_FAILED = "payment_failed"


class PaymentStatus(str, Enum):
    """Processor-side state of the booking's payment intent."""

    AUTHORIZED = "requires_capture"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    REFUNDED = "refunded"


class Booking(Base):
    """
    Service booking between a customer and a professional.

    Amounts are integer minor currency units. ``payment_reference`` is the
    Stripe PaymentIntent holding the authorization.
    """

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    professional_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    customer_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    service_name = Column(String(255), nullable=True)

    status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED.value, index=True)

    # Schedule
    scheduled_start = Column(DateTime(timezone=True), nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    checked_in_at = Column(DateTime(timezone=True), nullable=True)
    checked_out_at = Column(DateTime(timezone=True), nullable=True)
    actual_duration_minutes = Column(Integer, nullable=True)

    # Money (minor units)
    amount_authorized = Column(Integer, nullable=False)
    time_extension_amount = Column(Integer, nullable=False, default=0)
    amount_captured = Column(Integer, nullable=True)
    currency = Column(String(3), nullable=False, default="COP")

    # Location
    address = Column(JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"), nullable=True)
    check_out_latitude = Column(Float, nullable=True)
    check_out_longitude = Column(Float, nullable=True)

    # Payment
    payment_reference = Column(String(255), nullable=True, index=True, comment="Stripe payment intent")
    payment_status = Column(String(50), nullable=True)

    completion_notes = Column(Text, nullable=True)
    rebook_nudge_variant = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    professional = relationship("User", foreign_keys=[professional_id])
    customer = relationship("User", foreign_keys=[customer_id])

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending_payment', 'confirmed', 'in_progress', 'completed', "
            "'cancelled', 'payment_failed')",
            name="ck_bookings_status",
        ),
        CheckConstraint("amount_authorized >= 0", name="check_amount_authorized_non_negative"),
        CheckConstraint("time_extension_amount >= 0", name="check_extension_non_negative"),
    )

    @property
    def amount_to_capture(self) -> int:
        """Authorized hold plus any mid-service extension."""
        return int(self.amount_authorized or 0) + int(self.time_extension_amount or 0)

    @property
    def is_completed(self) -> bool:
        return self.status == BookingStatus.COMPLETED.value

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: customer={self.customer_id}, "
            f"professional={self.professional_id}, status={self.status}>"
        )
