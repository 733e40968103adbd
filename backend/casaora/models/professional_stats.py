# backend/casaora/models/professional_stats.py
"""Running earnings counters kept per professional."""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.sql import func

from ..database import Base


class ProfessionalStats(Base):
    """
    Denormalized completion and earnings totals for a professional.

    Incremented after each completed booking; never decremented by this service.
    """

    __tablename__ = "professional_stats"

    professional_id = Column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    total_bookings_completed = Column(Integer, nullable=False, default=0)
    total_earnings_cents = Column(Integer, nullable=False, default=0)
    earnings_last_updated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("total_bookings_completed >= 0", name="check_completed_non_negative"),
        CheckConstraint("total_earnings_cents >= 0", name="check_earnings_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<ProfessionalStats {self.professional_id}: "
            f"completed={self.total_bookings_completed} earnings={self.total_earnings_cents}>"
        )
