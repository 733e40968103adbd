# backend/casaora/models/rebook_nudge.py
"""Experiment assignment for post-completion rebook nudges."""

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.sql import func
import ulid

from ..database import Base


class RebookNudgeExperiment(Base):
    """One variant assignment per completed booking."""

    __tablename__ = "rebook_nudge_experiments"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(
        String(26),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    customer_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    variant = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
