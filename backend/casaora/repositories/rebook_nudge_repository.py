# backend/casaora/repositories/rebook_nudge_repository.py
"""Repository for rebook nudge experiment assignments."""

from typing import Optional

from sqlalchemy.orm import Session

from ..models.rebook_nudge import RebookNudgeExperiment
from .base_repository import BaseRepository


class RebookNudgeRepository(BaseRepository[RebookNudgeExperiment]):
    def __init__(self, db: Session):
        super().__init__(db, RebookNudgeExperiment)

    def get_for_booking(self, booking_id: str) -> Optional[RebookNudgeExperiment]:
        return self.find_one_by(booking_id=booking_id)
