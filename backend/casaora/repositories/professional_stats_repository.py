# backend/casaora/repositories/professional_stats_repository.py
"""Repository for per-professional earnings counters."""

from datetime import datetime
import logging

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.professional_stats import ProfessionalStats
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ProfessionalStatsRepository(BaseRepository[ProfessionalStats]):
    def __init__(self, db: Session):
        super().__init__(db, ProfessionalStats)

    def increment_completion(
        self, professional_id: str, *, earnings_cents: int, updated_at: datetime
    ) -> None:
        """
        Add one completed booking and its earnings in a single UPDATE.

        Column arithmetic keeps concurrent completions from losing increments.
        The row is created on first completion. Does not commit.
        """
        try:
            result = self.db.execute(
                update(ProfessionalStats)
                .where(ProfessionalStats.professional_id == professional_id)
                .values(
                    total_bookings_completed=ProfessionalStats.total_bookings_completed + 1,
                    total_earnings_cents=ProfessionalStats.total_earnings_cents + earnings_cents,
                    earnings_last_updated_at=updated_at,
                )
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error incrementing stats for {professional_id}: {str(e)}")
            raise RepositoryException(f"Failed to update professional stats: {str(e)}") from e

        if result.rowcount:
            return

        self.create(
            professional_id=professional_id,
            total_bookings_completed=1,
            total_earnings_cents=earnings_cents,
            earnings_last_updated_at=updated_at,
        )
