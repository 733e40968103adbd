# backend/casaora/services/professional_stats_service.py
"""Lifetime completion and earnings counters for professionals."""

import logging

from sqlalchemy.orm import Session

from ..repositories.factory import RepositoryFactory
from ..utils.time_helpers import now_utc
from .base import BaseService

logger = logging.getLogger(__name__)


class ProfessionalStatsService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.stats_repository = RepositoryFactory.create_professional_stats_repository(db)

    def increment_completion(self, professional_id: str, earnings_cents: int) -> None:
        """Add one completed booking to the professional's totals. Does not commit."""
        self.stats_repository.increment_completion(
            professional_id, earnings_cents=earnings_cents, updated_at=now_utc()
        )

    @BaseService.measure_operation("record_professional_completion")
    def record_completion(self, professional_id: str, earnings_cents: int) -> None:
        """Increment the counters in their own transaction."""
        with self.transaction():
            self.increment_completion(professional_id, earnings_cents)
        self.logger.info(
            f"Updated earnings stats for professional {professional_id}",
            extra={"professional_id": professional_id, "earnings_cents": earnings_cents},
        )
