# backend/casaora/services/rebook_nudge_service.py
"""
Rebook nudge experiment assignment.

When enabled, every completed booking is assigned one experiment variant.
Assignment is deterministic per customer so a customer always sees the
same treatment across bookings.
"""

import hashlib
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..models.rebook_nudge import RebookNudgeExperiment
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


def choose_variant(customer_id: str, variants: List[str]) -> str:
    if not variants:
        raise ValueError("At least one rebook nudge variant is required")
    digest = hashlib.sha256(customer_id.encode("utf-8")).digest()
    return variants[int.from_bytes(digest[:8], "big") % len(variants)]


class RebookNudgeService(BaseService):
    def __init__(
        self,
        db: Session,
        *,
        enabled: Optional[bool] = None,
        variants: Optional[List[str]] = None,
    ):
        super().__init__(db)
        self.enabled = settings.rebook_nudge_enabled if enabled is None else enabled
        self.variants = variants or settings.rebook_nudge_variant_list
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.experiment_repository = RepositoryFactory.create_rebook_nudge_repository(db)

    @BaseService.measure_operation("initialize_rebook_nudge")
    def initialize_for_booking(
        self, booking_id: str, customer_id: str
    ) -> Optional[RebookNudgeExperiment]:
        """
        Assign a variant to a completed booking.

        Returns None when the experiment is disabled or the booking already
        has an assignment.
        """
        if not self.enabled:
            return None

        existing = self.experiment_repository.get_for_booking(booking_id)
        if existing is not None:
            return None

        variant = choose_variant(customer_id, self.variants)
        with self.transaction():
            self.booking_repository.update(booking_id, rebook_nudge_variant=variant)
            experiment = self.experiment_repository.create(
                booking_id=booking_id,
                customer_id=customer_id,
                variant=variant,
            )

        self.logger.info(
            "Rebook nudge experiment initialized",
            extra={"booking_id": booking_id, "customer_id": customer_id, "variant": variant},
        )
        return experiment
