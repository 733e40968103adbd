# backend/casaora/services/booking_completion_writer.py
"""
Persists a booking's completion after its payment has been captured.

Once money has moved the booking must be marked completed, so the write is
retried with exponential backoff. If every attempt fails the payment is
left captured (never refunded) and operators are alerted for a manual fix.
"""

from dataclasses import dataclass
from datetime import datetime
import logging
import time
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import CHECKOUT_PERSIST_BACKOFF_MULTIPLIER
from ..core.exceptions import CapturedPaymentNotPersistedException, RepositoryException
from ..models.booking import Booking, BookingStatus
from ..repositories.factory import RepositoryFactory
from ..utils.time_helpers import now_utc
from .base import BaseService
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

MANUAL_ACTION_REQUIRED = (
    "Manual database update required - payment was captured but booking not marked complete"
)


class CompletionFields(BaseModel):
    checked_out_at: datetime
    amount_captured: int
    check_out_latitude: Optional[float] = None
    check_out_longitude: Optional[float] = None
    actual_duration_minutes: Optional[int] = None
    completion_notes: Optional[str] = None


@dataclass
class CompletionWrite:
    booking: Booking
    # False when another writer had already completed the booking.
    transitioned: bool


def backoff_delay_seconds(attempt: int, base_delay_ms: int) -> float:
    """Delay slept after failed ``attempt`` (1-based): base, 2x base, 4x base..."""
    return base_delay_ms * CHECKOUT_PERSIST_BACKOFF_MULTIPLIER ** (attempt - 1) / 1000


class BookingCompletionWriter(BaseService):
    """Writes the completed state of a booking, retrying transient failures."""

    def __init__(
        self,
        db: Session,
        notification_service: Optional[NotificationService] = None,
        *,
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self._notification_service = notification_service
        self.max_attempts = max_attempts or settings.checkout_persist_max_attempts
        self.base_delay_ms = (
            settings.checkout_persist_base_delay_ms if base_delay_ms is None else base_delay_ms
        )
        self._sleep = sleep

    @property
    def notification_service(self) -> NotificationService:
        if self._notification_service is None:
            self._notification_service = NotificationService(self.db)
        return self._notification_service

    def apply_completion(self, booking_id: str, fields: CompletionFields) -> bool:
        """
        Issue the guarded completion UPDATE inside the caller's transaction.

        Returns True only when this call moved the booking from in progress to
        completed. Does not commit.
        """
        changed = self.booking_repository.mark_completed(
            booking_id, fields=fields.model_dump(), updated_at=now_utc()
        )
        return changed == 1

    def _fill_if_completed_elsewhere(self, booking_id: str, fields: CompletionFields) -> bool:
        """
        Backfill check-out details when another writer won the completion.

        Returns False when the booking is not completed at all. Does not commit.
        """
        current = self.booking_repository.get_by_id(booking_id, load_relationships=False)
        if current is None:
            return False
        self.db.refresh(current)
        if current.status != BookingStatus.COMPLETED.value:
            return False
        self.booking_repository.fill_check_out_details(
            booking_id,
            fields=fields.model_dump(exclude={"amount_captured"}),
            updated_at=now_utc(),
        )
        return True

    @BaseService.measure_operation("write_completion")
    def write_completion(self, booking: Booking, fields: CompletionFields) -> CompletionWrite:
        """
        Mark ``booking`` completed, committing once per attempt.

        A booking already completed by webhook reconciliation only gets its
        missing check-out details; ``transitioned`` is False in that case.

        Raises:
            CapturedPaymentNotPersistedException: Every attempt failed
        """
        # Rollback expires the instance; keep what the critical log needs.
        snapshot = {
            "booking_id": booking.id,
            "professional_id": booking.professional_id,
            "customer_id": booking.customer_id,
            "payment_reference": booking.payment_reference,
            "checked_in_at": booking.checked_in_at.isoformat() if booking.checked_in_at else None,
        }
        booking_id = snapshot["booking_id"]
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                transitioned = self.apply_completion(booking_id, fields)
                if not transitioned and not self._fill_if_completed_elsewhere(booking_id, fields):
                    raise RepositoryException(f"Booking {booking_id} is no longer in progress")
                self.db.commit()
            except (SQLAlchemyError, RepositoryException) as exc:
                self.db.rollback()
                last_error = exc
                self.logger.warning(
                    f"Booking completion write failed (attempt {attempt}/{self.max_attempts})",
                    extra={
                        "booking_id": booking_id,
                        "attempt": attempt,
                        "error": str(exc),
                    },
                )
                if attempt < self.max_attempts:
                    self._sleep(backoff_delay_seconds(attempt, self.base_delay_ms))
                continue

            self.db.refresh(booking)
            if not transitioned:
                self.logger.info(
                    f"Booking {booking.id} was already completed; filled check-out details only",
                    extra={"booking_id": booking.id, "amount_captured": booking.amount_captured},
                )
            elif attempt > 1:
                self.logger.info(
                    f"Booking {booking.id} completion persisted after {attempt} attempts",
                    extra={"booking_id": booking.id, "attempt": attempt},
                )
            return CompletionWrite(booking=booking, transitioned=transitioned)

        raise self._persistence_exhausted(booking, snapshot, fields, last_error)

    def _persistence_exhausted(
        self,
        booking: Booking,
        snapshot: Dict[str, Any],
        fields: CompletionFields,
        error: Optional[Exception],
    ) -> CapturedPaymentNotPersistedException:
        context: Dict[str, Any] = {
            **snapshot,
            "amount_captured": fields.amount_captured,
            "checked_out_at": fields.checked_out_at.isoformat(),
            "attempts": self.max_attempts,
            "error": str(error) if error else None,
            "severity": "CRITICAL",
            "action_required": MANUAL_ACTION_REQUIRED,
        }
        self.logger.critical(
            "CRITICAL: Payment captured but booking update failed", extra=context
        )

        try:
            self.notification_service.notify_admins_payment_captured_not_persisted(
                booking,
                amount_captured=fields.amount_captured,
                payment_intent_id=str(snapshot["payment_reference"]),
                attempts=self.max_attempts,
            )
        except Exception as notify_exc:
            self.logger.error(
                f"Failed to alert admins about unpersisted capture for booking {snapshot['booking_id']}: {notify_exc}"
            )

        return CapturedPaymentNotPersistedException(
            snapshot["booking_id"], amount_captured=fields.amount_captured, attempts=self.max_attempts
        )
