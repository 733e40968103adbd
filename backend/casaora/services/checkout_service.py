# backend/casaora/services/checkout_service.py
"""
Check-out orchestration for in-progress bookings.

Sequence for a professional checking out:
1. Validate the booking can be checked out (nothing happens otherwise)
2. Verify GPS proximity to the service address (advisory, never blocks)
3. Capture the authorized payment plus any time extension
4. Persist the completed booking, retrying transient failures
5. Fire best-effort side effects: earnings stats, rebook nudge, notifications

A failed capture leaves the booking in progress. A capture that cannot be
persisted is escalated to administrators and reported as a failure.
"""

from dataclasses import dataclass
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import (
    BookingNotFoundException,
    CheckOutError,
    CheckOutValidationException,
)
from ..models.booking import Booking, BookingStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..utils.time_helpers import elapsed_minutes, now_utc
from .base import BaseService
from .booking_completion_writer import BookingCompletionWriter, CompletionFields
from .gps_verification_service import Coordinates, GpsVerificationResult, GpsVerificationService
from .notification_service import NotificationService
from .payment_capture_service import CaptureResult, PaymentCaptureService
from .professional_stats_service import ProfessionalStatsService
from .rebook_nudge_service import RebookNudgeService

logger = logging.getLogger(__name__)


@dataclass
class CheckOutResult:
    booking: Booking
    capture: CaptureResult
    gps: Optional[GpsVerificationResult]
    actual_duration_minutes: int


class CheckOutService(BaseService):
    """Orchestrates a professional's check-out from an in-progress booking."""

    def __init__(
        self,
        db: Session,
        *,
        gps_service: Optional[GpsVerificationService] = None,
        payment_capture_service: Optional[PaymentCaptureService] = None,
        completion_writer: Optional[BookingCompletionWriter] = None,
        stats_service: Optional[ProfessionalStatsService] = None,
        rebook_nudge_service: Optional[RebookNudgeService] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.notification_service = notification_service or NotificationService(db)
        self.gps_service = gps_service or GpsVerificationService()
        self.payment_capture_service = payment_capture_service or PaymentCaptureService(
            db, notification_service=self.notification_service
        )
        self.completion_writer = completion_writer or BookingCompletionWriter(
            db, notification_service=self.notification_service
        )
        self.stats_service = stats_service or ProfessionalStatsService(db)
        self.rebook_nudge_service = rebook_nudge_service or RebookNudgeService(db)

    @BaseService.measure_operation("check_out")
    def check_out(
        self,
        booking_id: str,
        location: Coordinates,
        completion_notes: Optional[str] = None,
    ) -> CheckOutResult:
        """
        Check a professional out of a booking.

        Raises:
            BookingNotFoundException: Unknown booking
            CheckOutValidationException: Booking cannot be checked out
            PaymentCaptureException: Processor did not capture
            CapturedPaymentNotPersistedException: Captured but not marked completed
            CheckOutError: Any other failure
        """
        try:
            result = self._check_out(booking_id, location, completion_notes)
        except CheckOutError as exc:
            prometheus_metrics.record_checkout_outcome(exc.error_class)
            raise
        except Exception as exc:
            self.logger.error(
                f"Unexpected check-out failure for booking {booking_id}: {exc}",
                extra={"booking_id": booking_id, "error_type": type(exc).__name__},
                exc_info=True,
            )
            prometheus_metrics.record_checkout_outcome(CheckOutError.error_class)
            raise CheckOutError(
                "Unexpected check-out failure", details={"booking_id": booking_id}
            ) from exc

        prometheus_metrics.record_checkout_outcome("completed")
        return result

    def _check_out(
        self,
        booking_id: str,
        location: Coordinates,
        completion_notes: Optional[str],
    ) -> CheckOutResult:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise BookingNotFoundException(booking_id)
        self._validate(booking)

        checked_out_at = now_utc()
        duration = elapsed_minutes(booking.checked_in_at, checked_out_at)

        gps = self._verify_location(booking, location)

        capture = self.payment_capture_service.capture(booking)

        fields = CompletionFields(
            checked_out_at=checked_out_at,
            amount_captured=capture.captured_amount,
            check_out_latitude=location.latitude,
            check_out_longitude=location.longitude,
            actual_duration_minutes=duration,
            completion_notes=completion_notes,
        )
        write = self.completion_writer.write_completion(booking, fields)
        booking = write.booking

        self.logger.info(
            f"Booking {booking.id} checked out",
            extra={
                "booking_id": booking.id,
                "professional_id": booking.professional_id,
                "customer_id": booking.customer_id,
                "payment_reference": booking.payment_reference,
                "amount_captured": capture.captured_amount,
                "actual_duration_minutes": duration,
            },
        )

        if write.transitioned:
            self._run_side_effects(booking, duration, capture.captured_amount)
        else:
            # Webhook reconciliation completed it first and already counted the earnings.
            self.logger.info(
                f"Skipping check-out follow-ups for booking {booking.id}; completed by reconciliation",
                extra={"booking_id": booking.id},
            )
        return CheckOutResult(
            booking=booking,
            capture=capture,
            gps=gps,
            actual_duration_minutes=duration,
        )

    def _validate(self, booking: Booking) -> None:
        if booking.status != BookingStatus.IN_PROGRESS.value:
            raise CheckOutValidationException(
                f"Cannot check out of booking with status: {booking.status}",
                code="INVALID_BOOKING_STATUS",
                details={"booking_id": booking.id, "status": booking.status},
            )
        if booking.checked_in_at is None:
            raise CheckOutValidationException(
                "Cannot check out without checking in first",
                code="NOT_CHECKED_IN",
                details={"booking_id": booking.id},
            )
        if not booking.payment_reference:
            raise CheckOutValidationException(
                "No payment intent found for this booking",
                code="MISSING_PAYMENT_INTENT",
                details={"booking_id": booking.id},
            )

    def _verify_location(
        self, booking: Booking, location: Coordinates
    ) -> Optional[GpsVerificationResult]:
        try:
            return self.gps_service.verify_and_log(
                booking_id=booking.id,
                professional_id=booking.professional_id,
                reported_location=location,
                booking_address=booking.address,
            )
        except Exception as exc:
            self.logger.warning(
                f"GPS verification errored for booking {booking.id}: {exc}",
                extra={"booking_id": booking.id},
            )
            return None

    def _run_side_effects(self, booking: Booking, duration: int, amount_captured: int) -> None:
        """Best-effort follow-ups; each failure is logged and isolated."""
        booking_id = booking.id
        professional_id = booking.professional_id
        customer_id = booking.customer_id

        try:
            self.stats_service.record_completion(professional_id, amount_captured)
        except Exception as exc:
            self.logger.error(
                f"Failed to update professional stats for booking {booking_id}: {exc}",
                extra={
                    "booking_id": booking_id,
                    "professional_id": professional_id,
                    "amount_captured": amount_captured,
                    "severity": "MEDIUM",
                },
            )

        try:
            self.rebook_nudge_service.initialize_for_booking(booking_id, customer_id)
        except Exception as exc:
            self.logger.error(
                f"Failed to initialize rebook nudge experiment for booking {booking_id}: {exc}",
                extra={"booking_id": booking_id, "customer_id": customer_id},
            )

        try:
            self.notification_service.send_booking_completed(
                booking, duration_minutes=duration, amount=amount_captured
            )
        except Exception as exc:
            self.logger.error(
                f"Failed to send completion notifications for booking {booking_id}: {exc}",
                extra={"booking_id": booking_id},
            )
