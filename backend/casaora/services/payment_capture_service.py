# backend/casaora/services/payment_capture_service.py
"""
Payment capture for check-out.

Captures the booking's authorized hold (plus any time extension) exactly
once per booking: the idempotency key is derived from the booking id, so a
retried check-out collapses onto the first capture at the processor.
A failed capture is never retried here; administrators are alerted and
the booking stays in progress.
"""

import logging
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session
import stripe

from ..core.constants import checkout_capture_idempotency_key
from ..core.exceptions import (
    CheckOutValidationException,
    PaymentCaptureException,
    ServiceException,
)
from ..models.booking import Booking
from .base import BaseService
from .notification_service import NotificationService
from .stripe_service import StripeService

logger = logging.getLogger(__name__)


class CaptureResult(BaseModel):
    success: bool
    captured_amount: int
    status: Optional[str] = None
    payment_intent_id: str
    idempotency_key: str


class PaymentCaptureService(BaseService):
    """Captures a booking's authorized payment through Stripe."""

    def __init__(
        self,
        db: Session,
        stripe_service: Optional[StripeService] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        super().__init__(db)
        self.stripe_service = stripe_service or StripeService()
        self.notification_service = notification_service or NotificationService(db)

    @BaseService.measure_operation("capture_booking_payment")
    def capture(self, booking: Booking) -> CaptureResult:
        """
        Capture ``amount_authorized + time_extension_amount`` for the booking.

        Raises:
            CheckOutValidationException: The capture amount is not positive
            PaymentCaptureException: The processor rejected or failed the capture
        """
        amount = booking.amount_to_capture
        if amount <= 0:
            raise CheckOutValidationException(
                "Invalid capture amount",
                code="INVALID_CAPTURE_AMOUNT",
                details={"booking_id": booking.id, "amount_to_capture": amount},
            )

        payment_intent_id = str(booking.payment_reference)
        idempotency_key = checkout_capture_idempotency_key(booking.id)

        try:
            result = self.stripe_service.capture_payment_intent(
                payment_intent_id,
                amount_to_capture=amount,
                idempotency_key=idempotency_key,
            )
        except (stripe.StripeError, ServiceException) as exc:
            raise self._capture_failure(booking, amount, exc) from exc

        captured = result.get("amount_received")
        if captured is None:
            captured = amount

        self.logger.info(
            f"Captured payment for booking {booking.id}",
            extra={
                "booking_id": booking.id,
                "payment_reference": payment_intent_id,
                "amount_requested": amount,
                "amount_captured": captured,
                "idempotency_key": idempotency_key,
            },
        )
        return CaptureResult(
            success=True,
            captured_amount=int(captured),
            status=result.get("status"),
            payment_intent_id=payment_intent_id,
            idempotency_key=idempotency_key,
        )

    def _capture_failure(
        self, booking: Booking, amount: int, exc: Exception
    ) -> PaymentCaptureException:
        """Log and alert on a failed capture; return the exception to raise."""
        processor_code = getattr(exc, "code", None) if isinstance(exc, stripe.StripeError) else None
        error_message = getattr(exc, "user_message", None) or str(exc) or type(exc).__name__

        self.logger.error(
            f"Payment capture failed for booking {booking.id}: {error_message}",
            extra={
                "booking_id": booking.id,
                "professional_id": booking.professional_id,
                "customer_id": booking.customer_id,
                "payment_reference": booking.payment_reference,
                "amount_to_capture": amount,
                "amount_authorized": booking.amount_authorized,
                "time_extension_amount": booking.time_extension_amount,
                "processor_code": processor_code,
                "error_type": type(exc).__name__,
            },
        )

        try:
            self.notification_service.notify_admins_payment_capture_failed(
                booking, amount=amount, error_message=error_message
            )
        except Exception as notify_exc:
            self.logger.error(
                f"Failed to alert admins about capture failure for booking {booking.id}: {notify_exc}"
            )

        return PaymentCaptureException(
            error_message,
            details={"booking_id": booking.id, "amount_to_capture": amount},
            processor_code=processor_code if isinstance(processor_code, str) else None,
        )
