# backend/casaora/services/stripe_webhook_service.py
"""
Stripe webhook receiver.

Every delivery goes through the same gate before anything is written:
signature, freshness, then payload shape. Accepted deliveries are recorded
in the webhook ledger and their domain effect is applied in the same
transaction. The ledger's (source, event_id) uniqueness makes redeliveries
and concurrent duplicates no-ops.
"""

from dataclasses import dataclass
import json
import logging
import time
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session
import stripe

from ..core.config import settings
from ..core.constants import STRIPE_WEBHOOK_SOURCE
from ..core.exceptions import WebhookProcessingException, WebhookVerificationException
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..models.webhook_event import WebhookEventStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..utils.time_helpers import now_utc
from .base import BaseService
from .booking_completion_writer import BookingCompletionWriter, CompletionFields
from .professional_stats_service import ProfessionalStatsService
from .stripe_service import StripeService
from .webhook_ledger_service import WebhookLedgerService

logger = logging.getLogger(__name__)

REASON_MISSING_SIGNATURE = "missing_signature"
REASON_INVALID_SIGNATURE = "invalid_signature"
REASON_STALE_EVENT = "stale_event"
REASON_MALFORMED_PAYLOAD = "malformed_payload"


@dataclass
class WebhookResult:
    received: bool
    duplicate: bool
    event_type: str
    event_id: str
    outcome: str


@dataclass
class EffectOutcome:
    status: WebhookEventStatus
    booking_id: Optional[str] = None
    note: Optional[str] = None


def _now_timestamp() -> float:
    return time.time()


def parse_signature_timestamp(signature_header: str) -> Optional[int]:
    """Return the ``t=`` component of a Stripe-Signature header."""
    for part in signature_header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                return int(value)
            except ValueError:
                return None
    return None


class StripeWebhookService(BaseService):
    """Verifies, de-duplicates and applies Stripe webhook deliveries."""

    def __init__(
        self,
        db: Session,
        *,
        stripe_service: Optional[StripeService] = None,
        ledger_service: Optional[WebhookLedgerService] = None,
        completion_writer: Optional[BookingCompletionWriter] = None,
        stats_service: Optional[ProfessionalStatsService] = None,
        tolerance_seconds: Optional[int] = None,
    ):
        super().__init__(db)
        self.stripe_service = stripe_service or StripeService()
        self.ledger_service = ledger_service or WebhookLedgerService(db)
        self.completion_writer = completion_writer or BookingCompletionWriter(db)
        self.stats_service = stats_service or ProfessionalStatsService(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.tolerance_seconds = (
            settings.webhook_tolerance_seconds if tolerance_seconds is None else tolerance_seconds
        )
        self._handlers: Dict[str, Callable[[Dict[str, Any], Dict[str, Any]], EffectOutcome]] = {
            "payment_intent.succeeded": self._handle_payment_succeeded,
            "payment_intent.payment_failed": self._handle_payment_failed,
            "payment_intent.canceled": self._handle_payment_canceled,
            "charge.refunded": self._handle_charge_refunded,
        }

    # ------------------------------------------------------------------ #
    # Entry point
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("stripe_handle_webhook")
    def handle(self, raw_body: bytes, signature_header: Optional[str]) -> WebhookResult:
        """
        Process one delivery.

        Raises:
            WebhookVerificationException: Rejected before persistence (HTTP 400)
            WebhookProcessingException: Effect failed and was rolled back (HTTP 500)
        """
        try:
            event = self._verify(raw_body, signature_header)
        except WebhookVerificationException as exc:
            self.logger.warning(
                f"Rejected Stripe webhook: {exc.message}",
                extra={"reason": exc.reason},
            )
            prometheus_metrics.record_webhook_outcome("rejected")
            raise

        event_id = event["id"]
        event_type = event["type"]

        try:
            ledger_row = self.ledger_service.record_received(
                source=STRIPE_WEBHOOK_SOURCE,
                event_id=event_id,
                event_type=event_type,
                payload=event,
            )
        except Exception as exc:
            raise self._processing_failed(event_id, event_type, exc) from exc

        if ledger_row is None:
            self.logger.info(
                f"Duplicate Stripe webhook {event_id} ignored",
                extra={"event_id": event_id, "event_type": event_type},
            )
            prometheus_metrics.record_webhook_outcome("duplicate")
            return WebhookResult(
                received=True,
                duplicate=True,
                event_type=event_type,
                event_id=event_id,
                outcome="duplicate",
            )

        try:
            outcome = self._apply_effect(event)
            self.ledger_service.mark_outcome(
                ledger_row,
                status=outcome.status,
                related_entity_type="booking" if outcome.booking_id else None,
                related_entity_id=outcome.booking_id,
                note=outcome.note,
            )
            self.db.commit()
        except Exception as exc:
            raise self._processing_failed(event_id, event_type, exc) from exc

        self.logger.info(
            f"Processed Stripe webhook {event_type}",
            extra={
                "event_id": event_id,
                "event_type": event_type,
                "outcome": outcome.status.value,
                "booking_id": outcome.booking_id,
            },
        )
        prometheus_metrics.record_webhook_outcome(outcome.status.value)
        return WebhookResult(
            received=True,
            duplicate=False,
            event_type=event_type,
            event_id=event_id,
            outcome=outcome.status.value,
        )

    def _processing_failed(
        self, event_id: str, event_type: str, exc: Exception
    ) -> WebhookProcessingException:
        self.db.rollback()
        self.logger.error(
            f"Failed to process Stripe webhook {event_id}: {exc}",
            extra={"event_id": event_id, "event_type": event_type},
            exc_info=exc,
        )
        prometheus_metrics.record_webhook_outcome("failed")
        return WebhookProcessingException(event_id, event_type)

    def _verify(self, raw_body: bytes, signature_header: Optional[str]) -> Dict[str, Any]:
        if not signature_header:
            raise WebhookVerificationException(
                REASON_MISSING_SIGNATURE, "Missing Stripe-Signature header"
            )

        try:
            payload_text = raw_body.decode("utf-8")
        except UnicodeDecodeError:
            raise WebhookVerificationException(
                REASON_MALFORMED_PAYLOAD, "Webhook body is not valid UTF-8"
            ) from None

        try:
            self.stripe_service.verify_webhook_signature(payload_text, signature_header)
        except stripe.SignatureVerificationError as exc:
            raise WebhookVerificationException(
                REASON_INVALID_SIGNATURE, "Invalid webhook signature"
            ) from exc

        timestamp = parse_signature_timestamp(signature_header)
        if timestamp is None:
            raise WebhookVerificationException(
                REASON_INVALID_SIGNATURE, "Webhook signature has no timestamp"
            )
        if abs(_now_timestamp() - timestamp) > self.tolerance_seconds:
            raise WebhookVerificationException(
                REASON_STALE_EVENT, "Webhook timestamp outside the allowed tolerance"
            )

        try:
            event = json.loads(payload_text)
        except ValueError:
            raise WebhookVerificationException(
                REASON_MALFORMED_PAYLOAD, "Webhook body is not valid JSON"
            ) from None

        if not isinstance(event, dict):
            raise WebhookVerificationException(
                REASON_MALFORMED_PAYLOAD, "Webhook body must be a JSON object"
            )
        event_id = event.get("id")
        if not isinstance(event_id, str) or not event_id.strip():
            raise WebhookVerificationException(REASON_MALFORMED_PAYLOAD, "Webhook event has no id")
        event_type = event.get("type")
        if not isinstance(event_type, str) or not event_type:
            event["type"] = "unknown"
        return event

    # ------------------------------------------------------------------ #
    # Domain effects
    # ------------------------------------------------------------------ #

    def _apply_effect(self, event: Dict[str, Any]) -> EffectOutcome:
        handler = self._handlers.get(event["type"])
        if handler is None:
            return EffectOutcome(status=WebhookEventStatus.IGNORED, note="unhandled event type")

        data = event.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        if not isinstance(obj, dict):
            return EffectOutcome(status=WebhookEventStatus.IGNORED, note="event has no data object")
        return handler(event, obj)

    def _resolve_booking(self, obj: Dict[str, Any], payment_intent_id: Optional[str]) -> Optional[Booking]:
        metadata = obj.get("metadata")
        booking_id = metadata.get("booking_id") if isinstance(metadata, dict) else None
        if booking_id:
            booking = self.booking_repository.get_by_id(str(booking_id), load_relationships=False)
            if booking is not None:
                return booking
        if payment_intent_id:
            return self.booking_repository.get_by_payment_reference(payment_intent_id)
        return None

    def _handle_payment_succeeded(self, event: Dict[str, Any], obj: Dict[str, Any]) -> EffectOutcome:
        booking = self._resolve_booking(obj, obj.get("id"))
        if booking is None:
            return EffectOutcome(status=WebhookEventStatus.IGNORED, note="booking not found")

        if booking.status == BookingStatus.COMPLETED.value:
            return EffectOutcome(status=WebhookEventStatus.PROCESSED, booking_id=booking.id)

        if booking.status != BookingStatus.IN_PROGRESS.value:
            self.logger.warning(
                f"payment_intent.succeeded for booking {booking.id} in status {booking.status}",
                extra={"booking_id": booking.id, "event_id": event["id"]},
            )
            return EffectOutcome(
                status=WebhookEventStatus.IGNORED,
                booking_id=booking.id,
                note=f"booking status {booking.status}",
            )

        amount_received = obj.get("amount_received")
        amount = int(amount_received) if amount_received is not None else booking.amount_to_capture
        fields = CompletionFields(checked_out_at=now_utc(), amount_captured=amount)
        if self.completion_writer.apply_completion(booking.id, fields):
            self.stats_service.increment_completion(booking.professional_id, amount)
            self.logger.info(
                f"Reconciled booking {booking.id} as completed from Stripe",
                extra={"booking_id": booking.id, "amount_captured": amount},
            )
        return EffectOutcome(status=WebhookEventStatus.PROCESSED, booking_id=booking.id)

    def _handle_payment_failed(self, event: Dict[str, Any], obj: Dict[str, Any]) -> EffectOutcome:
        booking = self._resolve_booking(obj, obj.get("id"))
        if booking is None:
            return EffectOutcome(status=WebhookEventStatus.IGNORED, note="booking not found")

        status = None
        if booking.status != BookingStatus.COMPLETED.value:
            status = BookingStatus.PAYMENT_FAILED.value
        self.booking_repository.set_payment_state(
            booking.id,
            payment_status=PaymentStatus.FAILED.value,
            status=status,
            updated_at=now_utc(),
        )
        return EffectOutcome(status=WebhookEventStatus.PROCESSED, booking_id=booking.id)

    def _handle_payment_canceled(self, event: Dict[str, Any], obj: Dict[str, Any]) -> EffectOutcome:
        booking = self._resolve_booking(obj, obj.get("id"))
        if booking is None:
            return EffectOutcome(status=WebhookEventStatus.IGNORED, note="booking not found")

        status = None
        if booking.status not in (BookingStatus.COMPLETED.value, BookingStatus.IN_PROGRESS.value):
            status = BookingStatus.CANCELLED.value
        self.booking_repository.set_payment_state(
            booking.id,
            payment_status=PaymentStatus.CANCELED.value,
            status=status,
            updated_at=now_utc(),
        )
        return EffectOutcome(status=WebhookEventStatus.PROCESSED, booking_id=booking.id)

    def _handle_charge_refunded(self, event: Dict[str, Any], obj: Dict[str, Any]) -> EffectOutcome:
        payment_intent_id = obj.get("payment_intent")
        booking = self._resolve_booking(
            obj, payment_intent_id if isinstance(payment_intent_id, str) else None
        )
        if booking is None:
            return EffectOutcome(status=WebhookEventStatus.IGNORED, note="booking not found")

        self.booking_repository.set_payment_state(
            booking.id,
            payment_status=PaymentStatus.REFUNDED.value,
            updated_at=now_utc(),
        )
        return EffectOutcome(status=WebhookEventStatus.PROCESSED, booking_id=booking.id)
