# backend/casaora/services/stripe_service.py
"""
Stripe integration for the check-out workflow.

Wraps the two processor touch points this service owns: capturing a
manual-capture PaymentIntent and verifying signed webhook deliveries.
"""

import logging
from typing import Any, Optional

import stripe

from ..core.config import secret_or_plain, settings
from ..core.exceptions import ServiceException
from .base import BaseService

logger = logging.getLogger(__name__)


def _intent_value(payment_intent: Any, key: str) -> Any:
    value = getattr(payment_intent, key, None)
    if value is None and isinstance(payment_intent, dict):
        value = payment_intent.get(key)
    return value


class StripeService:
    """Thin, configured client over the Stripe SDK."""

    def __init__(self) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.stripe_configured = settings.stripe_configured
        if self.stripe_configured:
            stripe.api_key = secret_or_plain(settings.stripe_secret_key)
            # Transport retries and timeouts are the SDK's; the workflow never retries a capture itself.
            stripe.max_network_retries = settings.stripe_max_network_retries
            stripe.default_http_client = stripe.RequestsClient(
                timeout=settings.stripe_request_timeout_seconds
            )
            self.logger.info("Stripe service configured successfully")
        else:
            self.logger.warning("Stripe secret key not configured - captures will fail")

    def _check_stripe_configured(self) -> None:
        """Check if Stripe is properly configured before making API calls."""
        if not self.stripe_configured:
            raise ServiceException(
                "Stripe service not configured. Please check STRIPE_SECRET_KEY environment variable."
            )

    @BaseService.measure_operation("stripe_capture_payment_intent")
    def capture_payment_intent(
        self,
        payment_intent_id: str,
        *,
        amount_to_capture: int,
        idempotency_key: str,
    ) -> dict[str, Any]:
        """
        Capture a manual-capture PaymentIntent.

        Returns dict: {"payment_intent": pi, "status": str|None, "amount_received": int|None}

        Raises:
            stripe.StripeError: Processor rejected or failed the capture
            ServiceException: Stripe is not configured
        """
        self._check_stripe_configured()
        pi = stripe.PaymentIntent.capture(
            payment_intent_id,
            amount_to_capture=amount_to_capture,
            idempotency_key=idempotency_key,
        )

        amount_received: Optional[int] = None
        raw_received = _intent_value(pi, "amount_received")
        if raw_received is not None:
            try:
                amount_received = int(raw_received)
            except (TypeError, ValueError):
                amount_received = None

        return {
            "payment_intent": pi,
            "status": _intent_value(pi, "status"),
            "amount_received": amount_received,
        }

    def verify_webhook_signature(self, payload: str, signature_header: str) -> None:
        """
        Verify the HMAC signature of a webhook delivery.

        Timestamp tolerance is not applied here; freshness is checked by the
        caller against its own clock.

        Raises:
            stripe.SignatureVerificationError: Signature missing, malformed or wrong
            ServiceException: Webhook secret not configured
        """
        secret = secret_or_plain(settings.stripe_webhook_secret)
        if not secret:
            raise ServiceException("Webhook secret not configured")
        stripe.WebhookSignature.verify_header(payload, signature_header, secret, tolerance=None)
