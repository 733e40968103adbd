"""Application-wide constants for the Casaora platform."""

from __future__ import annotations

BRAND_NAME = "Casaora"

# Ledger source for Stripe deliveries
STRIPE_WEBHOOK_SOURCE = "stripe"

# Deterministic per booking so every retry of one logical check-out collapses
# to a single processor-side capture.
CHECKOUT_CAPTURE_IDEMPOTENCY_KEY = "booking-{booking_id}-checkout-capture"

# Earth radius used for great-circle distances
EARTH_RADIUS_METERS = 6_371_000

# Backoff multiplier for the post-capture booking update
CHECKOUT_PERSIST_BACKOFF_MULTIPLIER = 2


def checkout_capture_idempotency_key(booking_id: str) -> str:
    """Return the processor idempotency key for a booking's check-out capture."""
    return CHECKOUT_CAPTURE_IDEMPOTENCY_KEY.format(booking_id=booking_id)

API_TITLE = f"{BRAND_NAME} API"
API_DESCRIPTION = f"Backend API for {BRAND_NAME} - booking check-out and payment reconciliation"
API_VERSION = "1.0.0"
