# backend/casaora/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import bookings, prometheus, webhooks_stripe

__all__ = ["bookings", "prometheus", "webhooks_stripe"]
