"""
Database models for the Casaora check-out service.

- Users (customers, professionals, admins)
- Bookings and their completion state
- Professional earnings counters
- Rebook nudge experiment assignments
- Web push subscriptions
- Webhook event ledger
"""

from .booking import Booking, BookingStatus, PaymentStatus
from .notification import PushSubscription
from .professional_stats import ProfessionalStats
from .rebook_nudge import RebookNudgeExperiment
from .user import User, UserRole
from .webhook_event import WebhookEvent, WebhookEventStatus

__all__ = [
    "Booking",
    "BookingStatus",
    "PaymentStatus",
    "ProfessionalStats",
    "PushSubscription",
    "RebookNudgeExperiment",
    "User",
    "UserRole",
    "WebhookEvent",
    "WebhookEventStatus",
]
