"""
Repository layer for the Casaora platform.

Repositories encapsulate data access; services own transactions.
"""

from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .factory import RepositoryFactory
from .notification_repository import PushSubscriptionRepository
from .professional_stats_repository import ProfessionalStatsRepository
from .rebook_nudge_repository import RebookNudgeRepository
from .user_repository import UserRepository
from .webhook_event_repository import WebhookEventRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "ProfessionalStatsRepository",
    "PushSubscriptionRepository",
    "RebookNudgeRepository",
    "RepositoryFactory",
    "UserRepository",
    "WebhookEventRepository",
]
