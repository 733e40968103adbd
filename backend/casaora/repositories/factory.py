# backend/casaora/repositories/factory.py
"""
Repository Factory for the Casaora platform.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .notification_repository import PushSubscriptionRepository
    from .professional_stats_repository import ProfessionalStatsRepository
    from .rebook_nudge_repository import RebookNudgeRepository
    from .user_repository import UserRepository
    from .webhook_event_repository import WebhookEventRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_user_repository(db: Session) -> "UserRepository":
        from .user_repository import UserRepository

        return UserRepository(db)

    @staticmethod
    def create_professional_stats_repository(db: Session) -> "ProfessionalStatsRepository":
        from .professional_stats_repository import ProfessionalStatsRepository

        return ProfessionalStatsRepository(db)

    @staticmethod
    def create_rebook_nudge_repository(db: Session) -> "RebookNudgeRepository":
        from .rebook_nudge_repository import RebookNudgeRepository

        return RebookNudgeRepository(db)

    @staticmethod
    def create_push_subscription_repository(db: Session) -> "PushSubscriptionRepository":
        from .notification_repository import PushSubscriptionRepository

        return PushSubscriptionRepository(db)

    @staticmethod
    def create_webhook_event_repository(db: Session) -> "WebhookEventRepository":
        from .webhook_event_repository import WebhookEventRepository

        return WebhookEventRepository(db)
