# backend/casaora/repositories/notification_repository.py
"""Repository for web push subscriptions."""

import logging
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.notification import PushSubscription
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class PushSubscriptionRepository(BaseRepository[PushSubscription]):
    def __init__(self, db: Session):
        super().__init__(db, PushSubscription)

    def get_user_subscriptions(self, user_id: str) -> List[PushSubscription]:
        return self.find_by(user_id=user_id)

    def delete_subscription(self, subscription_id: str) -> bool:
        """Drop a subscription the push service reported as gone. Does not commit."""
        try:
            deleted = (
                self._build_query()
                .filter(PushSubscription.id == subscription_id)
                .delete(synchronize_session=False)
            )
            return bool(deleted)
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting push subscription: {str(e)}")
            raise RepositoryException(f"Failed to delete push subscription: {str(e)}") from e
