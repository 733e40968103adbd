"""Repository helpers for webhook event ledger."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.webhook_event import WebhookEvent
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class WebhookEventRepository(BaseRepository[WebhookEvent]):
    """Repository for webhook ledger queries."""

    def __init__(self, db: Session) -> None:
        super().__init__(db, WebhookEvent)

    def find_by_source_and_event_id(self, source: str, event_id: str) -> WebhookEvent | None:
        return self.find_one_by(source=source, event_id=event_id)

    def delete_by_event_ids(self, source: str, event_ids: list[str]) -> int:
        """Remove ledger rows created by test tooling. Does not commit."""
        if not event_ids:
            return 0
        try:
            deleted = (
                self._build_query()
                .filter(WebhookEvent.source == source, WebhookEvent.event_id.in_(event_ids))
                .delete(synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to delete webhook events: %s", str(exc))
            raise RepositoryException("Failed to delete webhook events") from exc
        return int(deleted or 0)
