"""Service for the inbound webhook ledger."""

from __future__ import annotations

from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.webhook_event import WebhookEvent, WebhookEventStatus
from ..repositories.factory import RepositoryFactory
from ..utils.time_helpers import now_utc
from .base import BaseService


class WebhookLedgerService(BaseService):
    """
    Business logic for webhook ledger entries.

    Rows are inserted and finalized inside the caller's transaction, so a
    delivery becomes visible exactly once, with its outcome, at commit.
    """

    def __init__(self, db: Session) -> None:
        super().__init__(db)
        self.repository = RepositoryFactory.create_webhook_event_repository(db)

    @BaseService.measure_operation("webhook_ledger.record_received")
    def record_received(
        self,
        *,
        source: str,
        event_id: str,
        event_type: str,
        payload: dict[str, Any],
    ) -> WebhookEvent | None:
        """
        Insert the ledger row for a delivery.

        Returns None when (source, event_id) is already recorded, including
        when a concurrent delivery won the insert. The session is rolled
        back in that case.
        """
        try:
            return self.repository.create(
                source=source,
                event_id=event_id,
                event_type=event_type or "unknown",
                payload=payload,
                received_at=now_utc(),
            )
        except RepositoryException as exc:
            # DB uniqueness won in another worker (or an earlier delivery).
            if isinstance(exc.__cause__, IntegrityError):
                return None
            raise

    @BaseService.measure_operation("webhook_ledger.mark_outcome")
    def mark_outcome(
        self,
        event: WebhookEvent,
        *,
        status: WebhookEventStatus,
        related_entity_type: str | None = None,
        related_entity_id: str | None = None,
        note: str | None = None,
    ) -> WebhookEvent:
        event.status = status.value
        event.processed_at = now_utc()
        event.related_entity_type = related_entity_type
        event.related_entity_id = related_entity_id
        event.processing_error = note
        self.repository.flush()
        return event

    def get_event(self, source: str, event_id: str) -> WebhookEvent | None:
        return self.repository.find_by_source_and_event_id(source, event_id)

    @BaseService.measure_operation("webhook_ledger.delete_events")
    def delete_events(self, source: str, event_ids: list[str]) -> int:
        """Remove ledger rows created by replay tooling."""
        with self.transaction():
            deleted = self.repository.delete_by_event_ids(source, event_ids)
        self.logger.info(f"Deleted {deleted} {source} webhook ledger rows")
        return deleted
