# backend/casaora/services/push_notification_service.py
"""
Push notification delivery to users' web push subscriptions.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from pywebpush import WebPushException, webpush
from sqlalchemy.orm import Session

from ..core.config import secret_or_plain, settings
from ..models.notification import PushSubscription
from ..repositories.factory import RepositoryFactory
from ..repositories.notification_repository import PushSubscriptionRepository
from .base import BaseService

logger = logging.getLogger(__name__)

DEFAULT_ICON = "/icons/icon-192x192.png"
DEFAULT_BADGE = "/icons/badge-72x72.png"


class PushNotificationService(BaseService):
    """Service for delivering web push notifications."""

    def __init__(
        self,
        db: Session,
        subscription_repository: Optional[PushSubscriptionRepository] = None,
    ) -> None:
        super().__init__(db)
        self.subscription_repository = (
            subscription_repository or RepositoryFactory.create_push_subscription_repository(db)
        )
        self._frontend_base = settings.frontend_url.rstrip("/")

    def _resolve_asset_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self._frontend_base}{path}"

    def get_user_subscriptions(self, user_id: str) -> List[PushSubscription]:
        return self.subscription_repository.get_user_subscriptions(user_id)

    @BaseService.measure_operation("send_push_notification")
    def send_push_notification(
        self,
        user_id: str,
        title: str,
        body: str,
        url: Optional[str] = None,
        tag: Optional[str] = None,
        require_interaction: bool = False,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, int]:
        """
        Send push notification to all of a user's subscribed devices.

        Returns:
            dict with 'sent', 'failed', 'expired' counts
        """
        counts = {"sent": 0, "failed": 0, "expired": 0}
        if not self.is_configured():
            self.logger.warning("Push notifications not configured; skipping send")
            return counts

        subscriptions = self.get_user_subscriptions(user_id)
        if not subscriptions:
            return counts

        payload = self._build_payload(
            title=title,
            body=body,
            url=url,
            tag=tag,
            require_interaction=require_interaction,
            data=data,
        )

        for subscription in subscriptions:
            counts[self._send_to_subscription(subscription, payload)] += 1
        return counts

    def _send_to_subscription(self, subscription: PushSubscription, payload: str) -> str:
        """
        Send push to a single subscription and return the outcome bucket.

        Expired or invalid subscriptions are deleted.
        """
        try:
            webpush(
                subscription_info={
                    "endpoint": subscription.endpoint,
                    "keys": {
                        "p256dh": subscription.p256dh_key,
                        "auth": subscription.auth_key,
                    },
                },
                data=payload,
                vapid_private_key=secret_or_plain(settings.vapid_private_key).strip(),
                vapid_claims={"sub": settings.vapid_claims_email},
            )
            return "sent"
        except WebPushException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            if status_code in (404, 410):
                self.logger.info(
                    "Push subscription expired; deleting endpoint=%s user_id=%s",
                    subscription.endpoint,
                    subscription.user_id,
                )
                with self.transaction():
                    self.subscription_repository.delete_subscription(subscription.id)
                return "expired"

            self.logger.error("Push send failed: %s", exc)
            return "failed"

    def _build_payload(
        self,
        title: str,
        body: str,
        url: Optional[str] = None,
        tag: Optional[str] = None,
        require_interaction: bool = False,
        data: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Build JSON payload for push notification."""
        payload_data: Dict[str, Any] = {}
        if data:
            payload_data.update(data)
        if url:
            payload_data.setdefault("url", url)

        payload: Dict[str, Any] = {
            "title": title,
            "body": body,
            "icon": self._resolve_asset_url(DEFAULT_ICON),
            "badge": self._resolve_asset_url(DEFAULT_BADGE),
            "tag": tag,
            "requireInteraction": require_interaction or None,
            "data": payload_data or None,
        }

        cleaned = {key: value for key, value in payload.items() if value is not None}
        return json.dumps(cleaned)

    @staticmethod
    def is_configured() -> bool:
        """Check if VAPID keys are configured."""
        return bool(
            settings.vapid_public_key and secret_or_plain(settings.vapid_private_key).strip()
        )
