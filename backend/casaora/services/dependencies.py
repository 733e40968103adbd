# backend/casaora/services/dependencies.py
"""
Dependency injection functions for services.

Routes depend on these rather than constructing services directly so tests
can swap any collaborator through ``app.dependency_overrides``.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ..database import get_db
from .checkout_service import CheckOutService
from .notification_service import NotificationService
from .payment_capture_service import PaymentCaptureService
from .stripe_service import StripeService
from .stripe_webhook_service import StripeWebhookService
from .template_service import TemplateService


def get_template_service() -> TemplateService:
    return TemplateService()


def get_stripe_service() -> StripeService:
    return StripeService()


def get_notification_service(
    db: Session = Depends(get_db),
    template_service: TemplateService = Depends(get_template_service),
) -> NotificationService:
    """
    Dependency injection function for NotificationService.

    Usage in routes:
        notification_service: NotificationService = Depends(get_notification_service)
    """
    return NotificationService(db, template_service=template_service)


def get_checkout_service(
    db: Session = Depends(get_db),
    stripe_service: StripeService = Depends(get_stripe_service),
    notification_service: NotificationService = Depends(get_notification_service),
) -> CheckOutService:
    payment_capture_service = PaymentCaptureService(
        db, stripe_service=stripe_service, notification_service=notification_service
    )
    return CheckOutService(
        db,
        payment_capture_service=payment_capture_service,
        notification_service=notification_service,
    )


def get_stripe_webhook_service(
    db: Session = Depends(get_db),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> StripeWebhookService:
    return StripeWebhookService(db, stripe_service=stripe_service)
