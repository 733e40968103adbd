# backend/casaora/services/notification_service.py
"""
Notification Service for the Casaora platform.

Handles all customer, professional and administrator notifications for
the check-out workflow:
- Completion emails and push notifications to both parties
- Operational alerts to every active administrator

Every public method is fire-and-forget from the caller's point of view:
delivery failures are logged and reported through the return value,
never raised.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import BRAND_NAME
from ..models.booking import Booking
from ..models.user import User
from ..repositories.factory import RepositoryFactory
from ..utils.formatting import format_booking_address, format_cop
from .base import BaseService
from .email import EmailService
from .push_notification_service import PushNotificationService
from .template_service import TemplateRegistry, TemplateService

logger = logging.getLogger(__name__)


def _display_name(user: Optional[User], fallback: str) -> str:
    if user is None:
        return fallback
    return user.display_name


class NotificationService(BaseService):
    """
    Central notification service for check-out related messages.

    Email goes through EmailService (Resend) rendered by TemplateService
    (Jinja2); push goes through PushNotificationService (Web Push).
    """

    def __init__(
        self,
        db: Session,
        template_service: Optional[TemplateService] = None,
        email_service: Optional[EmailService] = None,
        push_service: Optional[PushNotificationService] = None,
    ) -> None:
        super().__init__(db)
        self.template_service = template_service or TemplateService()
        self.email_service = email_service or EmailService()
        self.push_service = push_service or PushNotificationService(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)
        self.frontend_url = settings.frontend_url.rstrip("/")

    # ------------------------------------------------------------------ #
    # Completion
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("send_booking_completed")
    def send_booking_completed(
        self, booking: Booking, *, duration_minutes: int, amount: int
    ) -> bool:
        """
        Tell both parties the service is complete.

        Returns True only if every channel succeeded.
        """
        customer_name = _display_name(booking.customer, "Customer")
        professional_name = _display_name(booking.professional, "Professional")
        service_name = booking.service_name or "service"
        context = {
            "booking_id": booking.id,
            "customer_name": customer_name,
            "professional_name": professional_name,
            "service_name": service_name,
            "address": format_booking_address(booking.address),
            "duration_minutes": duration_minutes,
            "amount": amount,
        }

        results = [
            self._send_templated_email(
                booking.customer,
                subject=f"Your {service_name} is complete",
                template_name=TemplateRegistry.BOOKING_COMPLETED_CUSTOMER,
                context=context,
            ),
            self._send_templated_email(
                booking.professional,
                subject=f"Service completed: {service_name}",
                template_name=TemplateRegistry.BOOKING_COMPLETED_PROFESSIONAL,
                context=context,
            ),
            self._send_push(
                booking.customer_id,
                title="Service Completed!",
                body=(
                    f"{professional_name} completed your {service_name}. "
                    "Please rate your experience."
                ),
                url="/dashboard/customer#bookings",
                tag=f"booking-{booking.id}",
                require_interaction=True,
            ),
            self._send_push(
                booking.professional_id,
                title="Payment Received!",
                body=f"You received {format_cop(amount)} for {service_name}",
                url="/dashboard/pro#finances",
                tag=f"payment-{booking.id}",
            ),
        ]

        if not all(results):
            self.logger.warning(
                f"Some completion notifications failed for booking {booking.id}",
                extra={"booking_id": booking.id},
            )
            return False
        return True

    # ------------------------------------------------------------------ #
    # Administrator alerts
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("notify_admins_payment_capture_failed")
    def notify_admins_payment_capture_failed(
        self, booking: Booking, *, amount: int, error_message: str
    ) -> int:
        """Alert every admin that a check-out capture failed. Returns admins reached."""
        professional_name = _display_name(booking.professional, "Professional")
        context = {
            "subject": "CRITICAL: Payment Capture Failed",
            "booking_id": booking.id,
            "professional_name": professional_name,
            "customer_name": _display_name(booking.customer, "Customer"),
            "amount": amount,
            "error_message": error_message,
        }
        return self._notify_all_admins(
            title="CRITICAL: Payment Capture Failed",
            body=(
                f"Failed to capture {format_cop(amount)} for booking {booking.id}. "
                f"{professional_name} checked out but payment failed. Manual review required."
            ),
            url=f"/admin/bookings/{booking.id}",
            tag=f"admin-payment-failure-{booking.id}",
            template_name=TemplateRegistry.ADMIN_PAYMENT_CAPTURE_FAILED,
            context=context,
        )

    @BaseService.measure_operation("notify_admins_payment_captured_not_persisted")
    def notify_admins_payment_captured_not_persisted(
        self,
        booking: Booking,
        *,
        amount_captured: int,
        payment_intent_id: str,
        attempts: int,
    ) -> int:
        """Urgent alert: money moved but the booking is not marked completed."""
        context = {
            "subject": "URGENT: Payment Captured, DB Update Failed",
            "booking_id": booking.id,
            "professional_name": _display_name(booking.professional, "Professional"),
            "customer_name": _display_name(booking.customer, "Customer"),
            "amount_captured": amount_captured,
            "payment_intent_id": payment_intent_id,
            "attempts": attempts,
        }
        return self._notify_all_admins(
            title="URGENT: Payment Captured, DB Update Failed",
            body=(
                f"IMMEDIATE ACTION REQUIRED: Captured {format_cop(amount_captured)} "
                f"({payment_intent_id}) but booking {booking.id} status NOT updated. "
                "Manual DB fix needed now!"
            ),
            url=f"/admin/bookings/{booking.id}",
            tag=f"admin-critical-{booking.id}",
            template_name=TemplateRegistry.ADMIN_PAYMENT_NOT_PERSISTED,
            context=context,
        )

    def _notify_all_admins(
        self,
        *,
        title: str,
        body: str,
        url: str,
        tag: str,
        template_name: str,
        context: Dict[str, Any],
    ) -> int:
        try:
            admins: List[User] = self.user_repository.list_active_admins()
        except Exception as e:
            self.logger.error(f"Failed to load administrators for alert '{title}': {e}")
            return 0

        if not admins:
            self.logger.error(f"No active administrators to receive alert '{title}'")
            return 0

        reached = 0
        for admin in admins:
            pushed = self._send_push(
                admin.id, title=title, body=body, url=url, tag=tag, require_interaction=True
            )
            emailed = self._send_templated_email(
                admin,
                subject=f"[{BRAND_NAME}] {title}",
                template_name=template_name,
                context=context,
            )
            if pushed or emailed:
                reached += 1

        self.logger.info(f"Admin alert '{title}' delivered to {reached}/{len(admins)} admins")
        return reached

    # ------------------------------------------------------------------ #
    # Channel helpers
    # ------------------------------------------------------------------ #

    def _send_templated_email(
        self,
        recipient: Optional[User],
        *,
        subject: str,
        template_name: str,
        context: Dict[str, Any],
    ) -> bool:
        if recipient is None or not recipient.email:
            self.logger.warning(f"Skipping email '{subject}': recipient has no address")
            return False
        try:
            html = self.template_service.render_template(
                template_name, context, subject=subject
            )
            self.email_service.send_email(
                to_email=recipient.email, subject=subject, html_content=html
            )
            return True
        except Exception as e:
            self.logger.error(f"Failed to send email '{subject}' to {recipient.email}: {e}")
            return False

    def _send_push(
        self,
        user_id: str,
        *,
        title: str,
        body: str,
        url: str,
        tag: str,
        require_interaction: bool = False,
    ) -> bool:
        try:
            result = self.push_service.send_push_notification(
                user_id,
                title=title,
                body=body,
                url=url,
                tag=tag,
                require_interaction=require_interaction,
            )
        except Exception as e:
            self.logger.error(f"Failed to send push '{title}' to user {user_id}: {e}")
            return False
        return result.get("sent", 0) > 0
