# backend/casaora/services/template_service.py
"""
Template rendering service for the Casaora platform.

Centralized Jinja2 rendering for transactional emails with common
context (brand, year, frontend URL) injected into every template.
"""

from datetime import datetime
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from ..core.config import settings
from ..core.constants import BRAND_NAME
from ..utils.formatting import format_cop

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


class TemplateRegistry:
    """Template paths relative to the templates directory."""

    BOOKING_COMPLETED_CUSTOMER = "email/booking_completed_customer.html"
    BOOKING_COMPLETED_PROFESSIONAL = "email/booking_completed_professional.html"
    ADMIN_PAYMENT_CAPTURE_FAILED = "email/admin_payment_capture_failed.html"
    ADMIN_PAYMENT_NOT_PERSISTED = "email/admin_payment_not_persisted.html"


class TemplateService:
    """Centralized template rendering service using Jinja2."""

    def __init__(self, template_dir: Optional[Path] = None):
        self.template_dir = template_dir or TEMPLATE_DIR
        self.env = Environment(
            loader=FileSystemLoader(self.template_dir),
            autoescape=True,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )
        self.env.filters["cop"] = format_cop
        self.logger = logging.getLogger(self.__class__.__name__)

    def get_common_context(self) -> Dict[str, Any]:
        return {
            "brand_name": BRAND_NAME,
            "current_year": datetime.now().year,
            "frontend_url": settings.frontend_url.rstrip("/"),
            "support_email": settings.email_from_address,
        }

    def render_template(
        self, template_name: str, context: Optional[Dict[str, Any]] = None, **kwargs: Any
    ) -> str:
        """
        Render a template with the common context plus ``context`` and ``kwargs``.

        Raises:
            TemplateNotFound: If template doesn't exist
            UndefinedError: If the template references a missing variable
        """
        full_context = self.get_common_context()
        full_context.setdefault("subject", BRAND_NAME)
        if context:
            full_context.update(context)
        full_context.update(kwargs)
        template = self.env.get_template(template_name)
        return template.render(**full_context)
