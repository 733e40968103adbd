"""Schemas for webhook acknowledgements."""

from ._strict_base import StrictModel


class WebhookAckResponse(StrictModel):
    received: bool
    duplicate: bool
    event_type: str
