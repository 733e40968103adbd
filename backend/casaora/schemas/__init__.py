"""Pydantic schemas for the Casaora API."""

from .checkout import (
    CheckOutErrorResponse,
    CheckOutLocation,
    CheckOutRequest,
    CheckOutResponse,
    CompletedBookingResponse,
)
from .webhook import WebhookAckResponse

__all__ = [
    "CheckOutErrorResponse",
    "CheckOutLocation",
    "CheckOutRequest",
    "CheckOutResponse",
    "CompletedBookingResponse",
    "WebhookAckResponse",
]
