"""Request and response schemas for booking check-out."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import ConfigDict, Field

from ._strict_base import StrictModel, StrictRequestModel


class CheckOutLocation(StrictRequestModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class CheckOutRequest(StrictRequestModel):
    location: CheckOutLocation
    completion_notes: Optional[str] = Field(default=None, max_length=2000)


class CompletedBookingResponse(StrictModel):
    """Completed booking as returned to the professional."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True, from_attributes=True)

    id: str
    status: str
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None
    actual_duration_minutes: Optional[int] = None
    amount_authorized: int
    time_extension_amount: int
    amount_captured: Optional[int] = None
    currency: str
    payment_status: Optional[str] = None
    completion_notes: Optional[str] = None


class CheckOutResponse(StrictModel):
    success: Literal[True] = True
    booking: CompletedBookingResponse


class CheckOutErrorResponse(StrictModel):
    success: Literal[False] = False
    error: str
    error_class: str
