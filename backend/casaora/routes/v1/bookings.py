# backend/casaora/routes/v1/bookings.py
"""
Booking check-out endpoint.

POST /api/v1/bookings/{booking_id}/check-out

The professional reports their location and optional notes; the service
captures payment and marks the booking completed. Failures come back as
``{success: false, error, error_class}`` with a status code per class.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ...core.exceptions import CheckOutError
from ...schemas.checkout import (
    CheckOutErrorResponse,
    CheckOutRequest,
    CheckOutResponse,
    CompletedBookingResponse,
)
from ...services.checkout_service import CheckOutService
from ...services.dependencies import get_checkout_service
from ...services.gps_verification_service import Coordinates

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bookings"])


@router.post(
    "/{booking_id}/check-out",
    response_model=CheckOutResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": CheckOutErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": CheckOutErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": CheckOutErrorResponse},
        status.HTTP_502_BAD_GATEWAY: {"model": CheckOutErrorResponse},
    },
)
async def check_out_booking(
    booking_id: str,
    payload: CheckOutRequest,
    checkout_service: CheckOutService = Depends(get_checkout_service),
):
    """Check out of an in-progress booking and capture its payment."""
    location = Coordinates(
        latitude=payload.location.latitude,
        longitude=payload.location.longitude,
    )
    try:
        result = await asyncio.to_thread(
            checkout_service.check_out,
            booking_id,
            location,
            payload.completion_notes,
        )
    except CheckOutError as exc:
        body = CheckOutErrorResponse(error=exc.public_message(), error_class=exc.error_class)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())

    return CheckOutResponse(booking=CompletedBookingResponse.model_validate(result.booking))
