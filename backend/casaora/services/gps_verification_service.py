# backend/casaora/services/gps_verification_service.py
"""
GPS proximity check for check-out.

Compares where the professional reports being against the booking's
service address. The outcome is advisory: it is logged for fraud review
and never blocks a check-out.
"""

import logging
import math
from numbers import Real
from typing import Any, Mapping, Optional

from pydantic import BaseModel

from ..core.config import settings
from ..core.constants import EARTH_RADIUS_METERS

logger = logging.getLogger(__name__)

REASON_WITHIN_RANGE = "within range"
REASON_OUTSIDE_RADIUS = "outside allowed radius"
REASON_ADDRESS_UNRESOLVED = "address unresolved"

_LATITUDE_KEYS = ("latitude", "lat")
_LONGITUDE_KEYS = ("longitude", "lng", "lon")
_NESTED_KEYS = ("coordinates", "location")


class Coordinates(BaseModel):
    latitude: float
    longitude: float


class GpsVerificationResult(BaseModel):
    verified: bool
    distance: float
    max_distance: float
    reason: str


def haversine_distance_meters(origin: Coordinates, destination: Coordinates) -> float:
    """Great-circle distance between two points in meters."""
    lat1 = math.radians(origin.latitude)
    lat2 = math.radians(destination.latitude)
    d_lat = lat2 - lat1
    d_lng = math.radians(destination.longitude - origin.longitude)

    a = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def _coerce_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, Real):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _first_number(payload: Mapping[str, Any], keys: tuple[str, ...]) -> Optional[float]:
    for key in keys:
        if key in payload:
            number = _coerce_number(payload[key])
            if number is not None:
                return number
    return None


def resolve_address_coordinates(address: Any) -> Optional[Coordinates]:
    """
    Pull coordinates out of a stored booking address.

    Accepts flat ``latitude``/``longitude`` (or ``lat``/``lng``/``lon``) keys,
    optionally nested under ``coordinates`` or ``location``. Free-form string
    addresses and out-of-range values resolve to None.
    """
    if not isinstance(address, Mapping):
        return None

    lat = _first_number(address, _LATITUDE_KEYS)
    lng = _first_number(address, _LONGITUDE_KEYS)
    if lat is None or lng is None:
        for nested_key in _NESTED_KEYS:
            nested = address.get(nested_key)
            if isinstance(nested, Mapping):
                lat = _first_number(nested, _LATITUDE_KEYS)
                lng = _first_number(nested, _LONGITUDE_KEYS)
                if lat is not None and lng is not None:
                    break

    if lat is None or lng is None:
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        return None
    return Coordinates(latitude=lat, longitude=lng)


class GpsVerificationService:
    """Advisory proximity verification between a reported location and a service address."""

    def __init__(self, max_distance_meters: Optional[float] = None):
        self.max_distance_meters = (
            max_distance_meters
            if max_distance_meters is not None
            else settings.checkout_gps_max_distance_meters
        )
        self.logger = logging.getLogger(self.__class__.__name__)

    def verify(
        self,
        reported_location: Coordinates,
        booking_address: Any,
        max_distance_meters: Optional[float] = None,
    ) -> GpsVerificationResult:
        """Compare the reported location to the booking address. Never raises."""
        limit = self.max_distance_meters if max_distance_meters is None else max_distance_meters

        target = resolve_address_coordinates(booking_address)
        if target is None:
            return GpsVerificationResult(
                verified=False,
                distance=0.0,
                max_distance=limit,
                reason=REASON_ADDRESS_UNRESOLVED,
            )

        distance = haversine_distance_meters(reported_location, target)
        verified = distance <= limit
        return GpsVerificationResult(
            verified=verified,
            distance=round(distance, 2),
            max_distance=limit,
            reason=REASON_WITHIN_RANGE if verified else REASON_OUTSIDE_RADIUS,
        )

    def verify_and_log(
        self,
        *,
        booking_id: str,
        professional_id: str,
        reported_location: Coordinates,
        booking_address: Any,
    ) -> GpsVerificationResult:
        """Verify and record the outcome; a far-away check-out is flagged for review."""
        result = self.verify(reported_location, booking_address)

        context = {
            "booking_id": booking_id,
            "professional_id": professional_id,
            "gps_verified": result.verified,
            "distance_meters": result.distance,
            "max_distance_meters": result.max_distance,
            "gps_reason": result.reason,
        }
        self.logger.info(
            "Check-out GPS verification for booking %s: %s (%.0fm)",
            booking_id,
            result.reason,
            result.distance,
            extra=context,
        )

        if not result.verified and result.distance > 0:
            self.logger.warning(
                "Professional checked out %.0fm from service address for booking %s",
                result.distance,
                booking_id,
                extra={
                    **context,
                    "severity": "MEDIUM",
                    "recommendation": "Review check-out location for potential fraud",
                },
            )

        return result
