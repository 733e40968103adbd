# backend/casaora/repositories/booking_repository.py
"""
Booking Repository for the Casaora platform.

Data access for the check-out workflow. The completion write is a single
guarded UPDATE so that two writers racing on the same booking (check-out
and webhook reconciliation) cannot both flip it to completed.
"""

from datetime import datetime
import logging
from typing import Any, Dict, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload

from ..core.exceptions import RepositoryException
from ..models.booking import Booking, BookingStatus, PaymentStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

COMPLETION_FIELDS = frozenset(
    {
        "checked_out_at",
        "check_out_latitude",
        "check_out_longitude",
        "actual_duration_minutes",
        "completion_notes",
        "amount_captured",
    }
)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(joinedload(Booking.professional), joinedload(Booking.customer))

    def get_by_payment_reference(self, payment_reference: str) -> Optional[Booking]:
        """Find the booking holding a given processor payment intent."""
        try:
            return (
                self._build_query()
                .filter(Booking.payment_reference == payment_reference)
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting booking by payment reference: {str(e)}")
            raise RepositoryException(f"Failed to get booking: {str(e)}") from e

    def mark_completed(
        self, booking_id: str, *, fields: Dict[str, Any], updated_at: datetime
    ) -> int:
        """
        Flip an in-progress booking to completed with its check-out fields.

        Returns the number of rows changed (0 when the booking is no longer
        in progress). Does not commit.
        """
        unknown = set(fields) - COMPLETION_FIELDS
        if unknown:
            raise ValueError(f"Unsupported completion fields: {sorted(unknown)}")

        values = dict(fields)
        values["status"] = BookingStatus.COMPLETED.value
        values["payment_status"] = PaymentStatus.SUCCEEDED.value
        values["updated_at"] = updated_at

        try:
            result = self.db.execute(
                update(Booking)
                .where(
                    Booking.id == booking_id,
                    Booking.status == BookingStatus.IN_PROGRESS.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return int(result.rowcount or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error completing booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to complete booking: {str(e)}") from e

    def fill_check_out_details(
        self, booking_id: str, *, fields: Dict[str, Any], updated_at: datetime
    ) -> int:
        """
        Fill check-out details left empty on a booking completed by another path.

        Existing values win and money columns are never touched. Does not commit.
        """
        unknown = set(fields) - (COMPLETION_FIELDS - {"amount_captured"})
        if unknown:
            raise ValueError(f"Unsupported check-out detail fields: {sorted(unknown)}")

        values: Dict[str, Any] = {
            name: func.coalesce(getattr(Booking, name), value)
            for name, value in fields.items()
            if value is not None
        }
        if not values:
            return 0
        values["updated_at"] = updated_at

        try:
            result = self.db.execute(
                update(Booking)
                .where(
                    Booking.id == booking_id,
                    Booking.status == BookingStatus.COMPLETED.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return int(result.rowcount or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error filling check-out details for {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to update booking: {str(e)}") from e

    def set_payment_state(
        self,
        booking_id: str,
        *,
        payment_status: str,
        status: Optional[str] = None,
        updated_at: datetime,
    ) -> Optional[Booking]:
        """Record the processor-side payment status (and optionally booking status)."""
        values: Dict[str, Any] = {"payment_status": payment_status, "updated_at": updated_at}
        if status is not None:
            values["status"] = status
        return self.update(booking_id, **values)
