from datetime import datetime, timezone
import logging

import pytest
from sqlalchemy.exc import OperationalError

from casaora.core.exceptions import CapturedPaymentNotPersistedException
from casaora.models.booking import Booking, BookingStatus, PaymentStatus
from casaora.services.booking_completion_writer import (
    MANUAL_ACTION_REQUIRED,
    BookingCompletionWriter,
    CompletionFields,
)

CHECKED_OUT_AT = datetime(2026, 3, 1, 15, 30, tzinfo=timezone.utc)


def _fields(amount: int = 120_000) -> CompletionFields:
    return CompletionFields(
        checked_out_at=CHECKED_OUT_AT,
        amount_captured=amount,
        check_out_latitude=4.6767,
        check_out_longitude=-74.0483,
        actual_duration_minutes=95,
        completion_notes="Todo en orden",
    )


def _flaky(writer: BookingCompletionWriter, failures: int) -> list[int]:
    """Make the first ``failures`` completion UPDATEs raise a lock error."""
    calls: list[int] = []
    original = writer.booking_repository.mark_completed

    def mark_completed(booking_id, **kwargs):
        calls.append(1)
        if len(calls) <= failures:
            raise OperationalError("UPDATE bookings", {}, Exception("database is locked"))
        return original(booking_id, **kwargs)

    writer.booking_repository.mark_completed = mark_completed
    return calls


def test_write_completion_sets_all_fields(db, booking, notifications):
    writer = BookingCompletionWriter(db, notifications, sleep=lambda _s: None)

    write = writer.write_completion(booking, _fields())
    result = write.booking

    assert write.transitioned is True
    assert result.status == BookingStatus.COMPLETED.value
    assert result.payment_status == PaymentStatus.SUCCEEDED.value
    assert result.amount_captured == 120_000
    assert result.actual_duration_minutes == 95
    assert result.completion_notes == "Todo en orden"
    assert result.check_out_latitude == pytest.approx(4.6767)
    assert result.checked_out_at is not None
    assert notifications.not_persisted == []


def test_transient_failures_are_retried_with_backoff(db, booking, notifications):
    sleeps: list[float] = []
    writer = BookingCompletionWriter(
        db, notifications, max_attempts=3, base_delay_ms=100, sleep=sleeps.append
    )
    calls = _flaky(writer, failures=2)

    write = writer.write_completion(booking, _fields())

    assert write.transitioned is True
    assert write.booking.status == BookingStatus.COMPLETED.value
    assert len(calls) == 3
    assert sleeps == [0.1, 0.2]


def test_exhausted_retries_escalate_without_refund(db, booking, notifications, caplog):
    sleeps: list[float] = []
    writer = BookingCompletionWriter(
        db, notifications, max_attempts=3, base_delay_ms=100, sleep=sleeps.append
    )
    calls = _flaky(writer, failures=10)
    booking_id = booking.id
    payment_reference = booking.payment_reference

    with caplog.at_level(logging.WARNING):
        with pytest.raises(CapturedPaymentNotPersistedException) as exc_info:
            writer.write_completion(booking, _fields())

    assert len(calls) == 3
    assert sleeps == [0.1, 0.2]
    assert exc_info.value.amount_captured == 120_000
    assert exc_info.value.attempts == 3

    critical = [r for r in caplog.records if r.levelno == logging.CRITICAL]
    assert len(critical) == 1
    assert critical[0].getMessage() == "CRITICAL: Payment captured but booking update failed"
    assert critical[0].booking_id == booking_id
    assert critical[0].payment_reference == payment_reference
    assert critical[0].amount_captured == 120_000
    assert critical[0].severity == "CRITICAL"
    assert critical[0].action_required == MANUAL_ACTION_REQUIRED

    assert notifications.not_persisted == [
        {
            "booking_id": booking_id,
            "amount_captured": 120_000,
            "payment_intent_id": payment_reference,
            "attempts": 3,
        }
    ]

    db.expire_all()
    stored = db.get(Booking, booking_id)
    assert stored.status == BookingStatus.IN_PROGRESS.value
    assert stored.amount_captured is None
    assert stored.payment_status == PaymentStatus.AUTHORIZED.value


def test_booking_completed_elsewhere_only_gets_check_out_details(db, booking, notifications):
    booking.status = BookingStatus.COMPLETED.value
    booking.payment_status = PaymentStatus.SUCCEEDED.value
    booking.checked_out_at = datetime(2026, 3, 1, 15, 29, tzinfo=timezone.utc)
    booking.amount_captured = 99_000
    db.commit()
    writer = BookingCompletionWriter(db, notifications, sleep=lambda _s: None)

    write = writer.write_completion(booking, _fields(amount=120_000))

    assert write.transitioned is False
    result = write.booking
    assert result.status == BookingStatus.COMPLETED.value
    # The first completion keeps its money and timestamp.
    assert result.amount_captured == 99_000
    assert result.checked_out_at.minute == 29
    assert result.actual_duration_minutes == 95
    assert result.completion_notes == "Todo en orden"
    assert result.check_out_longitude == pytest.approx(-74.0483)
    assert notifications.not_persisted == []


def test_booking_that_left_in_progress_is_escalated(db, booking, notifications):
    booking.status = BookingStatus.CANCELLED.value
    db.commit()
    writer = BookingCompletionWriter(db, notifications, max_attempts=2, sleep=lambda _s: None)

    with pytest.raises(CapturedPaymentNotPersistedException):
        writer.write_completion(booking, _fields())

    assert len(notifications.not_persisted) == 1


def test_apply_completion_does_not_commit(db, session_factory, booking, notifications):
    writer = BookingCompletionWriter(db, notifications)

    assert writer.apply_completion(booking.id, _fields()) is True

    other = session_factory()
    try:
        assert other.get(Booking, booking.id).status == BookingStatus.IN_PROGRESS.value
    finally:
        other.close()
    db.rollback()


def test_apply_completion_reports_no_transition_for_completed_booking(db, make_booking, notifications):
    done = make_booking(status=BookingStatus.COMPLETED.value, amount_captured=120_000)
    writer = BookingCompletionWriter(db, notifications)

    assert writer.apply_completion(done.id, _fields()) is False
    db.rollback()
