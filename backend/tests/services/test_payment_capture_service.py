import logging

import pytest

from casaora.core.exceptions import CheckOutValidationException, PaymentCaptureException
from casaora.services.payment_capture_service import PaymentCaptureService
from casaora.services.stripe_service import StripeService


def test_capture_includes_time_extension_and_booking_scoped_key(db, make_booking, fake_stripe, notifications):
    booking = make_booking(amount_authorized=120_000, time_extension_amount=30_000)
    service = PaymentCaptureService(db, stripe_service=fake_stripe, notification_service=notifications)

    result = service.capture(booking)

    assert result.success is True
    assert result.captured_amount == 150_000
    assert result.payment_intent_id == booking.payment_reference
    assert fake_stripe.captures == [
        {
            "payment_intent_id": booking.payment_reference,
            "amount_to_capture": 150_000,
            "idempotency_key": f"booking-{booking.id}-checkout-capture",
        }
    ]


def test_repeated_capture_reuses_the_same_idempotency_key(db, booking, fake_stripe, notifications):
    service = PaymentCaptureService(db, stripe_service=fake_stripe, notification_service=notifications)

    service.capture(booking)
    service.capture(booking)

    keys = {call["idempotency_key"] for call in fake_stripe.captures}
    assert keys == {f"booking-{booking.id}-checkout-capture"}


def test_captured_amount_follows_processor_report(db, booking, fake_stripe, notifications):
    fake_stripe.amount_received = 119_000
    service = PaymentCaptureService(db, stripe_service=fake_stripe, notification_service=notifications)

    assert service.capture(booking).captured_amount == 119_000


def test_non_positive_amount_is_rejected_before_calling_processor(
    db, make_booking, fake_stripe, notifications
):
    booking = make_booking(amount_authorized=0, time_extension_amount=0)
    service = PaymentCaptureService(db, stripe_service=fake_stripe, notification_service=notifications)

    with pytest.raises(CheckOutValidationException):
        service.capture(booking)

    assert fake_stripe.captures == []


def test_processor_failure_alerts_admins_and_raises(db, booking, failing_stripe, notifications, caplog):
    service = PaymentCaptureService(db, stripe_service=failing_stripe, notification_service=notifications)

    with caplog.at_level(logging.ERROR):
        with pytest.raises(PaymentCaptureException) as exc_info:
            service.capture(booking)

    assert exc_info.value.processor_code == "payment_intent_unexpected_state"
    assert exc_info.value.public_message() == "Failed to capture payment"
    assert len(notifications.capture_failed) == 1
    assert notifications.capture_failed[0]["amount"] == booking.amount_to_capture
    assert any(getattr(r, "payment_reference", None) == booking.payment_reference for r in caplog.records)


def test_admin_alert_failure_does_not_mask_capture_error(db, booking, failing_stripe, notifications):
    def explode(*_args, **_kwargs):
        raise RuntimeError("smtp down")

    notifications.notify_admins_payment_capture_failed = explode
    service = PaymentCaptureService(db, stripe_service=failing_stripe, notification_service=notifications)

    with pytest.raises(PaymentCaptureException):
        service.capture(booking)


def test_unconfigured_stripe_is_a_capture_failure(db, booking, notifications):
    service = PaymentCaptureService(db, stripe_service=StripeService(), notification_service=notifications)

    with pytest.raises(PaymentCaptureException):
        service.capture(booking)
    assert len(notifications.capture_failed) == 1
