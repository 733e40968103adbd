"""
Tests for the Stripe webhook receiver: verification, de-duplication and
booking reconciliation.
"""

from concurrent.futures import ThreadPoolExecutor
import json
import threading
import time

import pytest

from casaora.core.exceptions import WebhookProcessingException, WebhookVerificationException
from casaora.models.booking import Booking, BookingStatus, PaymentStatus
from casaora.models.professional_stats import ProfessionalStats
from casaora.models.webhook_event import WebhookEvent
from casaora.services.stripe_service import StripeService
from casaora.services.stripe_webhook_service import (
    REASON_INVALID_SIGNATURE,
    REASON_MALFORMED_PAYLOAD,
    REASON_MISSING_SIGNATURE,
    REASON_STALE_EVENT,
    StripeWebhookService,
    parse_signature_timestamp,
)


def _event(event_id: str, event_type: str, obj: dict | None = None) -> str:
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "data": {"object": obj or {}},
        }
    )


def _intent(booking: Booking, **extra) -> dict:
    obj = {
        "id": booking.payment_reference,
        "object": "payment_intent",
        "metadata": {"booking_id": booking.id},
    }
    obj.update(extra)
    return obj


@pytest.fixture
def service(db):
    return StripeWebhookService(db, stripe_service=StripeService(), tolerance_seconds=300)


def _ledger_count(db) -> int:
    return db.query(WebhookEvent).count()


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


def test_parse_signature_timestamp():
    assert parse_signature_timestamp("t=1700000000,v1=abc") == 1700000000
    assert parse_signature_timestamp("v1=abc, t=12") == 12
    assert parse_signature_timestamp("v1=abc") is None
    assert parse_signature_timestamp("t=soon,v1=abc") is None


def test_missing_signature_rejected(db, service):
    with pytest.raises(WebhookVerificationException) as exc_info:
        service.handle(_event("evt_1", "payment_intent.succeeded").encode(), None)
    assert exc_info.value.reason == REASON_MISSING_SIGNATURE
    assert _ledger_count(db) == 0


def test_wrong_secret_rejected(db, service, sign):
    body = _event("evt_1", "payment_intent.succeeded")
    with pytest.raises(WebhookVerificationException) as exc_info:
        service.handle(body.encode(), sign(body, secret="whsec_someone_else"))
    assert exc_info.value.reason == REASON_INVALID_SIGNATURE
    assert _ledger_count(db) == 0


def test_tampered_body_rejected(db, service, sign):
    body = _event("evt_1", "payment_intent.succeeded")
    header = sign(body)
    with pytest.raises(WebhookVerificationException) as exc_info:
        service.handle(body.replace("evt_1", "evt_2").encode(), header)
    assert exc_info.value.reason == REASON_INVALID_SIGNATURE


@pytest.mark.parametrize("offset", [-600, 600])
def test_stale_or_future_timestamp_rejected(db, service, sign, offset):
    body = _event("evt_1", "payment_intent.succeeded")
    header = sign(body, timestamp=int(time.time()) + offset)
    with pytest.raises(WebhookVerificationException) as exc_info:
        service.handle(body.encode(), header)
    assert exc_info.value.reason == REASON_STALE_EVENT
    assert _ledger_count(db) == 0


def test_timestamp_checked_against_receiver_clock(db, service, sign, monkeypatch):
    body = _event("evt_clock", "customer.created")
    header = sign(body, timestamp=1_700_000_000)
    monkeypatch.setattr(
        "casaora.services.stripe_webhook_service._now_timestamp", lambda: 1_700_000_100.0
    )

    result = service.handle(body.encode(), header)
    assert result.duplicate is False


@pytest.mark.parametrize(
    "body",
    [
        "not json",
        "[1, 2, 3]",
        json.dumps({"type": "payment_intent.succeeded"}),
        json.dumps({"id": "", "type": "payment_intent.succeeded"}),
    ],
)
def test_malformed_payload_rejected(db, service, sign, body):
    with pytest.raises(WebhookVerificationException) as exc_info:
        service.handle(body.encode(), sign(body))
    assert exc_info.value.reason == REASON_MALFORMED_PAYLOAD
    assert _ledger_count(db) == 0


def test_non_utf8_body_rejected(service):
    with pytest.raises(WebhookVerificationException) as exc_info:
        service.handle(b"\xff\xfe\x00", "t=1,v1=abc")
    assert exc_info.value.reason == REASON_MALFORMED_PAYLOAD


def test_missing_type_recorded_as_unknown(db, service, sign):
    body = json.dumps({"id": "evt_untyped"})
    result = service.handle(body.encode(), sign(body))

    assert result.event_type == "unknown"
    assert result.outcome == "ignored"
    assert db.query(WebhookEvent).filter_by(event_id="evt_untyped").one().event_type == "unknown"


# ---------------------------------------------------------------------------
# De-duplication
# ---------------------------------------------------------------------------


def test_redelivery_is_acknowledged_as_duplicate(db, service, sign):
    body = _event("evt_dup", "customer.created")

    first = service.handle(body.encode(), sign(body))
    second = service.handle(body.encode(), sign(body))

    assert first.duplicate is False
    assert second.duplicate is True
    assert second.received is True
    assert db.query(WebhookEvent).filter_by(event_id="evt_dup").count() == 1


def test_concurrent_deliveries_apply_effect_once(session_factory, sign, booking):
    booking_id = booking.id
    professional_id = booking.professional_id
    body = _event(
        "evt_race", "payment_intent.succeeded", _intent(booking, amount_received=120_000)
    )
    header = sign(body)
    workers = 6
    barrier = threading.Barrier(workers)

    def deliver():
        session = session_factory()
        try:
            receiver = StripeWebhookService(session, stripe_service=StripeService())
            barrier.wait()
            return receiver.handle(body.encode(), header)
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(lambda _i: deliver(), range(workers)))

    assert sum(1 for r in results if not r.duplicate) == 1
    assert sum(1 for r in results if r.duplicate) == workers - 1

    check = session_factory()
    try:
        assert check.query(WebhookEvent).filter_by(event_id="evt_race").count() == 1
        stored = check.get(Booking, booking_id)
        assert stored.status == BookingStatus.COMPLETED.value
        assert stored.amount_captured == 120_000
        stats = check.get(ProfessionalStats, professional_id)
        assert stats.total_bookings_completed == 1
        assert stats.total_earnings_cents == 120_000
    finally:
        check.close()


# ---------------------------------------------------------------------------
# Domain effects
# ---------------------------------------------------------------------------


def test_succeeded_reconciles_in_progress_booking(db, service, sign, booking):
    body = _event(
        "evt_ok", "payment_intent.succeeded", _intent(booking, amount_received=120_000)
    )

    result = service.handle(body.encode(), sign(body))

    assert result.outcome == "processed"
    db.expire_all()
    stored = db.get(Booking, booking.id)
    assert stored.status == BookingStatus.COMPLETED.value
    assert stored.payment_status == PaymentStatus.SUCCEEDED.value
    assert stored.amount_captured == 120_000
    assert stored.checked_out_at is not None
    stats = db.get(ProfessionalStats, booking.professional_id)
    assert stats.total_bookings_completed == 1

    ledger = db.query(WebhookEvent).filter_by(event_id="evt_ok").one()
    assert ledger.related_entity_type == "booking"
    assert ledger.related_entity_id == booking.id


def test_succeeded_for_completed_booking_is_a_no_op(db, service, sign, make_booking):
    booking = make_booking(status=BookingStatus.COMPLETED.value, amount_captured=120_000)
    body = _event("evt_done", "payment_intent.succeeded", _intent(booking, amount_received=1))

    result = service.handle(body.encode(), sign(body))

    assert result.outcome == "processed"
    db.expire_all()
    assert db.get(Booking, booking.id).amount_captured == 120_000
    assert db.get(ProfessionalStats, booking.professional_id) is None


def test_succeeded_for_confirmed_booking_is_ignored(db, service, sign, make_booking):
    booking = make_booking(status=BookingStatus.CONFIRMED.value)
    body = _event("evt_early", "payment_intent.succeeded", _intent(booking))

    result = service.handle(body.encode(), sign(body))

    assert result.outcome == "ignored"
    db.expire_all()
    assert db.get(Booking, booking.id).status == BookingStatus.CONFIRMED.value


def test_booking_resolved_by_payment_reference(db, service, sign, booking):
    obj = {"id": booking.payment_reference, "object": "payment_intent", "metadata": {}}
    body = _event("evt_ref", "payment_intent.payment_failed", obj)

    service.handle(body.encode(), sign(body))

    db.expire_all()
    stored = db.get(Booking, booking.id)
    assert stored.payment_status == PaymentStatus.FAILED.value
    assert stored.status == BookingStatus.PAYMENT_FAILED.value


def test_payment_failed_keeps_completed_status(db, service, sign, make_booking):
    booking = make_booking(status=BookingStatus.COMPLETED.value)
    body = _event("evt_fail", "payment_intent.payment_failed", _intent(booking))

    service.handle(body.encode(), sign(body))

    db.expire_all()
    stored = db.get(Booking, booking.id)
    assert stored.status == BookingStatus.COMPLETED.value
    assert stored.payment_status == PaymentStatus.FAILED.value


@pytest.mark.parametrize(
    "status, expected",
    [
        (BookingStatus.CONFIRMED.value, BookingStatus.CANCELLED.value),
        (BookingStatus.IN_PROGRESS.value, BookingStatus.IN_PROGRESS.value),
        (BookingStatus.COMPLETED.value, BookingStatus.COMPLETED.value),
    ],
)
def test_canceled_intent(db, service, sign, make_booking, status, expected):
    booking = make_booking(status=status)
    body = _event(f"evt_cancel_{status}", "payment_intent.canceled", _intent(booking))

    service.handle(body.encode(), sign(body))

    db.expire_all()
    stored = db.get(Booking, booking.id)
    assert stored.status == expected
    assert stored.payment_status == PaymentStatus.CANCELED.value


def test_charge_refunded_resolves_through_payment_intent(db, service, sign, make_booking):
    booking = make_booking(status=BookingStatus.COMPLETED.value)
    charge = {"id": "ch_1", "object": "charge", "payment_intent": booking.payment_reference}
    body = _event("evt_refund", "charge.refunded", charge)

    result = service.handle(body.encode(), sign(body))

    assert result.outcome == "processed"
    db.expire_all()
    stored = db.get(Booking, booking.id)
    assert stored.payment_status == PaymentStatus.REFUNDED.value
    assert stored.status == BookingStatus.COMPLETED.value


def test_unknown_booking_is_ignored(db, service, sign):
    body = _event(
        "evt_orphan",
        "payment_intent.succeeded",
        {"id": "pi_missing", "metadata": {"booking_id": "01HZZZZZZZZZZZZZZZZZZZZZZZ"}},
    )

    result = service.handle(body.encode(), sign(body))

    assert result.outcome == "ignored"
    assert db.query(WebhookEvent).filter_by(event_id="evt_orphan").one().status == "ignored"


def test_effect_failure_rolls_back_ledger_for_redelivery(db, service, sign, booking, monkeypatch):
    body = _event("evt_boom", "payment_intent.payment_failed", _intent(booking))

    def boom(*_args, **_kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(service.booking_repository, "set_payment_state", boom)

    with pytest.raises(WebhookProcessingException):
        service.handle(body.encode(), sign(body))

    assert db.query(WebhookEvent).filter_by(event_id="evt_boom").count() == 0
    db.expire_all()
    assert db.get(Booking, booking.id).payment_status == PaymentStatus.AUTHORIZED.value

    monkeypatch.undo()
    retried = service.handle(body.encode(), sign(body))
    assert retried.duplicate is False
    assert retried.outcome == "processed"
