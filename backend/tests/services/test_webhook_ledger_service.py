from casaora.models.webhook_event import WebhookEvent, WebhookEventStatus
from casaora.services.webhook_ledger_service import WebhookLedgerService


def test_record_received_creates_row(db):
    service = WebhookLedgerService(db)

    event = service.record_received(
        source="stripe",
        event_id="evt_1",
        event_type="payment_intent.succeeded",
        payload={"id": "evt_1"},
    )
    db.commit()

    assert event is not None
    fetched = db.query(WebhookEvent).filter(WebhookEvent.event_id == "evt_1").one()
    assert fetched.source == "stripe"
    assert fetched.payload == {"id": "evt_1"}
    assert fetched.received_at is not None


def test_duplicate_event_id_returns_none(db):
    service = WebhookLedgerService(db)
    service.record_received(source="stripe", event_id="evt_dup", event_type="x", payload={})
    db.commit()

    again = service.record_received(source="stripe", event_id="evt_dup", event_type="x", payload={})

    assert again is None
    assert db.query(WebhookEvent).filter_by(event_id="evt_dup").count() == 1


def test_same_event_id_different_source_is_distinct(db):
    service = WebhookLedgerService(db)
    first = service.record_received(source="stripe", event_id="evt_x", event_type="x", payload={})
    second = service.record_received(source="other", event_id="evt_x", event_type="x", payload={})
    db.commit()

    assert first is not None and second is not None
    assert first.id != second.id


def test_mark_outcome_and_lookup(db):
    service = WebhookLedgerService(db)
    event = service.record_received(source="stripe", event_id="evt_2", event_type="x", payload={})

    service.mark_outcome(
        event,
        status=WebhookEventStatus.IGNORED,
        related_entity_type="booking",
        related_entity_id="bk1",
        note="booking not found",
    )
    db.commit()

    stored = service.get_event("stripe", "evt_2")
    assert stored.status == "ignored"
    assert stored.related_entity_id == "bk1"
    assert stored.processing_error == "booking not found"
    assert stored.processed_at is not None


def test_delete_events_removes_only_named_rows(db):
    service = WebhookLedgerService(db)
    for event_id in ("evt_a", "evt_b", "evt_keep"):
        service.record_received(source="stripe", event_id=event_id, event_type="x", payload={})
    db.commit()

    assert service.delete_events("stripe", ["evt_a", "evt_b", "evt_missing"]) == 2
    assert service.delete_events("stripe", []) == 0
    assert [e.event_id for e in db.query(WebhookEvent).all()] == ["evt_keep"]
