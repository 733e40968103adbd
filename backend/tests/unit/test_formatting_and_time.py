from datetime import datetime, timedelta, timezone

from casaora.core.constants import checkout_capture_idempotency_key
from casaora.services.booking_completion_writer import backoff_delay_seconds
from casaora.utils.formatting import format_booking_address, format_cop
from casaora.utils.time_helpers import elapsed_minutes, ensure_utc


def test_format_cop_groups_thousands_with_dots():
    assert format_cop(120000) == "$120.000 COP"
    assert format_cop(1500) == "$1.500 COP"
    assert format_cop(None) == "$0 COP"


def test_format_booking_address_variants():
    assert format_booking_address(None) == "Not specified"
    assert format_booking_address("Carrera 7 #72-41") == "Carrera 7 #72-41"
    assert format_booking_address({"formatted": "Calle 93, Bogotá", "lat": 1}) == "Calle 93, Bogotá"
    assert format_booking_address({"city": "Medellín"}) == '{"city": "Medellín"}'


def test_ensure_utc_tags_naive_values():
    naive = datetime(2026, 3, 1, 12, 0, 0)
    assert ensure_utc(naive).tzinfo == timezone.utc
    bogota = timezone(timedelta(hours=-5))
    assert ensure_utc(datetime(2026, 3, 1, 7, 0, tzinfo=bogota)).hour == 12


def test_elapsed_minutes_rounds_and_mixes_naive_with_aware():
    start = datetime(2026, 3, 1, 12, 0, 0)
    end = datetime(2026, 3, 1, 13, 35, 31, tzinfo=timezone.utc)
    assert elapsed_minutes(start, end) == 96


def test_idempotency_key_is_stable_per_booking():
    assert checkout_capture_idempotency_key("01ABC") == "booking-01ABC-checkout-capture"
    assert checkout_capture_idempotency_key("01ABC") == checkout_capture_idempotency_key("01ABC")


def test_backoff_doubles_from_base():
    assert [backoff_delay_seconds(n, 100) for n in (1, 2, 3)] == [0.1, 0.2, 0.4]
