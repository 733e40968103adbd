import pytest
from pydantic import ValidationError

from casaora.core.config import Settings, secret_or_plain
from casaora.monitoring.prometheus_metrics import REGISTRY, prometheus_metrics


def test_persist_attempts_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(checkout_persist_max_attempts=0)


def test_currency_is_normalized():
    assert Settings(default_currency=" cop ").default_currency == "COP"


def test_rebook_variants_are_split_and_trimmed():
    settings = Settings(rebook_nudge_variants="control, reminder_7d ,,discount_10")
    assert settings.rebook_nudge_variant_list == ["control", "reminder_7d", "discount_10"]


def test_stripe_configured_follows_secret_key():
    assert Settings(stripe_secret_key="sk_test_123").stripe_configured is True
    assert Settings(stripe_secret_key="  ").stripe_configured is False


def test_secret_or_plain():
    assert secret_or_plain(None) == ""
    assert secret_or_plain("plain") == "plain"
    assert secret_or_plain(Settings(stripe_webhook_secret="whsec_1").stripe_webhook_secret) == "whsec_1"


def test_checkout_outcomes_are_counted():
    before = REGISTRY.get_sample_value("casaora_checkout_outcomes_total", {"outcome": "completed"}) or 0
    prometheus_metrics.record_checkout_outcome("completed")
    after = REGISTRY.get_sample_value("casaora_checkout_outcomes_total", {"outcome": "completed"})
    assert after == before + 1
