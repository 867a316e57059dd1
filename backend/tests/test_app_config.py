import pytest

from backend.app.config import load_app_config


def test_defaults_use_sandbox_without_stripe_key():
    config = load_app_config(env={})

    assert config.payment_provider == "sandbox"
    assert config.stripe_webhook_secret is None
    assert config.currency == "usd"
    assert config.app_base_url == "http://localhost:3000"
    assert config.cleanup_enabled is True
    assert config.webhook_tolerance_seconds == 300


def test_stripe_key_selects_stripe():
    config = load_app_config(
        env={
            "STRIPE_SECRET_KEY": "sk_test_123",
            "STRIPE_API_BASE": "https://api.stripe.test/v1/",
            "APP_BASE_URL": "https://nouripet.test/",
        }
    )

    assert config.payment_provider == "stripe"
    assert config.stripe_api_base == "https://api.stripe.test/v1"
    assert config.app_base_url == "https://nouripet.test"


def test_unknown_provider_is_rejected():
    with pytest.raises(ValueError):
        load_app_config(env={"PAYMENT_PROVIDER": "paypal"})


def test_cleanup_windows():
    config = load_app_config(
        env={
            "PLAN_CHECKOUT_WINDOW_HOURS": "12",
            "PLAN_EMPTY_GRACE_HOURS": "48",
            "PLAN_CLEANUP_INTERVAL_SECONDS": "5",
        }
    )

    assert config.checkout_window.total_seconds() == 12 * 3600
    assert config.empty_plan_grace.total_seconds() == 48 * 3600
    assert config.cleanup_interval_seconds == 60


@pytest.mark.parametrize("name", ["PLAN_CHECKOUT_WINDOW_HOURS", "PLAN_EMPTY_GRACE_HOURS"])
def test_windows_must_be_positive(name):
    with pytest.raises(ValueError):
        load_app_config(env={name: "0"})


def test_non_integer_window_is_rejected():
    with pytest.raises(ValueError):
        load_app_config(env={"PLAN_CHECKOUT_WINDOW_HOURS": "soon"})
