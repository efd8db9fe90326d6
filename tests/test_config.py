import uuid
from datetime import timezone

import pytest

from booky.config import AppConfig, BokioConfig, Config, StripeConfig


def test_location_loads_named_zone():
    cfg = Config(app=AppConfig(env="test", timezone="Europe/Stockholm"))
    assert str(cfg.location()) == "Europe/Stockholm"


def test_location_rejects_unknown_zone():
    cfg = Config(app=AppConfig(timezone="Bad/Timezone"))
    with pytest.raises(ValueError):
        cfg.location()


def test_location_defaults_to_utc():
    assert Config().location() is timezone.utc
    assert Config(app=AppConfig(timezone="UTC")).location() is timezone.utc


def test_defaults_are_independent_instances():
    first = Config()
    second = Config()
    first.app.timezone = "Europe/Stockholm"
    assert second.app.timezone == ""
    assert first.bokio.company_id == uuid.UUID(int=0)


def test_holds_given_values():
    company_id = uuid.UUID("11111111-1111-1111-1111-111111111111")
    cfg = Config(
        stripe=StripeConfig(api_key="placeholder", webhook_secret="secret", api_base_url="https://api.stripe.test"),
        bokio=BokioConfig(company_id=company_id, token="token", base_url="https://api.bokio.test/v1"),
    )
    assert cfg.stripe.api_base_url == "https://api.stripe.test"
    assert cfg.bokio.company_id == company_id